"""Quota domain - usage aggregation and publishing."""

from ceph_s3_operator.domains.quota.aggregator import (
    QuotaAggregator,
    parse_resource_list,
    sum_claims,
)
from ceph_s3_operator.domains.quota.projector import StatusProjector

__all__ = [
    "QuotaAggregator",
    "StatusProjector",
    "parse_resource_list",
    "sum_claims",
]
