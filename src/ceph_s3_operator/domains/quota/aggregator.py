"""Quota aggregation over sibling claims.

The totals are the sum of the quota requested by every claim in a scope.
The claim being evaluated is always excluded by its (namespace, name) pair
and added back once when ``include_target`` is set, so a claim that is being
updated is never counted twice.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from kubernetes.utils import parse_quantity

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import CoreCRDs, QuotaCRDs, S3CRDs
from ceph_s3_operator.models.common import S3UserClaim, UserQuota
from ceph_s3_operator.utils.errors import NotFoundError, TeamNotFoundError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


def parse_resource_list(values: dict[str, Any] | None) -> dict[str, Decimal]:
    """Parse the s3 entries of a hard or used resource list."""
    values = values or {}
    return {
        name: parse_quantity(values[name])
        for name in S3Labels.quota_resource_names()
        if values.get(name) is not None
    }


def sum_claims(
    siblings: Iterable[S3UserClaim],
    target: S3UserClaim,
    include_target: bool,
) -> UserQuota:
    """Sum the quota of ``siblings`` other than ``target``.

    Args:
        siblings: Claims in the scope, the target may or may not be among them.
        target: The claim being evaluated.
        include_target: Add the target's own quota once.

    Returns:
        The aggregated quota.
    """
    total = UserQuota()
    for claim in siblings:
        if claim.same_identity(target):
            continue
        total = total + claim.quota
    if include_target:
        total = total + target.quota
    return total


class QuotaAggregator:
    """Computes namespace and team totals from the object store.

    ``consistent=True`` must be used on the admission path: two claims
    admitted concurrently would otherwise both pass against a stale list.
    """

    def __init__(self, k8s: K8sClient):
        self._k8s = k8s

    def list_claims(self, namespace: str, consistent: bool = False) -> list[S3UserClaim]:
        items = self._k8s.list(S3CRDs.S3_USER_CLAIM, namespace=namespace, consistent=consistent)
        return [S3UserClaim.from_k8s(item) for item in items]

    def namespace_usage(
        self,
        target: S3UserClaim,
        include_target: bool,
        consistent: bool = False,
    ) -> UserQuota:
        """Total quota requested in the target's namespace."""
        siblings = self.list_claims(target.namespace, consistent=consistent)
        return sum_claims(siblings, target, include_target)

    def find_team(self, namespace: str) -> str:
        """Return the team label of a namespace.

        Raises:
            TeamNotFoundError: If the namespace has no team label.
            NotFoundError: If the namespace does not exist.
        """
        ns = self._k8s.get(CoreCRDs.NAMESPACE, namespace)
        team = S3Labels.team_of((ns.get("metadata") or {}).get("labels"))
        if not team:
            raise TeamNotFoundError(namespace)
        return team

    def team_namespaces(self, team: str, consistent: bool = False) -> list[str]:
        items = self._k8s.list(
            CoreCRDs.NAMESPACE,
            label_selector=S3Labels.team_selector(team),
            consistent=consistent,
        )
        return [item["metadata"]["name"] for item in items]

    def team_usage(
        self,
        target: S3UserClaim,
        team: str,
        include_target: bool,
        consistent: bool = False,
    ) -> UserQuota:
        """Total quota requested across every namespace of a team."""
        namespaces = self.team_namespaces(team, consistent=consistent)
        logger.debug(f"Team {team} spans namespaces {namespaces}")
        siblings: list[S3UserClaim] = []
        for namespace in namespaces:
            siblings.extend(self.list_claims(namespace, consistent=consistent))
        return sum_claims(siblings, target, include_target)

    def team_quota(self, team: str) -> dict | None:
        """Return the team's ClusterResourceQuota, or None if it is not defined."""
        try:
            return self._k8s.get(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, team)
        except NotFoundError:
            return None

    def namespace_quotas(self, namespace: str, consistent: bool = False) -> list[dict]:
        return self._k8s.list(QuotaCRDs.RESOURCE_QUOTA, namespace=namespace, consistent=consistent)
