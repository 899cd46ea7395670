"""Publishing aggregated usage onto the platform quota objects."""

from __future__ import annotations

import copy
import logging
from typing import Any

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import QuotaCRDs
from ceph_s3_operator.domains.quota.aggregator import QuotaAggregator, parse_resource_list
from ceph_s3_operator.models.common import S3UserClaim, UserQuota, format_quantity

logger = logging.getLogger(__name__)


def merge_used(used: dict[str, Any] | None, usage: UserQuota, resources: list[str]) -> dict[str, Any]:
    """Return ``used`` with the given s3 resources replaced by ``usage``."""
    merged = dict(used or {})
    values = usage.values_by_resource()
    for name in resources:
        merged[name] = format_quantity(values[name])
    return merged


def same_usage(current: dict[str, Any] | None, desired: dict[str, Any]) -> bool:
    """Compare the s3 entries of two used lists as quantities."""
    return parse_resource_list(current) == parse_resource_list(desired)


class StatusProjector:
    """Writes namespace and team usage onto ResourceQuota and ClusterResourceQuota.

    Writes are skipped when the stored usage is already equal. Conflicts
    surface as :class:`~ceph_s3_operator.utils.errors.ConflictError` for the
    caller to re-queue.
    """

    def __init__(self, k8s: K8sClient, aggregator: QuotaAggregator):
        self._k8s = k8s
        self._aggregator = aggregator

    def publish(self, claim: S3UserClaim, include_target: bool) -> None:
        """Publish namespace and team usage for the claim's namespace.

        Raises:
            TeamNotFoundError: If the namespace has no team label.
            ConflictError: If a quota object changed while being updated.
        """
        self.publish_namespace(claim, include_target)
        self.publish_team(claim, include_target)

    def publish_namespace(self, claim: S3UserClaim, include_target: bool) -> UserQuota:
        usage = self._aggregator.namespace_usage(claim, include_target)
        for quota in self._aggregator.namespace_quotas(claim.namespace):
            hard = parse_resource_list((quota.get("spec") or {}).get("hard"))
            if not hard:
                continue
            status = quota.get("status") or {}
            used = merge_used(status.get("used"), usage, list(hard))
            if same_usage(status.get("used"), used):
                continue

            body = copy.deepcopy(quota)
            body.setdefault("status", {})["used"] = used
            self._k8s.replace_status(QuotaCRDs.RESOURCE_QUOTA, body)
            logger.info(
                f"Updated ResourceQuota {claim.namespace}/{quota['metadata']['name']} "
                f"used to {used}"
            )
        return usage

    def publish_team(self, claim: S3UserClaim, include_target: bool) -> UserQuota | None:
        team = self._aggregator.find_team(claim.namespace)
        quota = self._aggregator.team_quota(team)
        if quota is None:
            logger.warning(f"Team {team} has no ClusterResourceQuota, skipping team usage")
            return None

        hard = parse_resource_list(((quota.get("spec") or {}).get("quota") or {}).get("hard"))
        if not hard:
            logger.debug(f"ClusterResourceQuota {team} limits no s3 resources, skipping team usage")
            return None
        resources = list(hard)

        usage = self._aggregator.team_usage(claim, team, include_target)
        namespace_usage = self._aggregator.namespace_usage(claim, include_target)

        body = copy.deepcopy(quota)
        status = body.get("status") or {}
        body["status"] = status
        total = status.get("total") or {}
        status["total"] = total

        changed = False
        total_used = merge_used(total.get("used"), usage, resources)
        if not same_usage(total.get("used"), total_used):
            total["used"] = total_used
            changed = True

        entries = status.get("namespaces") or []
        status["namespaces"] = entries
        entry = next((e for e in entries if e.get("namespace") == claim.namespace), None)
        if entry is None:
            entry = {"namespace": claim.namespace, "status": {}}
            entries.append(entry)
            changed = True
        entry_status = entry.get("status") or {}
        entry["status"] = entry_status
        namespace_used = merge_used(entry_status.get("used"), namespace_usage, resources)
        if not same_usage(entry_status.get("used"), namespace_used):
            entry_status["used"] = namespace_used
            changed = True

        if changed:
            self._k8s.replace_status(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, body)
            logger.info(f"Updated ClusterResourceQuota {team} used to {total_used}")
        return usage
