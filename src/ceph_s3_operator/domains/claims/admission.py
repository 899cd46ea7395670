"""Admission checks for S3UserClaim writes.

Quota checks read the claim lists with quorum reads, so two claims admitted
at the same time always see each other. Any failure to evaluate a check
rejects the write.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.quota.aggregator import QuotaAggregator, parse_resource_list
from ceph_s3_operator.models.common import S3Bucket, S3UserClaim, UserQuota
from ceph_s3_operator.utils.errors import (
    BUCKETS_REFERENCE_CLAIM_MESSAGE,
    EXCEEDED_NAMESPACE_QUOTA_MESSAGE,
    EXCEEDED_TEAM_QUOTA_MESSAGE,
    SECRET_NAME_CONFLICT_MESSAGE,
    TEAM_QUOTA_NOT_DEFINED_MESSAGE,
    USER_CLASS_IMMUTABLE_MESSAGE,
    AdmissionDeniedError,
    FieldViolation,
    TeamNotFoundError,
)
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)

QUOTA_FIELDS = {
    S3Labels.RESOURCE_MAX_SIZE: "spec.quota.maxSize",
    S3Labels.RESOURCE_MAX_OBJECTS: "spec.quota.maxObjects",
    S3Labels.RESOURCE_MAX_BUCKETS: "spec.quota.maxBuckets",
}


def exceeded(usage: UserQuota, hard: dict[str, Decimal], message: str) -> list[FieldViolation]:
    """One violation per dimension whose usage is above a defined hard limit."""
    values = usage.values_by_resource()
    return [
        FieldViolation(QUOTA_FIELDS[name], message)
        for name, limit in hard.items()
        if values[name] > limit
    ]


def secret_name_violations(claim: S3UserClaim, previous: S3UserClaim | None = None) -> list[FieldViolation]:
    """Violations for secret names shared by different credentials.

    On update only collisions the update introduces are reported.
    """
    conflicts = claim.conflicting_secret_names()
    if previous is not None:
        existing = set(previous.conflicting_secret_names())
        conflicts = [name for name in conflicts if name not in existing]
    return [
        FieldViolation("spec.subusers", f"{SECRET_NAME_CONFLICT_MESSAGE}: {name}")
        for name in conflicts
    ]


class ClaimAdmission:
    """Validates S3UserClaim create, update and delete requests."""

    def __init__(self, k8s: K8sClient, aggregator: QuotaAggregator, default_user_class: str):
        self._k8s = k8s
        self._aggregator = aggregator
        self._default_user_class = default_user_class

    def validate_create(self, claim: S3UserClaim) -> None:
        """Raises AdmissionDeniedError on colliding secret names or if the claim does not fit its quotas."""
        logger.info(f"Validating create of S3UserClaim {claim.namespace}/{claim.name}")
        self._reject(claim, secret_name_violations(claim) + self._quota_violations(claim))

    def validate_update(self, claim: S3UserClaim, previous: S3UserClaim) -> None:
        """Raises AdmissionDeniedError on a class change or if the claim does not fit.

        Limits are only compared when the update raises at least one quota
        dimension, so metadata writes such as finalizer removal pass even
        after the platform lowered a limit below the admitted total. Writes
        to a claim that is being deleted are never checked against quotas.
        """
        logger.info(f"Validating update of S3UserClaim {claim.namespace}/{claim.name}")
        if claim.effective_user_class(self._default_user_class) != previous.effective_user_class(
            self._default_user_class
        ):
            raise AdmissionDeniedError([FieldViolation("spec.s3UserClass", USER_CLASS_IMMUTABLE_MESSAGE)])
        if claim.is_deleting:
            return

        violations = secret_name_violations(claim, previous)
        if claim.quota.exceeds_in_any(previous.quota):
            violations += self._quota_violations(claim)
        else:
            violations += self._team_violations(claim, check_limits=False)
        self._reject(claim, violations)

    def validate_delete(self, claim: S3UserClaim) -> None:
        """Raises AdmissionDeniedError while S3Buckets still reference the claim."""
        logger.info(f"Validating delete of S3UserClaim {claim.namespace}/{claim.name}")
        try:
            items = self._k8s.list(S3CRDs.S3_BUCKET, namespace=claim.namespace, consistent=True)
        except Exception as e:
            logger.error(f"Failed to list S3Buckets in {claim.namespace}: {e}")
            raise AdmissionDeniedError.internal() from e

        buckets = [S3Bucket.from_k8s(item) for item in items]
        if any(bucket.spec.s3_user_ref == claim.name for bucket in buckets):
            raise AdmissionDeniedError([FieldViolation("metadata.name", BUCKETS_REFERENCE_CLAIM_MESSAGE)])

    def _reject(self, claim: S3UserClaim, violations: list[FieldViolation]) -> None:
        if violations:
            logger.info(f"Rejected S3UserClaim {claim.namespace}/{claim.name}: {violations}")
            raise AdmissionDeniedError(violations)

    def _quota_violations(self, claim: S3UserClaim) -> list[FieldViolation]:
        return self._namespace_violations(claim) + self._team_violations(claim)

    def _namespace_violations(self, claim: S3UserClaim) -> list[FieldViolation]:
        try:
            usage = self._aggregator.namespace_usage(claim, include_target=True, consistent=True)
            quotas = self._aggregator.namespace_quotas(claim.namespace, consistent=True)
        except Exception as e:
            logger.error(f"Failed to compute namespace usage in {claim.namespace}: {e}")
            raise AdmissionDeniedError.internal() from e

        violations: list[FieldViolation] = []
        for quota in quotas:
            hard = parse_resource_list((quota.get("spec") or {}).get("hard"))
            for violation in exceeded(usage, hard, EXCEEDED_NAMESPACE_QUOTA_MESSAGE):
                if violation not in violations:
                    violations.append(violation)
        return violations

    def _team_violations(self, claim: S3UserClaim, check_limits: bool = True) -> list[FieldViolation]:
        try:
            team = self._aggregator.find_team(claim.namespace)
            quota = self._aggregator.team_quota(team)
            if quota is None:
                return [FieldViolation("metadata.namespace", TEAM_QUOTA_NOT_DEFINED_MESSAGE)]
            if not check_limits:
                return []
            usage = self._aggregator.team_usage(claim, team, include_target=True, consistent=True)
        except TeamNotFoundError as e:
            logger.error(f"Cannot resolve team of {claim.namespace}: {e}")
            raise AdmissionDeniedError.internal("metadata.namespace") from e
        except Exception as e:
            logger.error(f"Failed to compute team usage for {claim.namespace}: {e}")
            raise AdmissionDeniedError.internal() from e

        hard = parse_resource_list(((quota.get("spec") or {}).get("quota") or {}).get("hard"))
        return exceeded(usage, hard, EXCEEDED_TEAM_QUOTA_MESSAGE)
