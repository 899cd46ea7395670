"""Provisioning of the bucket behind an S3Bucket."""

from __future__ import annotations

import base64
import binascii
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.s3 import BucketAdmin, BucketAdminError, BucketAdminFactory
from ceph_s3_operator.crds import CoreCRDs, S3CRDs
from ceph_s3_operator.domains.buckets.policy import bucket_policy, render_policy
from ceph_s3_operator.domains.claims.steps import StepResult, run_steps
from ceph_s3_operator.models.common import S3Bucket, S3BucketStatus, S3UserClaim
from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.errors import S3OperatorError, ValidationError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)

BUCKET_NAME_TAKEN_CODE = "BucketAlreadyExists"


@dataclass
class BucketContext:
    """State of one reconcile of one S3Bucket.

    ``claim`` is None when the referenced S3UserClaim does not exist.
    """

    body: dict[str, Any]
    bucket: S3Bucket
    tenant: str
    claim: S3UserClaim | None = None
    admin: BucketAdmin | None = None
    policy: str = ""

    @classmethod
    def build(cls, body: dict[str, Any], cluster_name: str, claim: S3UserClaim | None) -> BucketContext:
        bucket = S3Bucket.from_k8s(body)
        return cls(
            body=body,
            bucket=bucket,
            tenant=naming.tenant_id(cluster_name, bucket.namespace),
            claim=claim,
        )

    @property
    def target(self) -> str:
        return f"S3Bucket {self.bucket.namespace}/{self.bucket.name}"

    def refresh(self, body: dict[str, Any]) -> None:
        self.body = body
        self.bucket = S3Bucket.from_k8s(body)


def _decode(data: dict[str, Any], key: str) -> str:
    return base64.b64decode(data[key]).decode()


def claim_admin(k8s: K8sClient, factory: BucketAdminFactory, claim: S3UserClaim) -> BucketAdmin:
    """Connect with the admin credentials the claim's admin secret holds.

    Raises:
        NotFoundError: If the admin secret does not exist yet.
        S3OperatorError: If the secret holds no usable credentials.
    """
    secret_name = claim.spec.admin_secret
    if not secret_name:
        raise S3OperatorError(f"S3UserClaim {claim.namespace}/{claim.name} names no admin secret")
    secret = k8s.get(CoreCRDs.SECRET, secret_name, claim.namespace)
    data = secret.get("data") or {}
    try:
        access_key = _decode(data, S3Labels.DATA_KEY_ACCESS_KEY)
        secret_key = _decode(data, S3Labels.DATA_KEY_SECRET_KEY)
    except (KeyError, binascii.Error, UnicodeDecodeError) as e:
        raise S3OperatorError(f"Secret {claim.namespace}/{secret_name} holds no credentials: {e}") from e
    return factory(access_key, secret_key)


def record_failure(k8s: K8sClient, ctx: BucketContext, reason: str) -> None:
    """Mark the bucket not ready with the reason, keeping the applied policy."""
    desired = S3BucketStatus(ready=False, reason=reason, policy=ctx.bucket.status.policy)
    if ctx.bucket.status.model_dump() == desired.model_dump():
        return
    body = copy.deepcopy(ctx.body)
    body["status"] = desired.to_status()
    ctx.refresh(k8s.replace_status(S3CRDs.S3_BUCKET, body))


class BucketProvisioner:
    """Creates the bucket as the claim's user and applies its subuser policy."""

    def __init__(self, k8s: K8sClient, admin_factory: BucketAdminFactory):
        self._k8s = k8s
        self._admin_factory = admin_factory

    @property
    def steps(self) -> list[Callable[[BucketContext], StepResult]]:
        return [
            self.connect,
            # the bucket must not outlive its S3Bucket
            self.add_cleanup_finalizer,
            self.ensure_bucket,
            self.ensure_policy,
            self.update_status,
        ]

    def provision(self, ctx: BucketContext) -> StepResult:
        logger.debug(f"Provisioning {ctx.target}")
        return run_steps(self.steps, ctx)

    def connect(self, ctx: BucketContext) -> StepResult:
        if ctx.claim is None:
            logger.info(f"{ctx.target} waits for S3UserClaim {ctx.bucket.spec.s3_user_ref}")
            return StepResult.REQUEUE
        ctx.admin = claim_admin(self._k8s, self._admin_factory, ctx.claim)
        return StepResult.CONTINUE

    def add_cleanup_finalizer(self, ctx: BucketContext) -> StepResult:
        if S3Labels.BUCKET_CLEANUP_FINALIZER in ctx.bucket.metadata.finalizers:
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        metadata = body.setdefault("metadata", {})
        metadata["finalizers"] = [*(metadata.get("finalizers") or []), S3Labels.BUCKET_CLEANUP_FINALIZER]
        ctx.refresh(self._k8s.replace(S3CRDs.S3_BUCKET, body))
        logger.info(f"Added cleanup finalizer to {ctx.target}")
        return StepResult.CONTINUE

    def ensure_bucket(self, ctx: BucketContext) -> StepResult:
        try:
            ctx.admin.create_bucket(ctx.bucket.name)
        except BucketAdminError as e:
            if e.code == BUCKET_NAME_TAKEN_CODE:
                record_failure(self._k8s, ctx, "bucket name is taken by another user of the namespace")
                raise ValidationError(f"bucket {ctx.bucket.name} is owned by another user", field="metadata.name") from e
            record_failure(self._k8s, ctx, str(e))
            raise
        return StepResult.CONTINUE

    def ensure_policy(self, ctx: BucketContext) -> StepResult:
        claim = ctx.claim
        allowed = {*claim.spec.subusers, naming.READONLY_SUBUSER}
        unknown = sorted({b.name for b in ctx.bucket.spec.s3_subuser_binding} - allowed)
        if unknown:
            record_failure(self._k8s, ctx, f"unknown subusers: {', '.join(unknown)}")
            raise ValidationError(
                f"subusers {', '.join(unknown)} are not subusers of S3UserClaim {claim.name}",
                field="spec.s3SubuserBinding",
            )

        policy = bucket_policy(ctx.tenant, claim.name, ctx.bucket.name, ctx.bucket.spec.s3_subuser_binding)
        ctx.policy = render_policy(policy)
        if ctx.policy == ctx.bucket.status.policy:
            return StepResult.CONTINUE

        if policy is None:
            ctx.admin.delete_bucket_policy(ctx.bucket.name)
            logger.info(f"Removed the policy of {ctx.target}")
        else:
            ctx.admin.put_bucket_policy(ctx.bucket.name, policy)
            logger.info(f"Applied the policy of {ctx.target}")
        return StepResult.CONTINUE

    def update_status(self, ctx: BucketContext) -> StepResult:
        desired = S3BucketStatus(ready=True, policy=ctx.policy)
        if ctx.bucket.status.model_dump() == desired.model_dump():
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        body["status"] = desired.to_status()
        ctx.refresh(self._k8s.replace_status(S3CRDs.S3_BUCKET, body))
        logger.info(f"Updated status of {ctx.target}")
        return StepResult.CONTINUE
