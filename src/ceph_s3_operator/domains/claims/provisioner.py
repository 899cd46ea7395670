"""Provisioning of the backend user and the objects derived from it."""

from __future__ import annotations

import base64
import copy
import logging
from typing import Any

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.rgw import NoSuchUserError, QuotaSpec, StorageAdmin
from ceph_s3_operator.crds import CoreCRDs, S3CRDs
from ceph_s3_operator.domains.claims.steps import ClaimContext, Step, StepResult, run_steps
from ceph_s3_operator.domains.claims.subusers import SubuserReconciler
from ceph_s3_operator.domains.quota.projector import StatusProjector
from ceph_s3_operator.models.common import S3UserClaimStatus, S3UserSpec
from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.errors import NotFoundError, ValidationError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


def owner_reference(ctx: ClaimContext) -> dict[str, Any]:
    """Controller reference from a secret to its claim."""
    return {
        "apiVersion": S3CRDs.S3_USER_CLAIM.api_version,
        "kind": S3CRDs.S3_USER_CLAIM.kind,
        "name": ctx.claim.name,
        "uid": ctx.claim.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def is_controlled_by(obj: dict[str, Any], uid: str) -> bool:
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller") and ref.get("uid") == uid:
            return True
    return False


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class Provisioner:
    """Converges the backend and the dependent objects of one claim.

    Every step is idempotent and reads the state it needs, so a re-queued
    run simply starts over from the first step.
    """

    def __init__(
        self,
        k8s: K8sClient,
        storage: StorageAdmin,
        subusers: SubuserReconciler,
        projector: StatusProjector,
    ):
        self._k8s = k8s
        self._storage = storage
        self._subusers = subusers
        self._projector = projector

    @property
    def steps(self) -> list[Step]:
        return [
            self.check_secret_names,
            self.ensure_backend_user,
            self.ensure_backend_quota,
            self._subusers.reconcile,
            # keys of new subusers are only known after a re-read
            self.refresh_backend_user,
            self.ensure_admin_secret,
            self.ensure_readonly_secret,
            self.ensure_subuser_secrets,
            self.ensure_s3_user,
            self.update_claim_status,
            self.publish_quota,
            self.add_cleanup_finalizer,
        ]

    def provision(self, ctx: ClaimContext) -> StepResult:
        logger.debug(f"Provisioning {ctx.target}")
        return run_steps(self.steps, ctx)

    def check_secret_names(self, ctx: ClaimContext) -> StepResult:
        """Claims admitted without the webhook may still name one secret twice."""
        conflicts = ctx.claim.conflicting_secret_names()
        if conflicts:
            raise ValidationError(
                f"secret names used by more than one credential: {', '.join(conflicts)}",
                field="spec.subusers",
            )
        return StepResult.CONTINUE

    def ensure_backend_user(self, ctx: ClaimContext) -> StepResult:
        max_buckets = ctx.claim.quota.max_buckets
        try:
            user = self._storage.get_user(ctx.user_id)
        except NoSuchUserError:
            ctx.backend_user = self._storage.create_user(ctx.user_id, ctx.display_name, max_buckets)
            logger.info(f"Created backend user {ctx.user_id}")
            return StepResult.CONTINUE

        if user.max_buckets != max_buckets:
            user = self._storage.modify_user(ctx.user_id, ctx.display_name, max_buckets)
            logger.info(f"Set max buckets of backend user {ctx.user_id} to {max_buckets}")
        ctx.backend_user = user
        return StepResult.CONTINUE

    def ensure_backend_quota(self, ctx: ClaimContext) -> StepResult:
        quota = ctx.claim.quota
        desired = QuotaSpec.for_limits(int(quota.max_size), int(quota.max_objects))
        current = self._storage.get_user_quota(ctx.user_id)
        if desired.differs_from(current):
            self._storage.set_user_quota(ctx.user_id, desired)
            logger.info(f"Set quota of backend user {ctx.user_id} to {desired}")
        return StepResult.CONTINUE

    def refresh_backend_user(self, ctx: ClaimContext) -> StepResult:
        ctx.backend_user = self._storage.get_user(ctx.user_id)
        return StepResult.CONTINUE

    def ensure_admin_secret(self, ctx: ClaimContext) -> StepResult:
        return self._ensure_secret(ctx, ctx.claim.spec.admin_secret, ctx.user_id, "adminSecret")

    def ensure_readonly_secret(self, ctx: ClaimContext) -> StepResult:
        return self._ensure_secret(ctx, ctx.claim.spec.readonly_secret, ctx.readonly_id, "readonlySecret")

    def ensure_subuser_secrets(self, ctx: ClaimContext) -> StepResult:
        for subuser in ctx.claim.spec.subusers:
            result = self._ensure_secret(
                ctx,
                naming.subuser_secret_name(ctx.claim.name, subuser),
                naming.subuser_full_id(ctx.user_id, subuser),
            )
            if result is not StepResult.CONTINUE:
                return result
        return StepResult.CONTINUE

    def _ensure_secret(
        self,
        ctx: ClaimContext,
        secret_name: str,
        key_owner: str,
        field: str | None = None,
    ) -> StepResult:
        if not secret_name:
            raise ValidationError(f"spec.{field} must be set", field=f"spec.{field}")

        key = ctx.backend_user.key_for(key_owner) if ctx.backend_user else None
        if key is None:
            logger.error(f"No key found for {key_owner}, cannot assemble secret {secret_name}")
            return StepResult.REQUEUE

        namespace = ctx.claim.namespace
        data = {
            S3Labels.DATA_KEY_ACCESS_KEY: _encode(key.access_key),
            S3Labels.DATA_KEY_SECRET_KEY: _encode(key.secret_key),
        }
        try:
            existing = self._k8s.get(CoreCRDs.SECRET, secret_name, namespace)
        except NotFoundError:
            self._k8s.create(
                CoreCRDs.SECRET,
                {
                    "metadata": {
                        "name": secret_name,
                        "namespace": namespace,
                        "labels": S3Labels.managed_secret_labels(ctx.claim.name),
                        "ownerReferences": [owner_reference(ctx)],
                    },
                    "type": "Opaque",
                    "data": data,
                },
            )
            logger.info(f"Created secret {namespace}/{secret_name}")
            return StepResult.CONTINUE

        if existing.get("data") == data and is_controlled_by(existing, ctx.claim.metadata.uid):
            return StepResult.CONTINUE

        body = copy.deepcopy(existing)
        body["data"] = data
        metadata = body.setdefault("metadata", {})
        others = [ref for ref in metadata.get("ownerReferences") or [] if not ref.get("controller")]
        metadata["ownerReferences"] = [*others, owner_reference(ctx)]
        metadata["labels"] = {
            **(metadata.get("labels") or {}),
            **S3Labels.managed_secret_labels(ctx.claim.name),
        }
        self._k8s.replace(CoreCRDs.SECRET, body)
        logger.info(f"Updated secret {namespace}/{secret_name}")
        return StepResult.CONTINUE

    def desired_s3_user_spec(self, ctx: ClaimContext) -> dict[str, Any]:
        claim = ctx.claim
        return {
            "s3UserClass": ctx.user_class,
            "quota": claim.quota.to_spec(),
            "claimRef": {
                "apiVersion": S3CRDs.S3_USER_CLAIM.api_version,
                "kind": S3CRDs.S3_USER_CLAIM.kind,
                "namespace": claim.namespace,
                "name": claim.name,
                "uid": claim.metadata.uid,
            },
        }

    def ensure_s3_user(self, ctx: ClaimContext) -> StepResult:
        desired = self.desired_s3_user_spec(ctx)
        try:
            existing = self._k8s.get(S3CRDs.S3_USER, ctx.s3_user_name)
        except NotFoundError:
            self._k8s.create(S3CRDs.S3_USER, {"metadata": {"name": ctx.s3_user_name}, "spec": desired})
            logger.info(f"Created S3User {ctx.s3_user_name}")
            return StepResult.CONTINUE

        current = S3UserSpec.model_validate(existing.get("spec") or {})
        if current.model_dump() == S3UserSpec.model_validate(desired).model_dump():
            return StepResult.CONTINUE

        body = copy.deepcopy(existing)
        body["spec"] = desired
        self._k8s.replace(S3CRDs.S3_USER, body)
        logger.info(f"Updated S3User {ctx.s3_user_name}")
        return StepResult.CONTINUE

    def update_claim_status(self, ctx: ClaimContext) -> StepResult:
        desired = S3UserClaimStatus(
            quota=ctx.claim.quota,
            s3_user_name=ctx.s3_user_name,
            subusers=list(ctx.claim.spec.subusers),
        )
        if ctx.claim.status.model_dump() == desired.model_dump():
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        body["status"] = desired.to_status()
        ctx.refresh(self._k8s.replace_status(S3CRDs.S3_USER_CLAIM, body))
        logger.info(f"Updated status of {ctx.target}")
        return StepResult.CONTINUE

    def publish_quota(self, ctx: ClaimContext) -> StepResult:
        self._projector.publish(ctx.claim, include_target=True)
        return StepResult.CONTINUE

    def add_cleanup_finalizer(self, ctx: ClaimContext) -> StepResult:
        if S3Labels.CLAIM_CLEANUP_FINALIZER in ctx.claim.metadata.finalizers:
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        metadata = body.setdefault("metadata", {})
        metadata["finalizers"] = [*(metadata.get("finalizers") or []), S3Labels.CLAIM_CLEANUP_FINALIZER]
        ctx.refresh(self._k8s.replace(S3CRDs.S3_USER_CLAIM, body))
        logger.info(f"Added cleanup finalizer to {ctx.target}")
        return StepResult.CONTINUE
