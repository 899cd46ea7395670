"""Cleanup of a claim that is being deleted."""

from __future__ import annotations

import copy
import logging

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.rgw import NoSuchUserError, StorageAdmin
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.claims.steps import ClaimContext, Step, StepResult, run_steps
from ceph_s3_operator.domains.quota.projector import StatusProjector
from ceph_s3_operator.utils.errors import NotFoundError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


class Cleaner:
    """Removes everything provisioned for a claim, then releases its finalizer.

    The finalizer is only removed after every earlier step succeeded, so the
    claim cannot disappear while backend state is left behind.
    """

    def __init__(self, k8s: K8sClient, storage: StorageAdmin, projector: StatusProjector):
        self._k8s = k8s
        self._storage = storage
        self._projector = projector

    @property
    def steps(self) -> list[Step]:
        return [
            self.remove_backend_user,
            self.remove_s3_user,
            self.publish_quota,
            self.remove_cleanup_finalizer,
        ]

    def cleanup(self, ctx: ClaimContext) -> StepResult:
        logger.info(f"Cleaning up {ctx.target}")
        return run_steps(self.steps, ctx)

    def remove_backend_user(self, ctx: ClaimContext) -> StepResult:
        try:
            self._storage.remove_user(ctx.user_id, purge_data=True)
        except NoSuchUserError:
            logger.debug(f"Backend user {ctx.user_id} already removed")
            return StepResult.CONTINUE
        logger.info(f"Removed backend user {ctx.user_id}")
        return StepResult.CONTINUE

    def remove_s3_user(self, ctx: ClaimContext) -> StepResult:
        try:
            self._k8s.delete(S3CRDs.S3_USER, ctx.s3_user_name)
        except NotFoundError:
            return StepResult.CONTINUE
        logger.info(f"Deleted S3User {ctx.s3_user_name}")
        return StepResult.CONTINUE

    def publish_quota(self, ctx: ClaimContext) -> StepResult:
        self._projector.publish(ctx.claim, include_target=False)
        return StepResult.CONTINUE

    def remove_cleanup_finalizer(self, ctx: ClaimContext) -> StepResult:
        finalizers = ctx.claim.metadata.finalizers
        if S3Labels.CLAIM_CLEANUP_FINALIZER not in finalizers:
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        body["metadata"]["finalizers"] = [f for f in finalizers if f != S3Labels.CLAIM_CLEANUP_FINALIZER]
        try:
            self._k8s.replace(S3CRDs.S3_USER_CLAIM, body)
        except NotFoundError:
            return StepResult.CONTINUE
        logger.info(f"Removed cleanup finalizer from {ctx.target}")
        return StepResult.CONTINUE
