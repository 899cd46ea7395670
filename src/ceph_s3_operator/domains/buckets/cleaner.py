"""Cleanup of an S3Bucket that is being deleted."""

from __future__ import annotations

import copy
import logging
from typing import Callable

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.s3 import BucketAdminError, BucketAdminFactory, NoSuchBucketError
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.buckets.provisioner import BucketContext, claim_admin, record_failure
from ceph_s3_operator.domains.claims.steps import StepResult, run_steps
from ceph_s3_operator.models.common import DeletionPolicy
from ceph_s3_operator.utils.errors import NotFoundError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


class BucketCleaner:
    """Deletes the bucket unless it is retained, then releases the finalizer.

    Without its claim there is nothing left to delete: removing the claim
    purges its user together with the user's buckets.
    """

    def __init__(self, k8s: K8sClient, admin_factory: BucketAdminFactory):
        self._k8s = k8s
        self._admin_factory = admin_factory

    @property
    def steps(self) -> list[Callable[[BucketContext], StepResult]]:
        return [
            self.connect,
            self.remove_bucket,
            self.remove_cleanup_finalizer,
        ]

    def cleanup(self, ctx: BucketContext) -> StepResult:
        logger.info(f"Cleaning up {ctx.target}")
        return run_steps(self.steps, ctx)

    def connect(self, ctx: BucketContext) -> StepResult:
        if ctx.bucket.spec.s3_deletion_policy is DeletionPolicy.RETAIN:
            return StepResult.CONTINUE
        if ctx.claim is None:
            logger.warning(f"S3UserClaim of {ctx.target} is gone, nothing to delete")
            return StepResult.CONTINUE
        ctx.admin = claim_admin(self._k8s, self._admin_factory, ctx.claim)
        return StepResult.CONTINUE

    def remove_bucket(self, ctx: BucketContext) -> StepResult:
        if ctx.bucket.spec.s3_deletion_policy is DeletionPolicy.RETAIN:
            logger.info(f"Retaining the bucket of {ctx.target}")
            return StepResult.CONTINUE
        if ctx.admin is None:
            return StepResult.CONTINUE

        try:
            ctx.admin.delete_bucket(ctx.bucket.name)
        except NoSuchBucketError:
            logger.debug(f"Bucket {ctx.bucket.name} already removed")
            return StepResult.CONTINUE
        except BucketAdminError as e:
            # typically BucketNotEmpty, the tenant has to empty it first
            logger.error(f"Failed to delete the bucket of {ctx.target}: {e}")
            record_failure(self._k8s, ctx, str(e))
            return StepResult.REQUEUE
        logger.info(f"Deleted bucket {ctx.bucket.name}")
        return StepResult.CONTINUE

    def remove_cleanup_finalizer(self, ctx: BucketContext) -> StepResult:
        finalizers = ctx.bucket.metadata.finalizers
        if S3Labels.BUCKET_CLEANUP_FINALIZER not in finalizers:
            return StepResult.CONTINUE

        body = copy.deepcopy(ctx.body)
        body["metadata"]["finalizers"] = [f for f in finalizers if f != S3Labels.BUCKET_CLEANUP_FINALIZER]
        try:
            self._k8s.replace(S3CRDs.S3_BUCKET, body)
        except NotFoundError:
            return StepResult.CONTINUE
        logger.info(f"Removed cleanup finalizer from {ctx.target}")
        return StepResult.CONTINUE
