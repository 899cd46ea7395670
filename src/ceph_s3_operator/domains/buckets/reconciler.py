"""Entry point of the bucket control loop."""

from __future__ import annotations

import logging
from typing import Callable

import pydantic

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.buckets.cleaner import BucketCleaner
from ceph_s3_operator.domains.buckets.provisioner import BucketContext, BucketProvisioner
from ceph_s3_operator.domains.claims.steps import StepResult
from ceph_s3_operator.models.common import S3UserClaim
from ceph_s3_operator.utils.errors import NotFoundError, S3OperatorError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


class BucketReconciler:
    """Runs provisioning or cleanup for one S3Bucket.

    A bucket belongs to the operator instance handling the class of its
    claim. Buckets whose claim is missing are handled by every instance.
    """

    def __init__(
        self,
        k8s: K8sClient,
        provisioner: BucketProvisioner,
        cleaner: BucketCleaner,
        cluster_name: str,
        handles_class: Callable[[str | None], bool],
    ):
        self._k8s = k8s
        self._provisioner = provisioner
        self._cleaner = cleaner
        self._cluster_name = cluster_name
        self._handles_class = handles_class

    def _claim(self, namespace: str, name: str) -> S3UserClaim | None:
        if not name:
            return None
        try:
            return S3UserClaim.from_k8s(self._k8s.get(S3CRDs.S3_USER_CLAIM, name, namespace))
        except NotFoundError:
            return None

    def reconcile(self, namespace: str, name: str) -> StepResult:
        try:
            body = self._k8s.get(S3CRDs.S3_BUCKET, name, namespace)
        except NotFoundError:
            logger.debug(f"S3Bucket {namespace}/{name} is gone")
            return StepResult.CONTINUE

        try:
            claim = self._claim(namespace, (body.get("spec") or {}).get("s3UserRef", ""))
        except S3OperatorError as e:
            logger.error(f"Failed to read the S3UserClaim of S3Bucket {namespace}/{name}: {e}")
            return StepResult.REQUEUE
        if claim is not None and not self._handles_class(claim.spec.s3_user_class):
            logger.debug(f"Ignoring S3Bucket {namespace}/{name} of class {claim.spec.s3_user_class}")
            return StepResult.CONTINUE

        try:
            ctx = BucketContext.build(body, self._cluster_name, claim)
        except pydantic.ValidationError as e:
            logger.error(f"S3Bucket {namespace}/{name} is malformed: {e}")
            return StepResult.HALT

        if ctx.bucket.is_deleting:
            if S3Labels.BUCKET_CLEANUP_FINALIZER not in ctx.bucket.metadata.finalizers:
                return StepResult.CONTINUE
            return self._cleaner.cleanup(ctx)
        return self._provisioner.provision(ctx)
