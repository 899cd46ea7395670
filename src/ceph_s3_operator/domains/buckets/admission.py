"""Admission checks for S3Bucket writes."""

from __future__ import annotations

import logging

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.models.common import S3Bucket
from ceph_s3_operator.utils.errors import (
    S3_USER_REF_IMMUTABLE_MESSAGE,
    S3_USER_REF_NOT_FOUND_MESSAGE,
    AdmissionDeniedError,
    FieldViolation,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class BucketAdmission:
    """A bucket must reference an existing claim, and keep referencing it."""

    def __init__(self, k8s: K8sClient):
        self._k8s = k8s

    def validate_create(self, bucket: S3Bucket) -> None:
        namespace = bucket.metadata.namespace
        logger.info(f"Validating create of S3Bucket {namespace}/{bucket.name}")
        try:
            self._k8s.get(S3CRDs.S3_USER_CLAIM, bucket.spec.s3_user_ref, namespace)
        except NotFoundError:
            raise AdmissionDeniedError(
                [FieldViolation("spec.s3UserRef", S3_USER_REF_NOT_FOUND_MESSAGE)]
            ) from None
        except Exception as e:
            logger.error(f"Failed to look up S3UserClaim {namespace}/{bucket.spec.s3_user_ref}: {e}")
            raise AdmissionDeniedError.internal("spec.s3UserRef") from e

    def validate_update(self, bucket: S3Bucket, previous: S3Bucket) -> None:
        logger.info(f"Validating update of S3Bucket {bucket.metadata.namespace}/{bucket.name}")
        if bucket.spec.s3_user_ref != previous.spec.s3_user_ref:
            raise AdmissionDeniedError([FieldViolation("spec.s3UserRef", S3_USER_REF_IMMUTABLE_MESSAGE)])
