"""Pydantic models for the S3 operator resources."""

from ceph_s3_operator.models.common import (
    BucketAccess,
    DeletionPolicy,
    ObjectReference,
    ResourceMetadata,
    S3Bucket,
    S3BucketSpec,
    S3BucketStatus,
    S3User,
    S3UserClaim,
    S3UserClaimSpec,
    S3UserClaimStatus,
    S3UserSpec,
    SubuserBinding,
    UserQuota,
    format_quantity,
)

__all__ = [
    "BucketAccess",
    "DeletionPolicy",
    "ObjectReference",
    "ResourceMetadata",
    "S3Bucket",
    "S3BucketSpec",
    "S3BucketStatus",
    "S3User",
    "S3UserClaim",
    "S3UserClaimSpec",
    "S3UserClaimStatus",
    "S3UserSpec",
    "SubuserBinding",
    "UserQuota",
    "format_quantity",
]
