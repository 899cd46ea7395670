"""Clients for the Kubernetes API, the RGW admin API and the S3 API."""

from ceph_s3_operator.clients.base import CRDDefinition, K8sClient
from ceph_s3_operator.clients.rgw import (
    BackendUser,
    NoSuchUserError,
    QuotaSpec,
    RGWAdminClient,
    StorageAdmin,
    StorageAdminError,
    Subuser,
    SubuserAccess,
    UserKey,
)
from ceph_s3_operator.clients.s3 import (
    BucketAdmin,
    BucketAdminError,
    BucketAdminFactory,
    NoSuchBucketError,
    S3BucketClient,
)

__all__ = [
    "BackendUser",
    "BucketAdmin",
    "BucketAdminError",
    "BucketAdminFactory",
    "CRDDefinition",
    "K8sClient",
    "NoSuchBucketError",
    "NoSuchUserError",
    "QuotaSpec",
    "RGWAdminClient",
    "S3BucketClient",
    "StorageAdmin",
    "StorageAdminError",
    "Subuser",
    "SubuserAccess",
    "UserKey",
]
