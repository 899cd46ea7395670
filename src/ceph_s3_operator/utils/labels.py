"""Label, finalizer and quota resource name constants and helpers."""

from typing import Any


class S3Labels:
    """Kubernetes labels and well-known keys used by the operator."""

    # Namespace label naming the owning team
    TEAM = "snappcloud.io/team"

    # Component labels
    APP_KUBERNETES_MANAGED_BY = "app.kubernetes.io/managed-by"
    APP_KUBERNETES_NAME = "app.kubernetes.io/name"
    MANAGED_BY_VALUE = "ceph-s3-operator"

    # Finalizers
    FINALIZER_PREFIX = "s3.snappcloud.io/"
    CLAIM_CLEANUP_FINALIZER = FINALIZER_PREFIX + "cleanup-s3userclaim"
    BUCKET_CLEANUP_FINALIZER = FINALIZER_PREFIX + "cleanup-s3bucket"

    # Quota resource names in ResourceQuota / ClusterResourceQuota hard and used lists
    RESOURCE_MAX_SIZE = "s3/size"
    RESOURCE_MAX_OBJECTS = "s3/objects"
    RESOURCE_MAX_BUCKETS = "s3/buckets"

    # Credential secret data keys
    DATA_KEY_ACCESS_KEY = "accessKey"
    DATA_KEY_SECRET_KEY = "secretKey"

    @classmethod
    def quota_resource_names(cls) -> tuple[str, str, str]:
        """Resource names in (size, objects, buckets) order."""
        return (cls.RESOURCE_MAX_SIZE, cls.RESOURCE_MAX_OBJECTS, cls.RESOURCE_MAX_BUCKETS)

    @classmethod
    def managed_secret_labels(cls, claim_name: str) -> dict[str, str]:
        """Create labels for credential secrets owned by a claim."""
        return {
            cls.APP_KUBERNETES_MANAGED_BY: cls.MANAGED_BY_VALUE,
            cls.APP_KUBERNETES_NAME: claim_name,
        }

    @classmethod
    def is_managed(cls, labels: dict[str, Any] | None) -> bool:
        """Check if an object is managed by this operator."""
        if not labels:
            return False
        return labels.get(cls.APP_KUBERNETES_MANAGED_BY) == cls.MANAGED_BY_VALUE

    @classmethod
    def team_of(cls, labels: dict[str, Any] | None) -> str | None:
        """Return the team a namespace belongs to, if labelled."""
        if not labels:
            return None
        return labels.get(cls.TEAM)

    @classmethod
    def filter_selector(cls, **labels: str) -> str:
        """Create a label selector string from key-value pairs."""
        return ",".join(f"{k}={v}" for k, v in labels.items())

    @classmethod
    def team_selector(cls, team: str) -> str:
        """Label selector matching every namespace of a team."""
        return f"{cls.TEAM}={team}"
