"""Resource definitions used by the operator."""

from ceph_s3_operator.clients.base import CRDDefinition

GROUP = "s3.snappcloud.io"
VERSION = "v1alpha1"


class S3CRDs:
    """Custom resources served by this operator."""

    S3_USER_CLAIM = CRDDefinition(
        group=GROUP,
        version=VERSION,
        plural="s3userclaims",
        kind="S3UserClaim",
    )

    # Cluster scoped, one per claim
    S3_USER = CRDDefinition(
        group=GROUP,
        version=VERSION,
        plural="s3users",
        kind="S3User",
        namespaced=False,
    )

    S3_BUCKET = CRDDefinition(
        group=GROUP,
        version=VERSION,
        plural="s3buckets",
        kind="S3Bucket",
    )


class QuotaCRDs:
    """Platform owned quota objects."""

    # Per-namespace hard limits
    RESOURCE_QUOTA = CRDDefinition(
        group="",
        version="v1",
        plural="resourcequotas",
        kind="ResourceQuota",
    )

    # Per-team hard limits, named after the team
    CLUSTER_RESOURCE_QUOTA = CRDDefinition(
        group="quota.openshift.io",
        version="v1",
        plural="clusterresourcequotas",
        kind="ClusterResourceQuota",
        namespaced=False,
    )


class CoreCRDs:
    """Core kinds."""

    NAMESPACE = CRDDefinition(
        group="",
        version="v1",
        plural="namespaces",
        kind="Namespace",
        namespaced=False,
    )

    SECRET = CRDDefinition(
        group="",
        version="v1",
        plural="secrets",
        kind="Secret",
    )
