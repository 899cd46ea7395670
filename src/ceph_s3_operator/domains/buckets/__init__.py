"""Buckets domain - S3Bucket admission and lifecycle."""

from ceph_s3_operator.domains.buckets.admission import BucketAdmission
from ceph_s3_operator.domains.buckets.cleaner import BucketCleaner
from ceph_s3_operator.domains.buckets.policy import bucket_policy, render_policy
from ceph_s3_operator.domains.buckets.provisioner import BucketContext, BucketProvisioner
from ceph_s3_operator.domains.buckets.reconciler import BucketReconciler

__all__ = [
    "BucketAdmission",
    "BucketCleaner",
    "BucketContext",
    "BucketProvisioner",
    "BucketReconciler",
    "bucket_policy",
    "render_policy",
]
