"""Users domain - S3User garbage collection."""

from ceph_s3_operator.domains.users.collector import S3UserCollector

__all__ = ["S3UserCollector"]
