"""Ceph S3 operator - self-service S3 users and buckets on Ceph RGW."""

__version__ = "0.1.0"
