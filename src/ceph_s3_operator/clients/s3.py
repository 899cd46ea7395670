"""S3 API client used to manage the buckets of a claim's user.

Buckets are managed with the claim's own admin credentials, so every bucket
is owned by the claim's RGW user and lives in its tenant.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ceph_s3_operator.config import RgwConfig
from ceph_s3_operator.utils.errors import S3OperatorError

logger = logging.getLogger(__name__)

# Codes meaning the bucket already belongs to the calling user
OWNED_BUCKET_CODES = ("BucketAlreadyOwnedByYou",)
NO_SUCH_BUCKET_CODES = ("NoSuchBucket", "404")
NO_SUCH_POLICY_CODES = ("NoSuchBucketPolicy",)


class BucketAdminError(S3OperatorError):
    """An S3 API call failed."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message, {"code": code} if code else None)
        self.code = code


class NoSuchBucketError(BucketAdminError):
    """The bucket does not exist."""

    def __init__(self, bucket: str) -> None:
        super().__init__(f"no such bucket '{bucket}'", "NoSuchBucket")
        self.bucket = bucket


class BucketAdmin(Protocol):
    """The bucket operations the operator needs."""

    def create_bucket(self, name: str) -> None: ...

    def delete_bucket(self, name: str) -> None: ...

    def put_bucket_policy(self, name: str, policy: dict[str, Any]) -> None: ...

    def delete_bucket_policy(self, name: str) -> None: ...


BucketAdminFactory = Callable[[str, str], BucketAdmin]
"""Builds a BucketAdmin from an access key and a secret key."""


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3BucketClient:
    """BucketAdmin over a boto3 S3 client.

    Translates botocore errors into the operator's exception hierarchy.
    """

    def __init__(self, s3: Any):
        self._s3 = s3

    @classmethod
    def for_credentials(cls, config: RgwConfig, access_key: str, secret_key: str) -> S3BucketClient:
        """Create a client acting as the user owning the given keys.

        RGW serves buckets path style, the region is only used for signing.
        """
        endpoint = config.endpoint if "://" in config.endpoint else f"http://{config.endpoint}"
        s3 = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=config.region,
            verify=config.verify_tls,
            config=Config(
                s3={"addressing_style": "path"},
                connect_timeout=config.timeout_seconds,
                read_timeout=config.timeout_seconds,
                retries={"max_attempts": 5},
            ),
        )
        return cls(s3)

    def _call(self, bucket: str, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return func(**kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in NO_SUCH_BUCKET_CODES:
                raise NoSuchBucketError(bucket) from e
            raise BucketAdminError(f"{operation} failed for bucket '{bucket}': {e}", code) from e
        except BotoCoreError as e:
            raise BucketAdminError(f"{operation} failed for bucket '{bucket}': {e}") from e

    def create_bucket(self, name: str) -> None:
        """Create the bucket, succeeding if the caller already owns it."""
        try:
            self._call(name, "create bucket", self._s3.create_bucket, Bucket=name)
        except BucketAdminError as e:
            if e.code in OWNED_BUCKET_CODES:
                logger.debug(f"Bucket {name} already exists")
                return
            raise

    def delete_bucket(self, name: str) -> None:
        self._call(name, "delete bucket", self._s3.delete_bucket, Bucket=name)

    def put_bucket_policy(self, name: str, policy: dict[str, Any]) -> None:
        self._call(name, "put bucket policy", self._s3.put_bucket_policy, Bucket=name, Policy=json.dumps(policy))

    def delete_bucket_policy(self, name: str) -> None:
        try:
            self._call(name, "delete bucket policy", self._s3.delete_bucket_policy, Bucket=name)
        except BucketAdminError as e:
            if e.code in NO_SUCH_POLICY_CODES:
                return
            raise
