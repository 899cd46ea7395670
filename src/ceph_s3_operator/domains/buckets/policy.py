"""Bucket policies granting subusers of the owning claim access to a bucket."""

from __future__ import annotations

import json
from typing import Any

from ceph_s3_operator.models.common import BucketAccess, SubuserBinding

READ_ACTIONS = ["s3:ListBucket", "s3:GetObject"]
WRITE_ACTIONS = [*READ_ACTIONS, "s3:DeleteObject", "s3:PutObject"]

ACTIONS = {
    BucketAccess.READ: READ_ACTIONS,
    BucketAccess.WRITE: WRITE_ACTIONS,
}


def subuser_principal(tenant: str, owner: str, subuser: str) -> str:
    """IAM principal of ``tenant$owner:subuser`` as RGW spells it."""
    return f"arn:aws:iam::{tenant}:user/{owner}:{subuser}"


def bucket_resources(tenant: str, bucket: str) -> list[str]:
    return [f"arn:aws:s3::{tenant}:{bucket}", f"arn:aws:s3::{tenant}:{bucket}/*"]


def bucket_policy(
    tenant: str,
    owner: str,
    bucket: str,
    bindings: list[SubuserBinding],
) -> dict[str, Any] | None:
    """Build the policy for the given bindings, one statement per access level.

    Statements and principals are sorted, so equal bindings always render to
    the same document.

    Returns:
        The policy document, or None when there is nothing to grant.
    """
    principals: dict[BucketAccess, set[str]] = {}
    for binding in bindings:
        principals.setdefault(binding.access, set()).add(subuser_principal(tenant, owner, binding.name))
    if not principals:
        return None

    statements = []
    for access in BucketAccess:
        if access not in principals:
            continue
        statements.append(
            {
                "Sid": f"BucketAllow{access.value.capitalize()}",
                "Effect": "Allow",
                "Principal": {"AWS": sorted(principals[access])},
                "Action": list(ACTIONS[access]),
                "Resource": bucket_resources(tenant, bucket),
            }
        )
    return {"Version": "2012-10-17", "Id": "S3Policy", "Statement": statements}


def render_policy(policy: dict[str, Any] | None) -> str:
    """Canonical JSON of a policy, empty when there is none."""
    if policy is None:
        return ""
    return json.dumps(policy, sort_keys=True, separators=(",", ":"))
