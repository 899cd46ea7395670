"""Deterministic names shared by the operator and the RGW backend.

Every backend identifier is a pure function of the cluster name, the claim
namespace and the claim name, so nothing here is ever persisted.
"""

import re

_K8S_NAME_SPECIAL_CHARS = re.compile(r"[.-]")

READONLY_SUBUSER = "readonly"


def sanitize(value: str) -> str:
    """Replace characters RGW does not accept in tenant names."""
    return _K8S_NAME_SPECIAL_CHARS.sub("_", value)


def tenant_id(cluster_name: str, namespace: str) -> str:
    """Return the RGW tenant, ``cluster__namespace`` after sanitizing both."""
    return f"{sanitize(cluster_name)}__{sanitize(namespace)}"


def user_full_id(cluster_name: str, namespace: str, claim_name: str) -> str:
    """Return ``tenant$claim``, the full RGW uid of a claim's user."""
    return f"{tenant_id(cluster_name, namespace)}${claim_name}"


def subuser_full_id(user_id: str, subuser: str) -> str:
    """Return ``uid:subuser``."""
    return f"{user_id}:{subuser}"


def subuser_short_name(full_id: str) -> str:
    """Extract the subuser part of ``uid:subuser``.

    Raises:
        ValueError: If the id has no subuser part.
    """
    _, sep, subuser = full_id.partition(":")
    if not sep or not subuser:
        raise ValueError(f"'{full_id}' is not a subuser id")
    return subuser


def display_name(cluster_name: str, namespace: str, claim_name: str) -> str:
    return f"{claim_name} in {namespace}.{cluster_name}"


def s3_user_name(namespace: str, claim_name: str) -> str:
    """Return the cluster-scoped S3User name for a claim."""
    return f"{namespace}.{claim_name}"


def subuser_secret_name(claim_name: str, subuser: str) -> str:
    return f"{claim_name}-{subuser}"


def conflicting_secret_names(
    claim_name: str,
    admin_secret: str,
    readonly_secret: str,
    subusers: list[str],
) -> list[str]:
    """Return secret names that would hold the keys of more than one principal.

    The admin secret holds the user's own key, the read-only secret and
    ``<claim>-readonly`` the read-only subuser's key, every other
    ``<claim>-<subuser>`` the key of that subuser.
    """
    owners: dict[str, set[str]] = {}
    owners.setdefault(admin_secret, set()).add("")
    owners.setdefault(readonly_secret, set()).add(READONLY_SUBUSER)
    for subuser in subusers:
        owners.setdefault(subuser_secret_name(claim_name, subuser), set()).add(subuser)
    return sorted(name for name, keys in owners.items() if name and len(keys) > 1)
