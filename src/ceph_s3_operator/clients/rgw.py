"""Storage-admin client for the Ceph RADOS Gateway.

The workflows depend on the narrow :class:`StorageAdmin` protocol. The
production implementation, :class:`RGWAdminClient`, talks to the RGW admin
ops API through the ``rgwadmin`` library and converts its dictionaries into
the typed records below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urlparse

from rgwadmin import RGWAdmin
from rgwadmin.exceptions import NoSuchUser, RGWAdminException

from ceph_s3_operator.config import RgwConfig
from ceph_s3_operator.utils.errors import S3OperatorError

logger = logging.getLogger(__name__)

KIB = 1024


class NoSuchUserError(S3OperatorError):
    """The backend has no user with the given id."""

    def __init__(self, uid: str) -> None:
        super().__init__(f"no such user '{uid}'", {"uid": uid})
        self.uid = uid


class StorageAdminError(S3OperatorError):
    """Any other failure reported by the storage backend."""


class SubuserAccess(str, Enum):
    """Permission granted to a subuser."""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    READ_WRITE = "readwrite"
    FULL = "full"


@dataclass(frozen=True)
class UserKey:
    """An S3 key pair, ``user`` is the full id of the (sub)user owning it."""

    user: str
    access_key: str
    secret_key: str


@dataclass(frozen=True)
class Subuser:
    id: str
    permissions: str = ""


@dataclass
class BackendUser:
    """A user as reported by the backend."""

    uid: str
    display_name: str = ""
    max_buckets: int | None = None
    keys: list[UserKey] = field(default_factory=list)
    subusers: list[Subuser] = field(default_factory=list)

    @classmethod
    def from_rgw(cls, data: dict[str, Any]) -> BackendUser:
        """Build from an admin ops API user document."""
        tenant = data.get("tenant") or ""
        uid = data.get("user_id", "")
        if tenant and "$" not in uid:
            uid = f"{tenant}${uid}"
        return cls(
            uid=uid,
            display_name=data.get("display_name", ""),
            max_buckets=data.get("max_buckets"),
            keys=[
                UserKey(user=k.get("user", ""), access_key=k.get("access_key", ""), secret_key=k.get("secret_key", ""))
                for k in data.get("keys") or []
            ],
            subusers=[Subuser(id=s.get("id", ""), permissions=s.get("permissions", "")) for s in data.get("subusers") or []],
        )

    def key_for(self, user: str) -> UserKey | None:
        """Return the first key owned by the given full (sub)user id."""
        for key in self.keys:
            if key.user == user:
                return key
        return None

    def subuser_ids(self) -> list[str]:
        return [s.id for s in self.subusers]


@dataclass(frozen=True)
class QuotaSpec:
    """User quota; ``max_size`` is in bytes.

    The backend stores sizes in whole KiB, so compare quotas built with
    :meth:`for_limits` against what the backend reports.
    """

    enabled: bool
    max_size: int
    max_objects: int

    @classmethod
    def for_limits(cls, max_size: int, max_objects: int) -> QuotaSpec:
        """Build an enabled quota, rounding ``max_size`` up to a whole KiB."""
        size_kb = -(-max_size // KIB)
        return cls(enabled=True, max_size=size_kb * KIB, max_objects=max_objects)

    @classmethod
    def from_rgw(cls, data: dict[str, Any]) -> QuotaSpec:
        if "max_size_kb" in data:
            max_size = int(data["max_size_kb"]) * KIB
        else:
            max_size = int(data.get("max_size", -1))
        return cls(
            enabled=bool(data.get("enabled", False)),
            max_size=max_size,
            max_objects=int(data.get("max_objects", -1)),
        )

    def differs_from(self, other: QuotaSpec) -> bool:
        """Field-by-field comparison of the values the backend round-trips."""
        return (
            self.enabled != other.enabled
            or self.max_size != other.max_size
            or self.max_objects != other.max_objects
        )


class StorageAdmin(Protocol):
    """Operations the workflows need from the storage backend."""

    def get_user(self, uid: str) -> BackendUser: ...

    def create_user(self, uid: str, display_name: str, max_buckets: int) -> BackendUser: ...

    def modify_user(self, uid: str, display_name: str, max_buckets: int) -> BackendUser: ...

    def remove_user(self, uid: str, purge_data: bool = True) -> None: ...

    def get_user_quota(self, uid: str) -> QuotaSpec: ...

    def set_user_quota(self, uid: str, quota: QuotaSpec) -> None: ...

    def create_subuser(self, uid: str, subuser: str, access: SubuserAccess) -> None: ...

    def remove_subuser(self, uid: str, subuser: str) -> None: ...


class RGWAdminClient:
    """:class:`StorageAdmin` backed by the RGW admin ops API."""

    def __init__(self, rgw: RGWAdmin):
        self._rgw = rgw

    @classmethod
    def from_config(cls, config: RgwConfig) -> RGWAdminClient:
        parsed = urlparse(config.endpoint if "://" in config.endpoint else f"http://{config.endpoint}")
        rgw = RGWAdmin(
            access_key=config.access_key,
            secret_key=config.secret_key,
            server=parsed.netloc,
            secure=parsed.scheme == "https",
            verify=config.verify_tls,
            timeout=config.timeout_seconds,
        )
        logger.info(f"RGW admin client configured for {parsed.netloc}")
        return cls(rgw)

    def _call(self, subject: str, operation: str, func: Any, **kwargs: Any) -> Any:
        try:
            return func(**kwargs)
        except NoSuchUser as e:
            raise NoSuchUserError(subject) from e
        except RGWAdminException as e:
            raise StorageAdminError(f"{operation} failed for '{subject}': {e}", {"uid": subject}) from e

    def get_user(self, uid: str) -> BackendUser:
        data = self._call(uid, "get user", self._rgw.get_user, uid=uid)
        return BackendUser.from_rgw(data)

    def create_user(self, uid: str, display_name: str, max_buckets: int) -> BackendUser:
        data = self._call(
            uid,
            "create user",
            self._rgw.create_user,
            uid=uid,
            display_name=display_name,
            max_buckets=max_buckets,
        )
        return BackendUser.from_rgw(data)

    def modify_user(self, uid: str, display_name: str, max_buckets: int) -> BackendUser:
        data = self._call(
            uid,
            "modify user",
            self._rgw.modify_user,
            uid=uid,
            display_name=display_name,
            max_buckets=max_buckets,
        )
        return BackendUser.from_rgw(data)

    def remove_user(self, uid: str, purge_data: bool = True) -> None:
        self._call(uid, "remove user", self._rgw.remove_user, uid=uid, purge_data=purge_data)

    def get_user_quota(self, uid: str) -> QuotaSpec:
        data = self._call(uid, "get user quota", self._rgw.get_user_quota, uid=uid)
        return QuotaSpec.from_rgw(data or {})

    def set_user_quota(self, uid: str, quota: QuotaSpec) -> None:
        self._call(
            uid,
            "set user quota",
            self._rgw.set_user_quota,
            uid=uid,
            quota_type="user",
            max_size_kb=quota.max_size // KIB,
            max_objects=quota.max_objects,
            enabled=quota.enabled,
        )

    def create_subuser(self, uid: str, subuser: str, access: SubuserAccess) -> None:
        kwargs: dict[str, Any] = {"uid": uid, "subuser": subuser, "key_type": "s3", "generate_secret": True}
        if access is not SubuserAccess.NONE:
            kwargs["access"] = access.value
        self._call(uid, "create subuser", self._rgw.create_subuser, **kwargs)

    def remove_subuser(self, uid: str, subuser: str) -> None:
        self._call(uid, "remove subuser", self._rgw.remove_subuser, uid=uid, subuser=subuser, purge_keys=True)
