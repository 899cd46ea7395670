"""Pydantic models for the operator's custom resources."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from kubernetes.utils import parse_quantity
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.labels import S3Labels


def format_quantity(value: Decimal) -> str:
    """Render a quantity the way the API server stores plain numbers."""
    value = value.normalize()
    if value == value.to_integral_value():
        return str(int(value))
    return format(value, "f")


class CamelModel(BaseModel):
    """Base model accepting and producing the camelCase keys used in manifests."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserQuota(CamelModel):
    """Quota of one storage user.

    ``max_size`` (bytes) and ``max_objects`` are Kubernetes quantities, so
    ``"5Gi"`` and ``"5k"`` are accepted.
    """

    max_size: Decimal = Decimal(0)
    max_objects: Decimal = Decimal(0)
    max_buckets: int = 0

    @field_validator("max_size", "max_objects", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Decimal:
        if value is None or value == "":
            return Decimal(0)
        return parse_quantity(value)

    def to_spec(self) -> dict[str, Any]:
        """Serialize to the manifest representation."""
        return {
            "maxSize": format_quantity(self.max_size),
            "maxObjects": format_quantity(self.max_objects),
            "maxBuckets": self.max_buckets,
        }

    def __add__(self, other: UserQuota) -> UserQuota:
        return UserQuota(
            max_size=self.max_size + other.max_size,
            max_objects=self.max_objects + other.max_objects,
            max_buckets=self.max_buckets + other.max_buckets,
        )

    def exceeds_in_any(self, other: UserQuota) -> bool:
        """Whether any dimension is larger than in ``other``."""
        return (
            self.max_size > other.max_size
            or self.max_objects > other.max_objects
            or self.max_buckets > other.max_buckets
        )

    def values_by_resource(self) -> dict[str, Decimal]:
        """Map quota resource names (``s3/size``...) to values."""
        size, objects, buckets = S3Labels.quota_resource_names()
        return {
            size: self.max_size,
            objects: self.max_objects,
            buckets: Decimal(self.max_buckets),
        }

    def to_resource_list(self) -> dict[str, str]:
        """Render as a ResourceQuota ``used`` list."""
        return {name: format_quantity(value) for name, value in self.values_by_resource().items()}


class ObjectReference(CamelModel):
    """Reference to the claim that owns a resolved user."""

    api_version: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""


class ResourceMetadata(CamelModel):
    """The subset of ``metadata`` the operator reads."""

    name: str = ""
    namespace: str | None = None
    uid: str = ""
    resource_version: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: str | None = None

    @field_validator("labels", mode="before")
    @classmethod
    def _none_labels(cls, value: Any) -> Any:
        return value or {}

    @field_validator("finalizers", mode="before")
    @classmethod
    def _none_finalizers(cls, value: Any) -> Any:
        return value or []


class S3UserClaimSpec(CamelModel):
    s3_user_class: str = ""
    readonly_secret: str = ""
    admin_secret: str = ""
    quota: UserQuota = Field(default_factory=UserQuota)
    subusers: list[str] = Field(default_factory=list)

    @field_validator("quota", "subusers", mode="before")
    @classmethod
    def _none_as_default(cls, value: Any, info: Any) -> Any:
        if value is None:
            return {} if info.field_name == "quota" else []
        return value


class S3UserClaimStatus(CamelModel):
    quota: UserQuota | None = None
    s3_user_name: str = ""
    subusers: list[str] = Field(default_factory=list)

    def to_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {"s3UserName": self.s3_user_name, "subusers": list(self.subusers)}
        if self.quota is not None:
            status["quota"] = self.quota.to_spec()
        return status


class S3UserClaim(CamelModel):
    """Tenant intent for a storage user."""

    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    spec: S3UserClaimSpec = Field(default_factory=S3UserClaimSpec)
    status: S3UserClaimStatus = Field(default_factory=S3UserClaimStatus)

    @field_validator("spec", "status", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or {}

    @classmethod
    def from_k8s(cls, body: Any) -> S3UserClaim:
        """Build from an API object or a kopf body."""
        return cls.model_validate(dict(body))

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    @property
    def quota(self) -> UserQuota:
        return self.spec.quota

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def effective_user_class(self, default_class: str) -> str:
        """An empty class means the operator's configured class."""
        return self.spec.s3_user_class or default_class

    def conflicting_secret_names(self) -> list[str]:
        return naming.conflicting_secret_names(
            self.name, self.spec.admin_secret, self.spec.readonly_secret, self.spec.subusers
        )

    def same_identity(self, other: S3UserClaim) -> bool:
        """Compare by (namespace, name)."""
        return self.name == other.name and self.namespace == other.namespace


class S3UserSpec(CamelModel):
    s3_user_class: str = ""
    quota: UserQuota = Field(default_factory=UserQuota)
    claim_ref: ObjectReference | None = None


class S3User(CamelModel):
    """Cluster-scoped record mirroring a claim's backend user."""

    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    spec: S3UserSpec = Field(default_factory=S3UserSpec)

    @classmethod
    def from_k8s(cls, body: Any) -> S3User:
        return cls.model_validate(dict(body))

    @property
    def name(self) -> str:
        return self.metadata.name


class DeletionPolicy(str, Enum):
    """What happens to the bucket when its S3Bucket is deleted."""

    DELETE = "delete"
    RETAIN = "retain"


class BucketAccess(str, Enum):
    READ = "read"
    WRITE = "write"


class SubuserBinding(CamelModel):
    """Grants one subuser of the owning claim access to the bucket."""

    name: str
    access: BucketAccess


class S3BucketSpec(CamelModel):
    s3_user_ref: str = ""
    s3_deletion_policy: DeletionPolicy = DeletionPolicy.DELETE
    s3_subuser_binding: list[SubuserBinding] = Field(default_factory=list)

    @field_validator("s3_deletion_policy", mode="before")
    @classmethod
    def _empty_policy(cls, value: Any) -> Any:
        return value or DeletionPolicy.DELETE

    @field_validator("s3_subuser_binding", mode="before")
    @classmethod
    def _none_bindings(cls, value: Any) -> Any:
        return value or []


class S3BucketStatus(CamelModel):
    ready: bool = False
    reason: str = ""
    policy: str = ""

    def to_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {"ready": self.ready}
        if self.reason:
            status["reason"] = self.reason
        if self.policy:
            status["policy"] = self.policy
        return status


class S3Bucket(CamelModel):
    """A bucket owned by a claim's user."""

    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    spec: S3BucketSpec = Field(default_factory=S3BucketSpec)
    status: S3BucketStatus = Field(default_factory=S3BucketStatus)

    @field_validator("spec", "status", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or {}

    @classmethod
    def from_k8s(cls, body: Any) -> S3Bucket:
        return cls.model_validate(dict(body))

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None
