"""Pytest configuration and fixtures for S3 operator tests."""

from collections.abc import Callable
from typing import Any

import pytest

from ceph_s3_operator.config import OperatorConfig
from ceph_s3_operator.crds import CoreCRDs, QuotaCRDs, S3CRDs
from ceph_s3_operator.domains.claims import ClaimContext
from ceph_s3_operator.operator import S3Operator
from ceph_s3_operator.utils.labels import S3Labels
from fakes import FakeBucketAdmin, FakeStorageAdmin, InMemoryObjectStore

CLUSTER_NAME = "okd4-main"
USER_CLASS = "ceph-default"


@pytest.fixture
def config() -> OperatorConfig:
    """Create a test configuration."""
    return OperatorConfig(
        cluster_name=CLUSTER_NAME,
        s3_user_class=USER_CLASS,
        requeue_delay_seconds=5,
        enable_webhooks=False,
    )


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Create an empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def storage() -> FakeStorageAdmin:
    """Create an empty in-memory storage backend."""
    return FakeStorageAdmin()


@pytest.fixture
def bucket_admin() -> FakeBucketAdmin:
    """Create an empty in-memory bucket backend."""
    return FakeBucketAdmin()


@pytest.fixture
def make_claim() -> Callable[..., dict[str, Any]]:
    """Factory for S3UserClaim bodies."""

    def _make(
        namespace: str,
        name: str,
        max_size: str = "0",
        max_objects: str = "0",
        max_buckets: int = 0,
        subusers: list[str] | None = None,
        user_class: str = "",
    ) -> dict[str, Any]:
        return {
            "apiVersion": S3CRDs.S3_USER_CLAIM.api_version,
            "kind": S3CRDs.S3_USER_CLAIM.kind,
            "metadata": {"name": name, "namespace": namespace},
            "spec": {
                "s3UserClass": user_class,
                "adminSecret": f"{name}-admin",
                "readonlySecret": f"{name}-readonly",
                "quota": {
                    "maxSize": max_size,
                    "maxObjects": max_objects,
                    "maxBuckets": max_buckets,
                },
                "subusers": list(subusers or []),
            },
        }

    return _make


@pytest.fixture
def cluster(store: InMemoryObjectStore) -> InMemoryObjectStore:
    """Seed namespaces and quotas.

    ``team-a`` owns ``ns-a1`` and ``ns-a2``, each limited to 3k bytes, 4k
    objects and 10 buckets, with a team limit of 10k bytes, 5k objects and
    20 buckets. ``team-b`` owns ``ns-b1`` and has no team quota.
    ``ns-unlabelled`` belongs to no team.
    """
    for name, team in [("ns-a1", "team-a"), ("ns-a2", "team-a"), ("ns-b1", "team-b")]:
        store.add(CoreCRDs.NAMESPACE, {"metadata": {"name": name, "labels": {S3Labels.TEAM: team}}})
    store.add(CoreCRDs.NAMESPACE, {"metadata": {"name": "ns-unlabelled"}})

    for namespace in ("ns-a1", "ns-a2", "ns-b1"):
        store.add(
            QuotaCRDs.RESOURCE_QUOTA,
            {
                "metadata": {"name": "s3-quota", "namespace": namespace},
                "spec": {"hard": {"s3/size": "3k", "s3/objects": "4k", "s3/buckets": "10"}},
            },
        )

    store.add(
        QuotaCRDs.CLUSTER_RESOURCE_QUOTA,
        {
            "metadata": {"name": "team-a"},
            "spec": {
                "quota": {"hard": {"s3/size": "10k", "s3/objects": "5k", "s3/buckets": "20"}},
                "selector": {"labels": {"matchLabels": {S3Labels.TEAM: "team-a"}}},
            },
        },
    )
    return store


@pytest.fixture
def operator(
    config: OperatorConfig,
    store: InMemoryObjectStore,
    storage: FakeStorageAdmin,
    bucket_admin: FakeBucketAdmin,
) -> S3Operator:
    """Create an operator wired to the in-memory collaborators."""
    return S3Operator(
        config,
        k8s=store,
        storage=storage,
        admission_k8s=store,
        bucket_admin_factory=bucket_admin.connect,
    )


@pytest.fixture
def context_for(store: InMemoryObjectStore) -> Callable[[str, str], ClaimContext]:
    """Build the reconcile context of a stored claim."""

    def _context(namespace: str, name: str) -> ClaimContext:
        body = store.get(S3CRDs.S3_USER_CLAIM, name, namespace)
        return ClaimContext.build(body, CLUSTER_NAME, USER_CLASS)

    return _context
