"""Tests for the cleanup workflow."""

import pytest

from ceph_s3_operator.clients.rgw import StorageAdminError
from ceph_s3_operator.crds import QuotaCRDs, S3CRDs
from ceph_s3_operator.domains.claims import StepResult
from ceph_s3_operator.utils.errors import ConflictError
from ceph_s3_operator.utils.labels import S3Labels

UID = "okd4_main__ns_a1$a"


@pytest.fixture
def provisioned(cluster, make_claim, operator, context_for):
    """Provision claims ``a`` and ``b`` in ``ns-a1``, then delete ``a``."""
    cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "a", max_size="1k", max_objects="10", max_buckets=1))
    cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "b", max_size="2k", max_objects="20", max_buckets=2))
    for name in ("a", "b"):
        assert operator.provisioner.provision(context_for("ns-a1", name)) is StepResult.CONTINUE
    cluster.delete(S3CRDs.S3_USER_CLAIM, "a", "ns-a1")
    return cluster


@pytest.fixture
def cleanup(operator, context_for):
    """Run the cleanup workflow on claim ``a``."""

    def _cleanup():
        return operator.cleaner.cleanup(context_for("ns-a1", "a"))

    return _cleanup


class TestCleanup:
    """Tests for Cleaner."""

    def test_deletion_waits_for_finalizer(self, provisioned):
        """Test the claim is only marked while the finalizer is present."""
        claim = provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1")

        assert claim["metadata"]["deletionTimestamp"]
        assert S3Labels.CLAIM_CLEANUP_FINALIZER in claim["metadata"]["finalizers"]

    def test_removes_everything(self, provisioned, storage, cleanup):
        """Test the backend user, the S3User and the finalizer are removed."""
        assert cleanup() is StepResult.CONTINUE

        assert UID not in storage.users
        assert ("remove_user", UID, True) in storage.calls
        assert provisioned.peek(S3CRDs.S3_USER, "ns-a1.a") is None
        assert provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1") is None

    def test_usage_decreases_by_claim_quota(self, provisioned, cleanup):
        """Test namespace and team usage drop by exactly the deleted quota."""
        cleanup()

        namespace_quota = provisioned.peek(QuotaCRDs.RESOURCE_QUOTA, "s3-quota", "ns-a1")
        assert namespace_quota["status"]["used"] == {"s3/size": "2000", "s3/objects": "20", "s3/buckets": "2"}
        team_quota = provisioned.peek(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, "team-a")
        assert team_quota["status"]["total"]["used"] == {"s3/size": "2000", "s3/objects": "20", "s3/buckets": "2"}

    def test_missing_backend_user(self, provisioned, storage, cleanup):
        """Test a backend user that is already gone is not an error."""
        storage.remove_user(UID)

        assert cleanup() is StepResult.CONTINUE
        assert provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1") is None

    def test_missing_s3_user(self, provisioned, cleanup):
        """Test an S3User that is already gone is not an error."""
        provisioned.delete(S3CRDs.S3_USER, "ns-a1.a")

        assert cleanup() is StepResult.CONTINUE

    def test_backend_failure_keeps_finalizer(self, provisioned, storage, cleanup):
        """Test the finalizer stays when the backend user cannot be removed."""
        storage.fail("remove_user", StorageAdminError("rgw unavailable"))

        assert cleanup() is StepResult.REQUEUE
        claim = provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1")
        assert S3Labels.CLAIM_CLEANUP_FINALIZER in claim["metadata"]["finalizers"]
        assert provisioned.peek(S3CRDs.S3_USER, "ns-a1.a") is not None

    def test_publish_conflict_keeps_finalizer(self, provisioned, cleanup):
        """Test a quota conflict re-queues before the finalizer is released."""
        provisioned.fail("replace_status", "ResourceQuota", ConflictError("ResourceQuota", "s3-quota", "ns-a1"))

        assert cleanup() is StepResult.REQUEUE
        assert provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1") is not None

        assert cleanup() is StepResult.CONTINUE
        assert provisioned.peek(S3CRDs.S3_USER_CLAIM, "a", "ns-a1") is None
