"""Tests for StatusProjector."""

import pytest

from ceph_s3_operator.crds import QuotaCRDs, S3CRDs
from ceph_s3_operator.domains.quota import QuotaAggregator, StatusProjector
from ceph_s3_operator.domains.quota.projector import merge_used, same_usage
from ceph_s3_operator.models.common import S3UserClaim, UserQuota
from ceph_s3_operator.utils.errors import ConflictError, TeamNotFoundError


@pytest.fixture
def projector(cluster) -> StatusProjector:
    """Create a projector on the seeded cluster."""
    return StatusProjector(cluster, QuotaAggregator(cluster))


def stored_claim(cluster, make_claim, namespace, name, **quota) -> S3UserClaim:
    return S3UserClaim.from_k8s(cluster.add(S3CRDs.S3_USER_CLAIM, make_claim(namespace, name, **quota)))


class TestHelpers:
    """Tests for the used list helpers."""

    def test_merge_used_keeps_other_resources(self):
        """Test only the requested s3 resources are replaced."""
        used = merge_used({"pods": "3", "s3/size": "1"}, UserQuota(max_size="2k", max_buckets=4), ["s3/size"])

        assert used == {"pods": "3", "s3/size": "2000"}

    def test_same_usage_compares_quantities(self):
        """Test equal quantities with different spellings are the same."""
        assert same_usage({"s3/size": "1Ki"}, {"s3/size": "1024"}) is True
        assert same_usage({"s3/size": "1k"}, {"s3/size": "1024"}) is False
        assert same_usage(None, {"s3/size": "0"}) is False


class TestPublishNamespace:
    """Tests for namespace usage publishing."""

    def test_writes_used(self, cluster, projector, make_claim):
        """Test the namespace ResourceQuota receives the sum of its claims."""
        stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k", max_objects="10", max_buckets=1)
        target = stored_claim(cluster, make_claim, "ns-a1", "b", max_size="2k", max_objects="5", max_buckets=2)

        projector.publish_namespace(target, include_target=True)

        quota = cluster.peek(QuotaCRDs.RESOURCE_QUOTA, "s3-quota", "ns-a1")
        assert quota["status"]["used"] == {"s3/size": "3000", "s3/objects": "15", "s3/buckets": "3"}

    def test_excluding_target(self, cluster, projector, make_claim):
        """Test a claim being deleted no longer counts."""
        stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")
        target = stored_claim(cluster, make_claim, "ns-a1", "b", max_size="2k")

        projector.publish_namespace(target, include_target=False)

        quota = cluster.peek(QuotaCRDs.RESOURCE_QUOTA, "s3-quota", "ns-a1")
        assert quota["status"]["used"]["s3/size"] == "1000"

    def test_skips_equal_usage(self, cluster, projector, make_claim):
        """Test no write happens when the stored usage is already right."""
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")
        projector.publish_namespace(target, include_target=True)
        cluster.writes.clear()

        projector.publish_namespace(target, include_target=True)

        assert cluster.writes == []

    def test_ignores_quotas_without_s3_limits(self, cluster, projector, make_claim):
        """Test unrelated ResourceQuotas are left alone."""
        cluster.add(
            QuotaCRDs.RESOURCE_QUOTA,
            {"metadata": {"name": "compute", "namespace": "ns-a1"}, "spec": {"hard": {"cpu": "4"}}},
        )
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")

        projector.publish_namespace(target, include_target=True)

        assert ("replace_status", "ResourceQuota", "compute") not in cluster.writes
        assert "status" not in cluster.peek(QuotaCRDs.RESOURCE_QUOTA, "compute", "ns-a1")

    def test_only_limited_resources_written(self, cluster, projector, make_claim):
        """Test usage is written for the resources the quota limits."""
        cluster.add(
            QuotaCRDs.RESOURCE_QUOTA,
            {
                "metadata": {"name": "size-only", "namespace": "ns-a1"},
                "spec": {"hard": {"s3/size": "1Mi", "pods": "10"}},
                "status": {"used": {"pods": "2"}},
            },
        )
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k", max_buckets=2)

        projector.publish_namespace(target, include_target=True)

        quota = cluster.peek(QuotaCRDs.RESOURCE_QUOTA, "size-only", "ns-a1")
        assert quota["status"]["used"] == {"pods": "2", "s3/size": "1000"}

    def test_conflict_propagates(self, cluster, projector, make_claim):
        """Test a concurrent write surfaces as ConflictError."""
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")
        cluster.fail("replace_status", "ResourceQuota", ConflictError("ResourceQuota", "s3-quota", "ns-a1"))

        with pytest.raises(ConflictError):
            projector.publish_namespace(target, include_target=True)


class TestPublishTeam:
    """Tests for team usage publishing."""

    def test_writes_total_and_namespace_entry(self, cluster, projector, make_claim):
        """Test the team total and the namespace breakdown are both written."""
        stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k", max_objects="1", max_buckets=1)
        target = stored_claim(cluster, make_claim, "ns-a2", "b", max_size="2k", max_objects="2", max_buckets=2)

        projector.publish_team(target, include_target=True)

        status = cluster.peek(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, "team-a")["status"]
        assert status["total"]["used"] == {"s3/size": "3000", "s3/objects": "3", "s3/buckets": "3"}
        assert status["namespaces"] == [
            {
                "namespace": "ns-a2",
                "status": {"used": {"s3/size": "2000", "s3/objects": "2", "s3/buckets": "2"}},
            }
        ]

    def test_updates_existing_entry(self, cluster, projector, make_claim):
        """Test an existing breakdown entry is updated in place."""
        body = cluster.get(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, "team-a")
        body["status"] = {
            "total": {"used": {"s3/size": "0"}},
            "namespaces": [
                {"namespace": "ns-a1", "status": {"used": {"s3/size": "0", "pods": "1"}}},
                {"namespace": "ns-a2", "status": {"used": {"s3/size": "0"}}},
            ],
        }
        cluster.replace_status(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, body)
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")

        projector.publish_team(target, include_target=True)

        entries = cluster.peek(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, "team-a")["status"]["namespaces"]
        assert len(entries) == 2
        assert entries[0]["status"]["used"]["s3/size"] == "1000"
        assert entries[0]["status"]["used"]["pods"] == "1"
        assert entries[1]["status"]["used"]["s3/size"] == "0"

    def test_skips_equal_usage(self, cluster, projector, make_claim):
        """Test no write happens on a second identical publish."""
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")
        projector.publish_team(target, include_target=True)
        cluster.writes.clear()

        projector.publish_team(target, include_target=True)

        assert cluster.writes == []

    def test_team_without_quota(self, cluster, projector, make_claim):
        """Test a team without ClusterResourceQuota is skipped."""
        target = stored_claim(cluster, make_claim, "ns-b1", "a", max_size="1k")

        assert projector.publish_team(target, include_target=True) is None
        assert cluster.writes_of("ClusterResourceQuota") == []

    def test_ignores_team_quota_without_s3_limits(self, cluster, projector, make_claim):
        """Test a team quota limiting only other resources is left alone, like namespace quotas."""
        quota = cluster.peek(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, "team-a")
        quota["spec"]["quota"]["hard"] = {"pods": "10"}
        cluster.add(QuotaCRDs.CLUSTER_RESOURCE_QUOTA, quota)
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")

        assert projector.publish_team(target, include_target=True) is None
        assert cluster.writes_of("ClusterResourceQuota") == []

    def test_namespace_without_team(self, cluster, projector, make_claim):
        """Test an unlabelled namespace raises TeamNotFoundError."""
        target = stored_claim(cluster, make_claim, "ns-unlabelled", "a", max_size="1k")

        with pytest.raises(TeamNotFoundError):
            projector.publish_team(target, include_target=True)

    def test_publish_writes_both_scopes(self, cluster, projector, make_claim):
        """Test publish covers namespace and team quotas."""
        target = stored_claim(cluster, make_claim, "ns-a1", "a", max_size="1k")

        projector.publish(target, include_target=True)

        assert ("replace_status", "ResourceQuota", "s3-quota") in cluster.writes
        assert ("replace_status", "ClusterResourceQuota", "team-a") in cluster.writes
