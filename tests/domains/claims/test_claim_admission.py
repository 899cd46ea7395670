"""Tests for S3UserClaim admission."""

import copy

import pytest

from ceph_s3_operator.crds import QuotaCRDs, S3CRDs
from ceph_s3_operator.domains.claims import ClaimAdmission
from ceph_s3_operator.domains.quota import QuotaAggregator
from ceph_s3_operator.models.common import S3UserClaim
from ceph_s3_operator.utils.errors import (
    AdmissionDeniedError,
    FieldViolation,
    S3OperatorError,
)


@pytest.fixture
def admission(cluster) -> ClaimAdmission:
    """Create the claim admission on the seeded cluster."""
    return ClaimAdmission(cluster, QuotaAggregator(cluster), default_user_class="ceph-default")


def parse(body) -> S3UserClaim:
    return S3UserClaim.from_k8s(body)


class TestValidateCreate:
    """Tests for create admission."""

    def test_within_limits(self, admission, make_claim):
        """Test a claim fitting both scopes is admitted."""
        admission.validate_create(parse(make_claim("ns-a1", "a", max_size="1k", max_objects="1k", max_buckets=2)))

    def test_namespace_limit_exceeded(self, cluster, admission, make_claim):
        """Test the second claim over the namespace limit gets a namespace reason only."""
        first = make_claim("ns-a1", "a", max_size="3k")
        admission.validate_create(parse(first))
        cluster.add(S3CRDs.S3_USER_CLAIM, first)

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a1", "b", max_size="3k")))

        assert exc_info.value.violations == [FieldViolation("spec.quota.maxSize", "exceeded namespace quota")]
        assert exc_info.value.code == 422

    def test_team_limit_exceeded(self, cluster, admission, make_claim):
        """Test claims within their namespace limits but over the team limit get a team reason only."""
        first = make_claim("ns-a1", "a", max_objects="3k")
        admission.validate_create(parse(first))
        cluster.add(S3CRDs.S3_USER_CLAIM, first)

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a2", "b", max_objects="3k")))

        assert exc_info.value.violations == [FieldViolation("spec.quota.maxObjects", "exceeded team quota")]

    def test_all_violations_reported(self, cluster, admission, make_claim):
        """Test every exceeded dimension of both scopes is reported."""
        cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "a", max_size="3k", max_objects="3k"))

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a1", "b", max_size="8k", max_objects="3k")))

        assert exc_info.value.violations == [
            FieldViolation("spec.quota.maxSize", "exceeded namespace quota"),
            FieldViolation("spec.quota.maxObjects", "exceeded namespace quota"),
            FieldViolation("spec.quota.maxSize", "exceeded team quota"),
            FieldViolation("spec.quota.maxObjects", "exceeded team quota"),
        ]

    def test_violation_reported_once_per_dimension(self, cluster, admission, make_claim):
        """Test two namespace quotas limiting the same dimension give one reason."""
        cluster.add(
            QuotaCRDs.RESOURCE_QUOTA,
            {"metadata": {"name": "tight", "namespace": "ns-a1"}, "spec": {"hard": {"s3/size": "1k"}}},
        )

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a1", "a", max_size="5k")))

        assert exc_info.value.violations == [FieldViolation("spec.quota.maxSize", "exceeded namespace quota")]

    def test_limit_is_inclusive(self, admission, make_claim):
        """Test usage equal to the limit is admitted."""
        admission.validate_create(parse(make_claim("ns-a1", "a", max_size="3k", max_objects="4k", max_buckets=10)))

    def test_team_quota_not_defined(self, admission, make_claim):
        """Test a team without quota rejects every claim."""
        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-b1", "a", max_size="1")))

        assert exc_info.value.violations == [
            FieldViolation("metadata.namespace", "team quota is not defined, please contact the cloud team")
        ]
        assert exc_info.value.code == 422

    def test_namespace_without_team(self, admission, make_claim):
        """Test a namespace without team label fails closed as internal error."""
        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-unlabelled", "a")))

        assert exc_info.value.code == 500
        assert exc_info.value.violations[0].field == "metadata.namespace"

    def test_read_error_fails_closed(self, cluster, admission, make_claim):
        """Test a failing list rejects the write."""
        cluster.fail("list", "S3UserClaim", S3OperatorError("etcd unavailable"))

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a1", "a")))

        assert exc_info.value.is_internal

    def test_uses_consistent_reads(self, cluster, admission, make_claim):
        """Test every list on the admission path is a quorum read."""
        admission.validate_create(parse(make_claim("ns-a1", "a")))

        assert cluster.list_calls
        assert all(consistent for _, _, consistent in cluster.list_calls)


class TestValidateUpdate:
    """Tests for update admission."""

    def test_stored_copy_not_counted_twice(self, cluster, admission, make_claim):
        """Test an update is checked against the others plus its new quota."""
        stored = make_claim("ns-a1", "a", max_size="3k")
        cluster.add(S3CRDs.S3_USER_CLAIM, stored)

        admission.validate_update(parse(make_claim("ns-a1", "a", max_size="3k", max_buckets=1)), parse(stored))

    def test_increase_over_limit(self, cluster, admission, make_claim):
        """Test raising the quota over the namespace limit is rejected."""
        stored = make_claim("ns-a1", "a", max_size="1k")
        cluster.add(S3CRDs.S3_USER_CLAIM, stored)

        with pytest.raises(AdmissionDeniedError, match="exceeded namespace quota"):
            admission.validate_update(parse(make_claim("ns-a1", "a", max_size="4k")), parse(stored))

    def test_user_class_change_rejected(self, cluster, admission, make_claim):
        """Test the user class cannot change, whatever else changes."""
        stored = make_claim("ns-a1", "a")
        cluster.add(S3CRDs.S3_USER_CLAIM, stored)

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_update(
                parse(make_claim("ns-a1", "a", max_size="100k", user_class="ceph-fast")),
                parse(stored),
            )

        assert exc_info.value.violations == [FieldViolation("spec.s3UserClass", "s3UserClass is immutable")]

    def test_explicit_default_class_is_not_a_change(self, cluster, admission, make_claim):
        """Test setting the empty class to the default one is allowed."""
        stored = make_claim("ns-a1", "a")
        cluster.add(S3CRDs.S3_USER_CLAIM, stored)

        admission.validate_update(parse(make_claim("ns-a1", "a", user_class="ceph-default")), parse(stored))


class TestValidateDelete:
    """Tests for delete admission."""

    def add_bucket(self, cluster, namespace, name, claim_name):
        cluster.add(
            S3CRDs.S3_BUCKET,
            {"metadata": {"name": name, "namespace": namespace}, "spec": {"s3UserRef": claim_name}},
        )

    def test_referenced_by_bucket(self, cluster, admission, make_claim):
        """Test a claim with buckets cannot be deleted."""
        self.add_bucket(cluster, "ns-a1", "data", "a")

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_delete(parse(make_claim("ns-a1", "a")))

        assert exc_info.value.violations == [
            FieldViolation("metadata.name", "there are S3Buckets referencing this S3UserClaim, delete them first")
        ]

    def test_buckets_of_other_claims(self, cluster, admission, make_claim):
        """Test buckets of other claims and namespaces do not block."""
        self.add_bucket(cluster, "ns-a1", "data", "b")
        self.add_bucket(cluster, "ns-a2", "data", "a")

        admission.validate_delete(parse(make_claim("ns-a1", "a")))

    def test_list_error_fails_closed(self, cluster, admission, make_claim):
        """Test a failing bucket list rejects the delete."""
        cluster.fail("list", "S3Bucket", S3OperatorError("timeout"))

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_delete(parse(make_claim("ns-a1", "a")))

        assert exc_info.value.code == 500


def set_namespace_hard(cluster, namespace, hard):
    quota = cluster.peek(QuotaCRDs.RESOURCE_QUOTA, "s3-quota", namespace)
    quota["spec"]["hard"].update(hard)
    cluster.add(QuotaCRDs.RESOURCE_QUOTA, quota)


class TestUpdateAfterLimitLowered:
    """Tests for updates once the platform lowered a limit below the admitted total."""

    @pytest.fixture
    def over_limit(self, cluster, make_claim):
        """Store claims ``a`` and ``b`` of 3k each in ``ns-a1`` and lower its size limit to 4k."""
        stored = cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "a", max_size="3k"))
        cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "b", max_size="3k"))
        set_namespace_hard(cluster, "ns-a1", {"s3/size": "4k"})
        return stored

    def test_finalizer_removal_of_deleting_claim(self, over_limit, admission):
        """Test a deleting claim can always drop its finalizer."""
        claim = copy.deepcopy(over_limit)
        claim["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
        claim["metadata"]["finalizers"] = []

        admission.validate_update(parse(claim), parse(over_limit))

    def test_metadata_change(self, over_limit, admission):
        """Test an update leaving the quota alone is admitted."""
        claim = copy.deepcopy(over_limit)
        claim["metadata"]["finalizers"] = ["s3.snappcloud.io/cleanup-s3userclaim"]
        claim["metadata"]["annotations"] = {"kopf.zalando.org/last-handled-configuration": "{}"}

        admission.validate_update(parse(claim), parse(over_limit))

    def test_decrease(self, over_limit, admission):
        """Test lowering a quota that is still over the limit is admitted."""
        claim = copy.deepcopy(over_limit)
        claim["spec"]["quota"]["maxSize"] = "2k"

        admission.validate_update(parse(claim), parse(over_limit))

    def test_increase(self, over_limit, admission):
        """Test raising any dimension is still checked."""
        claim = copy.deepcopy(over_limit)
        claim["spec"]["quota"]["maxBuckets"] = 1

        with pytest.raises(AdmissionDeniedError, match="exceeded namespace quota"):
            admission.validate_update(parse(claim), parse(over_limit))

    def test_team_quota_not_defined(self, cluster, admission, make_claim):
        """Test updates in a team without quota are rejected even without quota increase."""
        stored = cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-b1", "a"))
        claim = copy.deepcopy(stored)
        claim["metadata"]["labels"] = {"app": "billing"}

        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_update(parse(claim), parse(stored))

        assert exc_info.value.violations == [
            FieldViolation("metadata.namespace", "team quota is not defined, please contact the cloud team")
        ]


class TestSecretNames:
    """Tests for secret names shared by different credentials."""

    def test_subuser_secret_collides_with_admin_secret(self, admission, make_claim):
        """Test a subuser named like the admin secret suffix is rejected."""
        with pytest.raises(AdmissionDeniedError) as exc_info:
            admission.validate_create(parse(make_claim("ns-a1", "a", subusers=["admin"])))

        assert exc_info.value.violations == [
            FieldViolation("spec.subusers", "secret name is used by more than one credential: a-admin")
        ]
        assert exc_info.value.code == 422

    def test_readonly_subuser_listed_explicitly(self, admission, make_claim):
        """Test listing the read-only subuser shares its own secret without conflict."""
        admission.validate_create(parse(make_claim("ns-a1", "a", subusers=["readonly"])))

    def test_update_adding_colliding_subuser(self, cluster, admission, make_claim):
        stored = cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "a"))

        with pytest.raises(AdmissionDeniedError, match="a-admin"):
            admission.validate_update(parse(make_claim("ns-a1", "a", subusers=["admin"])), parse(stored))

    def test_existing_collision_does_not_block_updates(self, cluster, admission, make_claim):
        """Test only collisions introduced by the update are reported."""
        stored = cluster.add(S3CRDs.S3_USER_CLAIM, make_claim("ns-a1", "a", subusers=["admin"]))

        admission.validate_update(parse(make_claim("ns-a1", "a", subusers=["admin", "writer"])), parse(stored))
