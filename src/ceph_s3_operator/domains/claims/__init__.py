"""Claims domain - S3UserClaim admission, provisioning and cleanup."""

from ceph_s3_operator.domains.claims.admission import ClaimAdmission
from ceph_s3_operator.domains.claims.cleaner import Cleaner
from ceph_s3_operator.domains.claims.provisioner import Provisioner
from ceph_s3_operator.domains.claims.reconciler import ClaimReconciler
from ceph_s3_operator.domains.claims.steps import ClaimContext, StepResult, run_steps
from ceph_s3_operator.domains.claims.subusers import (
    CreateSubuser,
    RemoveSubuser,
    SubuserAction,
    SubuserReconciler,
    plan_subusers,
)

__all__ = [
    "ClaimAdmission",
    "ClaimContext",
    "ClaimReconciler",
    "Cleaner",
    "CreateSubuser",
    "Provisioner",
    "RemoveSubuser",
    "StepResult",
    "SubuserAction",
    "SubuserReconciler",
    "plan_subusers",
    "run_steps",
]
