"""Entry point of the claim control loop."""

from __future__ import annotations

import logging

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.claims.cleaner import Cleaner
from ceph_s3_operator.domains.claims.provisioner import Provisioner
from ceph_s3_operator.domains.claims.steps import ClaimContext, StepResult
from ceph_s3_operator.utils.errors import NotFoundError
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)


class ClaimReconciler:
    """Runs provisioning or cleanup for one claim, depending on its deletion state.

    The claim is always re-read, so every trigger (the claim itself, its
    secrets or its S3User) converges on the latest stored version. Callers
    must not reconcile the same claim concurrently.
    """

    def __init__(
        self,
        k8s: K8sClient,
        provisioner: Provisioner,
        cleaner: Cleaner,
        cluster_name: str,
        user_class: str,
    ):
        self._k8s = k8s
        self._provisioner = provisioner
        self._cleaner = cleaner
        self._cluster_name = cluster_name
        self._user_class = user_class

    def handles_class(self, user_class: str | None) -> bool:
        """Whether claims of this class belong to this operator instance."""
        return (user_class or self._user_class) == self._user_class

    def context_for(self, namespace: str, name: str) -> ClaimContext | None:
        try:
            body = self._k8s.get(S3CRDs.S3_USER_CLAIM, name, namespace)
        except NotFoundError:
            logger.debug(f"S3UserClaim {namespace}/{name} is gone")
            return None
        return ClaimContext.build(body, self._cluster_name, self._user_class)

    def reconcile(self, namespace: str, name: str) -> StepResult:
        ctx = self.context_for(namespace, name)
        if ctx is None:
            return StepResult.CONTINUE
        if not self.handles_class(ctx.claim.spec.s3_user_class):
            logger.debug(f"Ignoring {ctx.target} of class {ctx.claim.spec.s3_user_class}")
            return StepResult.CONTINUE

        if ctx.claim.is_deleting:
            if S3Labels.CLAIM_CLEANUP_FINALIZER not in ctx.claim.metadata.finalizers:
                return StepResult.CONTINUE
            return self._cleaner.cleanup(ctx)
        return self._provisioner.provision(ctx)
