"""Garbage collection of S3User records whose claim is gone."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.rgw import NoSuchUserError, StorageAdmin
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.claims.steps import StepResult
from ceph_s3_operator.models.common import S3User
from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.errors import NotFoundError, S3OperatorError

logger = logging.getLogger(__name__)


def claim_key(user: S3User) -> tuple[str, str]:
    """Return (namespace, name) of the claim an S3User belongs to."""
    ref = user.spec.claim_ref
    if ref is not None and ref.namespace and ref.name:
        return ref.namespace, ref.name
    # S3User names are "<namespace>.<claim>" and namespaces never contain dots
    namespace, _, name = user.name.partition(".")
    return namespace, name


class S3UserCollector:
    """Repairs S3Users of live claims and removes orphaned ones.

    A live claim is reconciled again, which recreates or corrects its S3User.
    Otherwise the backend user and the S3User are removed.
    """

    def __init__(
        self,
        k8s: K8sClient,
        storage: StorageAdmin,
        reconcile_claim: Callable[[str, str], StepResult],
        cluster_name: str,
    ):
        self._k8s = k8s
        self._storage = storage
        self._reconcile_claim = reconcile_claim
        self._cluster_name = cluster_name

    def collect(self, body: dict[str, Any]) -> StepResult:
        """Handle any event of an S3User, including its deletion."""
        user = S3User.from_k8s(body)
        name = user.name
        namespace, claim_name = claim_key(user)
        if not namespace or not claim_name:
            logger.error(f"S3User {name} does not identify its claim")
            return StepResult.HALT

        try:
            claim = self._k8s.get(S3CRDs.S3_USER_CLAIM, claim_name, namespace)
        except NotFoundError:
            claim = None

        if claim is not None and not (claim.get("metadata") or {}).get("deletionTimestamp"):
            return self._reconcile_claim(namespace, claim_name)

        return self.remove(name, naming.user_full_id(self._cluster_name, namespace, claim_name))

    def remove(self, name: str, user_id: str) -> StepResult:
        try:
            self._storage.remove_user(user_id, purge_data=True)
            logger.info(f"Removed backend user {user_id} of orphaned S3User {name}")
        except NoSuchUserError:
            pass
        except S3OperatorError as e:
            logger.error(f"Failed to remove backend user {user_id}: {e}")
            return StepResult.REQUEUE

        try:
            self._k8s.delete(S3CRDs.S3_USER, name)
            logger.info(f"Deleted orphaned S3User {name}")
        except NotFoundError:
            pass
        return StepResult.CONTINUE
