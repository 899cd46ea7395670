"""Reconciliation of a user's subusers against the claim."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.rgw import StorageAdmin, SubuserAccess
from ceph_s3_operator.crds import CoreCRDs
from ceph_s3_operator.domains.claims.steps import ClaimContext, StepResult
from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateSubuser:
    subuser_id: str
    access: SubuserAccess = SubuserAccess.NONE


@dataclass(frozen=True)
class RemoveSubuser:
    subuser_id: str


SubuserAction = Union[CreateSubuser, RemoveSubuser]


def plan_subusers(user_id: str, desired: Iterable[str], actual: Iterable[str]) -> list[SubuserAction]:
    """Diff desired subuser names against the subuser ids on the backend.

    The read-only subuser is always desired. Every desired id starts as a
    create; an actual id that is desired cancels it, one that is not becomes
    a remove. The result does not depend on the order of either input.

    Args:
        user_id: Full id of the owning user.
        desired: Short subuser names from the claim.
        actual: Full subuser ids reported by the backend.

    Returns:
        Actions sorted by subuser id.
    """
    readonly_id = naming.subuser_full_id(user_id, naming.READONLY_SUBUSER)
    actions: dict[str, SubuserAction] = {}
    for name in desired:
        subuser_id = naming.subuser_full_id(user_id, name)
        actions[subuser_id] = CreateSubuser(subuser_id)
    actions[readonly_id] = CreateSubuser(readonly_id, SubuserAccess.READ)

    for subuser_id in set(actual):
        if subuser_id in actions:
            del actions[subuser_id]
        else:
            actions[subuser_id] = RemoveSubuser(subuser_id)

    return [actions[key] for key in sorted(actions)]


class SubuserReconciler:
    """Applies the subuser plan to the backend and to the subuser secrets."""

    def __init__(self, k8s: K8sClient, storage: StorageAdmin):
        self._k8s = k8s
        self._storage = storage

    def reconcile(self, ctx: ClaimContext) -> StepResult:
        actual = ctx.backend_user.subuser_ids() if ctx.backend_user else []
        for action in plan_subusers(ctx.user_id, ctx.claim.spec.subusers, actual):
            self.apply(ctx, action)
        return StepResult.CONTINUE

    def apply(self, ctx: ClaimContext, action: SubuserAction) -> None:
        if isinstance(action, CreateSubuser):
            self._storage.create_subuser(ctx.user_id, action.subuser_id, action.access)
            logger.info(f"Created subuser {action.subuser_id}")
        elif isinstance(action, RemoveSubuser):
            self._storage.remove_subuser(ctx.user_id, action.subuser_id)
            logger.info(f"Removed subuser {action.subuser_id}")
            self._remove_secret(ctx, action.subuser_id)
        else:
            raise TypeError(f"Unknown subuser action: {action!r}")

    def _remove_secret(self, ctx: ClaimContext, subuser_id: str) -> None:
        try:
            subuser = naming.subuser_short_name(subuser_id)
        except ValueError:
            logger.warning(f"Cannot derive a secret name from subuser id {subuser_id}")
            return
        secret_name = naming.subuser_secret_name(ctx.claim.name, subuser)
        try:
            self._k8s.delete(CoreCRDs.SECRET, secret_name, ctx.claim.namespace)
        except NotFoundError:
            return
        logger.info(f"Deleted secret {ctx.claim.namespace}/{secret_name}")
