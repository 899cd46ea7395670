"""Step sequencing shared by the claim and bucket workflows."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from ceph_s3_operator.clients.rgw import BackendUser
from ceph_s3_operator.models.common import S3UserClaim
from ceph_s3_operator.utils import naming
from ceph_s3_operator.utils.errors import (
    ConflictError,
    S3OperatorError,
    TeamNotFoundError,
    ValidationError,
    classify_error,
    is_conflict,
)

logger = logging.getLogger(__name__)


class StepResult(str, Enum):
    """Outcome of a workflow step."""

    CONTINUE = "continue"
    """Proceed with the next step."""

    REQUEUE = "requeue"
    """Stop and run the whole workflow again after a delay."""

    HALT = "halt"
    """Stop until the object changes, retrying cannot help."""


@dataclass
class ClaimContext:
    """State of one reconcile of one claim.

    Nothing here outlives the invocation: identifiers are recomputed from the
    claim and the backend user is re-read on every run.
    """

    body: dict[str, Any]
    claim: S3UserClaim
    user_class: str
    user_id: str
    readonly_id: str
    display_name: str
    s3_user_name: str
    backend_user: BackendUser | None = None

    @classmethod
    def build(cls, body: dict[str, Any], cluster_name: str, default_user_class: str) -> ClaimContext:
        claim = S3UserClaim.from_k8s(body)
        user_id = naming.user_full_id(cluster_name, claim.namespace, claim.name)
        return cls(
            body=body,
            claim=claim,
            user_class=claim.effective_user_class(default_user_class),
            user_id=user_id,
            readonly_id=naming.subuser_full_id(user_id, naming.READONLY_SUBUSER),
            display_name=naming.display_name(cluster_name, claim.namespace, claim.name),
            s3_user_name=naming.s3_user_name(claim.namespace, claim.name),
        )

    @property
    def target(self) -> str:
        return f"S3UserClaim {self.claim.namespace}/{self.claim.name}"

    def refresh(self, body: dict[str, Any]) -> None:
        """Adopt the object returned by a successful write."""
        self.body = body
        self.claim = S3UserClaim.from_k8s(body)


Step = Callable[[ClaimContext], StepResult]


class StepContext(Protocol):
    """What run_steps needs from a workflow context."""

    @property
    def target(self) -> str: ...


def run_steps(steps: Sequence[Callable[[Any], StepResult]], ctx: StepContext) -> StepResult:
    """Run steps in order until one does not return CONTINUE.

    Operator errors raised by a step are logged and turned into a result:
    conflicts and backend or API failures re-queue, unresolvable input halts.
    """
    for step in steps:
        step_name = getattr(step, "__name__", repr(step))
        try:
            result = step(ctx)
        except ConflictError as e:
            logger.info(f"Re-queuing {ctx.target} due to optimistic locking: {e}")
            return StepResult.REQUEUE
        except (TeamNotFoundError, ValidationError) as e:
            logger.error(f"{step_name} cannot proceed for {ctx.target}: {e}")
            return StepResult.HALT
        except S3OperatorError as e:
            pattern = classify_error(e)
            if is_conflict(e):
                logger.info(f"Re-queuing {ctx.target} due to optimistic locking: {e}")
            else:
                hint = f" ({pattern.suggestion})" if pattern.suggestion else ""
                logger.error(f"{step_name} failed for {ctx.target} [{pattern.error_code}]: {e}{hint}")
            return StepResult.REQUEUE
        if result is not StepResult.CONTINUE:
            return result
    return StepResult.CONTINUE
