"""Custom exceptions and error classification for the S3 operator.

This module provides the exception hierarchy shared by the reconcile loop and
the admission webhooks, plus utilities for recognising well-known failure
modes in raw API server and RGW error messages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

INTERNAL_ERROR_MESSAGE = "internal error, please contact the cloud team"
USER_CLASS_IMMUTABLE_MESSAGE = "s3UserClass is immutable"
EXCEEDED_NAMESPACE_QUOTA_MESSAGE = "exceeded namespace quota"
EXCEEDED_TEAM_QUOTA_MESSAGE = "exceeded team quota"
TEAM_QUOTA_NOT_DEFINED_MESSAGE = "team quota is not defined, please contact the cloud team"
BUCKETS_REFERENCE_CLAIM_MESSAGE = (
    "there are S3Buckets referencing this S3UserClaim, delete them first"
)
SECRET_NAME_CONFLICT_MESSAGE = "secret name is used by more than one credential"
S3_USER_REF_NOT_FOUND_MESSAGE = "S3UserClaim not found"
S3_USER_REF_IMMUTABLE_MESSAGE = "s3UserRef is immutable"


@dataclass
class ErrorPattern:
    """A pattern for classifying errors.

    Used to recognize common API server and backend failures.
    """

    pattern: str
    """Regex pattern to match against error messages."""

    error_code: str
    """The error code to assign when this pattern matches."""

    suggestion: str = ""
    """What an operator admin should check when this pattern keeps matching."""


# Order matters: the first matching pattern wins
ERROR_PATTERNS: list[ErrorPattern] = [
    # Optimistic concurrency, see k8s.io/apiserver OptimisticLockErrorMsg
    ErrorPattern(
        pattern=r"(?i)the object has been modified|please apply your changes to the latest version",
        error_code="CONFLICT",
    ),
    ErrorPattern(
        pattern=r"(?i)nosuchuser|no such user",
        error_code="NO_SUCH_USER",
        suggestion="The backend user vanished outside the operator, it is recreated on the next run.",
    ),
    ErrorPattern(
        pattern=r"(?i)already exists|useralreadyexists",
        error_code="ALREADY_EXISTS",
    ),
    ErrorPattern(
        pattern=r"(?i)not found|does not exist|404",
        error_code="NOT_FOUND",
    ),
    ErrorPattern(
        pattern=r"(?i)unauthorized|forbidden|access ?denied|403|401",
        error_code="AUTH_FAILED",
        suggestion="Check the RGW admin credentials and the operator's RBAC permissions.",
    ),
    ErrorPattern(
        pattern=r"(?i)connection.*refused|network.*unreachable|timed? ?out",
        error_code="CONNECTION_FAILED",
        suggestion="Check that the RGW endpoint and the API server are reachable from the operator.",
    ),
]


def classify_error(error: str | Exception) -> ErrorPattern:
    """Classify an error message against the known patterns.

    Args:
        error: The error message or exception.

    Returns:
        The matching ErrorPattern, or an UNKNOWN_ERROR pattern.
    """
    message = str(error)
    for pattern in ERROR_PATTERNS:
        if re.search(pattern.pattern, message):
            return pattern
    return ErrorPattern(pattern="", error_code="UNKNOWN_ERROR")


def is_conflict(error: str | Exception) -> bool:
    """Check whether an error is an optimistic-concurrency conflict."""
    return classify_error(error).error_code == "CONFLICT"


class S3OperatorError(Exception):
    """Base exception for S3 operator operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class NotFoundError(S3OperatorError):
    """Resource not found."""

    def __init__(self, resource_type: str, name: str, namespace: str | None = None) -> None:
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(
            f"{resource_type} '{name}' not found{location}",
            {"resource_type": resource_type, "name": name, "namespace": namespace},
        )


class ResourceExistsError(S3OperatorError):
    """Resource already exists."""

    def __init__(self, resource_type: str, name: str, namespace: str | None = None) -> None:
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(
            f"{resource_type} '{name}' already exists{location}",
            {"resource_type": resource_type, "name": name, "namespace": namespace},
        )


class ConflictError(S3OperatorError):
    """Write rejected because the stored object changed since it was read."""

    def __init__(self, resource_type: str, name: str, namespace: str | None = None) -> None:
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(
            f"{resource_type} '{name}'{location} has been modified, re-read and retry",
            {"resource_type": resource_type, "name": name, "namespace": namespace},
        )


class ConfigurationError(S3OperatorError):
    """Configuration error."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, details)


class ValidationError(S3OperatorError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, details)


class TeamNotFoundError(S3OperatorError):
    """The namespace of a claim carries no team label."""

    def __init__(self, namespace: str) -> None:
        super().__init__(
            f"namespace '{namespace}' doesn't have a team label",
            {"namespace": namespace},
        )


@dataclass
class FieldViolation:
    """A single reason for rejecting a write, tied to a field path."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class AdmissionDeniedError(S3OperatorError):
    """A write was rejected by an admission check.

    ``code`` is 422 for policy and configuration rejections the tenant or the
    platform team must act on, and 500 when the check itself could not be
    evaluated.
    """

    def __init__(self, violations: list[FieldViolation], code: int = 422) -> None:
        self.violations = list(violations)
        self.code = code
        super().__init__("; ".join(str(v) for v in self.violations))

    @property
    def is_internal(self) -> bool:
        return self.code >= 500

    @classmethod
    def internal(cls, field: str = "metadata") -> AdmissionDeniedError:
        """Build the fail-closed rejection used when a check cannot be evaluated."""
        return cls([FieldViolation(field, INTERNAL_ERROR_MESSAGE)], code=500)
