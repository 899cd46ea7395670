"""Utility functions and helpers for the S3 operator."""

from ceph_s3_operator.utils.errors import (
    AdmissionDeniedError,
    ConfigurationError,
    ConflictError,
    ErrorPattern,
    FieldViolation,
    NotFoundError,
    ResourceExistsError,
    S3OperatorError,
    TeamNotFoundError,
    ValidationError,
    classify_error,
    is_conflict,
)
from ceph_s3_operator.utils.labels import S3Labels

__all__ = [
    # Errors
    "S3OperatorError",
    "NotFoundError",
    "ResourceExistsError",
    "ConflictError",
    "ConfigurationError",
    "ValidationError",
    "TeamNotFoundError",
    "AdmissionDeniedError",
    "FieldViolation",
    # Error classification
    "ErrorPattern",
    "classify_error",
    "is_conflict",
    # Labels
    "S3Labels",
]
