"""Custom exception types for awsprov.

This module defines the exception hierarchy raised by the resource handlers,
the schema layer and the engine. API errors that are not "not found" are never
wrapped: botocore's ClientError propagates to the caller unchanged.

Exception Hierarchy:
    ProviderError (base)
    ├── NotFoundError - Remote object does not exist
    ├── TooManyResultsError - A lookup matched more than one remote object
    ├── ValidationError - Configuration does not satisfy the resource schema
    ├── ConfigurationError - Provider settings or HCL sources are unusable
    ├── ReferenceResolutionError - An interpolation cannot be resolved
    ├── ResourceStillExistsError - Destroy check found a surviving resource
    ├── AttributeCheckError - Attribute assertion against state failed
    └── StateError - State file cannot be read or written
"""

from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

import provider.config as config


class ProviderError(Exception):
    """Base exception for all awsprov-specific errors.

    Attributes:
        message: Human-readable error description
        context: Additional contextual information (e.g., resource IDs, file paths)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class NotFoundError(ProviderError):
    """Raised when a remote object cannot be found.

    Read handlers translate this into "removed from state"; every other
    caller lets it propagate.
    """

    pass


class TooManyResultsError(ProviderError):
    """Raised when a lookup expected a single result but received several."""

    pass


class ValidationError(ProviderError):
    """Raised when configuration fails schema validation.

    Attributes:
        problems: Every individual validation failure, in discovery order
    """

    def __init__(
        self,
        message: str,
        problems: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.problems = list(problems or [])

    def __str__(self) -> str:
        text = super().__str__()
        if self.problems:
            text += "".join(f"\n  - {p}" for p in self.problems)
        return text


class ConfigurationError(ProviderError):
    """Raised when provider settings or HCL sources cannot be used.

    Examples:
        - Unsupported resource type in configuration
        - count / for_each meta-arguments
        - Dependency cycles between resources
        - Missing region
    """

    pass


class ReferenceResolutionError(ProviderError):
    """Raised when an interpolation expression cannot be resolved."""

    pass


class ResourceStillExistsError(ProviderError):
    """Raised by destroy checks when a resource survived deletion."""

    pass


class AttributeCheckError(ProviderError):
    """Raised when a state attribute assertion fails."""

    pass


class StateError(ProviderError):
    """Raised when the state file is corrupt or cannot be written."""

    pass


def error_code(err: ClientError) -> str:
    """Return the AWS error code carried by a botocore ClientError."""
    return err.response.get("Error", {}).get("Code", "")


def is_not_found(err: Exception) -> bool:
    """Check whether an exception means the remote object does not exist.

    Args:
        err: Any exception raised by a handler or a boto3 client

    Returns:
        True for NotFoundError and for ClientErrors whose code is listed in
        config.NOT_FOUND_ERROR_CODES
    """
    if isinstance(err, NotFoundError):
        return True
    if isinstance(err, ClientError):
        return error_code(err) in config.NOT_FOUND_ERROR_CODES
    return False


def not_found_from(err: ClientError, message: str, **context: Any) -> NotFoundError:
    """Build a NotFoundError that keeps the original ClientError as its cause."""
    context.setdefault("code", error_code(err))
    nf = NotFoundError(message, context)
    nf.__cause__ = err
    return nf
