#!/usr/bin/env python3
"""Exception Hierarchy for the SharePoint List Sync service.

This module provides a structured exception hierarchy for the errors that
can occur while reconciling SharePoint lists into PostgreSQL: talking to
Microsoft Graph, writing to the store, keeping delta tokens and
subscriptions consistent, and validating inbound notifications.

Design Principles:
    - All exceptions inherit from SyncServiceError
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability

Exception Hierarchy:
    SyncServiceError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── SourceError
    │   ├── SourceFetchError (transient - retry)
    │   │   ├── RateLimitError
    │   │   └── ServerError
    │   ├── SourceAuthError (fatal - operator action required)
    │   └── TokenInvalidError (source rejected the delta token)
    ├── StoreError
    │   ├── ConnectionPoolError
    │   └── StoreWriteError
    ├── SyncError (one resource's pass failed)
    │   └── PartialSyncError
    ├── SubscriptionConflictError
    └── MalformedNotificationError
        └── UnknownResourceError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class SyncServiceError(Exception):
    """Base exception for all sync service errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SOURCE_AUTH_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [f"[{self.code}]", self.message]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(SyncServiceError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Remote Source Errors
# ============================================

class SourceError(SyncServiceError):
    """Base class for errors raised by the remote list source."""


class SourceFetchError(SourceError):
    """Raised when a request to the remote source fails.

    Attributes:
        status_code: HTTP status code (0 for network-level failures)
        endpoint: URL or path that was called
        response_body: Raw response body (truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        details["method"] = method
        if response_body:
            details["response_body"] = response_body[:500]

        kwargs.setdefault("recoverable", status_code in (0, 429, 500, 502, 503, 504))
        kwargs.setdefault("code", f"SOURCE_FETCH_ERROR_{status_code}" if status_code else "SOURCE_FETCH_ERROR")

        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(SourceFetchError):
    """Raised when the source throttles us (HTTP 429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header)
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.retry_after = retry_after or 30


class ServerError(SourceFetchError):
    """Raised when the source returns a 5xx error."""

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(
            message,
            code="SERVER_ERROR",
            recoverable=True,
            **kwargs,
        )


class SourceAuthError(SourceError):
    """Raised when credentials are rejected or access is forbidden.

    Never retried: the operator has to fix the app registration or secret.
    """

    def __init__(self, message: str = "Authentication with the source failed", **kwargs):
        kwargs.setdefault("code", "SOURCE_AUTH_ERROR")
        super().__init__(message, recoverable=False, **kwargs)


class TokenInvalidError(SourceError):
    """Raised when the source rejects a stored delta token.

    Treated exactly like having no prior state: the token is cleared and
    the resource falls back to a full sync.
    """

    def __init__(self, message: str = "Delta token rejected by source", **kwargs):
        super().__init__(message, code="TOKEN_INVALID", recoverable=True, **kwargs)


# ============================================
# Local Store Errors
# ============================================

class StoreError(SyncServiceError):
    """Base class for database-related errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionPoolError(StoreError):
    """Raised when the connection pool is unavailable or exhausted."""

    def __init__(self, message: str = "Database connection pool error", **kwargs):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class StoreWriteError(StoreError):
    """Raised when a write to the local store fails."""

    def __init__(
        self,
        message: str = "Database write failed",
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(
            message,
            code=kwargs.pop("code", "STORE_WRITE_ERROR"),
            details=details,
            **kwargs,
        )


# ============================================
# Sync Errors
# ============================================

class SyncError(SyncServiceError):
    """Raised when one resource's reconciliation pass fails.

    Attributes:
        resource: Resource descriptor of the failed pass
    """

    def __init__(self, message: str, resource: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        kwargs.setdefault("code", "SYNC_ERROR")
        super().__init__(message, details=details, **kwargs)
        self.resource = resource


class PartialSyncError(SyncError):
    """Raised when some resources failed to sync while others succeeded.

    Attributes:
        succeeded: Number of resources successfully synced
        failed: Number of resources that failed
        errors: List of individual errors
    """

    def __init__(
        self,
        message: str,
        succeeded: int = 0,
        failed: int = 0,
        errors: Optional[list[Exception]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["succeeded"] = succeeded
        details["failed"] = failed
        if errors:
            details["sample_errors"] = [str(e)[:200] for e in errors[:5]]

        super().__init__(
            message,
            code="PARTIAL_SYNC_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.succeeded = succeeded
        self.failed = failed
        self.errors = errors or []


class SubscriptionConflictError(SyncServiceError):
    """A resource is already subscribed under a different notification URL.

    Resolved by deleting and recreating the subscription.
    """

    def __init__(
        self,
        resource: str,
        subscription_id: str,
        expected_url: str,
        actual_url: str,
        **kwargs,
    ):
        super().__init__(
            f"Subscription {subscription_id} for {resource} points to {actual_url}",
            code="SUBSCRIPTION_CONFLICT",
            details={
                "resource": resource,
                "subscription_id": subscription_id,
                "expected_url": expected_url,
                "actual_url": actual_url,
            },
            recoverable=True,
            **kwargs,
        )
        self.resource = resource
        self.subscription_id = subscription_id


# ============================================
# Notification Errors
# ============================================

class MalformedNotificationError(SyncServiceError):
    """Raised when an inbound notification cannot be validated."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "MALFORMED_NOTIFICATION")
        super().__init__(message, recoverable=False, **kwargs)


class UnknownResourceError(MalformedNotificationError):
    """Raised when a notification names a resource that is not configured."""

    def __init__(self, resource: str, **kwargs):
        super().__init__(
            f"Resource '{resource}' is not tracked",
            code="UNKNOWN_RESOURCE",
            details={"resource": resource},
            **kwargs,
        )
        self.resource = resource


# ============================================
# Error Aggregation
# ============================================

class ErrorCollector:
    """Collect multiple errors for batch operations.

    Example:
        collector = ErrorCollector()
        for tracked in tracked_lists:
            try:
                await reconcile(tracked)
            except SyncServiceError as e:
                collector.add(e, context={"resource": tracked.ref.descriptor})

        if collector.has_errors():
            raise collector.to_exception(succeeded=...)
    """

    def __init__(self, max_errors: int = 100):
        self.errors: list[tuple[Exception, dict[str, Any]]] = []
        self.max_errors = max_errors

    def add(self, error: Exception, context: Optional[dict[str, Any]] = None):
        """Add an error with optional context."""
        if len(self.errors) < self.max_errors:
            self.errors.append((error, context or {}))

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def count(self) -> int:
        return len(self.errors)

    def to_exception(self, succeeded: int = 0) -> PartialSyncError:
        """Convert collected errors to a PartialSyncError."""
        if not self.errors:
            raise ValueError("No errors to convert")

        return PartialSyncError(
            message=f"{len(self.errors)} resource(s) failed to sync",
            succeeded=succeeded,
            failed=len(self.errors),
            errors=[e for e, _ in self.errors],
        )


__all__ = [
    "SyncServiceError",
    "ConfigurationError",
    "SourceError",
    "SourceFetchError",
    "RateLimitError",
    "ServerError",
    "SourceAuthError",
    "TokenInvalidError",
    "StoreError",
    "ConnectionPoolError",
    "StoreWriteError",
    "SyncError",
    "PartialSyncError",
    "SubscriptionConflictError",
    "MalformedNotificationError",
    "UnknownResourceError",
    "ErrorCollector",
]
