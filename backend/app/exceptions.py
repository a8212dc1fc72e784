"""
Lyceum Backend — Custom Exception Hierarchy
=============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages, without leaking driver or
       storage internals to the client.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the query builder, services and routes; caught by global handlers.

Exception Hierarchy:
    LyceumError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 (local staging or GridFS failed)
    ├── CloudStorageError        → 500 (Google Cloud Storage failed or unconfigured)
    ├── UploadFailedError        → 500 (primary and fallback destinations both failed)
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class LyceumError(Exception):
    """
    Base exception for all Lyceum application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only returned for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(LyceumError):
    """
    Raised when client input fails validation.

    When:    Keyword too long, unknown lookup field, malformed ObjectId,
             unconvertible filter value, unsupported upload type, size exceeded,
             document model validation failure, duplicate unique key.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Keyword too long. Maximum length is 100 characters.",
            "details": {"field": "keyword"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(LyceumError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/v1/lectures/{id} with an id that matches nothing,
             a slug or field lookup with no result, a missing GridFS file.
    HTTP:    404 Not Found

    The message defaults to "<Resource> not found", which is what list and
    detail clients already display verbatim.
    """

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message or f"{resource} not found", context=ctx)


class FileStorageError(LyceumError):
    """
    Raised when local staging or GridFS operations fail.

    When:    Disk full, permission denied, GridFS write aborted, bucket not initialized.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CloudStorageError(LyceumError):
    """
    Raised when Google Cloud Storage is unconfigured or an upload/sign call fails
    after all retries.

    HTTP:    500 Internal Server Error

    Within the upload pipeline this is usually caught: a failed primary
    upload moves on to the fallback destination.
    """

    def __init__(
        self,
        message: str = "Cloud storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UploadFailedError(LyceumError):
    """
    Raised when an upload could not be stored in either destination.

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Failed to upload media to both MongoDB and Google Cloud Storage.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(LyceumError):
    """
    Raised when database operations fail unexpectedly.

    When:    Connection lost mid-query, server selection timeout, aggregation error.
    HTTP:    500 Internal Server Error

    Security Note:
        Driver messages can include the query document; they are logged
        server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(LyceumError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with Retry-After header)
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
