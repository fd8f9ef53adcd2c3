"""
Memory Lane Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for the error scenarios of the API.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers registered in main.py translate them into JSON
       error responses with the matching HTTP status code.
Who:   Raised by services; caught by the handlers in main.py.

Exception Hierarchy:
    MemoryLaneError (base)
    ├── ValidationError      → 400 Bad Request
    ├── NotFoundError        → 404 Not Found
    └── StorageError         → 500 Internal Server Error
        ├── DatabaseError
        ├── FileStorageError
        └── SchemaError      (raised at startup, never reaches a client)
"""

from typing import Any, Dict, Optional


class MemoryLaneError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 400s)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MemoryLaneError):
    """
    Raised when client input fails validation.

    When:    Disallowed upload type, oversized file, malformed body field,
             missing title on create.
    HTTP:    400 Bad Request
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


class NotFoundError(MemoryLaneError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into this
    exception so routes never deal with None.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class StorageError(MemoryLaneError):
    """
    Base class for persistence failures (database or filesystem).

    HTTP:    500 Internal Server Error. The message returned to the client is
             generic; context is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StorageError):
    """Raised when a query, insert, update or delete fails unexpectedly."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(StorageError):
    """Raised when writing or reading an image file on disk fails."""

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SchemaError(StorageError):
    """
    Raised at startup when the database schema cannot serve traffic.

    Only a missing core table is fatal; other integrity problems are logged.
    """

    def __init__(
        self,
        message: str = "Database schema is not usable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
