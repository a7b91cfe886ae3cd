"""
Application error taxonomy

Every failure that reaches the HTTP error stage is an AppError whose kind is
fixed where the error is raised, so the error stage never has to guess.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INTERNAL = "internal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"
    MALFORMED_REQUEST = "malformed_request"
    PAYLOAD_TOO_LARGE = "payload_too_large"


class StorageCode(str, Enum):
    """Storage failures the error stage knows how to present"""
    DUPLICATE_ENTRY = "duplicate_entry"
    NOT_NULL_VIOLATION = "not_null_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    UNKNOWN_COLUMN = "unknown_column"
    CONNECTION_REFUSED = "connection_refused"
    ACCESS_DENIED = "access_denied"
    CONNECTION_LOST = "connection_lost"
    UNKNOWN = "unknown"


class AppError(Exception):
    """Base class for errors rendered by the centralized error stage"""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.extra = extra or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, status={self.status}, message={self.message!r})"


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    default_status = 400


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_status = 404


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    default_status = 409


class MalformedRequestError(AppError):
    """Request body could not be decoded"""
    kind = ErrorKind.MALFORMED_REQUEST
    default_status = 400


class PayloadTooLargeError(AppError):
    kind = ErrorKind.PAYLOAD_TOO_LARGE
    default_status = 413


class StorageError(AppError):
    """
    Driver, network or constraint failure reported by the storage layer.

    `code` is decided by the data access layer when it catches the driver
    exception; `sqlstate` keeps the raw PostgreSQL code for logging.
    """
    kind = ErrorKind.STORAGE
    default_status = 500

    def __init__(
        self,
        code: StorageCode,
        message: str,
        *,
        retryable: bool = False,
        sqlstate: Optional[str] = None
    ):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.sqlstate = sqlstate

    def __repr__(self) -> str:
        return f"StorageError(code={self.code.value!r}, sqlstate={self.sqlstate!r}, message={self.message!r})"
