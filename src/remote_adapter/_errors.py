"""Normalized error taxonomy for remote_adapter."""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorKind(enum.Enum):
    """Failure kinds. Retry classification is done on these, never on messages."""

    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    OPERATION = "operation"
    INVALID_PATH = "invalid_path"
    MAPPING = "mapping"
    RATE_LIMITED = "rate_limited"
    EXISTENCE_CHECK = "existence_check"


class StorageError(Exception):
    """Base class for all remote_adapter errors.

    :param message: Human-readable error description.
    :param operation: Name of the operation that failed, if any.
    :param path: The path involved in the error, if any.
    :param destination: Second path for move/copy operations.
    :param context: Free-form diagnostic details.
    """

    kind: ErrorKind = ErrorKind.OPERATION

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        destination: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        self.operation = operation
        self.path = path
        self.destination = destination
        self.context: dict[str, Any] = dict(context or {})
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""

    @property
    def cause(self) -> BaseException | None:
        """The underlying exception this error was raised from."""
        return self.__cause__

    def _details(self) -> list[str]:
        parts = []
        if self.operation is not None:
            parts.append(f"operation={self.operation!r}")
        if self.path is not None:
            parts.append(f"path={self.path!r}")
        if self.destination is not None:
            parts.append(f"destination={self.destination!r}")
        return parts

    def __str__(self) -> str:
        parts = [self.message, *self._details()]
        if self.__cause__ is not None and not isinstance(self.__cause__, StorageError):
            parts.append(f"cause={type(self.__cause__).__name__}: {self.__cause__}")
        return " | ".join(p for p in parts if p)

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(self.message), *self._details()]
        if self.context:
            args.append(f"context={self.context!r}")
        return f"{cls}({', '.join(args)})"

    def with_context(
        self,
        *,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        destination: Optional[str] = None,
        **context: Any,
    ) -> StorageError:
        """Return a copy of this error of the same class with new call-site context.

        The copy is meant to be raised ``from`` the original so the cause chain
        stays intact.
        """
        cls = type(self)
        clone = cls.__new__(cls)
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        clone.operation = operation if operation is not None else self.operation
        clone.path = path if path is not None else self.path
        clone.destination = destination if destination is not None else self.destination
        clone.context = {**self.context, **context}
        return clone


class ConnectionFailed(StorageError):
    """Raised when the transport or handshake fails. Retryable."""

    kind = ErrorKind.CONNECTION


class AuthenticationFailed(StorageError):
    """Raised for rejected credentials, expired sessions or missing permission."""

    kind = ErrorKind.AUTHENTICATION


class InvalidConfiguration(StorageError):
    """Raised at construction time for missing or invalid settings."""

    kind = ErrorKind.CONFIGURATION


class NotFound(StorageError):
    """Raised when an operation requires a path that does not exist."""

    kind = ErrorKind.NOT_FOUND


class AlreadyExists(StorageError):
    """Raised when a target already exists and the operation requires absence."""

    kind = ErrorKind.ALREADY_EXISTS


class OperationFailed(StorageError):
    """Raised for remote-side failures not covered by a narrower kind.

    :param transient: ``True`` when the underlying cause is known to be temporary.
    """

    kind = ErrorKind.OPERATION

    def __init__(self, message: str = "", *, transient: bool = False, **kwargs: Any) -> None:
        self.transient = transient
        super().__init__(message, **kwargs)


class InvalidPath(StorageError):
    """Raised for malformed, unsafe, or out-of-scope paths."""

    kind = ErrorKind.INVALID_PATH


class MappingError(StorageError):
    """Raised when the remote store returns malformed metadata."""

    kind = ErrorKind.MAPPING


class RateLimited(StorageError):
    """Raised when the remote store throttles requests.

    :param retry_after: Seconds the remote asked us to wait, if known.
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "", *, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class ExistenceCheckFailed(StorageError):
    """Raised when an existence check could not be answered (not the same as "absent")."""

    kind = ErrorKind.EXISTENCE_CHECK


_BY_KIND: dict[ErrorKind, type[StorageError]] = {
    cls.kind: cls
    for cls in (
        ConnectionFailed,
        AuthenticationFailed,
        InvalidConfiguration,
        NotFound,
        AlreadyExists,
        OperationFailed,
        InvalidPath,
        MappingError,
        RateLimited,
        ExistenceCheckFailed,
    )
}


def error_for_kind(kind: ErrorKind) -> type[StorageError]:
    """Return the concrete error class for ``kind``."""
    return _BY_KIND[kind]
