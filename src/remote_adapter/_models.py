"""Immutable metadata and event models."""

from __future__ import annotations

import dataclasses
import enum


class Visibility(str, enum.Enum):
    """Two-state visibility derived from remote permission metadata."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclasses.dataclass(frozen=True)
class FileAttributes:
    """Immutable snapshot of file metadata.

    :param path: Root-relative path.
    :param size: File size in bytes.
    :param last_modified: Unix timestamp in seconds, ``None`` when unknown.
    :param mime_type: MIME type, ``None`` when unknown.
    :param visibility: ``public`` or ``private``.
    :param extra: Transport-specific metadata (e.g. the remote id).
    """

    path: str
    size: int
    last_modified: int | None = None
    mime_type: str | None = None
    visibility: Visibility = Visibility.PRIVATE
    extra: dict[str, object] = dataclasses.field(default_factory=dict, compare=False)

    @property
    def is_file(self) -> bool:
        return True

    @property
    def is_dir(self) -> bool:
        return False


@dataclasses.dataclass(frozen=True)
class DirectoryAttributes:
    """Immutable snapshot of directory metadata.

    :param path: Root-relative path.
    :param last_modified: Unix timestamp in seconds, ``None`` when unknown.
    :param visibility: ``public`` or ``private``.
    :param extra: Transport-specific metadata.
    """

    path: str
    last_modified: int | None = None
    visibility: Visibility = Visibility.PRIVATE
    extra: dict[str, object] = dataclasses.field(default_factory=dict, compare=False)

    @property
    def is_file(self) -> bool:
        return False

    @property
    def is_dir(self) -> bool:
        return True


StorageAttributes = FileAttributes | DirectoryAttributes


@dataclasses.dataclass(frozen=True)
class RetryAttempt:
    """One scheduled retry inside a single ``RetryPolicy.execute`` call.

    :param attempt: 1-based number of the attempt that just failed.
    :param delay: Seconds slept before the next attempt.
    :param error: The exception that triggered the retry.
    """

    attempt: int
    delay: float
    error: BaseException


@dataclasses.dataclass(frozen=True)
class OperationEvent:
    """Structured record of one adapter operation, handed to an event sink."""

    operation: str
    path: str
    duration: float
    outcome: str
    error_kind: str | None = None
