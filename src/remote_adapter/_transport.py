"""Transport abstract base class — the wire-level contract consumed by RemoteClient."""

from __future__ import annotations

import abc
import shutil
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from remote_adapter._config import ClientConfig
    from remote_adapter._types import RawRecord

CHUNK_SIZE = 32768


class Transport(abc.ABC):
    """Abstract base class for all transports.

    Paths are normalized, slash-separated and relative to the transport's own
    root (``""`` is the root). Records returned by :meth:`stat` and
    :meth:`listdir` carry at least ``path``, ``name`` and ``type``
    (``"file"`` or ``"dir"``); file records also carry ``size``.

    Transports signal failures with the builtin ``OSError`` family, which
    :class:`~remote_adapter.RemoteClient` maps to the error taxonomy:

    * ``FileNotFoundError`` / ``NotADirectoryError``: the path (or its parent) is absent
    * ``FileExistsError``: the target already exists
    * ``PermissionError``: credentials rejected or access denied
    * ``ConnectionError`` / ``TimeoutError`` / ``EOFError``: the link is unusable

    A transport may also raise :class:`~remote_adapter.StorageError`
    subclasses directly (e.g. ``RateLimited``); those pass through unchanged.
    """

    @classmethod
    def from_config(cls, config: ClientConfig) -> Transport:
        """Build a transport from client settings. Default passes ``config.options`` as keyword arguments."""
        return cls(**config.options)

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique identifier for this transport type (e.g. ``'memory'``, ``'sftp'``)."""

    @abc.abstractmethod
    def connect(self) -> None:
        """Open the session (handshake + authentication)."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the session. Must tolerate being called when not connected."""

    @abc.abstractmethod
    def is_alive(self) -> bool:
        """Cheap liveness check; must not raise."""

    @abc.abstractmethod
    def stat(self, path: str) -> RawRecord:
        """Return the record for ``path``.

        :raises FileNotFoundError: If ``path`` does not exist.
        """

    @abc.abstractmethod
    def listdir(self, path: str) -> list[RawRecord]:
        """Return records for the immediate children of directory ``path``.

        :raises FileNotFoundError: If the directory does not exist.
        :raises NotADirectoryError: If ``path`` is a file.
        """

    @abc.abstractmethod
    def open_read(self, path: str) -> BinaryIO:
        """Open a file for streaming reads. The caller closes the handle.

        :raises FileNotFoundError: If the file does not exist.
        """

    @abc.abstractmethod
    def open_write(self, path: str) -> BinaryIO:
        """Open a file for streaming writes, truncating existing content.

        :raises FileNotFoundError: If the parent directory does not exist.
        """

    @abc.abstractmethod
    def remove(self, path: str) -> None:
        """Delete a file.

        :raises FileNotFoundError: If the file does not exist.
        """

    @abc.abstractmethod
    def mkdir(self, path: str) -> None:
        """Create one directory level.

        :raises FileExistsError: If ``path`` already exists.
        :raises FileNotFoundError: If the parent does not exist.
        """

    @abc.abstractmethod
    def rmdir(self, path: str) -> None:
        """Remove an empty directory.

        :raises FileNotFoundError: If the directory does not exist.
        :raises OSError: If the directory is not empty.
        """

    @abc.abstractmethod
    def rename(self, src: str, dst: str) -> None:
        """Move ``src`` to ``dst``, replacing an existing file at ``dst``."""

    @abc.abstractmethod
    def chmod(self, path: str, mode: int) -> None:
        """Apply permission bits to ``path``."""

    def copy(self, src: str, dst: str) -> None:
        """Copy a file. Default streams the bytes through the client in chunks."""
        with self.open_read(src) as reader, self.open_write(dst) as writer:
            shutil.copyfileobj(reader, writer, CHUNK_SIZE)

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
