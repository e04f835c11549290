"""RemoteClient — connection state machine and primitive operations over a Transport."""

from __future__ import annotations

import contextlib
import enum
import functools
import io
import logging
import os
import shutil
import threading
import time
from contextlib import AbstractContextManager, contextmanager
from typing import TYPE_CHECKING, Any, BinaryIO, Callable

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from remote_adapter._config import ClientConfig
from remote_adapter._errors import (
    AlreadyExists,
    AuthenticationFailed,
    ConnectionFailed,
    NotFound,
    OperationFailed,
    StorageError,
)
from remote_adapter._mapper import MetadataMapper
from remote_adapter._path import SEPARATOR, is_within
from remote_adapter._transport import CHUNK_SIZE

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from remote_adapter._models import Visibility
    from remote_adapter._transport import Transport
    from remote_adapter._types import PathLike, ProgressCallback, RawRecord, Sleeper

log = logging.getLogger(__name__)

_MAX_CONNECT_WAIT = 60.0


class _MappedReader(io.RawIOBase):
    """Raw read handle whose failures go through the owning client's error mapping."""

    def __init__(self, handle: BinaryIO, errors: Callable[[], AbstractContextManager[None]]) -> None:
        super().__init__()
        self._handle = handle
        self._errors = errors

    def readable(self) -> bool:
        return True

    def read(self, size: int | None = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed file")
        with self._errors():
            return bytes(self._handle.read(-1 if size is None else size))

    def readall(self) -> bytes:
        return self.read(-1)

    def readinto(self, buffer: Any) -> int:
        data = self.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            with self._errors():
                self._handle.close()
        finally:
            super().close()


class ConnectionState(enum.Enum):
    """Lifecycle of the single connection owned by a :class:`RemoteClient`."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class RemoteClient:
    """Owns one transport session and exposes file and directory primitives.

    Every data operation first ensures the session is ``CONNECTED``,
    reconnecting on demand from ``DISCONNECTED`` or ``FAILED``. State
    transitions are serialized by a re-entrant lock so concurrent callers
    that need a connection wait behind a single attempt. Data operations
    themselves do not take the lock.

    Transport exceptions are translated in :meth:`_errors`, the only place
    that knows about the builtin ``OSError`` family.

    :param transport: The wire-level collaborator.
    :param config: Connection settings; only ``host``, ``connect_attempts``
        and ``connect_retry_delay`` are read here.
    :param sleep: Sleep function used between connection attempts.
    """

    def __init__(
        self,
        transport: Transport,
        config: ClientConfig | None = None,
        *,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._transport = transport
        self._config = config or ClientConfig(transport=transport.name)
        self._sleep = sleep
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._last_attempt: float | None = None
        self._consecutive_failures = 0

    def __repr__(self) -> str:
        return f"RemoteClient(transport={self._transport.name!r}, state={self._state.value!r})"

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    # region: connection lifecycle
    def connect(self) -> bool:
        """Open the session. Idempotent.

        :raises ConnectionFailed: If every attempt failed at the network level.
        :raises AuthenticationFailed: If credentials were rejected (never retried).
        """
        with self._lock:
            if self._state is ConnectionState.CONNECTED and self._transport.is_alive():
                return True
            retrying = Retrying(
                retry=retry_if_exception_type(ConnectionFailed),
                stop=stop_after_attempt(self._config.connect_attempts),
                wait=wait_exponential(multiplier=self._config.connect_retry_delay, max=_MAX_CONNECT_WAIT),
                before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
                sleep=self._sleep,
                reraise=True,
            )
            try:
                retrying(self._connect_once)
            except StorageError:
                self._state = ConnectionState.FAILED
                self._consecutive_failures += 1
                raise
            self._state = ConnectionState.CONNECTED
            self._consecutive_failures = 0
            log.info("Connected to %s via %s transport", self._config.host or "<local>", self._transport.name)
            return True

    def _connect_once(self) -> None:
        self._state = ConnectionState.CONNECTING
        self._last_attempt = time.time()
        with self._errors("connect", self._config.host or None):
            self._transport.connect()

    def disconnect(self) -> None:
        """Close the session. Never raises; always ends ``DISCONNECTED``."""
        with self._lock:
            try:
                self._transport.close()
            except Exception:
                log.warning("Error while closing %s transport", self._transport.name, exc_info=True)
            finally:
                self._state = ConnectionState.DISCONNECTED
        log.info("Disconnected from %s transport", self._transport.name)

    def is_connected(self) -> bool:
        """Lightweight liveness check; no remote round trip."""
        return self._state is ConnectionState.CONNECTED and self._transport.is_alive()

    def connection_status(self) -> dict[str, Any]:
        """Snapshot of the connection for diagnostics. Never includes credentials."""
        return {
            "state": self._state.value,
            "transport": self._transport.name,
            "host": self._config.host,
            "port": self._config.port,
            "last_attempt": self._last_attempt,
            "consecutive_failures": self._consecutive_failures,
        }

    def _ensure_connected(self) -> None:
        if self._state is ConnectionState.CONNECTED and self._transport.is_alive():
            return
        if self._state is ConnectionState.CONNECTED:
            log.warning("Link to %s transport lost; reconnecting", self._transport.name)
            self._state = ConnectionState.FAILED
        self.connect()

    def close(self) -> None:
        self.disconnect()

    def __enter__(self) -> RemoteClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    # endregion

    # region: error mapping
    @contextmanager
    def _errors(
        self,
        operation: str,
        path: str | None = None,
        destination: str | None = None,
        **context: Any,
    ) -> Iterator[None]:
        """Map transport exceptions to the error taxonomy."""
        ctx = {"operation": operation, "path": path, "destination": destination, "context": context}
        try:
            yield
        except StorageError as exc:
            if isinstance(exc, ConnectionFailed):
                self._state = ConnectionState.FAILED
            raise
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise NotFound(f"Not found: {exc}", **ctx) from exc
        except FileExistsError as exc:
            raise AlreadyExists(f"Already exists: {exc}", **ctx) from exc
        except PermissionError as exc:
            raise AuthenticationFailed(f"Access denied: {exc}", **ctx) from exc
        except (ConnectionError, TimeoutError, EOFError) as exc:
            self._state = ConnectionState.FAILED
            raise ConnectionFailed(f"Connection failure: {exc or type(exc).__name__}", **ctx) from exc
        except Exception as exc:
            raise OperationFailed(str(exc) or type(exc).__name__, **ctx) from exc

    @contextmanager
    def _session(
        self,
        operation: str,
        path: str | None = None,
        destination: str | None = None,
        **context: Any,
    ) -> Iterator[Transport]:
        self._ensure_connected()
        with self._errors(operation, path, destination, **context):
            yield self._transport

    # endregion

    # region: existence
    def _stat_or_none(self, operation: str, path: str) -> RawRecord | None:
        try:
            with self._session(operation, path) as transport:
                return transport.stat(path)
        except NotFound:
            return None

    def file_exists(self, path: str) -> bool:
        """``True`` if ``path`` is an existing file. Absence is not an error."""
        record = self._stat_or_none("file_exists", path)
        return record is not None and not MetadataMapper.is_directory(record)

    def directory_exists(self, path: str) -> bool:
        """``True`` if ``path`` is an existing directory. Absence is not an error."""
        record = self._stat_or_none("directory_exists", path)
        return record is not None and MetadataMapper.is_directory(record)

    # endregion

    # region: reads
    def read_file(self, path: str) -> bytes:
        with self._session("read_file", path) as transport, transport.open_read(path) as handle:
            return bytes(handle.read())

    def open_read(self, path: str) -> BinaryIO:
        """Open ``path`` for streaming reads. The caller closes the handle.

        Failures while reading or closing are mapped like any other
        operation's, under the ``read_stream`` operation name.
        """
        with self._session("open_read", path) as transport:
            handle = transport.open_read(path)
        raw = _MappedReader(handle, functools.partial(self._errors, "read_stream", path))
        return io.BufferedReader(raw, CHUNK_SIZE)

    def download_file(self, remote_path: str, local_path: PathLike) -> None:
        """Stream a remote file to the local disk. A partial local file is removed on failure."""
        local = os.fspath(local_path)
        with self._session("download_file", remote_path, local_path=local) as transport:
            with transport.open_read(remote_path) as reader:
                try:
                    with open(local, "wb") as writer:
                        shutil.copyfileobj(reader, writer, CHUNK_SIZE)
                except BaseException:
                    with contextlib.suppress(OSError):
                        os.remove(local)
                    raise

    # endregion

    # region: writes
    def _copy_in(
        self,
        operation: str,
        path: str,
        stream: BinaryIO,
        *,
        on_progress: ProgressCallback | None = None,
        total: int | None = None,
        **context: Any,
    ) -> None:
        sent = 0
        with self._session(operation, path, **context) as transport, transport.open_write(path) as writer:
            while chunk := stream.read(CHUNK_SIZE):
                writer.write(chunk)
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(sent, total)

    def write_file(self, path: str, data: bytes) -> None:
        with self._session("write_file", path) as transport, transport.open_write(path) as writer:
            writer.write(data)

    def write_stream(
        self,
        path: str,
        stream: BinaryIO,
        *,
        on_progress: ProgressCallback | None = None,
        total: int | None = None,
    ) -> None:
        """Copy ``stream`` to ``path`` in bounded chunks.

        :param on_progress: Called after every chunk with the bytes sent so far
            and ``total`` (``None`` when the caller does not know the size).
        :param total: Expected size, passed through to ``on_progress``.
        """
        self._copy_in("write_stream", path, stream, on_progress=on_progress, total=total)

    def upload_file(
        self, local_path: PathLike, remote_path: str, *, on_progress: ProgressCallback | None = None
    ) -> None:
        local = os.fspath(local_path)
        try:
            source = open(local, "rb")  # noqa: SIM115
        except FileNotFoundError as exc:
            raise NotFound(f"Local file not found: {local}", operation="upload_file", path=local) from exc
        with source:
            total = os.fstat(source.fileno()).st_size
            self._copy_in("upload_file", remote_path, source, on_progress=on_progress, total=total, local_path=local)

    def delete_file(self, path: str) -> None:
        with self._session("delete_file", path) as transport:
            transport.remove(path)

    def create_directory(self, path: str, recursive: bool = False) -> None:
        """Create ``path``; with ``recursive`` also its missing ancestors.

        :raises AlreadyExists: Non-recursive create of an existing path, or a
            file in the way of a recursive create.
        """
        with self._session("create_directory", path) as transport:
            if recursive:
                self._makedirs(transport, path)
            else:
                transport.mkdir(path)

    @staticmethod
    def _makedirs(transport: Transport, path: str) -> None:
        current = ""
        for part in path.split(SEPARATOR) if path else ():
            current = f"{current}{SEPARATOR}{part}" if current else part
            try:
                transport.mkdir(current)
            except FileExistsError:
                if not MetadataMapper.is_directory(transport.stat(current)):
                    raise FileExistsError(f"{current} exists and is not a directory") from None

    def remove_directory(self, path: str, recursive: bool = False) -> None:
        """Remove directory ``path``; with ``recursive`` also everything below it."""
        with self._session("remove_directory", path) as transport:
            if recursive:
                self._rmtree(transport, path)
            else:
                transport.rmdir(path)

    def _rmtree(self, transport: Transport, path: str) -> None:
        for record in transport.listdir(path):
            child = str(record["path"])
            if MetadataMapper.is_directory(record):
                self._rmtree(transport, child)
            else:
                transport.remove(child)
        transport.rmdir(path)

    # endregion

    # region: listing and metadata
    def list_files(self, path: str, recursive: bool = False) -> list[RawRecord]:
        """Records for the children of ``path``; with ``recursive`` the whole subtree, parents first."""
        with self._session("list_files", path) as transport:
            return list(self._walk(transport, path, recursive))

    def _walk(self, transport: Transport, path: str, recursive: bool) -> Iterator[RawRecord]:
        for record in transport.listdir(path):
            yield record
            if recursive and MetadataMapper.is_directory(record):
                yield from self._walk(transport, str(record["path"]), recursive)

    def get_file_info(self, path: str) -> RawRecord:
        """:raises NotFound: If ``path`` is absent or a directory."""
        with self._session("get_file_info", path) as transport:
            record = transport.stat(path)
            if MetadataMapper.is_directory(record):
                raise FileNotFoundError(f"{path} is a directory")
            return record

    def get_directory_info(self, path: str) -> RawRecord:
        """:raises NotFound: If ``path`` is absent or a file."""
        with self._session("get_directory_info", path) as transport:
            record = transport.stat(path)
            if not MetadataMapper.is_directory(record):
                raise NotADirectoryError(f"{path} is not a directory")
            return record

    # endregion

    # region: move and copy
    def _require(self, transport: Transport, path: str, *, directory: bool) -> RawRecord:
        record = transport.stat(path)
        if MetadataMapper.is_directory(record) is not directory:
            kind = "directory" if directory else "file"
            raise FileNotFoundError(f"{path} is not a {kind}")
        return record

    def move_file(self, source: str, destination: str) -> None:
        with self._session("move_file", source, destination) as transport:
            self._require(transport, source, directory=False)
            transport.rename(source, destination)

    def copy_file(self, source: str, destination: str) -> None:
        with self._session("copy_file", source, destination) as transport:
            self._require(transport, source, directory=False)
            transport.copy(source, destination)

    def move_directory(self, source: str, destination: str) -> None:
        with self._session("move_directory", source, destination) as transport:
            self._require(transport, source, directory=True)
            transport.rename(source, destination)

    def copy_directory(self, source: str, destination: str) -> None:
        """Copy a directory tree. Existing files at the destination are overwritten."""
        with self._session("copy_directory", source, destination) as transport:
            self._require(transport, source, directory=True)
            if destination == source or is_within(destination, source):
                raise OSError(f"Cannot copy {source!r} into itself")
            self._copytree(transport, source, destination)

    def _copytree(self, transport: Transport, source: str, destination: str) -> None:
        self._makedirs(transport, destination)
        for record in transport.listdir(source):
            child = str(record["path"])
            target = destination + child[len(source) :]
            if MetadataMapper.is_directory(record):
                self._copytree(transport, child, target)
            else:
                transport.copy(child, target)

    # endregion

    # region: visibility
    def set_visibility(self, path: str, visibility: Visibility | str) -> None:
        """Apply the permission bits that express ``visibility``."""
        with self._session("set_visibility", path) as transport:
            record = transport.stat(path)
            mode = MetadataMapper.visibility_to_permissions(visibility, is_dir=MetadataMapper.is_directory(record))
            transport.chmod(path, mode)

    # endregion
