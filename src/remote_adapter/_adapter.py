"""StorageAdapter — the primary user-facing abstraction."""

from __future__ import annotations

import dataclasses
import functools
import io
import logging
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, TypeVar

from remote_adapter._cache import MetadataCache
from remote_adapter._config import AdapterConfig
from remote_adapter._errors import (
    AlreadyExists,
    ExistenceCheckFailed,
    InvalidPath,
    NotFound,
    OperationFailed,
    StorageError,
)
from remote_adapter._mapper import MetadataMapper
from remote_adapter._models import DirectoryAttributes, FileAttributes, OperationEvent, Visibility
from remote_adapter._path import PathPrefixer, normalize, parent
from remote_adapter._retry import RetryPolicy
from remote_adapter._transport import CHUNK_SIZE

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from remote_adapter._client import RemoteClient
    from remote_adapter._models import StorageAttributes
    from remote_adapter._types import EventSink, PathLike, ProgressCallback, WritableContent

T = TypeVar("T")

log = logging.getLogger(__name__)

_SPOOL_MAX_MEMORY = 8 * 1024 * 1024


class StorageAdapter:
    """Uniform file and directory operations on top of a :class:`RemoteClient`.

    Every path argument is normalized and placed under ``config.root_path``
    before it reaches the client; paths handed back are relative to that
    root again. Metadata and listing reads go through the cache when one is
    configured, and every mutation purges the cache entries of each path it
    touched. Failures surface as :class:`~remote_adapter.StorageError`
    subclasses carrying the operation name and the caller's path.

    :param client: Connected or lazily connecting client.
    :param config: Adapter settings. ``cache`` and ``retry`` sections are used
        when the matching argument below is not given.
    :param cache: Metadata cache, possibly shared with other adapters.
    :param retry: Retry policy wrapped around each client call.
    :param event_sink: Receives an :class:`OperationEvent` per operation.
    """

    def __init__(
        self,
        client: RemoteClient,
        config: AdapterConfig | None = None,
        *,
        cache: MetadataCache | None = None,
        retry: RetryPolicy | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        self._client = client
        self._config = config or AdapterConfig()
        self._prefixer = PathPrefixer(self._config.root_path)
        if cache is None and self._config.cache.enabled:
            cache = MetadataCache.from_config(self._config.cache)
        if retry is None and self._config.retry.enabled:
            retry = RetryPolicy.from_config(self._config.retry)
        self._cache = cache
        self._retry = retry
        self._namespace = self._config.cache.namespace
        self._event_sink = event_sink

    def __repr__(self) -> str:
        return (
            f"StorageAdapter(transport={self._client.transport.name!r}, root_path={self._prefixer.root!r}, "
            f"cache={self._cache is not None}, retry={self._retry is not None})"
        )

    @property
    def client(self) -> RemoteClient:
        return self._client

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def cache(self) -> MetadataCache | None:
        return self._cache

    def close(self) -> None:
        """Disconnect the underlying client."""
        self._client.disconnect()

    def __enter__(self) -> StorageAdapter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # region: plumbing
    @contextmanager
    def _operation(self, name: str, path: str, destination: str | None = None) -> Iterator[None]:
        """Label failures with call-site context and report the outcome."""
        started = time.perf_counter()
        outcome = "ok"
        error_kind: str | None = None
        try:
            yield
        except StorageError as exc:
            outcome, error_kind = "error", exc.kind.value
            if exc.operation == name and exc.path == path:
                raise
            raise exc.with_context(operation=name, path=path, destination=destination) from exc
        except Exception:
            outcome = "error"
            raise
        finally:
            duration = time.perf_counter() - started
            log.debug("%s %r -> %s in %.4fs", name, path, outcome, duration)
            if self._event_sink is not None:
                self._emit(OperationEvent(name, path, duration, outcome, error_kind))

    def _emit(self, event: OperationEvent) -> None:
        try:
            self._event_sink(event)  # type: ignore[misc]
        except Exception:
            log.warning("Event sink failed for %s", event.operation, exc_info=True)

    def _run(self, call: Callable[[], T], description: str) -> T:
        if self._retry is None:
            return call()
        return self._retry.execute(call, description=description)

    def _full(self, path: str) -> str:
        return self._prefixer.prefix(path)

    def _full_file(self, path: str) -> str:
        if not normalize(path):
            raise InvalidPath("Path must not be empty for file operations", path=path)
        return self._full(path)

    def _relative(self, attrs: T) -> T:
        rel = self._prefixer.strip(attrs.path)  # type: ignore[attr-defined]
        if rel == attrs.path:  # type: ignore[attr-defined]
            return attrs
        return dataclasses.replace(attrs, path=rel)  # type: ignore[type-var]

    def _invalidate(self, *full_paths: str) -> None:
        if self._cache is None:
            return
        for full in full_paths:
            self._cache.invalidate_path(full, self._namespace)

    def _cached(self, key: str) -> Any:
        if self._cache is None:
            return None
        value = self._cache.get(key)
        log.debug("Cache %s for %s", "hit" if value is not None else "miss", key)
        return value

    def _remember(self, key: str, value: Any) -> None:
        if self._cache is not None:
            self._cache.set(key, value)

    def _ensure_parent(self, full: str) -> None:
        directory = parent(full)
        if not self._config.create_directories or not directory:
            return
        if not self._run(functools.partial(self._client.directory_exists, directory), "directory_exists"):
            self._run(functools.partial(self._client.create_directory, directory, True), "create_directory")

    def _write_creating_parents(self, full: str, attempt: Callable[[], None], description: str) -> None:
        try:
            self._run(attempt, description)
        except NotFound:
            directory = parent(full)
            if not self._config.create_directories or not directory:
                raise
            try:
                self._run(functools.partial(self._client.create_directory, directory, True), "create_directory")
            except StorageError as exc:
                log.debug("Creating parent %r failed: %s; retrying the write anyway", directory, exc)
            self._run(attempt, description)

    # endregion

    # region: existence
    def _check(self, lookup: Callable[[], bool], operation: str, path: str) -> bool:
        try:
            return self._run(lookup, operation)
        except StorageError as exc:
            raise ExistenceCheckFailed(
                f"Could not determine whether {path!r} exists",
                operation=operation,
                path=path,
                context={"kind": exc.kind.value},
            ) from exc

    def file_exists(self, path: str) -> bool:
        """``True`` if ``path`` is a file (or a directory, with ``file_exists_fallback``).

        :raises ExistenceCheckFailed: If the remote could not answer.
        """
        with self._operation("file_exists", path):
            full = self._full(path)
            cached = self._cached(MetadataCache.metadata_key(full, self._namespace))
            if isinstance(cached, FileAttributes):
                return True
            if self._check(functools.partial(self._client.file_exists, full), "file_exists", path):
                return True
            if self._config.file_exists_fallback:
                return self._check(functools.partial(self._client.directory_exists, full), "file_exists", path)
            return False

    def directory_exists(self, path: str) -> bool:
        """``True`` if ``path`` is a directory.

        :raises ExistenceCheckFailed: If the remote could not answer.
        """
        with self._operation("directory_exists", path):
            full = self._full(path)
            cached = self._cached(MetadataCache.metadata_key(full, self._namespace))
            if isinstance(cached, DirectoryAttributes):
                return True
            return self._check(functools.partial(self._client.directory_exists, full), "directory_exists", path)

    def exists(self, path: str) -> bool:
        """``True`` if ``path`` is a file or a directory."""
        with self._operation("exists", path):
            full = self._full(path)
            if self._cached(MetadataCache.metadata_key(full, self._namespace)) is not None:
                return True
            return self._check(functools.partial(self._client.file_exists, full), "exists", path) or self._check(
                functools.partial(self._client.directory_exists, full), "exists", path
            )

    # endregion

    # region: read operations
    def read(self, path: str) -> bytes:
        """Read full file content.

        :raises NotFound: If the file does not exist.
        """
        with self._operation("read", path):
            full = self._full_file(path)
            return self._run(functools.partial(self._client.read_file, full), "read")

    def read_stream(self, path: str) -> BinaryIO:
        """Open a file for streaming reads. The caller must close the handle."""
        with self._operation("read_stream", path):
            full = self._full_file(path)
            return self._run(functools.partial(self._client.open_read, full), "read_stream")

    # endregion

    # region: write operations
    def _refuse_existing(self, full: str, path: str, operation: str) -> None:
        if self._run(functools.partial(self._client.file_exists, full), "file_exists"):
            raise AlreadyExists(f"File already exists: {path}", operation=operation, path=path)

    def write(self, path: str, contents: bytes | str, *, overwrite: bool = True) -> None:
        """Write ``contents`` to ``path``. ``str`` is encoded as UTF-8.

        :raises AlreadyExists: If the file exists and ``overwrite`` is ``False``.
        """
        data = contents.encode("utf-8") if isinstance(contents, str) else bytes(contents)
        with self._operation("write", path):
            full = self._full_file(path)
            if not overwrite:
                self._refuse_existing(full, path, "write")
            try:
                self._write_creating_parents(full, functools.partial(self._client.write_file, full, data), "write")
            finally:
                self._invalidate(full)

    @contextmanager
    def _rewindable(self, stream: BinaryIO, path: str) -> Iterator[BinaryIO]:
        """Yield ``stream`` if it can seek, otherwise a spooled copy of what it has left."""
        if hasattr(stream, "seekable") and stream.seekable():
            yield stream
            return
        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_MEMORY) as spool:
            try:
                shutil.copyfileobj(stream, spool, CHUNK_SIZE)
            except Exception as exc:
                raise OperationFailed(
                    f"Could not buffer the source stream: {exc}", operation="write_stream", path=path
                ) from exc
            spool.seek(0)
            yield spool  # type: ignore[misc]

    def write_stream(
        self,
        path: str,
        stream: WritableContent,
        *,
        overwrite: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Write from a binary stream in bounded chunks.

        Every attempt, whether a retry or the second write after creating the
        parent directory, starts from the stream's initial position. A stream
        that cannot seek is spooled to a temporary file first, so a retry
        never stores a truncated remainder.

        :param on_progress: Called after every chunk with the bytes sent in
            the current attempt and the total size.
        """
        if isinstance(stream, (bytes, bytearray)):
            stream = io.BytesIO(stream)

        with self._operation("write_stream", path):
            full = self._full_file(path)
            if not overwrite:
                self._refuse_existing(full, path, "write_stream")
            with self._rewindable(stream, path) as source:
                start = source.tell()
                source.seek(0, io.SEEK_END)
                total = source.tell() - start

                def attempt() -> None:
                    source.seek(start)
                    self._client.write_stream(full, source, on_progress=on_progress, total=total)

                try:
                    self._write_creating_parents(full, attempt, "write_stream")
                finally:
                    self._invalidate(full)

    def upload(
        self,
        local_path: PathLike,
        path: str,
        *,
        overwrite: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Copy a local file to ``path``.

        :param on_progress: Called after every chunk with the bytes sent in
            the current attempt and the file size.
        :raises NotFound: If ``local_path`` is not a file.
        """
        with self._operation("upload", path):
            full = self._full_file(path)
            if not os.path.isfile(local_path):
                raise NotFound(f"Local file not found: {os.fspath(local_path)}", operation="upload", path=path)
            if not overwrite:
                self._refuse_existing(full, path, "upload")
            try:
                self._write_creating_parents(
                    full,
                    functools.partial(self._client.upload_file, local_path, full, on_progress=on_progress),
                    "upload",
                )
            finally:
                self._invalidate(full)

    def download(self, path: str, local_path: PathLike) -> None:
        """Copy the file at ``path`` to the local disk."""
        with self._operation("download", path):
            full = self._full_file(path)
            self._run(functools.partial(self._client.download_file, full, local_path), "download")

    # endregion

    # region: delete operations
    def delete(self, path: str, *, missing_ok: bool = False) -> None:
        """Delete a file.

        :raises NotFound: If the file does not exist and ``missing_ok`` is ``False``.
        """
        with self._operation("delete", path):
            full = self._full_file(path)
            try:
                self._run(functools.partial(self._client.delete_file, full), "delete")
            except NotFound:
                if not missing_ok:
                    raise
            finally:
                self._invalidate(full)

    def delete_directory(self, path: str, *, missing_ok: bool = False) -> None:
        """Delete a directory and everything below it.

        Files go first, then subdirectories deepest first, then the directory
        itself. Every removed path is purged from the cache.

        :raises InvalidPath: For the adapter root.
        :raises NotFound: If the directory does not exist and ``missing_ok`` is ``False``.
        """
        with self._operation("delete_directory", path):
            if not normalize(path):
                raise InvalidPath("Refusing to delete the root directory", path=path)
            full = self._full(path)
            try:
                records = self._run(functools.partial(self._client.list_files, full, True), "list_files")
            except NotFound:
                if missing_ok:
                    return
                raise
            files = [str(r["path"]) for r in records if not MetadataMapper.is_directory(r)]
            directories = [str(r["path"]) for r in records if MetadataMapper.is_directory(r)]
            try:
                for child in files:
                    self._run(functools.partial(self._client.delete_file, child), "delete_file")
                    self._invalidate(child)
                for child in sorted(directories, key=lambda p: p.count("/"), reverse=True):
                    self._run(functools.partial(self._client.remove_directory, child), "remove_directory")
                    self._invalidate(child)
                self._run(functools.partial(self._client.remove_directory, full), "remove_directory")
            finally:
                self._invalidate(full)

    def create_directory(self, path: str, *, exist_ok: bool = True) -> None:
        """Create a directory and any missing ancestors.

        :raises AlreadyExists: If it exists and ``exist_ok`` is ``False``, or a file is in the way.
        """
        with self._operation("create_directory", path):
            full = self._full(path)
            if not full:
                return
            if not exist_ok and self._run(functools.partial(self._client.directory_exists, full), "directory_exists"):
                raise AlreadyExists(f"Directory already exists: {path}", operation="create_directory", path=path)
            try:
                self._run(functools.partial(self._client.create_directory, full, True), "create_directory")
            finally:
                self._invalidate(full)

    # endregion

    # region: listing
    def list_contents(self, path: str = "", deep: bool = False) -> Iterator[StorageAttributes]:
        """Yield the entries below ``path``; ``deep`` walks the whole subtree.

        Each call issues its own listing (or serves it from the cache).
        Returned paths are relative to the adapter root.
        """
        with self._operation("list_contents", path):
            full = self._full(path)
            key = MetadataCache.listing_key(full, deep, self._namespace)
            listing = self._cached(key)
            if listing is None:
                records = self._run(functools.partial(self._client.list_files, full, deep), "list_contents")
                listing = tuple(MetadataMapper.to_attributes(r) for r in records)
                self._remember(key, listing)
            entries = [self._relative(attrs) for attrs in listing]
        yield from entries

    # endregion

    # region: move and copy
    def _transfer(
        self,
        operation: str,
        source: str,
        destination: str,
        *,
        directory: bool,
        primitive: Callable[[str, str], None],
    ) -> None:
        with self._operation(operation, source, destination):
            src = self._full_file(source)
            dst = self._full_file(destination)
            exists = self._client.directory_exists if directory else self._client.file_exists
            if not self._run(functools.partial(exists, src), operation):
                kind = "Directory" if directory else "File"
                raise NotFound(
                    f"{kind} not found: {source}", operation=operation, path=source, destination=destination
                )
            try:
                self._ensure_parent(dst)
                self._run(functools.partial(primitive, src, dst), operation)
            finally:
                self._invalidate(src, dst)

    def move(self, source: str, destination: str) -> None:
        """Move a file.

        :raises NotFound: If ``source`` is not an existing file.
        """
        self._transfer("move", source, destination, directory=False, primitive=self._client.move_file)

    def copy(self, source: str, destination: str) -> None:
        """Copy a file.

        :raises NotFound: If ``source`` is not an existing file.
        """
        self._transfer("copy", source, destination, directory=False, primitive=self._client.copy_file)

    def move_directory(self, source: str, destination: str) -> None:
        self._transfer("move_directory", source, destination, directory=True, primitive=self._client.move_directory)

    def copy_directory(self, source: str, destination: str) -> None:
        self._transfer("copy_directory", source, destination, directory=True, primitive=self._client.copy_directory)

    # endregion

    # region: metadata
    def _file_attributes(self, path: str, operation: str) -> FileAttributes:
        full = self._full_file(path)
        key = MetadataCache.metadata_key(full, self._namespace)
        cached = self._cached(key)
        if isinstance(cached, FileAttributes):
            return self._relative(cached)
        record = self._run(functools.partial(self._client.get_file_info, full), operation)
        attrs = MetadataMapper.to_file_attributes(record)
        self._remember(key, attrs)
        return self._relative(attrs)

    def get_metadata(self, path: str) -> FileAttributes:
        """Attributes of the file at ``path``.

        :raises NotFound: If ``path`` is absent or a directory.
        """
        with self._operation("get_metadata", path):
            return self._file_attributes(path, "get_metadata")

    def get_directory_metadata(self, path: str) -> DirectoryAttributes:
        """Attributes of the directory at ``path``.

        :raises NotFound: If ``path`` is absent or a file.
        """
        with self._operation("get_directory_metadata", path):
            full = self._full(path)
            key = MetadataCache.metadata_key(full, self._namespace)
            cached = self._cached(key)
            if isinstance(cached, DirectoryAttributes):
                return self._relative(cached)
            record = self._run(functools.partial(self._client.get_directory_info, full), "get_directory_metadata")
            attrs = MetadataMapper.to_directory_attributes(record)
            self._remember(key, attrs)
            return self._relative(attrs)

    def file_size(self, path: str) -> int:
        with self._operation("file_size", path):
            return self._file_attributes(path, "file_size").size

    def last_modified(self, path: str) -> int | None:
        with self._operation("last_modified", path):
            return self._file_attributes(path, "last_modified").last_modified

    def mime_type(self, path: str) -> str | None:
        with self._operation("mime_type", path):
            return self._file_attributes(path, "mime_type").mime_type

    def visibility(self, path: str) -> Visibility:
        """Visibility of the file at ``path``."""
        with self._operation("visibility", path):
            return self._file_attributes(path, "visibility").visibility

    def set_visibility(self, path: str, visibility: Visibility | str) -> None:
        """Change visibility of a file or directory.

        :raises ValueError: If ``visibility`` is not ``public`` or ``private``.
        """
        value = Visibility(visibility)
        with self._operation("set_visibility", path):
            full = self._full(path)
            try:
                self._run(functools.partial(self._client.set_visibility, full, value), "set_visibility")
            finally:
                self._invalidate(full)

    # endregion
