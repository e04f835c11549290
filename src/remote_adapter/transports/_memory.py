"""In-process transport — a thread-safe tree held in memory."""

from __future__ import annotations

import dataclasses
import io
import threading
import time
from typing import TYPE_CHECKING, Any, BinaryIO

from remote_adapter._transport import Transport

if TYPE_CHECKING:
    from remote_adapter._config import ClientConfig
    from remote_adapter._types import RawRecord


@dataclasses.dataclass
class _Node:
    is_dir: bool
    data: bytes = b""
    mtime: int = 0
    mode: int = 0o600


class _CommitOnClose(io.BytesIO):
    """Write buffer that publishes its content to the tree when closed."""

    def __init__(self, transport: MemoryTransport, path: str) -> None:
        super().__init__()
        self._transport = transport
        self._path = path
        self._aborted = False

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            self._aborted = True
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        try:
            if not self._aborted:
                self._transport._commit(self._path, self.getvalue())
        finally:
            super().close()


class MemoryTransport(Transport):
    """Transport backed by a dictionary of nodes.

    Useful as a test double and for ephemeral storage. When ``password`` is
    set, :meth:`connect` rejects any other credentials with ``PermissionError``.

    :param username: Expected user name (optional).
    :param password: Expected password (optional).
    """

    def __init__(self, username: str | None = None, password: str | None = None) -> None:
        self._expected = (username, password)
        self._offered = (username, password)
        self._nodes: dict[str, _Node] = {"": _Node(is_dir=True, mtime=int(time.time()), mode=0o700)}
        self._lock = threading.Lock()
        self._connected = False

    @classmethod
    def from_config(cls, config: ClientConfig) -> MemoryTransport:
        transport = cls(**config.options)
        transport._offered = (config.username, config.password)
        return transport

    @property
    def name(self) -> str:
        return "memory"

    # region: session
    def connect(self) -> None:
        expected_user, expected_password = self._expected
        if expected_password is not None and self._offered != (expected_user, expected_password):
            raise PermissionError("Invalid credentials")
        self._connected = True

    def close(self) -> None:
        self._connected = False

    def is_alive(self) -> bool:
        return self._connected

    def _require_session(self) -> None:
        if not self._connected:
            raise ConnectionError("Memory transport is not connected")

    # endregion

    # region: helpers
    @staticmethod
    def _parent(path: str) -> str:
        return path.rsplit("/", 1)[0] if "/" in path else ""

    def _record(self, path: str, node: _Node) -> RawRecord:
        record: dict[str, Any] = {
            "path": path,
            "name": path.rsplit("/", 1)[-1],
            "type": "dir" if node.is_dir else "file",
            "mtime": node.mtime,
            "permissions": node.mode,
        }
        if not node.is_dir:
            record["size"] = len(node.data)
        return record

    def _get(self, path: str) -> _Node:
        node = self._nodes.get(path)
        if node is None:
            raise FileNotFoundError(path)
        return node

    def _commit(self, path: str, data: bytes) -> None:
        with self._lock:
            parent = self._nodes.get(self._parent(path))
            if parent is None or not parent.is_dir:
                raise FileNotFoundError(self._parent(path))
            existing = self._nodes.get(path)
            if existing is not None and existing.is_dir:
                raise IsADirectoryError(path)
            mode = existing.mode if existing is not None else 0o600
            self._nodes[path] = _Node(is_dir=False, data=data, mtime=int(time.time()), mode=mode)

    def _children(self, path: str) -> list[str]:
        prefix = f"{path}/" if path else ""
        return [p for p in self._nodes if p and p.startswith(prefix) and "/" not in p[len(prefix) :]]

    # endregion

    # region: primitives
    def stat(self, path: str) -> RawRecord:
        self._require_session()
        with self._lock:
            return self._record(path, self._get(path))

    def listdir(self, path: str) -> list[RawRecord]:
        self._require_session()
        with self._lock:
            node = self._get(path)
            if not node.is_dir:
                raise NotADirectoryError(path)
            return [self._record(child, self._nodes[child]) for child in sorted(self._children(path))]

    def open_read(self, path: str) -> BinaryIO:
        self._require_session()
        with self._lock:
            node = self._get(path)
            if node.is_dir:
                raise IsADirectoryError(path)
            return io.BytesIO(node.data)

    def open_write(self, path: str) -> BinaryIO:
        self._require_session()
        with self._lock:
            parent = self._nodes.get(self._parent(path))
            if parent is None or not parent.is_dir:
                raise FileNotFoundError(self._parent(path))
            existing = self._nodes.get(path)
            if existing is not None and existing.is_dir:
                raise IsADirectoryError(path)
        return _CommitOnClose(self, path)

    def remove(self, path: str) -> None:
        self._require_session()
        with self._lock:
            node = self._get(path)
            if node.is_dir:
                raise IsADirectoryError(path)
            del self._nodes[path]

    def mkdir(self, path: str) -> None:
        self._require_session()
        with self._lock:
            if path in self._nodes:
                raise FileExistsError(path)
            parent = self._nodes.get(self._parent(path))
            if parent is None or not parent.is_dir:
                raise FileNotFoundError(self._parent(path))
            self._nodes[path] = _Node(is_dir=True, mtime=int(time.time()), mode=0o700)

    def rmdir(self, path: str) -> None:
        self._require_session()
        with self._lock:
            node = self._get(path)
            if not node.is_dir:
                raise NotADirectoryError(path)
            if not path:
                raise PermissionError("Cannot remove the transport root")
            if self._children(path):
                raise OSError(f"Directory not empty: {path}")
            del self._nodes[path]

    def rename(self, src: str, dst: str) -> None:
        self._require_session()
        with self._lock:
            node = self._get(src)
            parent = self._nodes.get(self._parent(dst))
            if parent is None or not parent.is_dir:
                raise FileNotFoundError(self._parent(dst))
            if dst == src or dst.startswith(src + "/"):
                raise OSError(f"Cannot move {src!r} into itself")
            moved = {p: n for p, n in self._nodes.items() if p == src or p.startswith(src + "/")}
            for old in moved:
                del self._nodes[old]
            for old, moved_node in moved.items():
                self._nodes[dst + old[len(src) :]] = moved_node
            node.mtime = int(time.time())

    def chmod(self, path: str, mode: int) -> None:
        self._require_session()
        with self._lock:
            self._get(path).mode = mode

    # endregion
