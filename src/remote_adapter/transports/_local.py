"""Local filesystem transport — stdlib-only reference implementation."""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from remote_adapter._errors import InvalidPath
from remote_adapter._transport import Transport

if TYPE_CHECKING:
    from remote_adapter._config import ClientConfig
    from remote_adapter._types import RawRecord


class LocalTransport(Transport):
    """Transport rooted at a directory on the local filesystem.

    :param root: Path to the root directory; created if missing.
    """

    def __init__(self, root: str) -> None:
        self._root = Path(root).resolve()
        self._connected = False

    @classmethod
    def from_config(cls, config: ClientConfig) -> LocalTransport:
        options = dict(config.options)
        root = options.pop("root", None) or config.host
        return cls(root=str(root), **options)

    @property
    def name(self) -> str:
        return "local"

    # region: session
    def connect(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        if not self._root.is_dir():
            raise ConnectionError(f"Root is not a directory: {self._root}")
        self._connected = True

    def close(self) -> None:
        self._connected = False

    def is_alive(self) -> bool:
        return self._connected and self._root.is_dir()

    # endregion

    # region: path safety
    def _resolve(self, path: str) -> Path:
        """Resolve a relative path to an absolute path within root.

        ``.resolve()`` follows symlinks to their real target and
        ``relative_to(self._root)`` then rejects anything outside the root.

        :raises InvalidPath: If the resolved path escapes the root.
        """
        if not self._connected:
            raise ConnectionError("Local transport is not connected")
        resolved = (self._root / path).resolve()
        try:
            resolved.relative_to(self._root)
        except ValueError:
            raise InvalidPath(f"Path escapes root directory: {path}", path=path) from None
        return resolved

    def _record(self, path: str, full: Path) -> RawRecord:
        st = full.stat()
        is_dir = stat.S_ISDIR(st.st_mode)
        record: RawRecord = {
            "path": path,
            "name": full.name,
            "type": "dir" if is_dir else "file",
            "mtime": int(st.st_mtime),
            "permissions": stat.S_IMODE(st.st_mode),
        }
        if not is_dir:
            record["size"] = st.st_size
        return record

    # endregion

    # region: primitives
    def stat(self, path: str) -> RawRecord:
        return self._record(path, self._resolve(path))

    def listdir(self, path: str) -> list[RawRecord]:
        full = self._resolve(path)
        records = []
        for item in sorted(full.iterdir()):
            child = f"{path}/{item.name}" if path else item.name
            records.append(self._record(child, item))
        return records

    def open_read(self, path: str) -> BinaryIO:
        full = self._resolve(path)
        if full.is_dir():
            raise IsADirectoryError(path)
        return full.open("rb")

    def open_write(self, path: str) -> BinaryIO:
        full = self._resolve(path)
        if not full.parent.is_dir():
            raise FileNotFoundError(f"Parent directory does not exist: {path}")
        return full.open("wb")

    def remove(self, path: str) -> None:
        self._resolve(path).unlink()

    def mkdir(self, path: str) -> None:
        self._resolve(path).mkdir()

    def rmdir(self, path: str) -> None:
        full = self._resolve(path)
        if full == self._root:
            raise PermissionError("Cannot remove the transport root")
        full.rmdir()

    def rename(self, src: str, dst: str) -> None:
        src_full = self._resolve(src)
        dst_full = self._resolve(dst)
        if not dst_full.parent.is_dir():
            raise FileNotFoundError(f"Parent directory does not exist: {dst}")
        os.replace(src_full, dst_full)

    def copy(self, src: str, dst: str) -> None:
        src_full = self._resolve(src)
        dst_full = self._resolve(dst)
        if not dst_full.parent.is_dir():
            raise FileNotFoundError(f"Parent directory does not exist: {dst}")
        shutil.copy2(src_full, dst_full)

    def chmod(self, path: str, mode: int) -> None:
        self._resolve(path).chmod(mode)

    # endregion
