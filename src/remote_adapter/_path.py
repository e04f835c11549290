"""Path algebra — normalization, validation and root prefixing.

Every function here is pure. Paths are slash-separated and root-relative;
the empty string denotes the configured root.
"""

from __future__ import annotations

import re
from typing import Final

from remote_adapter._errors import InvalidPath

SEPARATOR: Final = "/"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_DRIVE = re.compile(r"^[A-Za-z]:(?:[\\/]|$)")
_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


def normalize(path: str) -> str:
    """Normalize ``path`` to its canonical root-relative form.

    Backslashes become slashes, repeated separators collapse, ``.`` segments
    are dropped and ``..`` segments are resolved against a synthetic root.

    :raises InvalidPath: If the path escapes above the root, carries a drive
        letter or URL scheme, or contains control characters.
    """
    if not isinstance(path, str):
        raise InvalidPath(f"Path must be a string, got {type(path).__name__}", path=repr(path))
    if "\0" in path:
        raise InvalidPath("Path contains null byte", path=path)
    if _CONTROL_CHARS.search(path):
        raise InvalidPath("Path contains control characters", path=path)
    if _SCHEME.match(path):
        raise InvalidPath("Path must not carry a URL scheme", path=path)

    parts: list[str] = []
    for segment in path.replace("\\", SEPARATOR).split(SEPARATOR):
        if segment == "" or segment == ".":
            continue
        if segment == "..":
            if not parts:
                raise InvalidPath("Path escapes above the root", path=path)
            parts.pop()
            continue
        parts.append(segment)
    normalized = SEPARATOR.join(parts)
    # a leading separator or a collapsed ".." can expose a drive segment
    if _DRIVE.match(normalized):
        raise InvalidPath("Path must not carry a drive letter", path=path)
    return normalized


def validate(path: str) -> bool:
    """Return ``True`` iff :func:`normalize` accepts ``path``."""
    try:
        normalize(path)
    except InvalidPath:
        return False
    return True


def join(*parts: str) -> str:
    """Join path fragments and normalize the result."""
    return normalize(SEPARATOR.join(p for p in parts if p))


def is_absolute(path: str) -> bool:
    """Return ``True`` iff ``path`` begins with the path separator."""
    return path.startswith(SEPARATOR)


def parent(path: str) -> str:
    """Parent of a normalized path; the root's parent is the root."""
    if SEPARATOR not in path:
        return ""
    return path.rsplit(SEPARATOR, 1)[0]


def basename(path: str) -> str:
    """Final component of a normalized path."""
    return path.rsplit(SEPARATOR, 1)[-1]


def ancestors(path: str) -> list[str]:
    """All proper ancestors of a normalized path, nearest first, ending with the root.

    Example: ``ancestors("a/b/c")`` returns ``["a/b", "a", ""]``.
    """
    result = []
    current = path
    while current:
        current = parent(current)
        result.append(current)
    return result


def is_within(path: str, directory: str) -> bool:
    """Return ``True`` if ``path`` is strictly below ``directory`` (both normalized)."""
    if not directory:
        return path != ""
    return path.startswith(directory + SEPARATOR)


class PathPrefixer:
    """Scopes caller paths to a configured root.

    :param root: Root path prefix (may be empty).
    :raises InvalidPath: If ``root`` cannot be normalized.
    """

    __slots__ = ("_root",)

    def __init__(self, root: str = "") -> None:
        self._root = normalize(root)

    @property
    def root(self) -> str:
        return self._root

    def prefix(self, path: str) -> str:
        """Normalize ``path`` and place it under the root."""
        relative = normalize(path)
        if not self._root:
            return relative
        if not relative:
            return self._root
        return f"{self._root}{SEPARATOR}{relative}"

    def strip(self, full_path: str) -> str:
        """Inverse of :meth:`prefix`.

        :raises InvalidPath: If ``full_path`` is not under the root.
        """
        if not self._root:
            return full_path
        if full_path == self._root:
            return ""
        head = self._root + SEPARATOR
        if full_path.startswith(head):
            return full_path[len(head) :]
        raise InvalidPath(f"Path {full_path!r} is not under root {self._root!r}", path=full_path)

    def __repr__(self) -> str:
        return f"PathPrefixer({self._root!r})"
