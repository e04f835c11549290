"""Translation between raw remote records and attribute models."""

from __future__ import annotations

import mimetypes
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from remote_adapter._errors import MappingError
from remote_adapter._models import DirectoryAttributes, FileAttributes, StorageAttributes, Visibility

if TYPE_CHECKING:
    from remote_adapter._types import RawRecord

_DIRECTORY_TYPES = frozenset({"dir", "directory", "folder"})
_MIME_KEYS = ("mime_type", "mimetype", "content_type")
_TIMESTAMP_KEYS = (
    "timestamp",
    "last_modified",
    "lastmodified",
    "modified",
    "mtime",
    "modification_time",
    "date_modified",
)
# Keys consumed by the mapper; everything else is carried in ``extra``.
_KNOWN_KEYS = frozenset(
    {"path", "name", "type", "size", "visibility", "permissions", "mode", "public", "private", *_MIME_KEYS, *_TIMESTAMP_KEYS}
)
_WORLD_READABLE = 0o004


class MetadataMapper:
    """Pure mapping from transport records to :class:`FileAttributes`/:class:`DirectoryAttributes`.

    Optional fields that the record does not carry map to ``None`` so that
    "unknown" stays distinguishable from zero.
    """

    @staticmethod
    def to_file_attributes(raw: RawRecord) -> FileAttributes:
        """Map a file record. ``size`` is required.

        :raises MappingError: If the record is malformed.
        """
        record = _require_mapping(raw)
        path = _require_path(record)
        if "size" not in record or record["size"] is None:
            raise MappingError("Record is missing 'size'", path=path, context={"record": dict(record)})
        return FileAttributes(
            path=path,
            size=_parse_size(record["size"], path),
            last_modified=MetadataMapper.extract_timestamp(record),
            mime_type=MetadataMapper.extract_mime_type(record),
            visibility=MetadataMapper.extract_visibility(record),
            extra=_extra(record),
        )

    @staticmethod
    def to_directory_attributes(raw: RawRecord) -> DirectoryAttributes:
        """Map a directory record.

        :raises MappingError: If the record is malformed.
        """
        record = _require_mapping(raw)
        return DirectoryAttributes(
            path=_require_path(record),
            last_modified=MetadataMapper.extract_timestamp(record),
            visibility=MetadataMapper.extract_visibility(record),
            extra=_extra(record),
        )

    @staticmethod
    def to_attributes(raw: RawRecord) -> StorageAttributes:
        """Dispatch on the record's ``type`` field."""
        if MetadataMapper.is_directory(raw):
            return MetadataMapper.to_directory_attributes(raw)
        return MetadataMapper.to_file_attributes(raw)

    @staticmethod
    def is_directory(raw: RawRecord) -> bool:
        record = _require_mapping(raw)
        kind = record.get("type")
        return isinstance(kind, str) and kind.lower() in _DIRECTORY_TYPES

    @staticmethod
    def extract_visibility(raw: RawRecord) -> Visibility:
        """Collapse remote permission data to public/private.

        Unknown or unparsable inputs map to ``PRIVATE``.
        """
        record = _require_mapping(raw)
        explicit = record.get("visibility")
        if isinstance(explicit, Visibility):
            return explicit
        if isinstance(explicit, str) and explicit.lower() in (Visibility.PUBLIC.value, Visibility.PRIVATE.value):
            return Visibility(explicit.lower())

        for key in ("permissions", "mode"):
            bits = _parse_mode(record.get(key))
            if bits is not None:
                return Visibility.PUBLIC if bits & _WORLD_READABLE else Visibility.PRIVATE

        if "public" in record and record["public"] is not None:
            return Visibility.PUBLIC if record["public"] else Visibility.PRIVATE
        if "private" in record and record["private"] is not None:
            return Visibility.PRIVATE if record["private"] else Visibility.PUBLIC
        return Visibility.PRIVATE

    @staticmethod
    def extract_mime_type(raw: RawRecord) -> str | None:
        """Explicit MIME type, else a guess from the file extension, else ``None``."""
        record = _require_mapping(raw)
        for key in _MIME_KEYS:
            value = record.get(key)
            if isinstance(value, str) and value:
                return value
        for key in ("path", "name"):
            value = record.get(key)
            if isinstance(value, str) and value:
                guessed, _ = mimetypes.guess_type(value, strict=False)
                if guessed is not None:
                    return guessed
        return None

    @staticmethod
    def extract_timestamp(raw: RawRecord) -> int | None:
        """Last-modified time in Unix seconds, ``None`` when the record has none.

        :raises MappingError: If a timestamp field is present but unparsable.
        """
        record = _require_mapping(raw)
        for key in _TIMESTAMP_KEYS:
            value = record.get(key)
            if value is None:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return int(value)
            if isinstance(value, datetime):
                return int(_aware(value).timestamp())
            if isinstance(value, str):
                text = value.strip()
                if text.lstrip("-").isdigit():
                    return int(text)
                try:
                    return int(_aware(datetime.fromisoformat(text.replace("Z", "+00:00"))).timestamp())
                except ValueError:
                    pass
            path = record.get("path")
            raise MappingError(
                f"Unparsable timestamp in field {key!r}: {value!r}",
                path=path if isinstance(path, str) else None,
            )
        return None

    @staticmethod
    def visibility_to_permissions(visibility: Visibility | str, *, is_dir: bool = False) -> int:
        """Permission bits a transport should apply for ``visibility``."""
        public = Visibility(visibility) is Visibility.PUBLIC
        if is_dir:
            return 0o755 if public else 0o700
        return 0o644 if public else 0o600


# region: helpers


def _require_mapping(raw: object) -> Mapping[str, object]:
    if not isinstance(raw, Mapping):
        raise MappingError(f"Expected a mapping record, got {type(raw).__name__}")
    return raw


def _require_path(record: Mapping[str, object]) -> str:
    path = record.get("path")
    if not isinstance(path, str):
        raise MappingError("Record is missing a string 'path'", context={"record": dict(record)})
    return path


def _parse_size(value: object, path: str) -> int:
    if isinstance(value, bool):
        raise MappingError(f"Invalid size: {value!r}", path=path)
    try:
        size = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise MappingError(f"Invalid size: {value!r}", path=path) from None
    if size < 0:
        raise MappingError(f"Negative size: {size}", path=path)
    return size


def _parse_mode(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 8)
        except ValueError:
            return None
    return None


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _extra(record: Mapping[str, object]) -> dict[str, object]:
    return {k: v for k, v in record.items() if k not in _KNOWN_KEYS}


# endregion
