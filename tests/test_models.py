"""Tests for the attribute and event models."""

from __future__ import annotations

import dataclasses

import pytest

from remote_adapter._models import DirectoryAttributes, FileAttributes, OperationEvent, RetryAttempt, Visibility


class TestFileAttributes:
    def test_defaults_are_unknown_not_zero(self) -> None:
        attrs = FileAttributes(path="a.txt", size=0)
        assert attrs.last_modified is None
        assert attrs.mime_type is None
        assert attrs.visibility is Visibility.PRIVATE
        assert attrs.extra == {}

    def test_frozen(self) -> None:
        attrs = FileAttributes(path="a.txt", size=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            attrs.size = 2  # type: ignore[misc]

    def test_kind_flags(self) -> None:
        attrs = FileAttributes(path="a.txt", size=1)
        assert attrs.is_file is True
        assert attrs.is_dir is False

    def test_extra_ignored_in_equality(self) -> None:
        assert FileAttributes("a", 1, extra={"id": 1}) == FileAttributes("a", 1, extra={"id": 2})


class TestDirectoryAttributes:
    def test_kind_flags(self) -> None:
        attrs = DirectoryAttributes(path="docs")
        assert attrs.is_dir is True
        assert attrs.is_file is False

    def test_replace_path(self) -> None:
        attrs = DirectoryAttributes(path="root/docs", last_modified=5)
        assert dataclasses.replace(attrs, path="docs") == DirectoryAttributes(path="docs", last_modified=5)


class TestVisibility:
    def test_string_values(self) -> None:
        assert Visibility("public") is Visibility.PUBLIC
        assert Visibility.PRIVATE == "private"


class TestEventModels:
    def test_retry_attempt(self) -> None:
        err = RuntimeError("x")
        attempt = RetryAttempt(attempt=1, delay=0.5, error=err)
        assert attempt.error is err

    def test_operation_event_default_kind(self) -> None:
        event = OperationEvent("read", "a.txt", 0.01, "ok")
        assert event.error_kind is None
