"""Shared test fixtures and marker registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from remote_adapter._client import RemoteClient
from remote_adapter._config import ClientConfig
from remote_adapter.transports._memory import MemoryTransport

if TYPE_CHECKING:
    from collections.abc import Iterator


def pytest_configure(config: object) -> None:
    """Register custom markers."""
    if isinstance(config, pytest.Config):
        config.addinivalue_line("markers", "integration: requires external services")


class SleepRecorder:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def memory() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture()
def client(memory: MemoryTransport, sleeps: SleepRecorder) -> Iterator[RemoteClient]:
    c = RemoteClient(memory, ClientConfig(transport="memory", connect_retry_delay=0), sleep=sleeps)
    yield c
    c.disconnect()
