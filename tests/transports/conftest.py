"""Transport fixtures, parametrized so every transport runs the conformance suite."""

from __future__ import annotations

import importlib.util
import shutil
import tempfile
from typing import TYPE_CHECKING

import pytest

from remote_adapter.transports._local import LocalTransport
from remote_adapter.transports._memory import MemoryTransport

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from remote_adapter._transport import Transport
    from tests.transports.sftp_server import RunningServer


def _paramiko_available() -> bool:
    return importlib.util.find_spec("paramiko") is not None


@pytest.fixture(scope="session")
def sftp_server() -> Iterator[RunningServer | None]:
    """One in-process SFTP server for the whole session."""
    if not _paramiko_available():
        yield None
        return
    from tests.transports.sftp_server import RunningServer

    root = tempfile.mkdtemp(prefix="sftp_root_")
    server = RunningServer(root).start()
    yield server
    server.stop()
    shutil.rmtree(root, ignore_errors=True)


_sftp_param = pytest.param(
    "sftp",
    marks=pytest.mark.skipif(not _paramiko_available(), reason="paramiko not installed"),
)


@pytest.fixture(params=["memory", "local", _sftp_param])
def transport(
    request: pytest.FixtureRequest,
    tmp_path: Path,
    sftp_server: RunningServer | None,
) -> Iterator[Transport]:
    """A connected transport of each kind. Add new transports here."""
    t: Transport
    if request.param == "memory":
        t = MemoryTransport()
    elif request.param == "local":
        t = LocalTransport(root=str(tmp_path / "root"))
    else:
        from remote_adapter.transports._sftp import SFTPTransport

        assert sftp_server is not None
        t = SFTPTransport(sftp_server.host, **sftp_server.transport_options())  # type: ignore[arg-type]
    t.connect()
    yield t
    t.close()
