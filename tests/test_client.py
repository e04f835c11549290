"""Tests for RemoteClient against the in-memory transport."""

from __future__ import annotations

import io
import logging
import threading
from typing import TYPE_CHECKING, Any, BinaryIO

import pytest

from remote_adapter._client import ConnectionState, RemoteClient
from remote_adapter._config import ClientConfig
from remote_adapter._errors import (
    AlreadyExists,
    AuthenticationFailed,
    ConnectionFailed,
    NotFound,
    OperationFailed,
    RateLimited,
)
from remote_adapter._models import Visibility
from remote_adapter.transports._memory import MemoryTransport

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import SleepRecorder


class UnreliableTransport(MemoryTransport):
    """Memory transport whose connect fails a set number of times."""

    def __init__(self, connect_failures: int = 0, error: type[BaseException] = ConnectionRefusedError) -> None:
        super().__init__()
        self.connect_failures = connect_failures
        self.error = error
        self.connect_calls = 0
        self.fail_next_op: BaseException | None = None

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_calls <= self.connect_failures:
            raise self.error("refused")
        super().connect()

    def stat(self, path: str) -> Any:
        if self.fail_next_op is not None:
            err, self.fail_next_op = self.fail_next_op, None
            raise err
        return super().stat(path)


def make_client(transport: MemoryTransport, sleeps: SleepRecorder, attempts: int = 3) -> RemoteClient:
    config = ClientConfig(transport="memory", connect_attempts=attempts, connect_retry_delay=0.5)
    return RemoteClient(transport, config, sleep=sleeps)


class TestConnectionLifecycle:
    def test_initially_disconnected(self, client: RemoteClient) -> None:
        assert client.state is ConnectionState.DISCONNECTED
        assert client.is_connected() is False

    def test_connect_is_idempotent(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport()
        client = make_client(transport, sleeps)
        assert client.connect() is True
        assert client.connect() is True
        assert transport.connect_calls == 1
        assert client.state is ConnectionState.CONNECTED
        assert client.is_connected() is True

    def test_disconnect_always_ends_disconnected(self, client: RemoteClient) -> None:
        client.connect()
        client.disconnect()
        assert client.state is ConnectionState.DISCONNECTED
        client.disconnect()
        assert client.state is ConnectionState.DISCONNECTED

    def test_disconnect_never_raises(self, sleeps: SleepRecorder, caplog: pytest.LogCaptureFixture) -> None:
        class BrokenClose(MemoryTransport):
            def close(self) -> None:
                raise OSError("socket already gone")

        client = make_client(BrokenClose(), sleeps)
        client.connect()
        client.disconnect()
        assert client.state is ConnectionState.DISCONNECTED
        assert "Error while closing" in caplog.text

    def test_context_manager_disconnects(self, memory: MemoryTransport, sleeps: SleepRecorder) -> None:
        with make_client(memory, sleeps) as client:
            client.connect()
        assert client.state is ConnectionState.DISCONNECTED

    def test_connect_retries_network_failures(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport(connect_failures=2)
        client = make_client(transport, sleeps, attempts=3)
        assert client.connect() is True
        assert transport.connect_calls == 3
        assert sleeps.calls == [0.5, 1.0]

    def test_connect_gives_up(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport(connect_failures=10)
        client = make_client(transport, sleeps, attempts=3)
        with pytest.raises(ConnectionFailed) as exc_info:
            client.connect()
        assert transport.connect_calls == 3
        assert client.state is ConnectionState.FAILED
        assert exc_info.value.operation == "connect"
        assert isinstance(exc_info.value.cause, ConnectionRefusedError)
        assert client.connection_status()["consecutive_failures"] == 1

    @pytest.mark.parametrize("error", [TimeoutError, EOFError])
    def test_timeouts_count_as_connection_failures(self, sleeps: SleepRecorder, error: type[BaseException]) -> None:
        client = make_client(UnreliableTransport(connect_failures=10, error=error), sleeps, attempts=2)
        with pytest.raises(ConnectionFailed):
            client.connect()

    def test_authentication_not_retried(self, sleeps: SleepRecorder) -> None:
        transport = MemoryTransport(username="alice", password="secret")
        transport._offered = ("alice", "wrong")
        client = make_client(transport, sleeps, attempts=5)
        with pytest.raises(AuthenticationFailed):
            client.connect()
        assert sleeps.calls == []
        assert client.state is ConnectionState.FAILED

    def test_credentials_from_config(self, sleeps: SleepRecorder) -> None:
        config = ClientConfig(
            transport="memory",
            username="alice",
            password="secret",
            options={"username": "alice", "password": "secret"},
        )
        client = RemoteClient(MemoryTransport.from_config(config), config, sleep=sleeps)
        assert client.connect() is True

    def test_reconnects_on_demand_after_failure(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport(connect_failures=1)
        client = make_client(transport, sleeps, attempts=1)
        with pytest.raises(ConnectionFailed):
            client.connect()
        assert client.file_exists("x") is False
        assert client.state is ConnectionState.CONNECTED

    def test_data_operations_connect_lazily(self, client: RemoteClient) -> None:
        client.write_file("a.txt", b"x")
        assert client.state is ConnectionState.CONNECTED

    def test_link_loss_marks_failed_then_reconnects(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport()
        client = make_client(transport, sleeps)
        client.connect()
        transport.fail_next_op = ConnectionResetError("reset by peer")
        with pytest.raises(ConnectionFailed):
            client.get_file_info("a.txt")
        assert client.state is ConnectionState.FAILED
        client.write_file("a.txt", b"1")
        assert client.state is ConnectionState.CONNECTED
        assert transport.connect_calls == 2

    def test_dead_link_detected_by_liveness(self, memory: MemoryTransport, sleeps: SleepRecorder) -> None:
        client = make_client(memory, sleeps)
        client.connect()
        memory.close()
        assert client.is_connected() is False
        client.write_file("a.txt", b"1")
        assert client.is_connected() is True

    def test_concurrent_callers_share_one_attempt(self, sleeps: SleepRecorder) -> None:
        gate = threading.Event()

        class SlowConnect(MemoryTransport):
            calls = 0

            def connect(self) -> None:
                type(self).calls += 1
                gate.wait(1)
                super().connect()

        client = make_client(SlowConnect(), sleeps)
        threads = [threading.Thread(target=client.connect) for _ in range(5)]
        for t in threads:
            t.start()
        gate.set()
        for t in threads:
            t.join()
        assert SlowConnect.calls == 1

    def test_connection_status(self, client: RemoteClient) -> None:
        client.connect()
        status = client.connection_status()
        assert status["state"] == "connected"
        assert status["transport"] == "memory"
        assert status["last_attempt"] is not None
        assert "password" not in status

    def test_connect_logged(self, client: RemoteClient, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="remote_adapter._client"):
            client.connect()
        assert "Connected to" in caplog.text


class TestExistence:
    def test_absent_is_false(self, client: RemoteClient) -> None:
        assert client.file_exists("missing.txt") is False
        assert client.directory_exists("missing") is False

    def test_kind_distinguished(self, client: RemoteClient) -> None:
        client.create_directory("d")
        client.write_file("d/f.txt", b"x")
        assert client.file_exists("d/f.txt") is True
        assert client.directory_exists("d/f.txt") is False
        assert client.directory_exists("d") is True
        assert client.file_exists("d") is False

    def test_root_is_a_directory(self, client: RemoteClient) -> None:
        assert client.directory_exists("") is True

    def test_connectivity_failure_still_raises(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport()
        client = make_client(transport, sleeps)
        transport.fail_next_op = ConnectionResetError()
        with pytest.raises(ConnectionFailed):
            client.file_exists("a.txt")


class TestReadWrite:
    def test_round_trip(self, client: RemoteClient) -> None:
        client.write_file("a.txt", b"hello")
        assert client.read_file("a.txt") == b"hello"

    def test_overwrite(self, client: RemoteClient) -> None:
        client.write_file("a.txt", b"one")
        client.write_file("a.txt", b"two")
        assert client.read_file("a.txt") == b"two"

    def test_read_missing(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound) as exc_info:
            client.read_file("missing.txt")
        err = exc_info.value
        assert err.operation == "read_file"
        assert err.path == "missing.txt"
        assert isinstance(err.cause, FileNotFoundError)

    def test_write_missing_parent(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound):
            client.write_file("no/such/dir.txt", b"x")

    def test_write_stream_chunked(self, client: RemoteClient) -> None:
        payload = bytes(range(256)) * 1000
        client.write_stream("big.bin", io.BytesIO(payload))
        assert client.read_file("big.bin") == payload

    def test_open_read(self, client: RemoteClient) -> None:
        client.write_file("a.txt", b"stream")
        with client.open_read("a.txt") as handle:
            assert handle.read() == b"stream"

    def test_open_read_failures_are_mapped(self, sleeps: SleepRecorder) -> None:
        class DiesWhileReading(MemoryTransport):
            def open_read(self, path: str) -> BinaryIO:
                super().open_read(path).close()

                class Reader(io.BytesIO):
                    def read(self, size: int | None = -1) -> bytes:
                        raise ConnectionResetError("channel closed")

                    def close(self) -> None:
                        if not self.closed:
                            super().close()
                            raise EOFError("already gone")

                return Reader()

        client = make_client(DiesWhileReading(), sleeps)
        client.write_file("a.txt", b"stream")
        handle = client.open_read("a.txt")
        with pytest.raises(ConnectionFailed) as exc_info:
            handle.read()
        assert exc_info.value.operation == "read_stream"
        assert exc_info.value.path == "a.txt"
        assert client.state is ConnectionState.FAILED
        with pytest.raises(ConnectionFailed):
            handle.close()
        assert handle.closed
        with pytest.raises(ValueError):
            handle.read()

    def test_open_read_supports_chunked_reads(self, client: RemoteClient) -> None:
        client.write_file("a.txt", b"0123456789")
        with client.open_read("a.txt") as handle:
            assert handle.read(4) == b"0123"
            buffer = bytearray(3)
            assert handle.readinto(buffer) == 3
            assert bytes(buffer) == b"456"
            assert handle.read() == b"789"
            assert handle.read(4) == b""

    def test_write_stream_reports_progress(self, client: RemoteClient) -> None:
        progress: list[tuple[int, int | None]] = []
        client.write_stream("p.bin", io.BytesIO(b"p" * 70_000), on_progress=lambda s, t: progress.append((s, t)))
        assert progress == [(32768, None), (65536, None), (70_000, None)]

    def test_read_directory_is_operation_failure(self, client: RemoteClient) -> None:
        client.create_directory("d")
        with pytest.raises(OperationFailed) as exc_info:
            client.read_file("d")
        assert isinstance(exc_info.value.cause, IsADirectoryError)

    def test_failed_stream_write_leaves_no_file(self, client: RemoteClient) -> None:
        class Exploding(io.RawIOBase):
            def readable(self) -> bool:
                return True

            def readinto(self, buffer: Any) -> int:
                raise ValueError("source broke")

        with pytest.raises(OperationFailed):
            client.write_stream("partial.bin", Exploding())  # type: ignore[arg-type]
        assert client.file_exists("partial.bin") is False

    def test_transport_storage_errors_pass_through(self, sleeps: SleepRecorder) -> None:
        transport = UnreliableTransport()
        client = make_client(transport, sleeps)
        transport.fail_next_op = RateLimited("slow down", retry_after=3)
        with pytest.raises(RateLimited) as exc_info:
            client.get_file_info("a")
        assert exc_info.value.retry_after == 3


class TestLocalTransfers:
    def test_upload_and_download(self, client: RemoteClient, tmp_path: Path) -> None:
        source = tmp_path / "in.bin"
        source.write_bytes(b"payload" * 10_000)
        client.upload_file(source, "up.bin")
        target = tmp_path / "out.bin"
        client.download_file("up.bin", target)
        assert target.read_bytes() == source.read_bytes()

    def test_upload_missing_local_file(self, client: RemoteClient, tmp_path: Path) -> None:
        with pytest.raises(NotFound) as exc_info:
            client.upload_file(tmp_path / "nope", "x")
        assert exc_info.value.operation == "upload_file"

    def test_download_missing_remote_creates_nothing(self, client: RemoteClient, tmp_path: Path) -> None:
        target = tmp_path / "out.bin"
        with pytest.raises(NotFound):
            client.download_file("missing", target)
        assert not target.exists()

    def test_partial_download_removed(self, sleeps: SleepRecorder, tmp_path: Path) -> None:
        class BreaksMidStream(MemoryTransport):
            def open_read(self, path: str) -> BinaryIO:
                handle = super().open_read(path)

                class Reader(io.BytesIO):
                    calls = 0

                    def read(self, size: int | None = -1) -> bytes:
                        Reader.calls += 1
                        if Reader.calls > 1:
                            raise ConnectionResetError("dropped")
                        return handle.read(size)

                return Reader()

        transport = BreaksMidStream()
        client = make_client(transport, sleeps)
        client.write_file("big.bin", b"x" * 100_000)
        target = tmp_path / "out.bin"
        with pytest.raises(ConnectionFailed):
            client.download_file("big.bin", target)
        assert not target.exists()


class TestDirectories:
    def test_create_non_recursive(self, client: RemoteClient) -> None:
        client.create_directory("d")
        assert client.directory_exists("d")
        with pytest.raises(AlreadyExists):
            client.create_directory("d")

    def test_create_non_recursive_missing_parent(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound):
            client.create_directory("a/b")

    def test_create_recursive(self, client: RemoteClient) -> None:
        client.create_directory("a/b/c", recursive=True)
        client.create_directory("a/b/c", recursive=True)
        assert client.directory_exists("a/b/c")

    def test_create_recursive_through_file(self, client: RemoteClient) -> None:
        client.write_file("f", b"")
        with pytest.raises(AlreadyExists):
            client.create_directory("f/sub", recursive=True)

    def test_remove_non_recursive(self, client: RemoteClient) -> None:
        client.create_directory("d")
        client.write_file("d/f", b"")
        with pytest.raises(OperationFailed):
            client.remove_directory("d")
        client.delete_file("d/f")
        client.remove_directory("d")
        assert client.directory_exists("d") is False

    def test_remove_recursive(self, client: RemoteClient) -> None:
        client.create_directory("d/e", recursive=True)
        client.write_file("d/f", b"")
        client.write_file("d/e/g", b"")
        client.remove_directory("d", recursive=True)
        assert client.directory_exists("d") is False

    def test_remove_missing(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound):
            client.remove_directory("nope")

    def test_delete_file(self, client: RemoteClient) -> None:
        client.write_file("f", b"")
        client.delete_file("f")
        assert client.file_exists("f") is False
        with pytest.raises(NotFound):
            client.delete_file("f")


class TestListingAndInfo:
    @pytest.fixture()
    def tree(self, client: RemoteClient) -> RemoteClient:
        client.create_directory("docs/sub", recursive=True)
        client.write_file("docs/a.txt", b"hello")
        client.write_file("docs/sub/b.txt", b"!")
        return client

    def test_list_shallow(self, tree: RemoteClient) -> None:
        assert [r["path"] for r in tree.list_files("docs")] == ["docs/a.txt", "docs/sub"]

    def test_list_recursive_parents_first(self, tree: RemoteClient) -> None:
        paths = [r["path"] for r in tree.list_files("docs", recursive=True)]
        assert paths == ["docs/a.txt", "docs/sub", "docs/sub/b.txt"]

    def test_list_missing(self, tree: RemoteClient) -> None:
        with pytest.raises(NotFound):
            tree.list_files("nope")

    def test_list_file_is_not_found(self, tree: RemoteClient) -> None:
        with pytest.raises(NotFound):
            tree.list_files("docs/a.txt")

    def test_file_info(self, tree: RemoteClient) -> None:
        record = tree.get_file_info("docs/a.txt")
        assert record["size"] == 5
        assert record["type"] == "file"

    def test_file_info_of_directory(self, tree: RemoteClient) -> None:
        with pytest.raises(NotFound):
            tree.get_file_info("docs")

    def test_directory_info(self, tree: RemoteClient) -> None:
        assert tree.get_directory_info("docs")["type"] == "dir"
        with pytest.raises(NotFound):
            tree.get_directory_info("docs/a.txt")


class TestMoveCopy:
    def test_move_file(self, client: RemoteClient) -> None:
        client.write_file("a", b"1")
        client.move_file("a", "b")
        assert client.file_exists("a") is False
        assert client.read_file("b") == b"1"

    def test_move_missing(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound) as exc_info:
            client.move_file("a", "b")
        assert exc_info.value.destination == "b"

    def test_move_directory_as_file_rejected(self, client: RemoteClient) -> None:
        client.create_directory("d")
        with pytest.raises(NotFound):
            client.move_file("d", "e")

    def test_copy_file(self, client: RemoteClient) -> None:
        client.write_file("a", b"1")
        client.copy_file("a", "b")
        assert client.read_file("a") == client.read_file("b") == b"1"

    def test_move_directory(self, client: RemoteClient) -> None:
        client.create_directory("d/e", recursive=True)
        client.write_file("d/e/f", b"1")
        client.move_directory("d", "x")
        assert client.read_file("x/e/f") == b"1"
        assert client.directory_exists("d") is False

    def test_copy_directory(self, client: RemoteClient) -> None:
        client.create_directory("d/e", recursive=True)
        client.write_file("d/top", b"0")
        client.write_file("d/e/f", b"1")
        client.copy_directory("d", "copy/of/d")
        assert client.read_file("copy/of/d/top") == b"0"
        assert client.read_file("copy/of/d/e/f") == b"1"
        assert client.read_file("d/e/f") == b"1"

    def test_copy_directory_into_itself(self, client: RemoteClient) -> None:
        client.create_directory("d")
        with pytest.raises(OperationFailed):
            client.copy_directory("d", "d/inner")


class TestVisibility:
    def test_set_visibility_file(self, client: RemoteClient) -> None:
        client.write_file("f", b"")
        client.set_visibility("f", Visibility.PUBLIC)
        assert client.get_file_info("f")["permissions"] == 0o644
        client.set_visibility("f", "private")
        assert client.get_file_info("f")["permissions"] == 0o600

    def test_set_visibility_directory(self, client: RemoteClient) -> None:
        client.create_directory("d")
        client.set_visibility("d", "public")
        assert client.get_directory_info("d")["permissions"] == 0o755

    def test_set_visibility_missing(self, client: RemoteClient) -> None:
        with pytest.raises(NotFound):
            client.set_visibility("nope", "public")
