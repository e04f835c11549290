"""SFTP transport built on paramiko."""

from __future__ import annotations

import contextlib
import logging
import os
import re
import stat
from contextlib import contextmanager
from enum import Enum
from io import StringIO
from typing import TYPE_CHECKING, Any, BinaryIO

from remote_adapter._transport import CHUNK_SIZE, Transport

if TYPE_CHECKING:
    from collections.abc import Iterator

    from remote_adapter._config import ClientConfig
    from remote_adapter._types import RawRecord

log = logging.getLogger(__name__)

_DEFAULT_PORT = 22


# region: host key policy


class HostKeyPolicy(Enum):
    """How unknown remote host keys are handled.

    :cvar STRICT: Reject hosts missing from the known hosts (default).
    :cvar TRUST_ON_FIRST_USE: Accept and remember a host the first time.
    :cvar AUTO_ADD: Accept any key. Only for tests and throwaway servers.
    """

    STRICT = "strict"
    TRUST_ON_FIRST_USE = "tofu"
    AUTO_ADD = "auto"


_HOST_KEYS_ENV = "SFTP_KNOWN_HOST_KEYS"


def _load_host_keys_from_string(ssh: Any, keys_content: str) -> None:  # pragma: no cover
    """Feed a known_hosts formatted string into ``ssh``'s host key store."""
    import tempfile

    with tempfile.NamedTemporaryFile(mode="w", suffix=".known_hosts", delete=True) as tmp:
        tmp.write(keys_content)
        tmp.flush()
        ssh.load_host_keys(tmp.name)


# endregion

# region: private keys

_PEM_DELIMITER = "-----"
_NOT_BASE64 = re.compile(r"[^A-Za-z\d+/=]")


def _sanitize_pem(pem: str) -> str:
    """Restore newlines in a PEM body whose line breaks were flattened to another character.

    Secret stores commonly hand back keys with spaces where the newlines were.
    """
    parts = pem.split(_PEM_DELIMITER)
    if len(parts) != 5:
        raise ValueError("Malformed PEM: expected BEGIN and END markers")
    body = parts[2]
    separators = set(_NOT_BASE64.findall(body))
    if len(separators) != 1:
        raise ValueError(f"Malformed PEM body: unexpected characters {sorted(separators)}")
    parts[2] = body.replace(separators.pop(), "\n")
    return _PEM_DELIMITER.join(parts)


def load_private_key(source: str, *, from_file: bool = False) -> Any:
    """Load a private key from a file path or a PEM string.

    RSA, ECDSA and Ed25519 keys are tried in that order.

    :param source: File path (``from_file=True``) or PEM text.
    :param from_file: Treat ``source`` as a path.
    :raises ValueError: If no key type can parse ``source``.
    """
    import paramiko

    key_classes = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)
    text = None if from_file else _sanitize_pem(source)
    for key_cls in key_classes:
        try:
            if from_file:
                return key_cls.from_private_key_file(source)
            with StringIO(text) as buf:
                return key_cls.from_private_key(buf)
        except paramiko.SSHException:
            continue
    raise ValueError("Unsupported or unreadable private key")


# endregion


class SFTPTransport(Transport):
    """Transport speaking SFTP over an SSH session.

    Paths are resolved under ``base_path`` on the server. Paramiko reports
    missing files and denied access as ``FileNotFoundError`` and
    ``PermissionError`` already; SSH level failures are re-raised as
    ``ConnectionError`` and rejected credentials as ``PermissionError``.

    :param host: SFTP server hostname.
    :param port: SSH port.
    :param username: SSH user name.
    :param password: SSH password.
    :param pkey: ``paramiko.PKey`` for key based authentication.
    :param private_key: PEM text of a private key, used when ``pkey`` is not given.
    :param base_path: Root directory on the server.
    :param host_key_policy: Host key verification policy (enum or its value).
    :param known_host_keys: known_hosts formatted string.
    :param host_keys_path: known_hosts file, default ``~/.ssh/known_hosts``.
    :param timeout: Seconds for the TCP connect, SSH handshake and every SFTP request.
    :param connect_kwargs: Extra keyword arguments for ``SSHClient.connect()``.
    """

    def __init__(
        self,
        host: str,
        *,
        port: int = _DEFAULT_PORT,
        username: str | None = None,
        password: str | None = None,
        pkey: Any = None,
        private_key: str | None = None,
        base_path: str = "/",
        host_key_policy: HostKeyPolicy | str = HostKeyPolicy.STRICT,
        known_host_keys: str | None = None,
        host_keys_path: str | None = None,
        timeout: float = 30.0,
        connect_kwargs: dict[str, Any] | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host must be a non-empty string")
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._pkey = pkey if pkey is not None or private_key is None else load_private_key(private_key)
        self._base_path = "/" + base_path.strip("/") if base_path.strip("/") else "/"
        self._host_key_policy = HostKeyPolicy(host_key_policy)
        self._known_host_keys = known_host_keys or os.environ.get(_HOST_KEYS_ENV)
        self._host_keys_path = host_keys_path
        self._timeout = timeout
        self._connect_kwargs = connect_kwargs or {}

        self._ssh_client: Any = None
        self._sftp_client: Any = None

    @classmethod
    def from_config(cls, config: ClientConfig) -> SFTPTransport:
        return cls(
            config.host,
            port=config.port or _DEFAULT_PORT,
            username=config.username,
            password=config.password,
            timeout=config.timeout,
            **config.options,
        )

    @property
    def name(self) -> str:
        return "sftp"

    # region: session
    def connect(self) -> None:
        import paramiko

        self.close()
        ssh = self._create_ssh_client()
        log.info("Connecting to %s:%d as %s", self._host, self._port, self._username)
        try:
            ssh.connect(
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                pkey=self._pkey,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                channel_timeout=self._timeout,
                **self._connect_kwargs,
            )
            sftp = ssh.open_sftp()
            sftp.get_channel().settimeout(self._timeout)
            self._ensure_base_path(sftp)
        except paramiko.AuthenticationException as exc:
            ssh.close()
            raise PermissionError(f"SSH authentication failed for {self._username}@{self._host}") from exc
        except (paramiko.SSHException, OSError, EOFError) as exc:
            ssh.close()
            raise ConnectionError(f"Cannot connect to {self._host}:{self._port}: {exc}") from exc
        self._ssh_client = ssh
        self._sftp_client = sftp

    def _ensure_base_path(self, sftp: Any) -> None:
        current = ""
        for part in self._base_path.strip("/").split("/") if self._base_path != "/" else ():
            current = f"{current}/{part}"
            try:
                sftp.stat(current)
            except FileNotFoundError:
                sftp.mkdir(current)

    def _create_ssh_client(self) -> Any:
        import paramiko

        ssh = paramiko.SSHClient()
        if self._known_host_keys:  # pragma: no cover
            _load_host_keys_from_string(ssh, self._known_host_keys)
        elif self._host_key_policy is not HostKeyPolicy.AUTO_ADD:  # pragma: no cover
            keys_path = self._host_keys_path or os.path.expanduser("~/.ssh/known_hosts")
            if os.path.isfile(keys_path):
                ssh.load_host_keys(keys_path)

        if self._host_key_policy is HostKeyPolicy.TRUST_ON_FIRST_USE:  # pragma: no cover
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        elif self._host_key_policy is HostKeyPolicy.AUTO_ADD:
            log.warning("AUTO_ADD host key policy accepts any server key; do not use it in production")
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
        return ssh

    def close(self) -> None:
        for client in (self._sftp_client, self._ssh_client):
            if client is not None:
                with contextlib.suppress(Exception):
                    client.close()
        self._sftp_client = None
        self._ssh_client = None

    def is_alive(self) -> bool:
        if self._sftp_client is None or self._ssh_client is None:
            return False
        wire = self._ssh_client.get_transport()
        return wire is not None and wire.is_active()

    # endregion

    # region: helpers
    @property
    def _sftp(self) -> Any:
        if self._sftp_client is None:
            raise ConnectionError("SFTP session is not open")
        return self._sftp_client

    def _remote(self, path: str) -> str:
        if not path:
            return self._base_path
        return f"{self._base_path.rstrip('/')}/{path}"

    @contextmanager
    def _wire(self) -> Iterator[None]:
        """Surface SSH channel failures as ``ConnectionError``."""
        import paramiko

        try:
            yield
        except paramiko.SSHException as exc:
            raise ConnectionError(str(exc)) from exc

    def _record(self, path: str, attrs: Any) -> RawRecord:
        is_dir = stat.S_ISDIR(attrs.st_mode or 0)
        record: RawRecord = {
            "path": path,
            "name": path.rsplit("/", 1)[-1],
            "type": "dir" if is_dir else "file",
            "mtime": attrs.st_mtime,
            "permissions": stat.S_IMODE(attrs.st_mode or 0),
        }
        if not is_dir:
            record["size"] = attrs.st_size or 0
        return record

    # endregion

    # region: primitives
    def stat(self, path: str) -> RawRecord:
        with self._wire():
            return self._record(path, self._sftp.stat(self._remote(path)))

    def listdir(self, path: str) -> list[RawRecord]:
        with self._wire():
            remote = self._remote(path)
            if not stat.S_ISDIR(self._sftp.stat(remote).st_mode or 0):
                raise NotADirectoryError(path)
            records = []
            for attrs in sorted(self._sftp.listdir_attr(remote), key=lambda a: a.filename):
                child = f"{path}/{attrs.filename}" if path else attrs.filename
                records.append(self._record(child, attrs))
            return records

    def open_read(self, path: str) -> BinaryIO:
        with self._wire():
            remote = self._remote(path)
            if stat.S_ISDIR(self._sftp.stat(remote).st_mode or 0):
                raise IsADirectoryError(path)
            handle = self._sftp.open(remote, "rb", bufsize=CHUNK_SIZE)
            handle.prefetch()
            return handle  # type: ignore[no-any-return]

    def open_write(self, path: str) -> BinaryIO:
        with self._wire():
            handle = self._sftp.open(self._remote(path), "wb", bufsize=CHUNK_SIZE)
            handle.set_pipelined(True)
            return handle  # type: ignore[no-any-return]

    def remove(self, path: str) -> None:
        with self._wire():
            self._sftp.remove(self._remote(path))

    def mkdir(self, path: str) -> None:
        with self._wire():
            remote = self._remote(path)
            # servers answer a generic failure for existing directories
            with contextlib.suppress(FileNotFoundError):
                self._sftp.stat(remote)
                raise FileExistsError(path)
            self._sftp.mkdir(remote)

    def rmdir(self, path: str) -> None:
        if not path:
            raise PermissionError("Cannot remove the transport root")
        with self._wire():
            self._sftp.rmdir(self._remote(path))

    def rename(self, src: str, dst: str) -> None:
        with self._wire():
            src_remote, dst_remote = self._remote(src), self._remote(dst)
            try:
                self._sftp.posix_rename(src_remote, dst_remote)
            except (FileNotFoundError, PermissionError):
                raise
            except OSError:  # pragma: no cover -- servers without the posix-rename extension
                self._sftp.stat(src_remote)
                with contextlib.suppress(OSError):
                    self._sftp.remove(dst_remote)
                self._sftp.rename(src_remote, dst_remote)

    def chmod(self, path: str, mode: int) -> None:
        with self._wire():
            self._sftp.chmod(self._remote(path), mode)

    # endregion
