"""Configuration model — immutable, eagerly validated settings."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

from remote_adapter._errors import InvalidConfiguration, InvalidPath
from remote_adapter._path import normalize


def _fail(field: str, message: str) -> InvalidConfiguration:
    return InvalidConfiguration(f"Invalid configuration for {field!r}: {message}", context={"field": field})


def _check_number(field: str, value: object, *, minimum: float, allow_equal: bool = True) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _fail(field, f"expected a number, got {type(value).__name__}")
    if value < minimum or (not allow_equal and value == minimum):
        bound = ">=" if allow_equal else ">"
        raise _fail(field, f"must be {bound} {minimum}, got {value}")


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Connection settings for a :class:`~remote_adapter.RemoteClient`.

    :param transport: Registered transport type (``"memory"``, ``"local"``, ``"sftp"``).
    :param host: Remote host; required by network transports.
    :param port: Remote port, ``None`` for the transport default.
    :param username: Login name.
    :param password: Login secret. Never logged.
    :param timeout: Per-primitive timeout in seconds.
    :param tls: Request an encrypted channel where the transport supports a choice.
    :param connect_attempts: Connection attempts before giving up (at least 1).
    :param connect_retry_delay: Base delay between connection attempts, in seconds.
    :param options: Transport-specific keyword arguments.
    """

    transport: str = "memory"
    host: str = ""
    port: int | None = None
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    timeout: float = 30.0
    tls: bool = False
    connect_attempts: int = 3
    connect_retry_delay: float = 1.0
    options: dict[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.transport, str) or not self.transport.strip():
            raise _fail("transport", "must be a non-empty string")
        if self.port is not None and (isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port <= 65535):
            raise _fail("port", f"must be an integer in 1..65535, got {self.port!r}")
        _check_number("timeout", self.timeout, minimum=0, allow_equal=False)
        if isinstance(self.connect_attempts, bool) or not isinstance(self.connect_attempts, int) or self.connect_attempts < 1:
            raise _fail("connect_attempts", f"must be an integer >= 1, got {self.connect_attempts!r}")
        _check_number("connect_retry_delay", self.connect_retry_delay, minimum=0)


@dataclasses.dataclass(frozen=True)
class CacheConfig:
    """Metadata cache settings.

    :param enabled: Whether the adapter caches metadata and listings.
    :param ttl: Entry lifetime in seconds.
    :param namespace: Key prefix for caches shared between adapters.
    """

    enabled: bool = False
    ttl: float = 300.0
    namespace: str = ""

    def __post_init__(self) -> None:
        _check_number("cache.ttl", self.ttl, minimum=0)
        if not isinstance(self.namespace, str) or any(c in self.namespace for c in "#:"):
            raise _fail("cache.namespace", f"must be a string without '#' or ':', got {self.namespace!r}")


@dataclasses.dataclass(frozen=True)
class RetryConfig:
    """Retry settings for adapter operations.

    :param enabled: Whether adapter operations run through a retry policy.
    :param max_retries: Retries after the first attempt.
    :param base_delay: Delay before the first retry, in seconds.
    :param backoff_multiplier: Growth factor between retries (>= 1.0).
    :param max_delay: Upper bound on any single delay, in seconds.
    """

    enabled: bool = False
    max_retries: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise _fail("retry.max_retries", f"must be an integer >= 0, got {self.max_retries!r}")
        _check_number("retry.base_delay", self.base_delay, minimum=0)
        _check_number("retry.backoff_multiplier", self.backoff_multiplier, minimum=1.0)
        _check_number("retry.max_delay", self.max_delay, minimum=0)
        if self.max_delay < self.base_delay:
            raise _fail("retry.max_delay", f"must be >= base_delay ({self.base_delay}), got {self.max_delay}")


@dataclasses.dataclass(frozen=True)
class AdapterConfig:
    """Top-level adapter configuration.

    :param root_path: Path prefix applied to every operation.
    :param create_directories: Create missing parent directories on write/move/copy.
    :param file_exists_fallback: Let ``file_exists`` also report directories.
    :param client: Connection settings.
    :param cache: Cache settings.
    :param retry: Retry settings.
    """

    root_path: str = ""
    create_directories: bool = True
    file_exists_fallback: bool = False
    client: ClientConfig = dataclasses.field(default_factory=ClientConfig)
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)
    retry: RetryConfig = dataclasses.field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        try:
            normalize(self.root_path)
        except InvalidPath as exc:
            raise _fail("root_path", str(exc)) from exc

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AdapterConfig:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :param data: Dict with optional ``client``, ``cache`` and ``retry`` sections.
        :raises InvalidConfiguration: On unknown keys or invalid values.
        """
        if not isinstance(data, Mapping):
            raise _fail("<root>", f"expected a mapping, got {type(data).__name__}")
        top = dict(data)
        sections = {
            "client": (ClientConfig, top.pop("client", {})),
            "cache": (CacheConfig, top.pop("cache", {})),
            "retry": (RetryConfig, top.pop("retry", {})),
        }
        built: dict[str, object] = {}
        for name, (section_cls, raw) in sections.items():
            if not isinstance(raw, Mapping):
                raise _fail(name, f"section must be a mapping, got {type(raw).__name__}")
            built[name] = _build(section_cls, dict(raw), prefix=f"{name}.")
        return _build(cls, {**top, **built})


def _build(cls: Any, values: dict[str, object], *, prefix: str = "") -> Any:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise _fail(f"{prefix}{unknown[0]}", f"unknown setting. Known settings: {sorted(known)}")
    try:
        return cls(**values)
    except TypeError as exc:
        raise _fail(prefix.rstrip(".") or "<root>", str(exc)) from exc
