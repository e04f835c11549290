"""Registry — transport factories and the adapter builder."""

from __future__ import annotations

import importlib.util
from collections.abc import Mapping
from typing import TYPE_CHECKING

from remote_adapter._adapter import StorageAdapter
from remote_adapter._client import RemoteClient
from remote_adapter._config import AdapterConfig, ClientConfig
from remote_adapter._errors import InvalidConfiguration

if TYPE_CHECKING:
    from remote_adapter._cache import MetadataCache
    from remote_adapter._transport import Transport
    from remote_adapter._types import EventSink

# Maps transport type strings to transport classes.
_TRANSPORT_FACTORIES: dict[str, type[Transport]] = {}


def register_transport(type_name: str, cls: type[Transport]) -> None:
    """Register a transport class for a given type string.

    :param type_name: The type identifier used in ``ClientConfig.transport``.
    :param cls: The transport class; built through ``cls.from_config``.
    """
    _TRANSPORT_FACTORIES[type_name] = cls


def registered_transports() -> list[str]:
    _register_builtin_transports()
    return sorted(_TRANSPORT_FACTORIES)


def _register_builtin_transports() -> None:
    from remote_adapter.transports import LocalTransport, MemoryTransport

    _TRANSPORT_FACTORIES.setdefault("memory", MemoryTransport)
    _TRANSPORT_FACTORIES.setdefault("local", LocalTransport)
    if importlib.util.find_spec("paramiko") is not None:
        from remote_adapter.transports._sftp import SFTPTransport

        _TRANSPORT_FACTORIES.setdefault("sftp", SFTPTransport)


def create_transport(config: ClientConfig) -> Transport:
    """Instantiate the transport named by ``config.transport``.

    :raises InvalidConfiguration: For unknown types or options the transport rejects.
    """
    _register_builtin_transports()
    factory = _TRANSPORT_FACTORIES.get(config.transport)
    if factory is None:
        raise InvalidConfiguration(
            f"Unknown transport type {config.transport!r}. Registered types: {sorted(_TRANSPORT_FACTORIES)}",
            context={"field": "client.transport"},
        )
    try:
        return factory.from_config(config)
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(
            f"Invalid options for transport {config.transport!r}: {exc}. "
            f"Provided options: {sorted(config.options)}",
            context={"field": "client.options"},
        ) from exc


def create_adapter(
    config: AdapterConfig | Mapping[str, object] | None = None,
    *,
    transport: Transport | None = None,
    cache: MetadataCache | None = None,
    event_sink: EventSink | None = None,
) -> StorageAdapter:
    """Wire transport, client, cache and retry policy from one configuration.

    :param config: Adapter configuration or a plain dict for :meth:`AdapterConfig.from_dict`.
    :param transport: Ready-made transport; bypasses the registry.
    :param cache: Shared cache; otherwise one is built when ``config.cache.enabled``.
    :param event_sink: Receives an event per adapter operation.
    :raises InvalidConfiguration: If the configuration is invalid.
    """
    if config is None:
        config = AdapterConfig()
    elif not isinstance(config, AdapterConfig):
        config = AdapterConfig.from_dict(config)
    client = RemoteClient(transport or create_transport(config.client), config.client)
    return StorageAdapter(client, config, cache=cache, event_sink=event_sink)
