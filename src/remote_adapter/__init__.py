"""Uniform filesystem operations over unreliable, session-oriented remote stores."""

from remote_adapter._adapter import StorageAdapter
from remote_adapter._cache import MetadataCache
from remote_adapter._client import ConnectionState, RemoteClient
from remote_adapter._config import AdapterConfig, CacheConfig, ClientConfig, RetryConfig
from remote_adapter._errors import (
    AlreadyExists,
    AuthenticationFailed,
    ConnectionFailed,
    ErrorKind,
    ExistenceCheckFailed,
    InvalidConfiguration,
    InvalidPath,
    MappingError,
    NotFound,
    OperationFailed,
    RateLimited,
    StorageError,
    error_for_kind,
)
from remote_adapter._mapper import MetadataMapper
from remote_adapter._models import (
    DirectoryAttributes,
    FileAttributes,
    OperationEvent,
    RetryAttempt,
    StorageAttributes,
    Visibility,
)
from remote_adapter._registry import create_adapter, create_transport, register_transport, registered_transports
from remote_adapter._retry import DEFAULT_RETRYABLE_KINDS, RetryPolicy
from remote_adapter._transport import Transport

__version__ = "0.1.0"

__all__ = [
    # Core
    "StorageAdapter",
    "RemoteClient",
    "ConnectionState",
    "Transport",
    "RetryPolicy",
    "DEFAULT_RETRYABLE_KINDS",
    "MetadataCache",
    "MetadataMapper",
    # Registry
    "create_adapter",
    "create_transport",
    "register_transport",
    "registered_transports",
    # Models
    "FileAttributes",
    "DirectoryAttributes",
    "StorageAttributes",
    "Visibility",
    "RetryAttempt",
    "OperationEvent",
    # Config
    "AdapterConfig",
    "ClientConfig",
    "CacheConfig",
    "RetryConfig",
    # Errors
    "ErrorKind",
    "StorageError",
    "ConnectionFailed",
    "AuthenticationFailed",
    "InvalidConfiguration",
    "NotFound",
    "AlreadyExists",
    "OperationFailed",
    "InvalidPath",
    "MappingError",
    "RateLimited",
    "ExistenceCheckFailed",
    "error_for_kind",
    # Version
    "__version__",
]
