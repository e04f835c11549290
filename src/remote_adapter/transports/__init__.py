"""Transport implementations."""

from remote_adapter.transports._local import LocalTransport
from remote_adapter.transports._memory import MemoryTransport

__all__ = ["LocalTransport", "MemoryTransport"]

try:
    from remote_adapter.transports._sftp import HostKeyPolicy, SFTPTransport

    __all__ = [*__all__, "HostKeyPolicy", "SFTPTransport"]
except ImportError:  # pragma: no cover
    pass
