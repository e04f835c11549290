"""Type aliases used throughout remote_adapter."""

from __future__ import annotations

import os  # noqa: TC003
from collections.abc import Callable
from typing import TYPE_CHECKING, BinaryIO, Union

if TYPE_CHECKING:
    from remote_adapter._models import OperationEvent

PathLike = Union[str, "os.PathLike[str]"]  # noqa: UP007
WritableContent = BinaryIO | bytes
RawRecord = dict[str, object]
EventSink = Callable[["OperationEvent"], None]
ProgressCallback = Callable[[int, "int | None"], None]
Sleeper = Callable[[float], None]
