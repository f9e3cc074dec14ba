"""Entity sizing and transfer framing.

Three pieces decide how a request body goes on the wire:

1. ``resolve_entity_size``: the declared length, else a body writer's size,
   else UNKNOWN_SIZE. Nothing is guessed.
2. ``select_transfer_mode``: a known size means exact ``Content-Length``
   framing; an unknown size means the transport buffers the whole body and
   measures it. Chunked transfer encoding is never used.
3. ``SizeOverride``: a per-exchange signal handed to the transport for the
   duration of one send and cleared afterwards on every exit path.

Buffering a live stream holds the entire stream in memory. There is no size
ceiling; callers that know a stream's length should declare it.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator

from s3_exchange.body_writers import BodyWriterRegistry
from s3_exchange.models import UNKNOWN_SIZE


def resolve_entity_size(
    entity: Any,
    content_type: str,
    declared_length: int | None,
    registry: BodyWriterRegistry,
) -> int:
    """Return the entity's byte length, or UNKNOWN_SIZE if it cannot be known.

    Args:
        entity: The request entity.
        content_type: Effective Content-Type of the request.
        declared_length: Length declared on the operation. Used verbatim when
            not None, including the -1 "unknown" sentinel.
        registry: Body writers to ask when no length was declared.
    """
    if declared_length is not None:
        return declared_length

    writer = registry.find_writer(type(entity), content_type)
    if writer is None:
        return UNKNOWN_SIZE

    size = writer.size(entity, content_type)
    return size if size >= 0 else UNKNOWN_SIZE


class TransferMode(str, Enum):
    """How the request body is framed."""

    EXACT = "exact"  # Content-Length known up front, body streamed
    BUFFERED = "buffered"  # body materialized first so its length can be measured


@dataclass(frozen=True)
class TransferPlan:
    mode: TransferMode
    content_length: int | None = None


def select_transfer_mode(size: int) -> TransferPlan:
    """Map a resolved size to a framing plan."""
    if size >= 0:
        return TransferPlan(TransferMode.EXACT, size)
    return TransferPlan(TransferMode.BUFFERED)


class SizeOverride:
    """The entity size a transport should use for one exchange.

    Created per exchange and passed explicitly to ``Transport.send``. The
    executor holds it only around the single send it applies to::

        with signal.hold(size):
            transport.send(exchange, signal)
    """

    def __init__(self) -> None:
        self._size: int | None = None

    def __repr__(self) -> str:
        return f"<SizeOverride size={self._size}>"

    @property
    def is_set(self) -> bool:
        return self._size is not None

    @property
    def size(self) -> int | None:
        return self._size

    @contextmanager
    def hold(self, size: int) -> Iterator[SizeOverride]:
        self._size = size
        try:
            yield self
        finally:
            self._size = None
