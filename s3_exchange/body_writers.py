"""Body writers: size and encode request entities by runtime type.

The registry is consulted by the size resolver (``framing``) when an entity
operation does not declare its length, and by the transport to turn the
entity into request content. Writers are stateless and shared between
threads.
"""

from __future__ import annotations

import io
import os
from typing import Any, Iterator, Protocol, Sequence

from s3_exchange.models import UNKNOWN_SIZE
from s3_exchange.s3_models import XmlModel

CHUNK_SIZE = 64 * 1024


class BodyWriter(Protocol):
    """Capability to size and serialize one family of entity types."""

    def accepts(self, entity_type: type, content_type: str) -> bool:
        """Whether this writer handles *entity_type* sent as *content_type*."""
        ...

    def size(self, entity: Any, content_type: str) -> int:
        """Exact byte length of the encoded entity, or UNKNOWN_SIZE."""
        ...

    def write(self, entity: Any, content_type: str) -> bytes | Iterator[bytes]:
        """Encode the entity as request content."""
        ...


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            return value.strip('"')
    return "utf-8"


class BytesWriter:
    def accepts(self, entity_type: type, content_type: str) -> bool:
        return issubclass(entity_type, (bytes, bytearray, memoryview))

    def size(self, entity: bytes | bytearray | memoryview, content_type: str) -> int:
        return memoryview(entity).nbytes

    def write(self, entity: bytes | bytearray | memoryview, content_type: str) -> bytes:
        return bytes(entity)


class TextWriter:
    """Strings, encoded with the content type's charset (UTF-8 by default)."""

    def accepts(self, entity_type: type, content_type: str) -> bool:
        return issubclass(entity_type, str)

    def size(self, entity: str, content_type: str) -> int:
        return len(self.write(entity, content_type))

    def write(self, entity: str, content_type: str) -> bytes:
        return entity.encode(_charset(content_type))


class XmlModelWriter:
    """Request documents (DeleteObjects, CompleteMultipartUpload, ...)."""

    def accepts(self, entity_type: type, content_type: str) -> bool:
        return issubclass(entity_type, XmlModel) and "xml" in content_type.lower()

    def size(self, entity: XmlModel, content_type: str) -> int:
        return len(entity.to_xml())

    def write(self, entity: XmlModel, content_type: str) -> bytes:
        return entity.to_xml()


class StreamWriter:
    """Binary streams.

    A seekable stream reports the bytes remaining from its current position;
    anything else (sockets, pipes, decompressors) is UNKNOWN_SIZE and ends up
    buffered by the transport.
    """

    def accepts(self, entity_type: type, content_type: str) -> bool:
        if issubclass(entity_type, io.TextIOBase):
            return False
        return issubclass(entity_type, io.IOBase) or callable(getattr(entity_type, "read", None))

    def size(self, entity: Any, content_type: str) -> int:
        seekable = getattr(entity, "seekable", None)
        if seekable is None or not seekable():
            return UNKNOWN_SIZE
        position = entity.tell()
        try:
            return os.fstat(entity.fileno()).st_size - position
        except (AttributeError, OSError):
            # BytesIO and friends have no file descriptor.
            end = entity.seek(0, io.SEEK_END)
            entity.seek(position)
            return end - position

    def write(self, entity: Any, content_type: str) -> Iterator[bytes]:
        return iter(lambda: entity.read(CHUNK_SIZE), b"")


class BodyWriterRegistry:
    """Ordered set of body writers; the first writer that accepts wins."""

    def __init__(self, writers: Sequence[BodyWriter]) -> None:
        self._writers = tuple(writers)

    @classmethod
    def default(cls) -> BodyWriterRegistry:
        return cls([BytesWriter(), TextWriter(), XmlModelWriter(), StreamWriter()])

    def find_writer(self, entity_type: type, content_type: str) -> BodyWriter | None:
        for writer in self._writers:
            if writer.accepts(entity_type, content_type):
                return writer
        return None
