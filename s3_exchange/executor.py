"""Executor - Turns operations into HTTP exchanges.

The executor decides, per method, whether an entity may be sent and how it
is framed, then issues the exchange through a Transport with the hook chain
around it:

    builder.build(op) -> hooks.before_send -> transport.send -> hooks.after_receive

Transport failures (connection refused, timeouts, protocol errors) are
``httpx.TransportError`` subclasses and propagate unchanged; retry decisions
belong to whoever owns the host list.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import Any, Iterable, Protocol, Sequence

import httpx

from s3_exchange.body_writers import BodyWriterRegistry
from s3_exchange.errors import EntityMethodError
from s3_exchange.framing import (
    SizeOverride,
    TransferMode,
    resolve_entity_size,
    select_transfer_mode,
)
from s3_exchange.hooks import ExchangeHook
from s3_exchange.models import (
    DEFAULT_CONTENT_TYPE,
    PROPERTY_ENABLE_BUFFERING,
    EntityOperation,
    Exchange,
    Operation,
)
from s3_exchange.request_builder import RequestBuilder

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Sends one built exchange and returns the (unread) response."""

    def send(self, exchange: Exchange, size_override: SizeOverride) -> httpx.Response:
        ...


def _is_stream(entity: Any) -> bool:
    return isinstance(entity, (io.IOBase, Iterator)) or callable(getattr(entity, "read", None))


class HttpxTransport:
    """Transport backed by an ``httpx.Client``.

    Buffered exchanges have their content fully materialized before the
    request is built, so httpx derives ``Content-Length`` from the bytes.
    The executor only holds the size override at UNKNOWN_SIZE, which is
    exactly that case, so this transport never reads its value.
    Responses are opened with ``stream=True``; the body is read when the
    materializer (or the error hook) asks for it.
    """

    def __init__(self, client: httpx.Client, writers: BodyWriterRegistry) -> None:
        self._client = client
        self._writers = writers

    def send(self, exchange: Exchange, size_override: SizeOverride) -> httpx.Response:
        content = self._encode(exchange)
        headers = list(exchange.headers)

        if exchange.buffered:
            if content is not None and not isinstance(content, bytes):
                content = b"".join(content)
            headers = [(k, v) for k, v in headers if k.lower() != "content-length"]

        request = self._client.build_request(
            exchange.method,
            exchange.url,
            headers=headers,
            content=content,
        )
        return self._client.send(request, stream=True)

    def _encode(self, exchange: Exchange) -> bytes | Iterable[bytes] | None:
        entity = exchange.entity
        if entity is None:
            return None
        content_type = exchange.content_type or DEFAULT_CONTENT_TYPE
        writer = self._writers.find_writer(type(entity), content_type)
        if writer is None:
            # Iterables of bytes go to httpx as-is.
            return entity
        return writer.write(entity, content_type)


class RequestExecutor:
    """Executes operations and returns completed exchanges.

    Usage:
        executor = RequestExecutor(builder, transport, hooks=(ErrorHook(),))
        exchange = executor.execute(operation)
        try:
            data = exchange.content
        finally:
            exchange.close()
    """

    def __init__(
        self,
        builder: RequestBuilder,
        transport: Transport,
        hooks: Sequence[ExchangeHook] = (),
        writers: BodyWriterRegistry | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            builder: Addresses operations and builds exchanges.
            transport: Sends built exchanges.
            hooks: Middleware chain, in ``before_send`` order. Frozen here.
            writers: Body writers used to size entities of undeclared length.
        """
        self._builder = builder
        self._transport = transport
        self._hooks: tuple[ExchangeHook, ...] = tuple(hooks)
        self._writers = writers or BodyWriterRegistry.default()

    @property
    def hooks(self) -> tuple[ExchangeHook, ...]:
        return self._hooks

    def execute(self, operation: Operation) -> Exchange:
        """Issue one operation.

        Raises:
            EntityMethodError: An EntityOperation used a method that forbids a
                body. Raised before anything reaches the transport.
            S3Error: Raised by the hook chain for non-success responses.
            httpx.TransportError: Connection, timeout and protocol failures.
        """
        size_override = SizeOverride()

        if operation.method.requires_entity:
            return self._execute_with_entity(operation, size_override)

        # GET, HEAD, DELETE, ... cannot carry content.
        if isinstance(operation, EntityOperation):
            raise EntityMethodError(operation.method.value)

        exchange = self._builder.build(operation)
        return self._issue(exchange, size_override)

    def execute_and_close(self, operation: Operation) -> Exchange:
        """Issue an operation whose response body is not needed."""
        exchange = self.execute(operation)
        exchange.close()
        return exchange

    def _execute_with_entity(self, operation: Operation, size_override: SizeOverride) -> Exchange:
        buffered_size: int | None = None

        if isinstance(operation, EntityOperation):
            content_type = operation.content_type or DEFAULT_CONTENT_TYPE
            entity = operation.entity if operation.entity is not None else b""

            size = resolve_entity_size(
                entity, content_type, operation.content_length, self._writers
            )
            plan = select_transfer_mode(size)

            exchange = self._builder.build(operation)
            if plan.mode is TransferMode.EXACT:
                exchange.set_header("Content-Length", str(plan.content_length))
            else:
                self._enable_buffering(exchange, entity)
                buffered_size = size
        else:
            # No entity at all. Buffer anyway so a Content-Encoding header
            # cannot make the transport mangle the (empty) length.
            content_type = operation.first_header("Content-Type") or DEFAULT_CONTENT_TYPE
            entity = b""
            exchange = self._builder.build(operation)
            exchange.properties[PROPERTY_ENABLE_BUFFERING] = True

        exchange.set_header("Content-Type", content_type)
        exchange.content_type = content_type
        exchange.entity = entity

        if buffered_size is None:
            return self._issue(exchange, size_override)
        with size_override.hold(buffered_size):
            return self._issue(exchange, size_override)

    def _enable_buffering(self, exchange: Exchange, entity: Any) -> None:
        extra = {"method": exchange.method, "path": exchange.url.path}
        logger.info("entity size cannot be determined; enabling entity buffering", extra=extra)
        if _is_stream(entity):
            logger.warning(
                "buffering a stream entity of unknown length in memory; "
                "set a content length for streams to save memory",
                extra=extra,
            )
        exchange.properties[PROPERTY_ENABLE_BUFFERING] = True

    def _issue(self, exchange: Exchange, size_override: SizeOverride) -> Exchange:
        for hook in self._hooks:
            hook.before_send(exchange)

        logger.debug(
            "sending %s %s",
            exchange.method,
            exchange.url,
            extra={
                "method": exchange.method,
                "path": exchange.url.path,
                "namespace": exchange.namespace,
            },
        )
        exchange.response = self._transport.send(exchange, size_override)

        try:
            for hook in reversed(self._hooks):
                hook.after_receive(exchange)
        except BaseException:
            exchange.close()
            raise

        logger.debug(
            "received %s for %s %s",
            exchange.status_code,
            exchange.method,
            exchange.url,
            extra={
                "method": exchange.method,
                "path": exchange.url.path,
                "status": exchange.status_code,
            },
        )
        return exchange
