"""Tests for the RequestExecutor.

Tests cover:
- Entity/method validation: entity operations on GET/HEAD/DELETE/OPTIONS are
  rejected before the transport is reached
- Framing: EXACT Content-Length for known sizes, BUFFERED for unknown ones,
  buffering for PUT/POST without an entity
- SizeOverride: set during the send, released on success, on error
  responses and on transport failure, never carried into the next exchange
- Logging: INFO when buffering is enabled, WARNING for stream entities
- Hook chain: before_send order, reversed after_receive, closing on error
- Transport errors pass through unchanged
"""

import io
import logging
from unittest.mock import MagicMock

import httpx
import pytest

from s3_exchange.errors import EntityMethodError, S3Error
from s3_exchange.hooks import ErrorHook, ExchangeHook, NamespaceHook
from s3_exchange.models import (
    DEFAULT_CONTENT_TYPE,
    PROPERTY_ENABLE_BUFFERING,
    EntityOperation,
    Method,
    Operation,
)
from s3_exchange.s3_models import DeleteObjects, ObjectKey
from tests.conftest import RecordingTransport, make_executor, xml_response


class _Pipe(io.RawIOBase):
    def __init__(self, data: bytes) -> None:
        self._data = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        chunk = self._data.read(len(b))
        b[: len(chunk)] = chunk
        return len(chunk)


class _OrderHook(ExchangeHook):
    def __init__(self, name: str, calls: list[str]) -> None:
        self.name = name
        self.calls = calls

    def before_send(self, exchange) -> None:
        self.calls.append(f"before:{self.name}")

    def after_receive(self, exchange) -> None:
        self.calls.append(f"after:{self.name}")


class TestRoundTrip:
    def test_namespace_headers_and_properties_reach_transport(
        self, transport: RecordingTransport
    ) -> None:
        operation = Operation(
            method=Method.GET,
            path="/bucket/key",
            namespace="ns1",
            headers={"X": ["a", "b"]},
            properties={"p": "v"},
        )
        make_executor(transport).execute(operation)

        exchange = transport.last
        assert exchange.namespace == "ns1"
        assert exchange.header_values("X") == ["a", "b"]
        assert exchange.properties["p"] == "v"


class TestEntityMethodValidation:
    @pytest.mark.parametrize("method", [Method.GET, Method.HEAD, Method.DELETE, Method.OPTIONS])
    def test_entity_operation_on_bodiless_method_rejected(
        self, transport: RecordingTransport, method: Method
    ) -> None:
        executor = make_executor(transport)
        operation = EntityOperation(method=method, path="/bucket/key", entity=b"data")

        with pytest.raises(EntityMethodError, match=rf"non-entity method \({method.value}\)"):
            executor.execute(operation)

        assert transport.sent == []

    def test_plain_get_is_sent_without_entity(self, transport: RecordingTransport) -> None:
        exchange = make_executor(transport).execute(Operation(method=Method.GET, path="/b"))
        assert exchange.entity is None
        assert exchange.header_values("Content-Length") == []
        assert transport.override_sizes == [None]


class TestExactFraming:
    def test_bytes_entity_gets_content_length(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=b"hello")
        exchange = make_executor(transport).execute(operation)

        assert exchange.header_values("Content-Length") == ["5"]
        assert exchange.header_values("Content-Type") == [DEFAULT_CONTENT_TYPE]
        assert not exchange.buffered
        assert transport.override_sizes == [None]

    def test_declared_length_is_used(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(
            method=Method.PUT,
            path="/b/k",
            entity=_Pipe(b"x" * 10),
            content_length=10,
            content_type="text/plain",
        )
        exchange = make_executor(transport).execute(operation)

        assert exchange.header_values("Content-Length") == ["10"]
        assert exchange.header_values("Content-Type") == ["text/plain"]
        assert not exchange.buffered

    def test_missing_entity_is_zero_length(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(method=Method.POST, path="/b/k")
        exchange = make_executor(transport).execute(operation)
        assert exchange.header_values("Content-Length") == ["0"]
        assert exchange.entity == b""

    def test_xml_document_sized_by_writer(self, transport: RecordingTransport) -> None:
        document = DeleteObjects(objects=[ObjectKey(key="a")])
        operation = EntityOperation(
            method=Method.POST,
            path="/b",
            entity=document,
            content_type="application/xml",
        )
        exchange = make_executor(transport).execute(operation)
        assert exchange.header_values("Content-Length") == [str(len(document.to_xml()))]


class TestBufferedFraming:
    def test_unknown_size_enables_buffering(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=_Pipe(b"abc"))
        exchange = make_executor(transport).execute(operation)

        assert exchange.properties[PROPERTY_ENABLE_BUFFERING] is True
        assert exchange.header_values("Content-Length") == []

    def test_override_held_during_send(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=_Pipe(b"abc"))
        make_executor(transport).execute(operation)

        assert transport.override_sizes == [-1]
        assert not transport.overrides[0].is_set

    def test_override_released_when_send_fails(self) -> None:
        transport = RecordingTransport(error=httpx.ConnectError("refused"))
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=_Pipe(b"abc"))

        with pytest.raises(httpx.ConnectError):
            make_executor(transport).execute(operation)

        assert transport.override_sizes == [-1]
        assert not transport.overrides[0].is_set

    def test_override_released_on_error_response(self) -> None:
        body = "<Error><Code>AccessDenied</Code><Message>denied</Message></Error>"
        transport = RecordingTransport([xml_response(body, status_code=403)])
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=_Pipe(b"abc"))

        with pytest.raises(S3Error) as exc_info:
            make_executor(transport, hooks=(ErrorHook(),)).execute(operation)

        assert exc_info.value.http_status == 403
        assert transport.override_sizes == [-1]
        assert not transport.overrides[0].is_set

    def test_no_override_leaks_into_next_exchange(self, transport: RecordingTransport) -> None:
        executor = make_executor(transport)
        executor.execute(EntityOperation(method=Method.PUT, path="/b/1", entity=_Pipe(b"a")))
        executor.execute(EntityOperation(method=Method.PUT, path="/b/2", entity=_Pipe(b"b")))
        executor.execute(Operation(method=Method.GET, path="/b/3"))

        assert transport.override_sizes == [-1, -1, None]
        assert not any(override.is_set for override in transport.overrides)
        assert transport.overrides[0] is not transport.overrides[1]

    def test_declared_unknown_length_buffers(self, transport: RecordingTransport) -> None:
        operation = EntityOperation(
            method=Method.PUT, path="/b/k", entity=b"abc", content_length=-1
        )
        exchange = make_executor(transport).execute(operation)
        assert exchange.buffered
        assert transport.override_sizes == [-1]

    def test_plain_operation_put_buffers(self, transport: RecordingTransport) -> None:
        operation = Operation(method=Method.PUT, path="/bucket", headers={"Content-Type": ["text/xml"]})
        exchange = make_executor(transport).execute(operation)

        assert exchange.buffered
        assert exchange.entity == b""
        assert exchange.header_values("Content-Type") == ["text/xml"]
        # Nothing to measure, so no override is held.
        assert transport.override_sizes == [None]

    def test_plain_operation_put_default_content_type(self, transport: RecordingTransport) -> None:
        exchange = make_executor(transport).execute(Operation(method=Method.PUT, path="/bucket"))
        assert exchange.header_values("Content-Type") == [DEFAULT_CONTENT_TYPE]


class TestBufferingLogs:
    def test_info_when_buffering(
        self, transport: RecordingTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=b"x", content_length=-1)
        with caplog.at_level(logging.INFO, logger="s3_exchange.executor"):
            make_executor(transport).execute(operation)

        levels = [r.levelno for r in caplog.records if r.name == "s3_exchange.executor"]
        assert logging.INFO in levels
        assert logging.WARNING not in levels

    def test_warning_when_buffering_a_stream(
        self, transport: RecordingTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=_Pipe(b"abc"))
        with caplog.at_level(logging.INFO, logger="s3_exchange.executor"):
            make_executor(transport).execute(operation)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "stream" in warnings[0].getMessage()
        assert warnings[0].path == "/b/k"

    def test_no_log_for_exact_framing(
        self, transport: RecordingTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=b"x")
        with caplog.at_level(logging.INFO, logger="s3_exchange.executor"):
            make_executor(transport).execute(operation)
        assert caplog.records == []


class TestHookChain:
    def test_before_in_order_after_in_reverse(self, transport: RecordingTransport) -> None:
        calls: list[str] = []
        hooks = (_OrderHook("a", calls), _OrderHook("b", calls), _OrderHook("c", calls))
        make_executor(transport, hooks=hooks).execute(Operation(method=Method.GET))

        assert calls == [
            "before:a",
            "before:b",
            "before:c",
            "after:c",
            "after:b",
            "after:a",
        ]

    def test_hooks_are_frozen(self, transport: RecordingTransport) -> None:
        hooks = [ExchangeHook()]
        executor = make_executor(transport, hooks=hooks)
        hooks.append(ExchangeHook())
        assert len(executor.hooks) == 1
        assert isinstance(executor.hooks, tuple)

    def test_before_send_sees_complete_exchange(self, transport: RecordingTransport) -> None:
        seen = {}

        class Inspector(ExchangeHook):
            def before_send(self, exchange) -> None:
                seen["namespace"] = exchange.namespace
                seen["content_type"] = exchange.header_values("Content-Type")
                seen["length"] = exchange.header_values("Content-Length")

        operation = EntityOperation(method=Method.PUT, path="/b/k", entity=b"abc", namespace="ns1")
        make_executor(transport, hooks=(Inspector(),)).execute(operation)

        assert seen == {
            "namespace": "ns1",
            "content_type": [DEFAULT_CONTENT_TYPE],
            "length": ["3"],
        }

    def test_namespace_hook_sets_header(self, transport: RecordingTransport) -> None:
        executor = make_executor(transport, hooks=(NamespaceHook(),), namespace="ns1")
        exchange = executor.execute(Operation(method=Method.GET, path="/b"))
        assert exchange.header_values("x-emc-namespace") == ["ns1"]

    def test_namespace_hook_skips_vhost(self, transport: RecordingTransport) -> None:
        executor = make_executor(
            transport, hooks=(NamespaceHook(use_vhost=True),), namespace="ns1", use_vhost=True
        )
        exchange = executor.execute(Operation(method=Method.GET, path="/b"))
        assert exchange.header_values("x-emc-namespace") == []
        assert exchange.url.host == "ns1.ecs.example.com"

    def test_error_hook_raises_and_closes(self) -> None:
        body = "<Error><Code>NoSuchKey</Code><Message>missing</Message></Error>"
        transport = RecordingTransport([xml_response(body, status_code=404)])

        with pytest.raises(S3Error) as exc_info:
            make_executor(transport, hooks=(ErrorHook(),)).execute(Operation(method=Method.GET))

        assert exc_info.value.http_status == 404
        assert exc_info.value.code == "NoSuchKey"
        assert transport.last.response.is_closed

    def test_failing_hook_closes_exchange(self) -> None:
        response = MagicMock(spec=httpx.Response)
        transport = RecordingTransport([response])

        class Boom(ExchangeHook):
            def after_receive(self, exchange) -> None:
                raise RuntimeError("hook failed")

        with pytest.raises(RuntimeError, match="hook failed"):
            make_executor(transport, hooks=(Boom(),)).execute(Operation(method=Method.GET))

        response.close.assert_called_once()


class TestTransportErrors:
    def test_transport_error_propagates(self) -> None:
        transport = RecordingTransport(error=httpx.ReadTimeout("timed out"))
        with pytest.raises(httpx.ReadTimeout):
            make_executor(transport).execute(Operation(method=Method.GET))

    def test_execute_and_close(self, transport: RecordingTransport) -> None:
        exchange = make_executor(transport).execute_and_close(Operation(method=Method.DELETE, path="/b/k"))
        assert exchange.status_code == 200
        assert exchange.response.is_closed
