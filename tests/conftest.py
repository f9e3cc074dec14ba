"""Pytest configuration and fixtures for s3-exchange tests.

This file provides:
- RecordingTransport: a Transport that records what the executor hands it
- make_executor / make_client: engine and client wiring for unit tests
- xml_response: canned S3 XML responses
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

import httpx
import pytest

from s3_exchange.body_writers import BodyWriterRegistry
from s3_exchange.client import S3Client
from s3_exchange.executor import HttpxTransport, RequestExecutor
from s3_exchange.framing import SizeOverride
from s3_exchange.hooks import ExchangeHook
from s3_exchange.models import ClientConfig, Exchange
from s3_exchange.request_builder import EndpointResolver, RequestBuilder

ENDPOINT = "http://ecs.example.com:9020"


def xml_response(
    body: str | bytes,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Create an httpx.Response carrying an XML body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return httpx.Response(
        status_code,
        headers={"Content-Type": "application/xml", **(headers or {})},
        content=body,
    )


class RecordingTransport:
    """Transport double that records each send.

    ``override_sizes`` holds the SizeOverride value observed *during* each
    send (None when it was not set). ``overrides`` keeps the override objects
    themselves so tests can check they were released afterwards.
    """

    def __init__(
        self,
        responses: Sequence[httpx.Response] = (),
        error: Exception | None = None,
    ) -> None:
        self.sent: list[Exchange] = []
        self.override_sizes: list[int | None] = []
        self.overrides: list[SizeOverride] = []
        self._responses = list(responses)
        self._error = error

    def send(self, exchange: Exchange, size_override: SizeOverride) -> httpx.Response:
        self.sent.append(exchange)
        self.overrides.append(size_override)
        self.override_sizes.append(size_override.size if size_override.is_set else None)
        if self._error is not None:
            raise self._error
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(200)

    @property
    def last(self) -> Exchange:
        return self.sent[-1]


def make_executor(
    transport: Any,
    hooks: Sequence[ExchangeHook] = (),
    namespace: str | None = None,
    use_vhost: bool = False,
    endpoint: str = ENDPOINT,
) -> RequestExecutor:
    """Create a RequestExecutor over *transport* with default writers."""
    builder = RequestBuilder(EndpointResolver(endpoint, use_vhost), namespace)
    return RequestExecutor(builder, transport, hooks=hooks)


def make_config(**overrides: Any) -> ClientConfig:
    values: dict[str, Any] = {"endpoint": ENDPOINT, "namespace": "ns1"}
    values.update(overrides)
    return ClientConfig(**values)


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    hooks: Sequence[ExchangeHook] = (),
    signer_factory: Callable[[str, str], ExchangeHook] | None = None,
    **config_overrides: Any,
) -> S3Client:
    """Create an S3Client whose HTTP traffic goes to *handler*.

    Uses the real HttpxTransport over an ``httpx.MockTransport``, so framing
    decisions reach the wire exactly as they would in production.
    """
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    transport = HttpxTransport(http_client, BodyWriterRegistry.default())
    return S3Client(
        make_config(**config_overrides),
        transport=transport,
        hooks=hooks,
        signer_factory=signer_factory,
    )


class RecordingHandler:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(200)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
