"""Internal data models for s3-exchange.

Operations and configuration use Pydantic v2. The Exchange is a plain class
because it wraps a live ``httpx.Response``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Self
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Exchange property keys read by the transport and the hook chain.
PROPERTY_NAMESPACE = "s3_exchange.namespace"
PROPERTY_ENABLE_BUFFERING = "s3_exchange.enable_buffering"

# Sentinel for "length explicitly unknown"; never means zero.
UNKNOWN_SIZE = -1

_MAX_CONTENT_LENGTH = 2**63 - 1


# =============================================================================
# Operation Models
# =============================================================================


class Method(str, Enum):
    """HTTP methods used against an S3 endpoint."""

    GET = "GET"
    HEAD = "HEAD"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    PUT = "PUT"
    POST = "POST"

    @property
    def requires_entity(self) -> bool:
        """True for methods whose semantics carry a request body."""
        return self in (Method.PUT, Method.POST)


class Operation(BaseModel):
    """A protocol-agnostic description of one request.

    Header and query values are arrays to support repeated entries. Headers
    and properties may be mutated until the operation is executed.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    method: Method = Field(description="HTTP method")
    path: str = Field(default="/", description="Resource path, e.g. /bucket/key")
    query: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Query parameters; an empty value renders as a bare subresource",
    )
    namespace: str | None = Field(
        default=None, description="Namespace override (client default when None)"
    )
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Request headers (arrays for repeated headers)"
    )
    properties: dict[str, Any] = Field(
        default_factory=dict, description="Transport/protocol hints copied onto the exchange"
    )

    def add_header(self, name: str, value: Any) -> None:
        """Append a header value, keeping any values already present."""
        self.headers.setdefault(name, []).append(str(value))

    def put_header(self, name: str, value: Any) -> None:
        """Replace every value of a header (case-insensitive) with *value*."""
        for existing in [k for k in self.headers if k.lower() == name.lower()]:
            del self.headers[existing]
        self.headers[name] = [str(value)]

    def first_header(self, name: str) -> str | None:
        """First value of a header, matched case-insensitively."""
        for key, values in self.headers.items():
            if key.lower() == name.lower() and values:
                return values[0]
        return None

    def set_property(self, key: str, value: Any) -> None:
        self.properties[key] = value


class EntityOperation(Operation):
    """An operation that carries a request entity.

    ``content_length`` of ``None`` means "not declared"; ``-1`` means
    "declared unknown". Both end in buffered framing unless a body writer can
    size the entity (``None`` only).
    """

    entity: Any = Field(default=None, description="Payload: bytes, str, stream, DTO")
    content_type: str | None = Field(default=None, description="Declared Content-Type")
    content_length: int | None = Field(default=None, description="Declared length; -1 = unknown")

    @field_validator("content_length")
    @classmethod
    def check_content_length(cls, v: int | None) -> int | None:
        if v is not None and not (UNKNOWN_SIZE <= v <= _MAX_CONTENT_LENGTH):
            raise ValueError(f"content_length must be -1 or a signed 64-bit length, got {v}")
        return v


# =============================================================================
# Exchange
# =============================================================================


class Exchange:
    """One request/response interaction with the endpoint.

    Built by the RequestBuilder, sent by a Transport, consumed by the
    ResponseMaterializer. Owned by the call that created it.
    """

    def __init__(
        self,
        operation: Operation,
        url: httpx.URL,
        headers: list[tuple[str, str]],
        properties: dict[str, Any],
    ) -> None:
        self.operation = operation
        self.method = operation.method.value
        self.url = url
        self.headers = headers
        self.properties = properties
        self.content_type: str | None = None
        self.entity: Any = None
        self.response: httpx.Response | None = None

    def __repr__(self) -> str:
        status = self.response.status_code if self.response is not None else "-"
        return f"<Exchange {self.method} {self.url} status={status}>"

    # -- request side --------------------------------------------------------

    def header_values(self, name: str) -> list[str]:
        """All request header values for *name*, in the order they were added."""
        return [v for k, v in self.headers if k.lower() == name.lower()]

    def set_header(self, name: str, value: str) -> None:
        """Replace every request header named *name* with a single value."""
        self.headers = [(k, v) for k, v in self.headers if k.lower() != name.lower()]
        self.headers.append((name, value))

    @property
    def namespace(self) -> str | None:
        return self.properties.get(PROPERTY_NAMESPACE)

    @property
    def buffered(self) -> bool:
        return bool(self.properties.get(PROPERTY_ENABLE_BUFFERING))

    # -- response side -------------------------------------------------------

    def _require_response(self) -> httpx.Response:
        if self.response is None:
            raise RuntimeError(f"{self!r} has not been sent")
        return self.response

    @property
    def status_code(self) -> int:
        return self._require_response().status_code

    @property
    def reason_phrase(self) -> str:
        return self._require_response().reason_phrase

    @property
    def response_headers(self) -> dict[str, list[str]]:
        """Response headers with lowercase keys and list values."""
        headers: dict[str, list[str]] = {}
        for key, value in self._require_response().headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)
        return headers

    @property
    def content(self) -> bytes:
        """The response body, read from the wire on first access."""
        return self._require_response().read()

    @property
    def text(self) -> str:
        response = self._require_response()
        response.read()
        return response.text

    def close(self) -> None:
        if self.response is not None:
            self.response.close()


# =============================================================================
# Result base
# =============================================================================


class ObjectResponse(BaseModel):
    """A result that carries the response headers of its exchange."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )

    def first_header(self, name: str) -> str | None:
        values = self.headers.get(name.lower())
        return values[0] if values else None


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    endpoint: str = Field(description="Base URL, e.g. http://ecs.example.com:9020")
    namespace: str | None = Field(default=None, description="Default namespace")
    identity: str | None = Field(default=None, description="Access key id")
    secret_key: str | None = Field(default=None, description="Secret key")
    use_vhost: bool = Field(default=False, description="Route namespaces through the host name")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    poll_protocol: str | None = Field(
        default=None, description="Host-list polling protocol (defaults to the endpoint scheme)"
    )
    poll_port: int | None = Field(
        default=None, ge=1, le=65535, description="Host-list polling port (defaults to the endpoint port)"
    )

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"endpoint must be an http(s) URL with a host, got {v!r}")
        return v.rstrip("/")

    @field_validator("poll_protocol")
    @classmethod
    def validate_poll_protocol(cls, v: str | None) -> str | None:
        if v is not None and v.lower() not in ("http", "https"):
            raise ValueError(f"poll_protocol must be http or https, got {v!r}")
        return v.lower() if v is not None else None

    @model_validator(mode="after")
    def check_credentials_pair(self) -> Self:
        if (self.identity is None) != (self.secret_key is None):
            raise ValueError("identity and secret_key must be given together")
        return self

    @property
    def has_credentials(self) -> bool:
        return self.identity is not None

    def poll_settings(self) -> tuple[str, int]:
        """Effective (protocol, port) used by the host-list collaborator."""
        parts = urlsplit(self.endpoint)
        protocol = self.poll_protocol or parts.scheme
        if self.poll_port is not None:
            return protocol, self.poll_port
        if parts.port is not None:
            return protocol, parts.port
        return protocol, 443 if parts.scheme == "https" else 80

    def host_list_settings(self) -> HostListSettings:
        protocol, port = self.poll_settings()
        return HostListSettings(
            protocol=protocol,
            host=urlsplit(self.endpoint).hostname or "",
            port=port,
            identity=self.identity,
            secret_key=self.secret_key,
        )


class HostListSettings(BaseModel):
    """Everything a host-list provider needs for its own polling calls."""

    model_config = ConfigDict(frozen=True)

    protocol: str = Field(description="http or https")
    host: str = Field(description="Host name of the configured endpoint")
    port: int = Field(description="Port polled for the data node list")
    identity: str | None = Field(default=None, description="Access key id used to sign polls")
    secret_key: str | None = Field(default=None, description="Secret key used to sign polls")
