"""Error taxonomy for s3-exchange.

Four kinds of failure leave the engine:

- EntityMethodError: an entity operation was issued with a method that cannot
  carry a body. Raised locally before anything reaches the transport.
- S3Error: a completed exchange carried a non-success status (or an error
  document hidden behind a 200). Branch on ``http_status``, never on text.
- ResponseDecodeError: the response body did not match the requested type.
- Transport errors: ``httpx.TransportError`` subclasses, passed through as-is.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

from s3_exchange.xml_body import xml_to_dict


class S3ExchangeError(Exception):
    """Base class for s3-exchange errors."""


class EntityMethodError(S3ExchangeError):
    """Raised when an entity operation uses a method that forbids a body."""

    def __init__(self, method: str) -> None:
        super().__init__(
            f"an entity operation is using a non-entity method ({method})"
        )
        self.method = method


class ResponseDecodeError(S3ExchangeError):
    """Raised when a response body cannot be decoded as the requested type.

    Attributes:
        target_type: The type the body was supposed to decode into.
        status_code: HTTP status of the exchange that produced the body.
    """

    def __init__(self, message: str, target_type: type, status_code: int) -> None:
        super().__init__(message)
        self.target_type = target_type
        self.status_code = status_code


class S3Error(S3ExchangeError):
    """An S3-compatible error with code, message, and HTTP status.

    Attributes:
        code: The S3 error code string (e.g. "NoSuchBucket", "AccessDenied").
        message: Human-readable error description.
        http_status: The HTTP status code of the exchange.
        request_id: Server request id, when the error document carried one.
        resource: Resource named by the error document, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int,
        request_id: str | None = None,
        resource: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.request_id = request_id
        self.resource = resource

    def __str__(self) -> str:
        return f"{self.code} ({self.http_status}): {self.message}"


def parse_error_response(body: str | bytes, status_code: int) -> S3Error:
    """Parse an S3 ``<Error>`` document into an S3Error.

    The status code is taken from the exchange, not from the document, so an
    error document delivered with a 200 yields an S3Error with status 200.

    Args:
        body: Raw response body.
        status_code: HTTP status of the exchange that carried the body.

    Returns:
        The parsed error.

    Raises:
        ET.ParseError: If *body* is not well-formed XML.
        ValueError: If the document is not an S3 error document.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    document = xml_to_dict(body)
    if "Error" not in document:
        root = next(iter(document))
        raise ValueError(f"expected an <Error> document, got <{root}>")

    fields = document["Error"]
    if not isinstance(fields, dict) or not fields.get("Code"):
        raise ValueError("error document has no <Code>")

    return S3Error(
        code=str(fields["Code"]),
        message=str(fields.get("Message") or ""),
        http_status=status_code,
        request_id=fields.get("RequestId"),
        resource=fields.get("Resource"),
    )


def error_from_status(status_code: int, reason: str) -> S3Error:
    """Build an S3Error for a failed exchange that returned no error document.

    HEAD responses never carry a body, so the status line is all there is.
    """
    code = reason.replace(" ", "") if reason else str(status_code)
    return S3Error(code=code, message=reason or f"HTTP {status_code}", http_status=status_code)


def error_from_response(body: bytes, status_code: int, reason: str) -> S3Error:
    """Classify a non-success response, preferring the body's error document."""
    if not body.strip():
        return error_from_status(status_code, reason)
    try:
        return parse_error_response(body, status_code)
    except (ET.ParseError, ValueError):
        # Proxies and load balancers answer with HTML or plain text.
        return error_from_status(status_code, reason)
