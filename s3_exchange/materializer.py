"""Response Materializer - turns completed exchanges into typed results.

Some S3 operations (copy, complete-multipart-upload) answer 200 immediately
and report a failure later in the body as an ``<Error>`` document. Decoding
such a body as the expected type fails; an ErrorRecovery strategy then gets a
chance to read it as an error document. If it can, that S3Error (carrying the
real status, usually 200) is raised. If it cannot, the original
ResponseDecodeError is raised unchanged.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from s3_exchange.errors import ResponseDecodeError, S3Error, parse_error_response
from s3_exchange.models import Exchange, ObjectResponse
from s3_exchange.s3_models import XmlModel
from s3_exchange.xml_body import xml_to_dict

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=ObjectResponse)


class ErrorRecovery(Protocol):
    """Strategy that reads a body which failed to decode as an error."""

    def recover(self, body: str, status_code: int) -> Exception | None:
        """Return the error the body describes, or None if it describes none."""
        ...


class NoErrorRecovery:
    """Never recovers; decoding errors always surface as-is."""

    def recover(self, body: str, status_code: int) -> Exception | None:
        return None


class S3ErrorRecovery:
    """Recovers S3 ``<Error>`` documents delivered with a success status."""

    def recover(self, body: str, status_code: int) -> S3Error | None:
        try:
            return parse_error_response(body, status_code)
        except (ET.ParseError, ValueError):
            return None


class ResponseMaterializer:
    """Converts exchanges into results and closes them.

    Supported target types: ``bytes``, ``str``, ``dict`` (the XML document as
    a mapping) and any ``XmlModel`` subclass. ObjectResponse results always
    get the exchange's response headers.
    """

    def __init__(self, error_recovery: ErrorRecovery | None = None) -> None:
        self._error_recovery = error_recovery or NoErrorRecovery()

    def headers_only(
        self,
        exchange: Exchange,
        result_type: type[R] = ObjectResponse,
    ) -> R:
        """Result for operations without a response body."""
        try:
            return result_type(headers=exchange.response_headers)
        finally:
            exchange.close()

    def materialize(self, exchange: Exchange, target_type: type[T]) -> T:
        """Decode the response body as *target_type*.

        Raises:
            ResponseDecodeError: The body does not decode and is not a
                recoverable error document.
            S3Error: The body is an error document (see module docstring).
        """
        try:
            try:
                result = self._decode(exchange, target_type)
            except ResponseDecodeError as e:
                recovered = self._recover(exchange)
                if recovered is None:
                    raise
                raise recovered from e

            if isinstance(result, ObjectResponse):
                result.headers = exchange.response_headers
            return result
        finally:
            exchange.close()

    def _recover(self, exchange: Exchange) -> Exception | None:
        try:
            return self._error_recovery.recover(exchange.text, exchange.status_code)
        except Exception:
            # The decoding error is the one worth reporting.
            logger.debug("error recovery failed for %r", exchange, exc_info=True)
            return None

    def _decode(self, exchange: Exchange, target_type: type[Any]) -> Any:
        if target_type is bytes:
            return exchange.content
        if target_type is str:
            return exchange.text

        status = exchange.status_code
        if target_type is dict:
            try:
                return xml_to_dict(exchange.content)
            except ET.ParseError as e:
                raise ResponseDecodeError(
                    f"response body is not XML: {e}", target_type, status
                ) from e

        if isinstance(target_type, type) and issubclass(target_type, XmlModel):
            try:
                return target_type.from_xml(exchange.content)
            except (ET.ParseError, ValidationError, ValueError) as e:
                raise ResponseDecodeError(
                    f"cannot decode response body as {target_type.__name__}: {e}",
                    target_type,
                    status,
                ) from e

        raise TypeError(f"unsupported response type: {target_type!r}")
