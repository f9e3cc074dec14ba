"""Exchange hooks: the ordered middleware chain around the transport.

Hooks are injected into the executor as an immutable tuple. ``before_send``
runs in chain order once the exchange is fully built (headers, properties,
content type); ``after_receive`` runs in reverse order once a response is
attached. Signing and checksum hooks are supplied by the application.
"""

from __future__ import annotations

from s3_exchange.errors import error_from_response
from s3_exchange.models import Exchange

NAMESPACE_HEADER = "x-emc-namespace"


class ExchangeHook:
    """Base hook; override the side(s) you need."""

    def before_send(self, exchange: Exchange) -> None:
        pass

    def after_receive(self, exchange: Exchange) -> None:
        pass


class NamespaceHook(ExchangeHook):
    """Carries the namespace property to the server.

    With path-style addressing the namespace travels in the
    ``x-emc-namespace`` header. With virtual-host addressing the endpoint
    resolver already put it in the host name.
    """

    def __init__(self, use_vhost: bool = False) -> None:
        self._use_vhost = use_vhost

    def before_send(self, exchange: Exchange) -> None:
        namespace = exchange.namespace
        if namespace and not self._use_vhost:
            exchange.set_header(NAMESPACE_HEADER, namespace)


class ErrorHook(ExchangeHook):
    """Turns any non-2xx response into an S3Error.

    The body is read and the response closed before raising, so callers never
    hold a half-consumed connection for a failed exchange.
    """

    def after_receive(self, exchange: Exchange) -> None:
        status = exchange.status_code
        if 200 <= status < 300:
            return
        try:
            body = exchange.content
        finally:
            exchange.close()
        raise error_from_response(body, status, exchange.reason_phrase)
