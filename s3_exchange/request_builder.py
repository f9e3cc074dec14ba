"""Request Builder - addresses an operation and assembles its exchange.

Entity handling is not done here; see ``executor`` and ``framing``.
"""

from __future__ import annotations

from urllib.parse import quote, urlsplit

import httpx

from s3_exchange.models import PROPERTY_NAMESPACE, Exchange, Operation


def render_query(query: dict[str, list[str]]) -> str:
    """Render query parameters, keeping bare subresources (``?acl``) bare."""
    pieces: list[str] = []
    for name, values in query.items():
        for value in values or [""]:
            if value == "":
                pieces.append(quote(name, safe=""))
            else:
                pieces.append(f"{quote(name, safe='')}={quote(value, safe='')}")
    return "&".join(pieces)


class EndpointResolver:
    """Resolves operation paths against a base endpoint.

    With ``use_vhost`` the namespace becomes the leftmost host label
    (``ns1.ecs.example.com``); otherwise the namespace is left to the hook
    chain (see ``hooks.NamespaceHook``).
    """

    def __init__(self, endpoint: str, use_vhost: bool = False) -> None:
        parts = urlsplit(endpoint)
        self._scheme = parts.scheme
        self._netloc = parts.netloc
        self._base_path = parts.path.rstrip("/")
        self._use_vhost = use_vhost

    def resolve(
        self,
        path: str,
        query: dict[str, list[str]],
        namespace: str | None,
    ) -> httpx.URL:
        netloc = self._netloc
        if self._use_vhost and namespace:
            netloc = f"{namespace}.{netloc}"

        if not path.startswith("/"):
            path = "/" + path
        url = f"{self._scheme}://{netloc}{self._base_path}{quote(path, safe='/~')}"

        query_string = render_query(query)
        if query_string:
            url = f"{url}?{query_string}"
        return httpx.URL(url)


class RequestBuilder:
    """Builds an Exchange from an Operation.

    Copies properties, resolves the effective namespace into the
    ``PROPERTY_NAMESPACE`` property (never a header), and copies every header
    value in order.
    """

    def __init__(self, resolver: EndpointResolver, default_namespace: str | None = None) -> None:
        self._resolver = resolver
        self._default_namespace = default_namespace

    def build(self, operation: Operation) -> Exchange:
        namespace = (
            operation.namespace if operation.namespace is not None else self._default_namespace
        )
        url = self._resolver.resolve(operation.path, operation.query, namespace)

        properties = dict(operation.properties)
        if namespace is not None:
            properties[PROPERTY_NAMESPACE] = namespace

        headers = [
            (name, value)
            for name, values in operation.headers.items()
            for value in values
        ]

        return Exchange(operation, url, headers, properties)
