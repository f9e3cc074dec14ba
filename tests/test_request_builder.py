"""Tests for endpoint resolution and exchange building.

Tests cover:
- render_query: bare subresources, repeated values, escaping
- EndpointResolver: path-style and virtual-host addressing, key escaping,
  endpoints with a base path
- RequestBuilder: namespace property resolution (operation over default),
  header copying in order, property copying
"""

from s3_exchange.models import PROPERTY_NAMESPACE, Method, Operation
from s3_exchange.request_builder import EndpointResolver, RequestBuilder, render_query

ENDPOINT = "http://ecs.example.com:9020"


class TestRenderQuery:
    def test_bare_subresource(self) -> None:
        assert render_query({"uploads": [""]}) == "uploads"

    def test_empty_value_list_is_bare(self) -> None:
        assert render_query({"acl": []}) == "acl"

    def test_repeated_values(self) -> None:
        assert render_query({"p": ["1", "2"]}) == "p=1&p=2"

    def test_values_are_escaped(self) -> None:
        assert render_query({"prefix": ["a b/c&d"]}) == "prefix=a%20b%2Fc%26d"

    def test_empty_query(self) -> None:
        assert render_query({}) == ""


class TestEndpointResolver:
    def test_path_style_keeps_host(self) -> None:
        url = EndpointResolver(ENDPOINT).resolve("/bucket/key", {}, "ns1")
        assert str(url) == "http://ecs.example.com:9020/bucket/key"

    def test_vhost_prefixes_namespace(self) -> None:
        url = EndpointResolver(ENDPOINT, use_vhost=True).resolve("/bucket", {}, "ns1")
        assert url.host == "ns1.ecs.example.com"
        assert url.port == 9020

    def test_vhost_without_namespace(self) -> None:
        url = EndpointResolver(ENDPOINT, use_vhost=True).resolve("/bucket", {}, None)
        assert url.host == "ecs.example.com"

    def test_key_is_escaped(self) -> None:
        url = EndpointResolver(ENDPOINT).resolve("/bucket/dir/a b+c~", {}, None)
        assert url.raw_path == b"/bucket/dir/a%20b%2Bc~"

    def test_relative_path_gets_leading_slash(self) -> None:
        url = EndpointResolver(ENDPOINT).resolve("bucket", {}, None)
        assert url.path == "/bucket"

    def test_base_path_is_kept(self) -> None:
        url = EndpointResolver("https://gw.example.com/s3/").resolve("/bucket", {"acl": [""]}, None)
        assert str(url) == "https://gw.example.com/s3/bucket?acl"


class TestRequestBuilder:
    def test_namespace_becomes_property_not_header(self) -> None:
        builder = RequestBuilder(EndpointResolver(ENDPOINT))
        operation = Operation(method=Method.GET, path="/bucket", namespace="ns1")
        exchange = builder.build(operation)

        assert exchange.properties[PROPERTY_NAMESPACE] == "ns1"
        assert exchange.namespace == "ns1"
        assert exchange.header_values("x-emc-namespace") == []

    def test_default_namespace_used_when_operation_has_none(self) -> None:
        builder = RequestBuilder(EndpointResolver(ENDPOINT), default_namespace="default-ns")
        exchange = builder.build(Operation(method=Method.GET))
        assert exchange.namespace == "default-ns"

    def test_operation_namespace_wins(self) -> None:
        builder = RequestBuilder(EndpointResolver(ENDPOINT), default_namespace="default-ns")
        exchange = builder.build(Operation(method=Method.GET, namespace="ns1"))
        assert exchange.namespace == "ns1"

    def test_empty_namespace_is_explicit(self) -> None:
        """An explicit empty namespace is kept, not replaced by the default."""
        builder = RequestBuilder(EndpointResolver(ENDPOINT), default_namespace="default-ns")
        exchange = builder.build(Operation(method=Method.GET, namespace=""))
        assert exchange.namespace == ""

    def test_no_namespace_at_all(self) -> None:
        exchange = RequestBuilder(EndpointResolver(ENDPOINT)).build(Operation(method=Method.GET))
        assert PROPERTY_NAMESPACE not in exchange.properties
        assert exchange.namespace is None

    def test_headers_and_properties_copied(self) -> None:
        operation = Operation(
            method=Method.GET,
            path="/bucket/key",
            namespace="ns1",
            query={"p": ["v"]},
            headers={"X": ["a", "b"], "Range": ["bytes=0-1"]},
            properties={"hint": 1},
        )
        exchange = RequestBuilder(EndpointResolver(ENDPOINT)).build(operation)

        assert exchange.method == "GET"
        assert str(exchange.url) == "http://ecs.example.com:9020/bucket/key?p=v"
        assert exchange.headers == [("X", "a"), ("X", "b"), ("Range", "bytes=0-1")]
        assert exchange.properties["hint"] == 1
        assert exchange.operation is operation

    def test_exchange_properties_are_a_copy(self) -> None:
        operation = Operation(method=Method.GET, properties={"hint": 1})
        exchange = RequestBuilder(EndpointResolver(ENDPOINT)).build(operation)
        exchange.properties["hint"] = 2
        assert operation.properties["hint"] == 1
