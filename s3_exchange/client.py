"""S3 client - the public face of the exchange engine.

Wires the endpoint resolver, request builder, executor, hook chain and
materializer together and exposes one method per S3 operation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar

import httpx

from s3_exchange import s3_requests as requests
from s3_exchange.body_writers import BodyWriterRegistry
from s3_exchange.errors import ResponseDecodeError
from s3_exchange.executor import HttpxTransport, RequestExecutor, Transport
from s3_exchange.hooks import ErrorHook, ExchangeHook, NamespaceHook
from s3_exchange.materializer import ResponseMaterializer, S3ErrorRecovery
from s3_exchange.models import (
    ClientConfig,
    Exchange,
    HostListSettings,
    Method,
    ObjectResponse,
    Operation,
)
from s3_exchange.outcomes import BUCKET_EXISTENCE, conditional
from s3_exchange.request_builder import EndpointResolver, RequestBuilder
from s3_exchange.s3_models import (
    AccessControlList,
    CompleteMultipartUploadResult,
    CopyObjectResult,
    CopyPartResult,
    CorsConfiguration,
    DeleteObjectsResult,
    GetObjectResult,
    InitiateMultipartUploadResult,
    LifecycleConfiguration,
    ListBucketsResult,
    ListDataNode,
    ListMultipartUploadsResult,
    ListObjectsResult,
    ListPartsResult,
    ListVersionsResult,
    LocationConstraint,
    MultipartPartETag,
    ObjectKey,
    PutObjectResult,
    S3ObjectMetadata,
    VersioningConfiguration,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HostListProvider(Protocol):
    """The cluster host-list collaborator; polls until terminated."""

    def terminate(self) -> None:
        ...


# (identity, secret_key) -> signing hook
SignerFactory = Callable[[str, str], ExchangeHook]
HostListProviderFactory = Callable[[HostListSettings], HostListProvider]


class S3Client:
    """Synchronous S3 client.

    Usage:
        with S3Client(config, signer_factory=make_signer) as client:
            client.put_object("bucket", "key", b"data")

    The hook chain is ``NamespaceHook``, any application hooks (checksums),
    the signer built from the configured credentials, then ``ErrorHook``.
    ``after_receive`` runs in reverse, so errors are classified before
    anything else sees a response.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Transport | None = None,
        hooks: Sequence[ExchangeHook] = (),
        signer_factory: SignerFactory | None = None,
        host_list_provider: HostListProvider | None = None,
        host_list_factory: HostListProviderFactory | None = None,
        writers: BodyWriterRegistry | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Endpoint, namespace, credential and timeout settings.
            transport: Transport to send exchanges with. When omitted an
                ``httpx.Client`` is created and owned by this client.
            hooks: Application hooks placed between namespace routing and
                signing.
            signer_factory: Builds the signing hook from the configured
                ``identity`` and ``secret_key``. Requires credentials.
            host_list_provider: Load-balancer collaborator terminated by
                ``shutdown()``.
            host_list_factory: Builds the provider from
                ``config.host_list_settings()``. Not called with virtual-host
                addressing, where the host name carries the namespace.
            writers: Body writers (defaults to ``BodyWriterRegistry.default()``).

        Raises:
            ValueError: Both a provider and a provider factory were given, or
                a signer factory was given without credentials.
        """
        if host_list_provider is not None and host_list_factory is not None:
            raise ValueError("pass host_list_provider or host_list_factory, not both")
        if signer_factory is not None and not config.has_credentials:
            raise ValueError("signer_factory needs identity and secret_key in the config")

        self._config = config
        self._writers = writers or BodyWriterRegistry.default()
        self._shut_down = False

        if host_list_factory is not None and not config.use_vhost:
            host_list_provider = host_list_factory(config.host_list_settings())
        self._host_list_provider = host_list_provider

        signers: tuple[ExchangeHook, ...] = ()
        if signer_factory is not None:
            signers = (signer_factory(config.identity, config.secret_key),)
        elif config.has_credentials:
            logger.warning(
                "credentials are configured but no signer factory was given; "
                "requests will be sent unsigned"
            )

        self._http_client: httpx.Client | None = None
        if transport is None:
            self._http_client = httpx.Client(timeout=config.timeout)
            transport = HttpxTransport(self._http_client, self._writers)

        resolver = EndpointResolver(config.endpoint, config.use_vhost)
        chain = (NamespaceHook(config.use_vhost), *hooks, *signers, ErrorHook())
        self._executor = RequestExecutor(
            RequestBuilder(resolver, config.namespace),
            transport,
            hooks=chain,
            writers=self._writers,
        )
        self._materializer = ResponseMaterializer(S3ErrorRecovery())

    def __enter__(self) -> "S3Client":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()

    @property
    def config(self) -> ClientConfig:
        return self._config

    def shutdown(self) -> None:
        """Stop host-list polling and release connections. Safe to call twice."""
        if self._shut_down:
            return
        self._shut_down = True
        try:
            if self._host_list_provider is not None:
                logger.debug("terminating host list provider")
                self._host_list_provider.terminate()
        finally:
            if self._http_client is not None:
                self._http_client.close()

    # -- generic -------------------------------------------------------------

    def execute(self, operation: Operation, target_type: type[T] | None = None) -> T | ObjectResponse:
        """Execute any operation; headers only when *target_type* is None."""
        exchange = self._executor.execute(operation)
        if target_type is None:
            return self._materializer.headers_only(exchange)
        return self._materializer.materialize(exchange, target_type)

    # -- service and buckets -------------------------------------------------

    def list_data_nodes(self) -> ListDataNode:
        return self.execute(requests.list_data_nodes_request(), ListDataNode)

    def list_buckets(self) -> ListBucketsResult:
        return self.execute(requests.list_buckets_request(), ListBucketsResult)

    def bucket_exists(self, bucket: str) -> bool:
        """True if the bucket exists, even when this caller cannot access it."""
        return BUCKET_EXISTENCE.call(self._head_bucket, bucket)

    def _head_bucket(self, bucket: str) -> bool:
        self._executor.execute_and_close(requests.head_bucket_request(bucket))
        return True

    def create_bucket(self, bucket: str, canned_acl: str | None = None) -> None:
        self._executor.execute_and_close(requests.create_bucket_request(bucket, canned_acl))

    def delete_bucket(self, bucket: str) -> None:
        self._executor.execute_and_close(requests.delete_bucket_request(bucket))

    def list_objects(
        self,
        bucket: str,
        prefix: str | None = None,
        marker: str | None = None,
        max_keys: int | None = None,
        delimiter: str | None = None,
    ) -> ListObjectsResult:
        operation = requests.list_objects_request(bucket, prefix, marker, max_keys, delimiter)
        return self.execute(operation, ListObjectsResult)

    def list_versions(
        self,
        bucket: str,
        prefix: str | None = None,
        key_marker: str | None = None,
        version_id_marker: str | None = None,
        max_keys: int | None = None,
        delimiter: str | None = None,
    ) -> ListVersionsResult:
        operation = requests.list_versions_request(
            bucket, prefix, key_marker, version_id_marker, max_keys, delimiter
        )
        return self.execute(operation, ListVersionsResult)

    # -- bucket configuration ------------------------------------------------

    def _get_bucket_config(self, bucket: str, subresource: str, target_type: type[T]) -> T:
        operation = requests.bucket_subresource_request(Method.GET, bucket, subresource)
        return self.execute(operation, target_type)

    def _delete_bucket_config(self, bucket: str, subresource: str) -> None:
        operation = requests.bucket_subresource_request(Method.DELETE, bucket, subresource)
        self._executor.execute_and_close(operation)

    def get_bucket_acl(self, bucket: str) -> AccessControlList:
        return self._get_bucket_config(bucket, "acl", AccessControlList)

    def set_bucket_acl(
        self,
        bucket: str,
        acl: AccessControlList | None = None,
        canned_acl: str | None = None,
    ) -> None:
        self._executor.execute_and_close(requests.set_bucket_acl_request(bucket, acl, canned_acl))

    def get_bucket_location(self, bucket: str) -> LocationConstraint:
        return self._get_bucket_config(bucket, "location", LocationConstraint)

    def get_bucket_versioning(self, bucket: str) -> VersioningConfiguration:
        return self._get_bucket_config(bucket, "versioning", VersioningConfiguration)

    def set_bucket_versioning(self, bucket: str, configuration: VersioningConfiguration) -> None:
        self._executor.execute_and_close(
            requests.set_bucket_versioning_request(bucket, configuration)
        )

    def get_bucket_cors(self, bucket: str) -> CorsConfiguration:
        return self._get_bucket_config(bucket, "cors", CorsConfiguration)

    def set_bucket_cors(self, bucket: str, configuration: CorsConfiguration) -> None:
        self._executor.execute_and_close(requests.set_bucket_cors_request(bucket, configuration))

    def delete_bucket_cors(self, bucket: str) -> None:
        self._delete_bucket_config(bucket, "cors")

    def get_bucket_lifecycle(self, bucket: str) -> LifecycleConfiguration:
        return self._get_bucket_config(bucket, "lifecycle", LifecycleConfiguration)

    def set_bucket_lifecycle(self, bucket: str, configuration: LifecycleConfiguration) -> None:
        self._executor.execute_and_close(
            requests.set_bucket_lifecycle_request(bucket, configuration)
        )

    def delete_bucket_lifecycle(self, bucket: str) -> None:
        self._delete_bucket_config(bucket, "lifecycle")

    # -- objects -------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        content: Any,
        content_type: str | None = None,
        content_length: int | None = None,
        metadata: S3ObjectMetadata | None = None,
        range: str | None = None,
    ) -> PutObjectResult:
        operation = requests.put_object_request(
            bucket, key, content, content_type, content_length, metadata, range
        )
        return self._put(operation)[1]

    def _put(self, operation: Operation) -> tuple[Exchange, PutObjectResult]:
        exchange = self._executor.execute(operation)
        return exchange, self._materializer.headers_only(exchange, PutObjectResult)

    def append_object(self, bucket: str, key: str, content: Any) -> int:
        """Append to an object (ECS); returns the offset the content landed at."""
        operation = requests.put_object_request(bucket, key, content, range=requests.APPEND_RANGE)
        exchange, result = self._put(operation)
        try:
            offset = result.append_offset
        except ValueError as e:
            raise ResponseDecodeError(
                f"invalid x-emc-append-offset header: {e}", int, exchange.status_code
            ) from e
        if offset is None:
            raise ResponseDecodeError(
                "append response has no x-emc-append-offset header", int, exchange.status_code
            )
        return offset

    def copy_object(self, operation: Operation) -> CopyObjectResult:
        """Server-side copy; build *operation* with ``s3_requests.copy_object_request``."""
        return self.execute(operation, CopyObjectResult)

    def get_object(
        self,
        bucket: str,
        key: str,
        target_type: type = bytes,
        *,
        version_id: str | None = None,
        range: str | None = None,
        if_match: str | None = None,
        if_none_match: str | None = None,
        if_modified_since: datetime | None = None,
        if_unmodified_since: datetime | None = None,
    ) -> GetObjectResult | None:
        """GET an object; None when an ``If-*`` condition was not met."""
        operation = requests.get_object_request(
            bucket,
            key,
            version_id=version_id,
            range=range,
            if_match=if_match,
            if_none_match=if_none_match,
            if_modified_since=if_modified_since,
            if_unmodified_since=if_unmodified_since,
        )
        return conditional(self._get_object, operation, target_type)

    def _get_object(self, operation: Operation, target_type: type) -> GetObjectResult:
        exchange = self._executor.execute(operation)
        headers = exchange.response_headers
        body = self._materializer.materialize(exchange, target_type)
        return GetObjectResult(headers=headers, object=body)

    def read_object(
        self,
        bucket: str,
        key: str,
        target_type: type = bytes,
        version_id: str | None = None,
    ) -> Any:
        operation = requests.get_object_request(bucket, key, version_id=version_id)
        return self._get_object(operation, target_type).object

    def get_object_metadata(
        self,
        bucket: str,
        key: str,
        *,
        version_id: str | None = None,
        if_match: str | None = None,
        if_none_match: str | None = None,
        if_modified_since: datetime | None = None,
        if_unmodified_since: datetime | None = None,
    ) -> S3ObjectMetadata | None:
        """HEAD an object; None when an ``If-*`` condition was not met."""
        operation = requests.head_object_request(
            bucket,
            key,
            version_id=version_id,
            if_match=if_match,
            if_none_match=if_none_match,
            if_modified_since=if_modified_since,
            if_unmodified_since=if_unmodified_since,
        )
        return conditional(self._head_object, operation)

    def _head_object(self, operation: Operation) -> S3ObjectMetadata:
        exchange = self._executor.execute_and_close(operation)
        return S3ObjectMetadata.from_headers(exchange.response_headers)

    def delete_object(self, bucket: str, key: str) -> None:
        self._executor.execute_and_close(requests.delete_object_request(bucket, key))

    def delete_version(self, bucket: str, key: str, version_id: str) -> None:
        self._executor.execute_and_close(requests.delete_object_request(bucket, key, version_id))

    def delete_objects(
        self,
        bucket: str,
        keys: Iterable[str | ObjectKey],
        quiet: bool | None = None,
    ) -> DeleteObjectsResult:
        operation = requests.delete_objects_request(bucket, keys, quiet)
        return self.execute(operation, DeleteObjectsResult)

    def get_object_acl(self, bucket: str, key: str) -> AccessControlList:
        return self.execute(requests.get_object_acl_request(bucket, key), AccessControlList)

    def set_object_acl(
        self,
        bucket: str,
        key: str,
        acl: AccessControlList | None = None,
        canned_acl: str | None = None,
    ) -> None:
        self._executor.execute_and_close(requests.set_object_acl_request(bucket, key, acl, canned_acl))

    def set_object_metadata(self, bucket: str, key: str, metadata: S3ObjectMetadata) -> None:
        """Replace an object's metadata by copying it onto itself.

        The copy would reset the ACL, so the current grants are read first
        and sent along with the copy.
        """
        acl = self.get_object_acl(bucket, key)
        operation = requests.copy_object_request(bucket, key, bucket, key, metadata=metadata, acl=acl)
        self.copy_object(operation)

    # -- multipart upload ----------------------------------------------------

    def initiate_multipart_upload(
        self,
        bucket: str,
        key: str,
        metadata: S3ObjectMetadata | None = None,
    ) -> str:
        operation = requests.initiate_multipart_upload_request(bucket, key, metadata)
        return self.execute(operation, InitiateMultipartUploadResult).upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        content: Any,
        content_length: int | None = None,
    ) -> MultipartPartETag:
        operation = requests.upload_part_request(
            bucket, key, upload_id, part_number, content, content_length
        )
        exchange, result = self._put(operation)
        if result.etag is None:
            raise ResponseDecodeError(
                "upload part response has no ETag header", MultipartPartETag, exchange.status_code
            )
        return MultipartPartETag(part_number=part_number, etag=result.etag)

    def copy_part(self, operation: Operation) -> CopyPartResult:
        """Copy into an upload part; build *operation* with ``s3_requests.copy_part_request``."""
        result = self.execute(operation, CopyPartResult)
        result.part_number = int(operation.query["partNumber"][0])
        return result

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
    ) -> ListPartsResult:
        operation = requests.list_parts_request(bucket, key, upload_id, max_parts, part_number_marker)
        return self.execute(operation, ListPartsResult)

    def list_multipart_uploads(
        self,
        bucket: str,
        prefix: str | None = None,
        key_marker: str | None = None,
        upload_id_marker: str | None = None,
        max_uploads: int | None = None,
        delimiter: str | None = None,
    ) -> ListMultipartUploadsResult:
        operation = requests.list_multipart_uploads_request(
            bucket, prefix, key_marker, upload_id_marker, max_uploads, delimiter
        )
        return self.execute(operation, ListMultipartUploadsResult)

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Iterable[MultipartPartETag],
    ) -> CompleteMultipartUploadResult:
        operation = requests.complete_multipart_upload_request(bucket, key, upload_id, parts)
        return self.execute(operation, CompleteMultipartUploadResult)

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        self._executor.execute_and_close(
            requests.abort_multipart_upload_request(bucket, key, upload_id)
        )
