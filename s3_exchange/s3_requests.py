"""Operation factories for the S3 (and ECS) API.

Each function returns an Operation or EntityOperation ready for the
executor. Keys are left unescaped here; the endpoint resolver percent-encodes
paths.
"""

from __future__ import annotations

import base64
import hashlib
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Iterable
from urllib.parse import quote

from s3_exchange.models import EntityOperation, Method, Operation
from s3_exchange.s3_models import (
    AccessControlList,
    CompleteMultipartUpload,
    CorsConfiguration,
    DeleteObjects,
    LifecycleConfiguration,
    MultipartPartETag,
    ObjectKey,
    S3ObjectMetadata,
    VersioningConfiguration,
    XmlModel,
)

XML_CONTENT_TYPE = "application/xml"

AMZ_ACL = "x-amz-acl"
AMZ_COPY_SOURCE = "x-amz-copy-source"
AMZ_SOURCE_MODIFIED_SINCE = "x-amz-copy-source-if-modified-since"
AMZ_SOURCE_UNMODIFIED_SINCE = "x-amz-copy-source-if-unmodified-since"
AMZ_SOURCE_MATCH = "x-amz-copy-source-if-match"
AMZ_SOURCE_NONE_MATCH = "x-amz-copy-source-if-none-match"
AMZ_METADATA_DIRECTIVE = "x-amz-metadata-directive"
AMZ_SOURCE_RANGE = "x-amz-copy-source-range"

# ECS appends when the range starts at -1.
APPEND_RANGE = "bytes=-1-"


def http_date(value: datetime) -> str:
    """Format a datetime as an RFC 7231 HTTP date (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def byte_range(first: int, last: int | None = None) -> str:
    """Render a ``Range`` header value: ``bytes=first-last`` or ``bytes=first-``."""
    return f"bytes={first}-" if last is None else f"bytes={first}-{last}"


def bucket_path(bucket: str) -> str:
    return f"/{bucket}"


def object_path(bucket: str, key: str) -> str:
    return f"/{bucket}/{key}"


def content_md5(document: XmlModel) -> str:
    """Base64 MD5 of a request document, for the ``Content-MD5`` header."""
    return base64.b64encode(hashlib.md5(document.to_xml()).digest()).decode("ascii")


def _query(subresource: str | None, *params: tuple[str, Any]) -> dict[str, list[str]]:
    """A bare subresource plus every parameter that is not None."""
    query: dict[str, list[str]] = {subresource: [""]} if subresource else {}
    for name, value in params:
        if value is not None:
            query[name] = [str(value)]
    return query


def _apply_acl(
    operation: Operation,
    acl: AccessControlList | None,
    canned_acl: str | None,
) -> None:
    if acl is not None:
        for name, values in acl.grant_headers().items():
            operation.headers[name] = list(values)
    if canned_acl is not None:
        operation.put_header(AMZ_ACL, canned_acl)


def _apply_conditions(
    operation: Operation,
    if_match: str | None,
    if_none_match: str | None,
    if_modified_since: datetime | None,
    if_unmodified_since: datetime | None,
) -> None:
    if if_match is not None:
        operation.put_header("If-Match", if_match)
    if if_none_match is not None:
        operation.put_header("If-None-Match", if_none_match)
    if if_modified_since is not None:
        operation.put_header("If-Modified-Since", http_date(if_modified_since))
    if if_unmodified_since is not None:
        operation.put_header("If-Unmodified-Since", http_date(if_unmodified_since))


# =============================================================================
# Service and buckets
# =============================================================================


def list_data_nodes_request() -> Operation:
    return Operation(method=Method.GET, path="/", query={"endpoint": [""]})


def list_buckets_request() -> Operation:
    return Operation(method=Method.GET, path="/")


def head_bucket_request(bucket: str) -> Operation:
    return Operation(method=Method.HEAD, path=bucket_path(bucket))


def create_bucket_request(bucket: str, canned_acl: str | None = None) -> Operation:
    operation = Operation(method=Method.PUT, path=bucket_path(bucket))
    if canned_acl is not None:
        operation.put_header(AMZ_ACL, canned_acl)
    return operation


def delete_bucket_request(bucket: str) -> Operation:
    return Operation(method=Method.DELETE, path=bucket_path(bucket))


def list_objects_request(
    bucket: str,
    prefix: str | None = None,
    marker: str | None = None,
    max_keys: int | None = None,
    delimiter: str | None = None,
) -> Operation:
    query = _query(
        None,
        ("prefix", prefix),
        ("marker", marker),
        ("max-keys", max_keys),
        ("delimiter", delimiter),
    )
    return Operation(method=Method.GET, path=bucket_path(bucket), query=query)


def list_versions_request(
    bucket: str,
    prefix: str | None = None,
    key_marker: str | None = None,
    version_id_marker: str | None = None,
    max_keys: int | None = None,
    delimiter: str | None = None,
) -> Operation:
    query = _query(
        "versions",
        ("prefix", prefix),
        ("key-marker", key_marker),
        ("version-id-marker", version_id_marker),
        ("max-keys", max_keys),
        ("delimiter", delimiter),
    )
    return Operation(method=Method.GET, path=bucket_path(bucket), query=query)


# =============================================================================
# Bucket and object configuration
# =============================================================================


def bucket_subresource_request(method: Method, bucket: str, subresource: str) -> Operation:
    """A bodiless request on ``/bucket?<subresource>`` (acl, cors, location...)."""
    return Operation(method=method, path=bucket_path(bucket), query={subresource: [""]})


def set_bucket_acl_request(
    bucket: str,
    acl: AccessControlList | None = None,
    canned_acl: str | None = None,
) -> Operation:
    """Replace a bucket ACL with explicit grants or a canned ACL (one of them)."""
    if (acl is None) == (canned_acl is None):
        raise ValueError("exactly one of acl and canned_acl is required")
    operation = bucket_subresource_request(Method.PUT, bucket, "acl")
    _apply_acl(operation, acl, canned_acl)
    return operation


def get_object_acl_request(bucket: str, key: str) -> Operation:
    return Operation(method=Method.GET, path=object_path(bucket, key), query={"acl": [""]})


def set_object_acl_request(
    bucket: str,
    key: str,
    acl: AccessControlList | None = None,
    canned_acl: str | None = None,
) -> Operation:
    if (acl is None) == (canned_acl is None):
        raise ValueError("exactly one of acl and canned_acl is required")
    operation = Operation(method=Method.PUT, path=object_path(bucket, key), query={"acl": [""]})
    _apply_acl(operation, acl, canned_acl)
    return operation


def _bucket_document_request(
    bucket: str,
    subresource: str,
    document: XmlModel,
    checksum: bool = False,
) -> EntityOperation:
    operation = EntityOperation(
        method=Method.PUT,
        path=bucket_path(bucket),
        query={subresource: [""]},
        entity=document,
        content_type=XML_CONTENT_TYPE,
    )
    if checksum:
        operation.put_header("Content-MD5", content_md5(document))
    return operation


def set_bucket_versioning_request(bucket: str, configuration: VersioningConfiguration) -> EntityOperation:
    return _bucket_document_request(bucket, "versioning", configuration)


def set_bucket_cors_request(bucket: str, configuration: CorsConfiguration) -> EntityOperation:
    return _bucket_document_request(bucket, "cors", configuration, checksum=True)


def set_bucket_lifecycle_request(bucket: str, configuration: LifecycleConfiguration) -> EntityOperation:
    return _bucket_document_request(bucket, "lifecycle", configuration, checksum=True)


# =============================================================================
# Objects
# =============================================================================


def put_object_request(
    bucket: str,
    key: str,
    content: Any,
    content_type: str | None = None,
    content_length: int | None = None,
    metadata: S3ObjectMetadata | None = None,
    range: str | None = None,
) -> EntityOperation:
    """PUT an object. *range* updates part of an existing object (ECS)."""
    operation = EntityOperation(
        method=Method.PUT,
        path=object_path(bucket, key),
        entity=content,
        content_length=content_length,
    )
    if metadata is not None:
        for name, values in metadata.to_headers().items():
            if name.lower() != "content-type":
                operation.headers[name] = list(values)
        content_type = content_type or metadata.content_type
    operation.content_type = content_type
    if range is not None:
        operation.put_header("Range", range)
    return operation


def _copy_source(bucket: str, key: str, version_id: str | None) -> str:
    source = quote(object_path(bucket, key), safe="/~")
    if version_id is not None:
        source = f"{source}?versionId={quote(version_id, safe='')}"
    return source


def _apply_source_conditions(
    operation: Operation,
    if_modified_since: datetime | None,
    if_unmodified_since: datetime | None,
    if_match: str | None,
    if_none_match: str | None,
) -> None:
    if if_modified_since is not None:
        operation.put_header(AMZ_SOURCE_MODIFIED_SINCE, http_date(if_modified_since))
    if if_unmodified_since is not None:
        operation.put_header(AMZ_SOURCE_UNMODIFIED_SINCE, http_date(if_unmodified_since))
    if if_match is not None:
        operation.put_header(AMZ_SOURCE_MATCH, if_match)
    if if_none_match is not None:
        operation.put_header(AMZ_SOURCE_NONE_MATCH, if_none_match)


def copy_object_request(
    source_bucket: str,
    source_key: str,
    bucket: str,
    key: str,
    *,
    source_version_id: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
    if_match: str | None = None,
    if_none_match: str | None = None,
    metadata: S3ObjectMetadata | None = None,
    acl: AccessControlList | None = None,
    canned_acl: str | None = None,
) -> Operation:
    """Server-side copy. Supplying *metadata* replaces the source metadata."""
    operation = Operation(method=Method.PUT, path=object_path(bucket, key))
    operation.put_header(AMZ_COPY_SOURCE, _copy_source(source_bucket, source_key, source_version_id))
    _apply_source_conditions(operation, if_modified_since, if_unmodified_since, if_match, if_none_match)
    if metadata is not None:
        operation.put_header(AMZ_METADATA_DIRECTIVE, "REPLACE")
        for name, values in metadata.to_headers().items():
            operation.headers[name] = list(values)
    _apply_acl(operation, acl, canned_acl)
    return operation


def get_object_request(
    bucket: str,
    key: str,
    *,
    version_id: str | None = None,
    range: str | None = None,
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
) -> Operation:
    query = {"versionId": [version_id]} if version_id is not None else {}
    operation = Operation(method=Method.GET, path=object_path(bucket, key), query=query)
    if range is not None:
        operation.put_header("Range", range)
    _apply_conditions(operation, if_match, if_none_match, if_modified_since, if_unmodified_since)
    return operation


def head_object_request(
    bucket: str,
    key: str,
    *,
    version_id: str | None = None,
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
) -> Operation:
    query = {"versionId": [version_id]} if version_id is not None else {}
    operation = Operation(method=Method.HEAD, path=object_path(bucket, key), query=query)
    _apply_conditions(operation, if_match, if_none_match, if_modified_since, if_unmodified_since)
    return operation


def delete_object_request(bucket: str, key: str, version_id: str | None = None) -> Operation:
    query = {"versionId": [version_id]} if version_id is not None else {}
    return Operation(method=Method.DELETE, path=object_path(bucket, key), query=query)


def delete_objects_request(
    bucket: str,
    keys: Iterable[str | ObjectKey],
    quiet: bool | None = None,
) -> EntityOperation:
    document = DeleteObjects(
        objects=[k if isinstance(k, ObjectKey) else ObjectKey(key=k) for k in keys],
        quiet=quiet,
    )
    operation = EntityOperation(
        method=Method.POST,
        path=bucket_path(bucket),
        query={"delete": [""]},
        entity=document,
        content_type=XML_CONTENT_TYPE,
    )
    # Multi-object delete is rejected without Content-MD5.
    operation.put_header("Content-MD5", content_md5(document))
    return operation


# =============================================================================
# Multipart upload
# =============================================================================


def initiate_multipart_upload_request(
    bucket: str,
    key: str,
    metadata: S3ObjectMetadata | None = None,
) -> Operation:
    operation = Operation(method=Method.POST, path=object_path(bucket, key), query={"uploads": [""]})
    if metadata is not None:
        for name, values in metadata.to_headers().items():
            operation.headers[name] = list(values)
    return operation


def upload_part_request(
    bucket: str,
    key: str,
    upload_id: str,
    part_number: int,
    content: Any,
    content_length: int | None = None,
) -> EntityOperation:
    return EntityOperation(
        method=Method.PUT,
        path=object_path(bucket, key),
        query={"partNumber": [str(part_number)], "uploadId": [upload_id]},
        entity=content,
        content_length=content_length,
    )


def complete_multipart_upload_request(
    bucket: str,
    key: str,
    upload_id: str,
    parts: Iterable[MultipartPartETag],
) -> EntityOperation:
    return EntityOperation(
        method=Method.POST,
        path=object_path(bucket, key),
        query={"uploadId": [upload_id]},
        entity=CompleteMultipartUpload(parts=list(parts)),
        content_type=XML_CONTENT_TYPE,
    )


def abort_multipart_upload_request(bucket: str, key: str, upload_id: str) -> Operation:
    return Operation(
        method=Method.DELETE,
        path=object_path(bucket, key),
        query={"uploadId": [upload_id]},
    )


def list_multipart_uploads_request(
    bucket: str,
    prefix: str | None = None,
    key_marker: str | None = None,
    upload_id_marker: str | None = None,
    max_uploads: int | None = None,
    delimiter: str | None = None,
) -> Operation:
    query = _query(
        "uploads",
        ("prefix", prefix),
        ("key-marker", key_marker),
        ("upload-id-marker", upload_id_marker),
        ("max-uploads", max_uploads),
        ("delimiter", delimiter),
    )
    return Operation(method=Method.GET, path=bucket_path(bucket), query=query)


def list_parts_request(
    bucket: str,
    key: str,
    upload_id: str,
    max_parts: int | None = None,
    part_number_marker: int | None = None,
) -> Operation:
    query = _query(
        None,
        ("uploadId", upload_id),
        ("max-parts", max_parts),
        ("part-number-marker", part_number_marker),
    )
    return Operation(method=Method.GET, path=object_path(bucket, key), query=query)


def copy_part_request(
    source_bucket: str,
    source_key: str,
    bucket: str,
    key: str,
    upload_id: str,
    part_number: int,
    *,
    source_version_id: str | None = None,
    source_range: tuple[int, int] | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
    if_match: str | None = None,
    if_none_match: str | None = None,
) -> Operation:
    """Copy an object, or the inclusive *source_range* of it, into an upload part."""
    operation = Operation(
        method=Method.PUT,
        path=object_path(bucket, key),
        query={"partNumber": [str(part_number)], "uploadId": [upload_id]},
    )
    operation.put_header(AMZ_COPY_SOURCE, _copy_source(source_bucket, source_key, source_version_id))
    if source_range is not None:
        operation.put_header(AMZ_SOURCE_RANGE, byte_range(*source_range))
    _apply_source_conditions(operation, if_modified_since, if_unmodified_since, if_match, if_none_match)
    return operation
