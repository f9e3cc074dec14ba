"""S3 result and request-document models.

Plain data containers. XML documents map onto pydantic models through field
aliases equal to the S3 element names; ``XmlModel.from_xml`` and
``XmlModel.to_xml`` go through ``xml_body``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from s3_exchange.models import ObjectResponse
from s3_exchange.xml_body import S3_XML_NAMESPACE, dict_to_xml, xml_to_dict

USER_METADATA_PREFIX = "x-amz-meta-"
GRANT_HEADER_PREFIX = "x-amz-grant-"


def _unwrap_list(value: Any, tag: str) -> Any:
    """Unwrap ``<Buckets><Bucket/>...</Buckets>`` style containers to a list."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = value.get(tag)
        if value is None:
            return []
    if not isinstance(value, list):
        return [value]
    return value


class XmlModel(ObjectResponse):
    """A model that is carried as an XML document on the wire."""

    xml_root: ClassVar[str]
    # Tags that must always decode as lists (see xml_body.xml_to_dict).
    xml_lists: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def from_xml(cls, body: bytes) -> Self:
        """Decode an XML document whose root element must be ``xml_root``.

        Raises:
            ET.ParseError: If the body is not XML.
            ValueError: If the root element is not ``xml_root``.
            pydantic.ValidationError: If the fields do not validate.
        """
        document = xml_to_dict(body, force_list=cls.xml_lists)
        root = next(iter(document))
        if root != cls.xml_root:
            raise ValueError(f"expected <{cls.xml_root}> document, got <{root}>")
        return cls._from_root_value(document[root])

    @classmethod
    def _from_root_value(cls, value: Any) -> Self:
        return cls.model_validate(value if isinstance(value, dict) else {})

    def to_xml(self) -> bytes:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"headers"})
        return dict_to_xml({self.xml_root: data}, namespace=S3_XML_NAMESPACE)


class _Element(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Service / bucket listings
# =============================================================================


class Owner(_Element):
    id: str | None = Field(default=None, alias="ID")
    display_name: str | None = Field(default=None, alias="DisplayName")


class Bucket(_Element):
    name: str = Field(alias="Name")
    creation_date: datetime | None = Field(default=None, alias="CreationDate")


class ListBucketsResult(XmlModel):
    xml_root: ClassVar[str] = "ListAllMyBucketsResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Bucket"})

    owner: Owner | None = Field(default=None, alias="Owner")
    buckets: list[Bucket] = Field(default_factory=list, alias="Buckets")

    @field_validator("buckets", mode="before")
    @classmethod
    def unwrap_buckets(cls, v: Any) -> Any:
        return _unwrap_list(v, "Bucket")


class ListDataNode(XmlModel):
    """ECS data node listing (``GET /?endpoint``)."""

    xml_root: ClassVar[str] = "ListDataNode"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"DataNodes"})

    data_nodes: list[str] = Field(default_factory=list, alias="DataNodes")
    version_info: str | None = Field(default=None, alias="VersionInfo")


class S3Object(_Element):
    key: str = Field(alias="Key")
    last_modified: datetime | None = Field(default=None, alias="LastModified")
    etag: str | None = Field(default=None, alias="ETag")
    size: int = Field(default=0, alias="Size")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    owner: Owner | None = Field(default=None, alias="Owner")


class CommonPrefix(_Element):
    prefix: str | None = Field(default=None, alias="Prefix")


class ListObjectsResult(XmlModel):
    xml_root: ClassVar[str] = "ListBucketResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Contents", "CommonPrefixes"})

    bucket_name: str | None = Field(default=None, alias="Name")
    prefix: str | None = Field(default=None, alias="Prefix")
    marker: str | None = Field(default=None, alias="Marker")
    next_marker: str | None = Field(default=None, alias="NextMarker")
    delimiter: str | None = Field(default=None, alias="Delimiter")
    max_keys: int | None = Field(default=None, alias="MaxKeys")
    truncated: bool = Field(default=False, alias="IsTruncated")
    objects: list[S3Object] = Field(default_factory=list, alias="Contents")
    common_prefixes: list[CommonPrefix] = Field(default_factory=list, alias="CommonPrefixes")


class ObjectVersion(_Element):
    key: str = Field(alias="Key")
    version_id: str | None = Field(default=None, alias="VersionId")
    latest: bool = Field(default=False, alias="IsLatest")
    last_modified: datetime | None = Field(default=None, alias="LastModified")
    etag: str | None = Field(default=None, alias="ETag")
    size: int = Field(default=0, alias="Size")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    owner: Owner | None = Field(default=None, alias="Owner")


class DeleteMarker(_Element):
    key: str = Field(alias="Key")
    version_id: str | None = Field(default=None, alias="VersionId")
    latest: bool = Field(default=False, alias="IsLatest")
    last_modified: datetime | None = Field(default=None, alias="LastModified")
    owner: Owner | None = Field(default=None, alias="Owner")


class ListVersionsResult(XmlModel):
    """``GET /bucket?versions``.

    Versions and delete markers come back as separate lists; their relative
    order is not kept.
    """

    xml_root: ClassVar[str] = "ListVersionsResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Version", "DeleteMarker", "CommonPrefixes"})

    bucket_name: str | None = Field(default=None, alias="Name")
    prefix: str | None = Field(default=None, alias="Prefix")
    key_marker: str | None = Field(default=None, alias="KeyMarker")
    version_id_marker: str | None = Field(default=None, alias="VersionIdMarker")
    next_key_marker: str | None = Field(default=None, alias="NextKeyMarker")
    next_version_id_marker: str | None = Field(default=None, alias="NextVersionIdMarker")
    delimiter: str | None = Field(default=None, alias="Delimiter")
    max_keys: int | None = Field(default=None, alias="MaxKeys")
    truncated: bool = Field(default=False, alias="IsTruncated")
    versions: list[ObjectVersion] = Field(default_factory=list, alias="Version")
    delete_markers: list[DeleteMarker] = Field(default_factory=list, alias="DeleteMarker")
    common_prefixes: list[CommonPrefix] = Field(default_factory=list, alias="CommonPrefixes")


# =============================================================================
# Object results
# =============================================================================


class PutObjectResult(ObjectResponse):
    """Header-only result of a PUT (ETag, version, ECS append offset)."""

    @property
    def etag(self) -> str | None:
        return self.first_header("etag")

    @property
    def version_id(self) -> str | None:
        return self.first_header("x-amz-version-id")

    @property
    def append_offset(self) -> int | None:
        value = self.first_header("x-emc-append-offset")
        return int(value) if value is not None else None


class CopyObjectResult(XmlModel):
    xml_root: ClassVar[str] = "CopyObjectResult"

    etag: str | None = Field(default=None, alias="ETag")
    last_modified: datetime | None = Field(default=None, alias="LastModified")

    @property
    def version_id(self) -> str | None:
        return self.first_header("x-amz-version-id")


class S3ObjectMetadata(ObjectResponse):
    """Object metadata as carried in response (and request) headers."""

    content_type: str | None = None
    content_length: int | None = None
    etag: str | None = None
    last_modified: str | None = None
    user_metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_headers(cls, headers: dict[str, list[str]]) -> S3ObjectMetadata:
        def first(name: str) -> str | None:
            values = headers.get(name)
            return values[0] if values else None

        length = first("content-length")
        return cls(
            headers=headers,
            content_type=first("content-type"),
            content_length=int(length) if length is not None else None,
            etag=first("etag"),
            last_modified=first("last-modified"),
            user_metadata={
                name[len(USER_METADATA_PREFIX):]: values[0]
                for name, values in headers.items()
                if name.startswith(USER_METADATA_PREFIX) and values
            },
        )

    def to_headers(self) -> dict[str, list[str]]:
        """Request headers that set this metadata on PUT or copy."""
        headers: dict[str, list[str]] = {}
        if self.content_type is not None:
            headers["Content-Type"] = [self.content_type]
        for name, value in self.user_metadata.items():
            headers[f"{USER_METADATA_PREFIX}{name}"] = [value]
        return headers


class GetObjectResult(ObjectResponse):
    """An object body decoded as the requested type, plus its headers."""

    object: Any = None

    @property
    def metadata(self) -> S3ObjectMetadata:
        return S3ObjectMetadata.from_headers(self.headers)


# =============================================================================
# Bucket and object configuration
# =============================================================================


class Grantee(_Element):
    type: str | None = Field(default=None, alias="@type")
    id: str | None = Field(default=None, alias="ID")
    display_name: str | None = Field(default=None, alias="DisplayName")
    uri: str | None = Field(default=None, alias="URI")
    email_address: str | None = Field(default=None, alias="EmailAddress")

    def header_value(self) -> str:
        """The grantee as written in an ``x-amz-grant-*`` header."""
        if self.id is not None:
            return f'id="{self.id}"'
        if self.uri is not None:
            return f'uri="{self.uri}"'
        if self.email_address is not None:
            return f'emailAddress="{self.email_address}"'
        raise ValueError("grantee has no id, uri or email address")


class Grant(_Element):
    grantee: Grantee = Field(alias="Grantee")
    permission: str = Field(alias="Permission")


class AccessControlList(XmlModel):
    """A bucket or object ACL.

    Read from ``<AccessControlPolicy>`` documents; written as
    ``x-amz-grant-*`` request headers (see ``grant_headers``).
    """

    xml_root: ClassVar[str] = "AccessControlPolicy"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Grant"})

    owner: Owner | None = Field(default=None, alias="Owner")
    grants: list[Grant] = Field(default_factory=list, alias="AccessControlList")

    @field_validator("grants", mode="before")
    @classmethod
    def unwrap_grants(cls, v: Any) -> Any:
        return _unwrap_list(v, "Grant")

    def grant_headers(self) -> dict[str, list[str]]:
        """One ``x-amz-grant-<permission>`` header per permission."""
        grantees: dict[str, list[str]] = {}
        for grant in self.grants:
            name = f"{GRANT_HEADER_PREFIX}{grant.permission.lower().replace('_', '-')}"
            grantees.setdefault(name, []).append(grant.grantee.header_value())
        return {name: [", ".join(values)] for name, values in grantees.items()}


class VersioningConfiguration(XmlModel):
    xml_root: ClassVar[str] = "VersioningConfiguration"

    status: str | None = Field(default=None, alias="Status", description="Enabled or Suspended")
    mfa_delete: str | None = Field(default=None, alias="MfaDelete")


class LocationConstraint(XmlModel):
    """``GET /bucket?location``; the region is the root element's text."""

    xml_root: ClassVar[str] = "LocationConstraint"

    region: str | None = None

    @classmethod
    def _from_root_value(cls, value: Any) -> Self:
        return cls(region=value if isinstance(value, str) else None)


class CorsRule(_Element):
    id: str | None = Field(default=None, alias="ID")
    allowed_origins: list[str] = Field(default_factory=list, alias="AllowedOrigin")
    allowed_methods: list[str] = Field(default_factory=list, alias="AllowedMethod")
    allowed_headers: list[str] = Field(default_factory=list, alias="AllowedHeader")
    expose_headers: list[str] = Field(default_factory=list, alias="ExposeHeader")
    max_age_seconds: int | None = Field(default=None, alias="MaxAgeSeconds")


class CorsConfiguration(XmlModel):
    xml_root: ClassVar[str] = "CORSConfiguration"
    xml_lists: ClassVar[frozenset[str]] = frozenset(
        {"CORSRule", "AllowedOrigin", "AllowedMethod", "AllowedHeader", "ExposeHeader"}
    )

    rules: list[CorsRule] = Field(default_factory=list, alias="CORSRule")


class Expiration(_Element):
    days: int | None = Field(default=None, alias="Days")
    date: datetime | None = Field(default=None, alias="Date")


class LifecycleRule(_Element):
    id: str | None = Field(default=None, alias="ID")
    # S3 requires the element even when empty.
    prefix: str | None = Field(default="", alias="Prefix")
    status: str = Field(default="Enabled", alias="Status")
    expiration: Expiration | None = Field(default=None, alias="Expiration")


class LifecycleConfiguration(XmlModel):
    xml_root: ClassVar[str] = "LifecycleConfiguration"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Rule"})

    rules: list[LifecycleRule] = Field(default_factory=list, alias="Rule")


# =============================================================================
# Multi-object delete
# =============================================================================


class ObjectKey(_Element):
    key: str = Field(alias="Key")
    version_id: str | None = Field(default=None, alias="VersionId")


class DeleteObjects(XmlModel):
    """The ``<Delete>`` request document."""

    xml_root: ClassVar[str] = "Delete"

    objects: list[ObjectKey] = Field(default_factory=list, alias="Object")
    quiet: bool | None = Field(default=None, alias="Quiet")


class DeletedObject(_Element):
    key: str = Field(alias="Key")
    version_id: str | None = Field(default=None, alias="VersionId")
    delete_marker: bool | None = Field(default=None, alias="DeleteMarker")
    delete_marker_version_id: str | None = Field(default=None, alias="DeleteMarkerVersionId")


class DeleteError(_Element):
    key: str | None = Field(default=None, alias="Key")
    version_id: str | None = Field(default=None, alias="VersionId")
    code: str | None = Field(default=None, alias="Code")
    message: str | None = Field(default=None, alias="Message")


class DeleteObjectsResult(XmlModel):
    xml_root: ClassVar[str] = "DeleteResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Deleted", "Error"})

    deleted: list[DeletedObject] = Field(default_factory=list, alias="Deleted")
    errors: list[DeleteError] = Field(default_factory=list, alias="Error")


# =============================================================================
# Multipart upload
# =============================================================================


class InitiateMultipartUploadResult(XmlModel):
    xml_root: ClassVar[str] = "InitiateMultipartUploadResult"

    bucket_name: str | None = Field(default=None, alias="Bucket")
    key: str | None = Field(default=None, alias="Key")
    upload_id: str = Field(alias="UploadId")


class MultipartPartETag(_Element):
    part_number: int = Field(alias="PartNumber")
    etag: str = Field(alias="ETag")


class CompleteMultipartUpload(XmlModel):
    """The ``<CompleteMultipartUpload>`` request document."""

    xml_root: ClassVar[str] = "CompleteMultipartUpload"

    parts: list[MultipartPartETag] = Field(default_factory=list, alias="Part")

    @field_validator("parts")
    @classmethod
    def sort_parts(cls, v: list[MultipartPartETag]) -> list[MultipartPartETag]:
        # S3 rejects part lists that are not in ascending order.
        return sorted(v, key=lambda part: part.part_number)


class CompleteMultipartUploadResult(XmlModel):
    xml_root: ClassVar[str] = "CompleteMultipartUploadResult"

    location: str | None = Field(default=None, alias="Location")
    bucket_name: str | None = Field(default=None, alias="Bucket")
    key: str | None = Field(default=None, alias="Key")
    etag: str | None = Field(default=None, alias="ETag")


class CopyPartResult(XmlModel):
    """Result of copying a byte range of an object into an upload part."""

    xml_root: ClassVar[str] = "CopyPartResult"

    etag: str | None = Field(default=None, alias="ETag")
    last_modified: datetime | None = Field(default=None, alias="LastModified")
    # Not in the document; filled in from the request.
    part_number: int | None = None

    def part_etag(self) -> MultipartPartETag:
        if self.part_number is None or self.etag is None:
            raise ValueError("copy part result needs a part number and an ETag")
        return MultipartPartETag(part_number=self.part_number, etag=self.etag)


class MultipartUpload(_Element):
    key: str = Field(alias="Key")
    upload_id: str = Field(alias="UploadId")
    initiator: Owner | None = Field(default=None, alias="Initiator")
    owner: Owner | None = Field(default=None, alias="Owner")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    initiated: datetime | None = Field(default=None, alias="Initiated")


class ListMultipartUploadsResult(XmlModel):
    xml_root: ClassVar[str] = "ListMultipartUploadsResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Upload", "CommonPrefixes"})

    bucket_name: str | None = Field(default=None, alias="Bucket")
    prefix: str | None = Field(default=None, alias="Prefix")
    delimiter: str | None = Field(default=None, alias="Delimiter")
    key_marker: str | None = Field(default=None, alias="KeyMarker")
    upload_id_marker: str | None = Field(default=None, alias="UploadIdMarker")
    next_key_marker: str | None = Field(default=None, alias="NextKeyMarker")
    next_upload_id_marker: str | None = Field(default=None, alias="NextUploadIdMarker")
    max_uploads: int | None = Field(default=None, alias="MaxUploads")
    truncated: bool = Field(default=False, alias="IsTruncated")
    uploads: list[MultipartUpload] = Field(default_factory=list, alias="Upload")
    common_prefixes: list[CommonPrefix] = Field(default_factory=list, alias="CommonPrefixes")


class MultipartPart(_Element):
    part_number: int = Field(alias="PartNumber")
    last_modified: datetime | None = Field(default=None, alias="LastModified")
    etag: str | None = Field(default=None, alias="ETag")
    size: int = Field(default=0, alias="Size")


class ListPartsResult(XmlModel):
    xml_root: ClassVar[str] = "ListPartsResult"
    xml_lists: ClassVar[frozenset[str]] = frozenset({"Part"})

    bucket_name: str | None = Field(default=None, alias="Bucket")
    key: str | None = Field(default=None, alias="Key")
    upload_id: str | None = Field(default=None, alias="UploadId")
    initiator: Owner | None = Field(default=None, alias="Initiator")
    owner: Owner | None = Field(default=None, alias="Owner")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    part_number_marker: int | None = Field(default=None, alias="PartNumberMarker")
    next_part_number_marker: int | None = Field(default=None, alias="NextPartNumberMarker")
    max_parts: int | None = Field(default=None, alias="MaxParts")
    truncated: bool = Field(default=False, alias="IsTruncated")
    parts: list[MultipartPart] = Field(default_factory=list, alias="Part")
