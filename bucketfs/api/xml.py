"""S3 XML document builders and parsers."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Iterable, Mapping
from xml.etree.ElementTree import Element, ParseError, SubElement, fromstring, tostring

from fastapi import Response

from bucketfs.infra.storage.client import BucketInfo, ObjectListing
from bucketfs.services.base import MalformedRequestError
from bucketfs.services.gateway_service import BatchDeleteResult, BucketSubresource

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"
XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8"?>\n'
XML_MEDIA_TYPE = "application/xml"

# Upper bound for a multi-object delete request body (S3 allows 1000 keys).
MAX_DELETE_BODY_BYTES = 2 * 1024 * 1024


def format_timestamp(dt: datetime) -> str:
    """Format as RFC 3339 with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def format_http_date(dt: datetime) -> str:
    """Format as an RFC 7231 HTTP date, e.g. Wed, 21 Oct 2015 07:28:00 GMT."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def _create_root(tag: str, *, namespaced: bool = True) -> Element:
    if namespaced:
        return Element(tag, xmlns=S3_NAMESPACE)
    return Element(tag)


def render(root: Element) -> bytes:
    return XML_DECLARATION + tostring(root, encoding="utf-8", xml_declaration=False)


def to_xml_response(
    root: Element,
    status_code: int = 200,
    headers: Mapping[str, str] | None = None,
) -> Response:
    return Response(
        content=render(root),
        status_code=status_code,
        media_type=XML_MEDIA_TYPE,
        headers=dict(headers or {}),
    )


def error_document(
    code: str,
    message: str,
    *,
    request_id: str,
    host_id: str,
    bucket: str | None = None,
) -> Element:
    """Build the S3 error envelope.

    <Error>
        <Code>NoSuchBucket</Code>
        <Message>The specified bucket does not exist</Message>
        <BucketName>mybucket</BucketName>
        <RequestId>4442587FB7D0A2F9</RequestId>
        <HostId>...</HostId>
    </Error>
    """
    root = Element("Error")
    SubElement(root, "Code").text = code
    SubElement(root, "Message").text = message
    if bucket:
        SubElement(root, "BucketName").text = bucket
    SubElement(root, "RequestId").text = request_id
    SubElement(root, "HostId").text = host_id
    return root


def list_buckets_document(buckets: Iterable[BucketInfo]) -> Element:
    """Build ListAllMyBucketsResult.

    <ListAllMyBucketsResult>
        <Buckets>
            <Bucket>
                <Name>mybucket</Name>
                <CreationDate>2024-01-01T00:00:00.000Z</CreationDate>
            </Bucket>
        </Buckets>
    </ListAllMyBucketsResult>
    """
    root = _create_root("ListAllMyBucketsResult")
    buckets_elem = SubElement(root, "Buckets")
    for bucket in buckets:
        bucket_elem = SubElement(buckets_elem, "Bucket")
        SubElement(bucket_elem, "Name").text = bucket.name
        SubElement(bucket_elem, "CreationDate").text = format_timestamp(
            bucket.creation_date
        )
    return root


def location_document(region: str) -> Element:
    root = _create_root("LocationConstraint")
    root.text = region
    return root


def bucket_subresource_document(sub: BucketSubresource) -> Element:
    root = _create_root("Bucket", namespaced=False)
    SubElement(root, "Name").text = sub.name
    SubElement(root, "CreationDate").text = format_timestamp(sub.creation_date)
    if sub.location_constraint:
        SubElement(root, "LocationConstraint").text = sub.location_constraint
    if sub.object_lock_config:
        SubElement(root, "ObjectLockConfiguration").text = sub.object_lock_config
    if sub.object_delimiter:
        SubElement(root, "ObjectDelimiter").text = sub.object_delimiter
    return root


def list_objects_document(listing: ObjectListing) -> Element:
    root = _create_root("ListBucketResult")
    SubElement(root, "Name").text = listing.bucket
    SubElement(root, "Prefix").text = listing.prefix
    SubElement(root, "Marker").text = listing.marker
    if listing.next_marker:
        SubElement(root, "NextMarker").text = listing.next_marker
    SubElement(root, "MaxKeys").text = str(listing.max_keys)
    SubElement(root, "IsTruncated").text = "true" if listing.is_truncated else "false"
    for obj in listing.contents:
        contents = SubElement(root, "Contents")
        SubElement(contents, "Key").text = obj.key
        SubElement(contents, "LastModified").text = format_timestamp(obj.last_modified)
        SubElement(contents, "Size").text = str(obj.size)
        SubElement(contents, "StorageClass").text = "STANDARD"
    return root


def delete_result_document(result: BatchDeleteResult, *, quiet: bool = False) -> Element:
    root = _create_root("DeleteResult")
    if not quiet:
        for key in result.deleted:
            deleted = SubElement(root, "Deleted")
            SubElement(deleted, "Key").text = key
    return root


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_delete_request(body: bytes) -> tuple[list[str], bool]:
    """Parse a multi-object delete request into (keys, quiet).

    Namespaced and bare documents are both accepted.
    """
    if not body:
        raise MalformedRequestError("Request body is empty", code="MalformedXML")
    if len(body) > MAX_DELETE_BODY_BYTES:
        raise MalformedRequestError("Request body is too large", code="MalformedXML")
    if b"<!DOCTYPE" in body or b"<!ENTITY" in body:
        raise MalformedRequestError("DTDs are not allowed", code="MalformedXML")
    try:
        root = fromstring(body)
    except ParseError as exc:
        raise MalformedRequestError(f"Error parsing XML: {exc}", code="MalformedXML") from exc

    if _local_name(root.tag) != "Delete":
        raise MalformedRequestError("Expected a Delete document", code="MalformedXML")

    keys: list[str] = []
    quiet = False
    for child in root:
        name = _local_name(child.tag)
        if name == "Quiet":
            quiet = (child.text or "").strip().lower() == "true"
        elif name == "Object":
            for field in child:
                if _local_name(field.tag) == "Key" and field.text:
                    keys.append(field.text)
    return keys, quiet


PROBE_BODY = b"<Response></Response>"
