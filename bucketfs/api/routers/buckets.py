"""Bucket API router.

Service-level operations on ``/`` and ``/{bucket}``: listing, creation,
deletion, sub-resource queries and multi-object delete.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from bucketfs.api import xml
from bucketfs.api.deps import get_gateway_service
from bucketfs.services.gateway_service import GatewayService

router = APIRouter()

# Query parameters that turn GET /{bucket} into a ListObjects call.
LISTING_PARAMS = ("prefix", "marker", "max-keys", "list-type", "encoding-type")


@router.get("/", summary="List buckets")
def list_buckets(service: GatewayService = Depends(get_gateway_service)) -> Response:
    buckets = service.list_buckets()
    return xml.to_xml_response(xml.list_buckets_document(buckets))


@router.put("/{bucket}", summary="Create bucket")
@router.put("/{bucket}/", include_in_schema=False)
def create_bucket(
    bucket: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    created = service.create_bucket(bucket)
    return xml.to_xml_response(
        xml.list_buckets_document([created]),
        headers={"Location": f"/{bucket}"},
    )


@router.head("/{bucket}", summary="Check bucket")
@router.head("/{bucket}/", include_in_schema=False)
def head_bucket(
    bucket: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    service.head_bucket(bucket)
    return Response(status_code=status.HTTP_200_OK)


@router.get("/{bucket}", summary="Bucket info, sub-resources or object listing")
@router.get("/{bucket}/", include_in_schema=False)
def get_bucket(
    bucket: str,
    request: Request,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    params = request.query_params

    # Sub-resources answer with fixed values; they do not inspect the bucket.
    if "location" in params:
        location = service.bucket_location(bucket)
        return xml.to_xml_response(xml.location_document(location.location_constraint))
    if "object-lock" in params:
        return xml.to_xml_response(
            xml.bucket_subresource_document(service.bucket_object_lock(bucket))
        )
    if "delimiter" in params:
        return xml.to_xml_response(
            xml.bucket_subresource_document(service.bucket_delimiter(bucket))
        )

    if any(name in params for name in LISTING_PARAMS):
        listing = service.list_objects(
            bucket,
            prefix=params.get("prefix"),
            marker=params.get("marker"),
            max_keys=params.get("max-keys"),
        )
        return xml.to_xml_response(xml.list_objects_document(listing))

    service.head_bucket(bucket)
    return PlainTextResponse(f"Bucket '{bucket}' exists and is accessible.")


@router.delete("/{bucket}", status_code=204, summary="Delete bucket")
@router.delete("/{bucket}/", status_code=204, include_in_schema=False)
def delete_bucket(
    bucket: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    service.delete_bucket(bucket)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{bucket}", summary="Delete multiple objects")
@router.post("/{bucket}/", include_in_schema=False)
async def delete_objects(
    bucket: str,
    request: Request,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    if "delete" not in request.query_params:
        raise HTTPException(
            status_code=405,
            detail="POST on a bucket requires the ?delete sub-resource",
        )

    await run_in_threadpool(service.head_bucket, bucket)
    keys, quiet = xml.parse_delete_request(await request.body())
    result = await run_in_threadpool(service.delete_objects, bucket, keys)
    return xml.to_xml_response(xml.delete_result_document(result, quiet=quiet))
