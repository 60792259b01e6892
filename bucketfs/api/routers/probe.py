"""Liveness probe answered with a fixed XML body, outside authentication."""

from fastapi import APIRouter, Response

from bucketfs.api.xml import PROBE_BODY, XML_MEDIA_TYPE

router = APIRouter()


@router.get("/probe-bsign{suffix:path}", include_in_schema=False)
@router.head("/probe-bsign{suffix:path}", include_in_schema=False)
def probe() -> Response:
    return Response(content=PROBE_BODY, media_type=XML_MEDIA_TYPE)
