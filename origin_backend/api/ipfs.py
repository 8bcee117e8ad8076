"""IPFS publishing endpoint."""

from fastapi import APIRouter, Depends, Request

from origin_backend.api.deps import get_services, require_api_key
from origin_backend.core.config import settings
from origin_backend.core.errors import InvalidRequest
from origin_backend.core.limiter import limiter
from origin_backend.core.schemas.generation import (
    IpfsContentIds,
    UploadRequest,
    UploadResponse,
)
from origin_backend.services.container import ServiceContainer

router = APIRouter(tags=["ipfs"], dependencies=[Depends(require_api_key)])


@router.post("/upload/ipfs", response_model=UploadResponse)
@limiter.limit(settings.rate_limit_upload_endpoints)
async def upload_to_ipfs(
    request: Request,
    body: UploadRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Pin a generated variant and its metadata, then drop its whole batch.

    Publishing the same filename twice fails with 404 because the first
    success removes the batch.
    """
    if not body.filename:
        raise InvalidRequest("Filename is required")

    asset = await services.publisher.publish(body.filename, body.name, body.description)
    return UploadResponse(
        metadata_url=asset.metadata_url,
        image_url=asset.image_url,
        metadata=asset.metadata,
        ipfs=IpfsContentIds(image_cid=asset.image_cid, metadata_cid=asset.metadata_cid),
    )
