"""
Image generation endpoint.

Rate limited because every call fans out into several paid inference
requests.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from origin_backend.api.deps import get_services, require_api_key
from origin_backend.core.config import settings
from origin_backend.core.limiter import limiter
from origin_backend.core.schemas.generation import GenerateRequest, GenerateResponse
from origin_backend.services.container import ServiceContainer
from origin_backend.services.session_store import delete_files

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"], dependencies=[Depends(require_api_key)])


@router.post("/generate", response_model=GenerateResponse)
@limiter.limit(settings.rate_limit_generate_endpoints)
async def generate_images(
    request: Request,
    body: GenerateRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Generate branded variants of a prompt.

    Args:
        request: FastAPI request object (required for rate limiting)
        body: Prompt to generate from

    Returns:
        GenerateResponse with the branded filenames
    """
    expired = services.session_store.sweep_expired()
    if expired:
        await asyncio.to_thread(delete_files, services.generator.output_dir, expired)

    batch = await services.generator.generate(body.prompt)
    return GenerateResponse(
        images=batch.filenames,
        message=f"Successfully generated {len(batch.filenames)} NFT image variations",
    )
