"""Read-only Origin NFT status of a wallet."""

from fastapi import APIRouter, Depends, Request

from origin_backend.api.deps import get_services
from origin_backend.core.config import settings
from origin_backend.core.limiter import limiter
from origin_backend.core.schemas.rep import NftStatusResponse
from origin_backend.services.container import ServiceContainer

router = APIRouter(prefix="/api/nft", tags=["nft"])


@router.get("/{wallet}", response_model=NftStatusResponse)
@limiter.limit(settings.rate_limit_chain_endpoints)
async def get_nft_status(
    request: Request,
    wallet: str,
    services: ServiceContainer = Depends(get_services),
):
    relay = services.relay
    token_id = await relay.get_token_id(wallet)
    if token_id is None:
        return NftStatusResponse(wallet=wallet, has_nft=False)

    referral_code = await relay.get_referral_code(wallet)
    badge_ids, badge_amounts = await relay.get_user_badges(wallet)
    return NftStatusResponse(
        wallet=wallet,
        has_nft=True,
        token_id=token_id,
        referral_code=referral_code,
        badge_ids=badge_ids,
        badge_amounts=badge_amounts,
    )
