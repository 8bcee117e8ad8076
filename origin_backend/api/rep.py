"""
REP manager relay endpoint.

Every action is signed and paid for by the backend wallet. The endpoint is
open by default, matching a deployment behind a trusted network boundary;
set ``REP_REQUIRES_API_KEY`` to gate it with the shared key.
"""

import logging

from fastapi import APIRouter, Depends, Request

from origin_backend.api.deps import get_services, require_rep_api_key
from origin_backend.core.config import settings
from origin_backend.core.errors import InvalidRequest
from origin_backend.core.limiter import limiter
from origin_backend.core.schemas.rep import RepAction, RepRequest, RepResponse
from origin_backend.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["rep"],
    dependencies=[Depends(require_rep_api_key)],
)


@router.post("/rep", response_model=RepResponse, response_model_by_alias=True)
@limiter.limit(settings.rate_limit_chain_endpoints)
async def relay_rep_action(
    request: Request,
    body: RepRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Submit one REP manager transaction with the backend wallet.

    Raises:
        InvalidRequest: Unknown action or missing parameters
        ConfigurationError: Backend wallet not configured
        ChainFailure: Transaction failed or reverted
    """
    try:
        action = RepAction(body.action)
    except ValueError:
        raise InvalidRequest("Invalid action", detail=str(body.action)) from None

    relay = services.relay
    if action is RepAction.LINK_DISCORD:
        tx_hash = await relay.link_discord(body.wallet, body.discord_id)
    elif action is RepAction.CREDIT_REP:
        tx_hash = await relay.credit_rep(body.user, body.amount, body.reason)
    else:
        tx_hash = await relay.register_referral(body.referred, body.referrer)

    logger.info("Relayed %s in tx %s", action.value, tx_hash)
    return RepResponse(tx_hash=tx_hash)
