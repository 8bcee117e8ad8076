"""
End-to-end mint endpoints.

``/api/mint/prepare`` hands the wallet an unsigned mint transaction;
``/api/mint`` publishes the chosen variant, relays the signed mint and runs
the best-effort REP side effects.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from origin_backend.api.deps import get_services, require_api_key
from origin_backend.core.config import settings
from origin_backend.core.errors import InvalidRequest
from origin_backend.core.limiter import limiter
from origin_backend.core.schemas.mint import (
    MintRequest,
    PrepareMintRequest,
    PrepareMintResponse,
)
from origin_backend.services.container import ServiceContainer
from origin_backend.services.mint_orchestrator import MintOutcome

router = APIRouter(prefix="/api/mint", tags=["mint"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=MintOutcome)
@limiter.limit(settings.rate_limit_chain_endpoints)
async def mint_nft(
    request: Request,
    body: MintRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Run one mint attempt.

    A complete outcome is returned with 200 even when the Discord link or
    referral did not apply; those show up in ``warnings``. A failed outcome
    carries the status code of the error that stopped it.
    """
    outcome = await services.orchestrator.run(body)
    if outcome.error is not None:
        return JSONResponse(
            status_code=outcome.error.status_code,
            content=outcome.model_dump(mode="json"),
        )
    return outcome


@router.post("/prepare", response_model=PrepareMintResponse)
@limiter.limit(settings.rate_limit_chain_endpoints)
async def prepare_mint(
    request: Request,
    body: PrepareMintRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Build the unsigned mint transaction for the user's wallet to sign."""
    if not body.wallet_address:
        raise InvalidRequest("wallet_address is required")
    transaction = await services.relay.build_mint_transaction(
        body.wallet_address, body.referral_code
    )
    return PrepareMintResponse(transaction=transaction)
