"""Schemas for backend-signed REP manager operations."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RepAction(str, Enum):
    """Operations relayed to the REP manager contract"""

    LINK_DISCORD = "linkDiscord"
    CREDIT_REP = "creditRep"
    REGISTER_REFERRAL = "registerReferral"


class RepRequest(BaseModel):
    """
    Body of POST /api/rep.

    Parameters depend on the action:
    linkDiscord(wallet, discordId), creditRep(user, amount, reason),
    registerReferral(referred, referrer).
    """

    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    wallet: Optional[str] = None
    discord_id: Optional[str] = Field(None, alias="discordId")
    user: Optional[str] = None
    amount: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None
    referred: Optional[str] = None
    referrer: Optional[str] = None


class RepResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    tx_hash: str = Field(..., serialization_alias="txHash")


class NftStatusResponse(BaseModel):
    """On-chain Origin NFT status of a wallet"""

    wallet: str
    has_nft: bool
    token_id: Optional[int] = None
    referral_code: Optional[str] = None
    badge_ids: List[int] = []
    badge_amounts: List[int] = []
