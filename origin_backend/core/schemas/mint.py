"""Schemas for the end-to-end mint flow."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MintRequest(BaseModel):
    """Body of POST /api/mint"""

    filename: Optional[str] = Field(None, description="Selected variant returned by /generate")
    wallet_address: Optional[str] = Field(None, description="Wallet that receives the NFT")
    name: Optional[str] = None
    description: Optional[str] = None
    referral_code: str = Field("", description="Referral code passed to OriginNFT.mint")
    discord_id: Optional[str] = Field(None, description="Discord user to link after minting")
    referrer_address: Optional[str] = Field(
        None, description="Referrer wallet to register after minting"
    )
    signed_mint_tx: Optional[str] = Field(
        None,
        description="Raw mint transaction signed by the user's wallet (hex). "
        "When absent the configured minter account signs.",
    )


class PrepareMintRequest(BaseModel):
    """Body of POST /api/mint/prepare"""

    wallet_address: Optional[str] = None
    referral_code: str = ""


class PrepareMintResponse(BaseModel):
    success: bool = True
    transaction: Dict[str, Any]
