"""Schemas for image generation and IPFS publishing."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Body of POST /generate"""

    prompt: Optional[str] = Field(None, description="Text describing the artwork")


class GenerateResponse(BaseModel):
    success: bool = True
    images: List[str] = Field(..., description="Branded filenames, one per variant")
    message: str


class UploadRequest(BaseModel):
    """Body of POST /upload/ipfs"""

    filename: Optional[str] = Field(None, description="Filename returned by /generate")
    name: Optional[str] = Field(None, description="NFT display name")
    description: Optional[str] = Field(
        None, description="NFT description, defaults to the generation prompt"
    )


class IpfsContentIds(BaseModel):
    image_cid: str
    metadata_cid: str


class UploadResponse(BaseModel):
    success: bool = True
    metadata_url: str
    image_url: str
    metadata: Dict[str, Any]
    ipfs: IpfsContentIds
