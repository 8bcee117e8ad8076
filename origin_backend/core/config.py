"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

import json
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Origin Mint Backend"
    service_name: str = "IOPn NFT Generation API"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    dev_mode: bool = False
    host: str = "0.0.0.0"
    port: int = 3001

    # Frontend origins allowed by CORS (JSON list or comma separated)
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Static key expected in the Authorization header of protected endpoints
    api_key: Optional[SecretStr] = None
    rep_requires_api_key: bool = False

    # Image generation
    hf_token: Optional[SecretStr] = None
    inference_url: str = (
        "https://api-inference.huggingface.co/models/black-forest-labs/FLUX.1-schnell"
    )
    inference_timeout: float = 120.0
    variant_count: int = 3
    max_prompt_length: int = 1000
    output_dir: Path = Path("./outputs")
    logo_path: Path = Path("./assets/IOPnlogo.png")
    session_ttl_seconds: int = 3600

    # IPFS pinning
    pinata_jwt: Optional[SecretStr] = None
    pinata_api_url: str = "https://api.pinata.cloud/pinning/pinFileToIPFS"
    ipfs_gateway_url: str = "https://gateway.pinata.cloud/ipfs/"
    pinata_timeout: float = 60.0

    # Chain
    chain_rpc_url: str = "https://testnet-rpc.iopn.tech"
    chain_id: int = 984
    origin_nft_address: str = "0xB70B4DAb3F51A7ED2e353f84ccFaE1e0DA69E6bE"
    rep_manager_address: str = "0x4dF5eCA74b41a7e5C30731c815558107a9ADd185"
    badge_manager_address: str = "0x1EA6C6547634bE2f4dc8996886C355857C587DAd"
    marketplace_address: str = "0x4cb9374a0bbb8633593F65AB8B5A03bCa926762B"
    backend_wallet_private_key: Optional[SecretStr] = None
    minter_private_key: Optional[SecretStr] = None
    tx_confirmation_timeout: float = 120.0
    block_explorer_url: str = "https://testnet.iopn.tech"

    # Rate limiting configuration
    rate_limit_generate_endpoints: str = "10/minute"
    rate_limit_upload_endpoints: str = "20/minute"
    rate_limit_chain_endpoints: str = "30/minute"

    # Optional Redis URL for distributed rate limiting
    # When set, rate limits will be shared across multiple instances
    redis_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: Optional[bool] = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        """Accept a JSON list or a comma separated string."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                try:
                    return json.loads(value)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("ipfs_gateway_url")
    @classmethod
    def ensure_gateway_trailing_slash(cls, value: str) -> str:
        return value if value.endswith("/") else value + "/"

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is not None:
            return self.log_json
        return not self.dev_mode


# Global settings instance
settings = Settings()
