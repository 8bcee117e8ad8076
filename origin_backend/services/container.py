"""Per-process wiring of the backend services."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from origin_backend.core.config import Settings
from origin_backend.core.security import Authenticator, StaticKeyAuthenticator
from origin_backend.services.branding import Brander
from origin_backend.services.chain_relay import ChainRelay
from origin_backend.services.image_generator import ImageGenerator
from origin_backend.services.ipfs_publisher import IpfsPublisher
from origin_backend.services.mint_orchestrator import MintOrchestrator
from origin_backend.services.session_store import GenerationSessionStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once at startup."""

    settings: Settings
    session_store: GenerationSessionStore
    brander: Brander
    generator: ImageGenerator
    publisher: IpfsPublisher
    relay: ChainRelay
    orchestrator: MintOrchestrator
    authenticator: Authenticator
    inference_client: Optional[httpx.AsyncClient] = None
    pinning_client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        for client in (self.inference_client, self.pinning_client):
            if client is not None:
                await client.aclose()


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def build_services(
    settings: Settings,
    *,
    inference_client: Optional[httpx.AsyncClient] = None,
    pinning_client: Optional[httpx.AsyncClient] = None,
    relay: Optional[ChainRelay] = None,
) -> ServiceContainer:
    """
    Construct the service graph from settings.

    Clients and the relay can be injected, which is how tests swap in mock
    transports and a fake chain.
    """
    inference_client = inference_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.inference_timeout)
    )
    pinning_client = pinning_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.pinata_timeout)
    )

    session_store = GenerationSessionStore(ttl_seconds=settings.session_ttl_seconds)
    brander = Brander(settings.logo_path)
    generator = ImageGenerator(
        inference_client,
        settings.inference_url,
        _secret(settings.hf_token),
        brander,
        session_store,
        settings.output_dir,
        variant_count=settings.variant_count,
        max_prompt_length=settings.max_prompt_length,
    )
    publisher = IpfsPublisher(
        pinning_client,
        _secret(settings.pinata_jwt),
        session_store,
        settings.output_dir,
        pin_url=settings.pinata_api_url,
        gateway_url=settings.ipfs_gateway_url,
    )
    relay = relay or ChainRelay.from_settings(settings)
    orchestrator = MintOrchestrator(publisher, relay, settings.block_explorer_url)

    if settings.api_key is None:
        logger.warning("API_KEY is not set; protected endpoints will reject every request")

    return ServiceContainer(
        settings=settings,
        session_store=session_store,
        brander=brander,
        generator=generator,
        publisher=publisher,
        relay=relay,
        orchestrator=orchestrator,
        authenticator=StaticKeyAuthenticator(_secret(settings.api_key)),
        inference_client=inference_client,
        pinning_client=pinning_client,
    )
