"""
IPFS Publisher - pins a chosen variant and its NFT metadata through Pinata

Publishing is two uploads: the image, then a metadata document pointing at
the image URL. Neither upload is rolled back: if the metadata upload fails,
the image stays pinned and the caller retries the whole publish.
"""

import asyncio
import json
import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from origin_backend.core.errors import AssetNotFound, IpfsUploadFailed, UpstreamTimeout
from origin_backend.core.security import sanitize_error_message
from origin_backend.services.session_store import GenerationSessionStore, delete_files

logger = logging.getLogger(__name__)

COLLECTION_NAME = "Origin"
DEFAULT_NAME_PREFIX = "Origin Genesis #"


class PublishedAsset(BaseModel):
    """Content-addressed image and metadata produced by one publish"""

    image_url: str
    metadata_url: str
    image_cid: str
    metadata_cid: str
    metadata: Dict[str, Any]


def build_metadata(
    image_url: str,
    prompt: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """NFT metadata document in the ERC-721 metadata JSON layout."""
    rng = rng or random.Random()
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "name": name or f"{DEFAULT_NAME_PREFIX}{rng.randint(1, 9999)}",
        "description": description or prompt,
        "image": image_url,
        "attributes": [
            {"trait_type": "Collection", "value": COLLECTION_NAME},
            {"trait_type": "Generated", "value": generated_at.isoformat()},
        ],
    }


class IpfsPublisher:
    """
    Uploads a generated variant and its metadata to the pinning service.

    Args:
        http_client: Async HTTP client used for Pinata.
        pinata_jwt: Pinata API JWT.
        session_store: Store holding the variants awaiting publication.
        output_dir: Directory holding the branded files.
        pin_url: Pinata ``pinFileToIPFS`` endpoint.
        gateway_url: Gateway prefix that content ids are appended to.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        pinata_jwt: Optional[str],
        session_store: GenerationSessionStore,
        output_dir: Path,
        *,
        pin_url: str,
        gateway_url: str,
    ):
        self._http = http_client
        self._jwt = pinata_jwt
        self.session_store = session_store
        self.output_dir = Path(output_dir)
        self.pin_url = pin_url
        self.gateway_url = gateway_url

    def gateway_link(self, cid: str) -> str:
        return f"{self.gateway_url}{cid}"

    async def publish(
        self,
        filename: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PublishedAsset:
        """
        Pin ``filename`` and its metadata, then discard its whole batch.

        Raises:
            AssetNotFound: If the filename is unknown or its file is gone.
            PublishInProgress: If a sibling variant is being published.
            IpfsUploadFailed: If Pinata rejects either upload.
            UpstreamTimeout: If Pinata does not answer in time.
        """
        image_path = self._resolve_path(filename)
        entry = self.session_store.claim(filename)
        try:
            if not image_path.is_file():
                raise AssetNotFound("Image file not found", detail=filename)

            image_bytes = await asyncio.to_thread(image_path.read_bytes)
            image_cid = await self._pin_file(
                filename, image_bytes, "image/png", pin_name=filename
            )
            image_url = self.gateway_link(image_cid)

            metadata = build_metadata(image_url, entry.prompt, name, description)
            try:
                metadata_cid = await self._pin_file(
                    "metadata.json",
                    json.dumps(metadata).encode("utf-8"),
                    "application/json",
                    pin_name=f"metadata_{filename}",
                )
            except (IpfsUploadFailed, UpstreamTimeout):
                logger.warning(
                    "Metadata upload failed after image %s was pinned as %s",
                    filename,
                    image_cid,
                )
                raise
        except BaseException:
            self.session_store.release(filename)
            raise

        discarded = self.session_store.discard_batch(filename)
        await asyncio.to_thread(delete_files, self.output_dir, discarded)
        logger.info(
            "Published %s (image %s, metadata %s); discarded %d variants",
            filename,
            image_cid,
            metadata_cid,
            len(discarded),
        )

        return PublishedAsset(
            image_url=image_url,
            metadata_url=self.gateway_link(metadata_cid),
            image_cid=image_cid,
            metadata_cid=metadata_cid,
            metadata=metadata,
        )

    def _resolve_path(self, filename: str) -> Path:
        # Filenames come from clients; only bare names inside output_dir are valid
        if Path(filename).name != filename or filename in {"", ".", ".."}:
            raise AssetNotFound("Image not found in generation cache", detail=filename)
        return self.output_dir / filename

    async def _pin_file(
        self, upload_name: str, content: bytes, content_type: str, pin_name: str
    ) -> str:
        headers = {}
        if self._jwt:
            headers["Authorization"] = f"Bearer {self._jwt}"

        try:
            response = await self._http.post(
                self.pin_url,
                files={"file": (upload_name, content, content_type)},
                data={"pinataMetadata": json.dumps({"name": pin_name})},
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout("Pinning service did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise IpfsUploadFailed("Pinning request failed", detail=str(exc)) from exc

        if not response.is_success:
            raise IpfsUploadFailed(
                f"Pinning service error {response.status_code}",
                detail=sanitize_error_message(response.text),
                upstream_status=response.status_code,
            )

        try:
            cid = response.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as exc:
            raise IpfsUploadFailed(
                "Pinning service response has no IpfsHash",
                detail=sanitize_error_message(response.text),
            ) from exc
        return cid
