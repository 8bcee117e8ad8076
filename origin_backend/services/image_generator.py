"""
Image Generation Client - text-to-image inference with branded output

Async-first client that fans one user prompt out into several enriched
prompts, calls the inference endpoint for each concurrently, writes the raw
images to the output directory and brands them. A batch is all-or-nothing:
if any variant fails, files produced by its siblings are removed and the
error propagates.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

from origin_backend.core.errors import GenerationFailed, UpstreamTimeout
from origin_backend.core.security import sanitize_error_message
from origin_backend.services.branding import Brander
from origin_backend.services.prompt_builder import build_variant_prompts, validate_prompt
from origin_backend.services.session_store import GenerationSessionStore, delete_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedBatch:
    batch_id: str
    prompt: str
    filenames: List[str]


class ImageGenerator:
    """
    Produces branded variants for a prompt and registers them for publishing.

    Args:
        http_client: Async HTTP client used for the inference endpoint.
        inference_url: Model endpoint accepting ``{"inputs": prompt}``.
        token: Bearer token for the inference provider.
        brander: Logo compositor applied to every raw image.
        session_store: Store that remembers the batch for the publisher.
        output_dir: Directory holding raw and branded files.
        variant_count: Number of variants per request.
        max_prompt_length: Longest prompt accepted.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        inference_url: str,
        token: Optional[str],
        brander: Brander,
        session_store: GenerationSessionStore,
        output_dir: Path,
        *,
        variant_count: int = 3,
        max_prompt_length: int = 1000,
    ):
        self._http = http_client
        self.inference_url = inference_url
        self._token = token
        self.brander = brander
        self.session_store = session_store
        self.output_dir = Path(output_dir)
        self.variant_count = variant_count
        self.max_prompt_length = max_prompt_length

    async def generate(self, prompt: Optional[str], seed: Optional[int] = None) -> GeneratedBatch:
        """
        Generate, brand and register ``variant_count`` images.

        Raises:
            InvalidRequest: If the prompt is empty or too long.
            GenerationFailed: If any inference call or branding step fails.
            UpstreamTimeout: If the inference endpoint does not answer in time.
            ConfigurationError: If the branding logo is missing.
        """
        prompt = validate_prompt(prompt, self.max_prompt_length)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        prompts = build_variant_prompts(prompt, self.variant_count, seed=seed)
        batch_tag = uuid.uuid4().hex[:12]
        tags = [f"{batch_tag}_{index}" for index in range(1, self.variant_count + 1)]

        results = await asyncio.gather(
            *(self._generate_variant(enriched, tag) for enriched, tag in zip(prompts, tags)),
            return_exceptions=True,
        )

        produced = [result for result in results if isinstance(result, str)]
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            delete_files(self.output_dir, produced)
            logger.error(
                "Generation batch %s failed: %d of %d variants errored",
                batch_tag,
                len(failures),
                len(results),
            )
            raise failures[0]

        batch_id = self.session_store.register_batch(prompt, produced)
        logger.info("Generated batch %s with %d variants", batch_id, len(produced))
        return GeneratedBatch(batch_id=batch_id, prompt=prompt, filenames=produced)

    async def _generate_variant(self, enriched_prompt: str, tag: str) -> str:
        image_bytes = await self._query_model(enriched_prompt)

        raw_path = self.output_dir / f"raw_{tag}.png"
        branded_path = self.output_dir / f"branded_{tag}.png"
        await asyncio.to_thread(raw_path.write_bytes, image_bytes)
        await asyncio.to_thread(self.brander.brand, raw_path, branded_path)
        return branded_path.name

    async def _query_model(self, enriched_prompt: str) -> bytes:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._http.post(
                self.inference_url,
                json={"inputs": enriched_prompt},
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout("Image model did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise GenerationFailed("Image model request failed", detail=str(exc)) from exc

        if not response.is_success:
            raise GenerationFailed(
                f"Model error {response.status_code}",
                detail=sanitize_error_message(response.text),
                upstream_status=response.status_code,
            )
        if not response.content:
            raise GenerationFailed("Model returned an empty image")
        return response.content

