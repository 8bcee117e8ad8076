"""Unit tests for the image generation client"""

import httpx
import pytest

from origin_backend.core.errors import GenerationFailed, InvalidRequest, UpstreamTimeout
from origin_backend.services.branding import Brander
from origin_backend.services.image_generator import ImageGenerator

pytestmark = pytest.mark.unit

INFERENCE_URL = "https://inference.test/models/flux"


@pytest.fixture
def generator(inference, logo_path, session_store, output_dir):
    client = httpx.AsyncClient(transport=httpx.MockTransport(inference))
    return ImageGenerator(
        client,
        INFERENCE_URL,
        "hf_secret",
        Brander(logo_path),
        session_store,
        output_dir,
        variant_count=3,
        max_prompt_length=50,
    )


class TestGenerate:
    """Successful batches"""

    async def test_three_branded_files_are_produced(self, generator, output_dir, inference):
        batch = await generator.generate("a cyberpunk fox")

        assert len(batch.filenames) == 3
        assert len(set(batch.filenames)) == 3
        for name in batch.filenames:
            assert name.startswith("branded_")
            assert (output_dir / name).stat().st_size > 0
        assert not list(output_dir.glob("raw_*"))
        assert len(inference.prompts) == 3
        assert all("a cyberpunk fox" in prompt for prompt in inference.prompts)
        assert inference.auth_headers == ["Bearer hf_secret"] * 3

    async def test_batch_is_registered_with_original_prompt(self, generator, session_store):
        batch = await generator.generate("  a cyberpunk fox ")

        entry = session_store.get(batch.filenames[0])
        assert entry.prompt == "a cyberpunk fox"
        assert sorted(entry.siblings) == sorted(batch.filenames)
        assert entry.batch_id == batch.batch_id

    async def test_batches_do_not_collide(self, generator, session_store):
        first = await generator.generate("fox")
        second = await generator.generate("fox")

        assert not set(first.filenames) & set(second.filenames)
        assert len(session_store) == 6


class TestGenerateFailures:
    async def test_invalid_prompt_makes_no_upstream_call(self, generator, inference, output_dir):
        with pytest.raises(InvalidRequest):
            await generator.generate("")
        with pytest.raises(InvalidRequest):
            await generator.generate("x" * 51)
        assert inference.prompts == []
        assert list(output_dir.iterdir()) == []

    async def test_one_failed_variant_fails_whole_batch(
        self, generator, inference, session_store, output_dir
    ):
        inference.fail_on = {1}

        with pytest.raises(GenerationFailed) as exc_info:
            await generator.generate("fox")

        assert exc_info.value.upstream_status == 503
        assert "Model is currently loading" in exc_info.value.detail
        assert list(output_dir.iterdir()) == []
        assert len(session_store) == 0

    async def test_empty_body_fails(self, generator, inference):
        inference.empty = True
        with pytest.raises(GenerationFailed, match="empty"):
            await generator.generate("fox")

    async def test_timeout_is_distinct_error(self, generator, inference, session_store):
        inference.raise_timeout = True
        with pytest.raises(UpstreamTimeout):
            await generator.generate("fox")
        assert len(session_store) == 0
