"""
Prompt enrichment for image variants.

The same prompt sent to the same model yields near-identical images, so every
variant gets its own random style, mood, camera angle and seed. Randomness is
injected through a ``random.Random`` instance so a fixed seed reproduces the
exact prompts.
"""

import random
from typing import List, Optional

from origin_backend.core.errors import InvalidRequest

BASE_CONTEXT = (
    "A NFT-worthy cinematic artwork in a futuristic digital world with vibrant "
    "colors, dynamic lighting, and imaginative elements."
)

STYLES = (
    "cinematic",
    "artistic",
    "photorealistic",
    "digital art",
    "concept art",
    "fantasy art",
)
MOODS = ("dramatic", "vibrant", "mysterious", "epic", "futuristic", "ethereal")
ANGLES = (
    "wide angle",
    "close-up",
    "aerial view",
    "low angle",
    "dynamic perspective",
    "side view",
)

SEED_RANGE = 1_000_000


def validate_prompt(prompt: Optional[str], max_length: int) -> str:
    """Return the stripped prompt or raise InvalidRequest."""
    if prompt is None or not prompt.strip():
        raise InvalidRequest("Prompt is required")
    prompt = prompt.strip()
    if len(prompt) > max_length:
        raise InvalidRequest(
            f"Prompt is too long ({len(prompt)} characters, maximum {max_length})"
        )
    return prompt


def enrich_prompt(prompt: str, rng: random.Random) -> str:
    """Wrap the user prompt in the collection context plus random descriptors."""
    style = rng.choice(STYLES)
    mood = rng.choice(MOODS)
    angle = rng.choice(ANGLES)
    seed = rng.random() * SEED_RANGE

    return (
        f"{BASE_CONTEXT} The scene depicts: {prompt}. "
        f"Style: {style}, {mood} mood, {angle} shot. "
        f"Unique seed: {seed}. "
        "Make it unique, visually striking, and suitable for an NFT collection."
    )


def build_variant_prompts(prompt: str, count: int, seed: Optional[int] = None) -> List[str]:
    rng = random.Random(seed)
    return [enrich_prompt(prompt, rng) for _ in range(count)]
