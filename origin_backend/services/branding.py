"""Logo overlay for generated images."""

import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from origin_backend.core.errors import ConfigurationError, GenerationFailed

logger = logging.getLogger(__name__)

LOGO_WIDTH = 100
LOGO_OFFSET: Tuple[int, int] = (20, 20)


class Brander:
    """
    Composites the collection logo onto the top-left corner of an image.

    The resized logo is loaded once and reused. Pillow work is synchronous;
    async callers run it with ``asyncio.to_thread``.
    """

    def __init__(
        self,
        logo_path: Path,
        logo_width: int = LOGO_WIDTH,
        offset: Tuple[int, int] = LOGO_OFFSET,
    ):
        self.logo_path = Path(logo_path)
        self.logo_width = logo_width
        self.offset = offset
        self._logo: Optional[Image.Image] = None
        self._logo_lock = Lock()

    def _load_logo(self) -> Image.Image:
        with self._logo_lock:
            if self._logo is None:
                if not self.logo_path.is_file():
                    raise ConfigurationError(
                        "Branding logo is missing", detail=str(self.logo_path)
                    )
                with Image.open(self.logo_path) as logo:
                    logo = logo.convert("RGBA")
                    height = max(1, round(logo.height * self.logo_width / logo.width))
                    self._logo = logo.resize(
                        (self.logo_width, height), Image.Resampling.LANCZOS
                    )
            return self._logo

    def brand(self, raw_path: Path, branded_path: Path) -> Path:
        """
        Write ``branded_path`` with the logo applied and delete ``raw_path``.

        Raises:
            ConfigurationError: If the logo asset is missing.
            GenerationFailed: If the raw image cannot be decoded.
        """
        try:
            logo = self._load_logo()
            with Image.open(raw_path) as base:
                canvas = base.convert("RGBA")
            canvas.alpha_composite(logo, dest=self.offset)
            canvas.save(branded_path, format="PNG")
        except (UnidentifiedImageError, OSError) as exc:
            branded_path.unlink(missing_ok=True)
            raise GenerationFailed(
                "Generated image could not be branded", detail=str(exc)
            ) from exc
        finally:
            raw_path.unlink(missing_ok=True)

        logger.debug("Branded %s", branded_path.name)
        return branded_path
