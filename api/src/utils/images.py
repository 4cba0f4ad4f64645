"""Image sizing and download helpers."""

import re
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import httpx
import structlog

from api.src.constants import ASPECT_RATIO_OPTIONS, DEFAULT_IMAGE_DIMENSION
from api.src.errors import UnknownError, ValidationError

logger = structlog.get_logger(__name__)


def get_image_size(transformation_type: str, image: Optional[Mapping[str, Any]], dimension: str) -> int:
    """
    Display size of an image along ``dimension`` ("width" or "height").

    Generative fill renders at the chosen aspect-ratio preset; everything
    else at the image's own size. Unknown sizes fall back to 1000.
    """
    image = image or {}
    if transformation_type == "fill":
        preset = ASPECT_RATIO_OPTIONS.get(image.get("aspect_ratio") or "")
        return (preset or {}).get(dimension) or DEFAULT_IMAGE_DIMENSION
    return image.get(dimension) or DEFAULT_IMAGE_DIMENSION


def download_filename(filename: Optional[str]) -> str:
    if not filename:
        return "image.png"
    stem = re.sub(r"\s+", "_", filename)
    return f"{stem}.png"


async def download(
    url: str,
    filename: Optional[str],
    directory: Union[str, Path] = ".",
    client: Optional[httpx.AsyncClient] = None,
) -> Path:
    """
    Fetch an image and save it as ``<filename>.png`` in ``directory``.

    Whitespace in ``filename`` becomes underscores.

    Raises:
        ValidationError: If no URL is given
        UnknownError: If the fetch or the write fails
    """
    if not url:
        raise ValidationError("Resource URL not provided! You need to provide one")

    target = Path(directory) / download_filename(filename)
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=30.0)

    try:
        response = await client.get(url)
        response.raise_for_status()
        target.write_bytes(response.content)
        logger.info("image_downloaded", url=url, path=str(target), size=len(response.content))
        return target
    except (httpx.HTTPError, OSError) as e:
        logger.error("image_download_failed", url=url, error=str(e))
        raise UnknownError("Failed to download image") from e
    finally:
        if owns_client:
            await client.aclose()
