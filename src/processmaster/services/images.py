"""Screenshot normalisation with Pillow."""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from processmaster.errors import ValidationError


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"


def normalize_screenshot(
    image_bytes: bytes, max_width: int, max_height: int
) -> NormalizedImage:
    """Fit an image inside the bounding box and re-encode it as PNG.

    Aspect ratio is preserved and smaller images are never enlarged. This is
    CPU-bound; async callers should run it in a worker thread.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as source:
            source.load()
            image = source if source.mode in {"RGB", "RGBA"} else source.convert("RGBA")
            image.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="PNG", optimize=True)
            width, height = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Screenshot is not a readable image") from exc
    return NormalizedImage(data=buffer.getvalue(), width=width, height=height)
