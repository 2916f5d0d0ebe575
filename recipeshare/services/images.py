"""Derived image generation (thumbnail + main) using Pillow.

Both tiers are re-encoded to WebP. Images narrower than a tier's max width
keep their original size.
"""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

from ..settings import settings

logger = logging.getLogger("recipeshare.images")


@dataclass(frozen=True)
class ImageTier:
    name: str
    max_width: int
    quality: int


@dataclass
class DerivedImages:
    thumbnail: bytes
    main: bytes


THUMB_TIER = ImageTier("thumb", settings.thumb_max_width, settings.thumb_quality)
MAIN_TIER = ImageTier("image", settings.main_max_width, settings.main_quality)


def _normalize_mode(img: Image.Image) -> Image.Image:
    # WebP encodes RGB / RGBA only
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def render_tier(img: Image.Image, tier: ImageTier) -> bytes:
    """Resize to the tier's max width (never upscaling) and encode as WebP."""
    out = img
    if img.width > tier.max_width:
        height = max(1, round(img.height * tier.max_width / img.width))
        out = img.resize((tier.max_width, height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    out.save(buffer, format="WEBP", quality=tier.quality)
    return buffer.getvalue()


def generate_images(
    raw: bytes,
    thumb_tier: ImageTier = THUMB_TIER,
    main_tier: ImageTier = MAIN_TIER,
) -> DerivedImages:
    """Derive the thumbnail and main WebP renditions from raw upload bytes.

    Raises PIL.UnidentifiedImageError when the bytes are not a decodable image.
    """
    with Image.open(io.BytesIO(raw)) as src:
        src.load()
        img = _normalize_mode(ImageOps.exif_transpose(src))

    thumbnail = render_tier(img, thumb_tier)
    main = render_tier(img, main_tier)
    logger.info(
        f"Derived images from {img.width}x{img.height} source: "
        f"thumb={len(thumbnail)}B main={len(main)}B"
    )
    return DerivedImages(thumbnail=thumbnail, main=main)
