import io

import pytest
from PIL import Image, UnidentifiedImageError

from recipeshare.services.images import ImageTier, generate_images, render_tier


def _encode(img: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def _open(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_wide_image_is_scaled_to_both_tiers():
    raw = _encode(Image.new("RGB", (2000, 1000), (200, 120, 40)))

    derived = generate_images(raw)

    thumb = _open(derived.thumbnail)
    main = _open(derived.main)
    assert thumb.format == "WEBP"
    assert main.format == "WEBP"
    assert thumb.size == (400, 200)
    assert main.size == (1200, 600)


def test_small_image_is_never_upscaled():
    raw = _encode(Image.new("RGB", (300, 150), (10, 20, 30)))

    derived = generate_images(raw)

    assert _open(derived.thumbnail).size == (300, 150)
    assert _open(derived.main).size == (300, 150)


def test_image_between_tiers_only_shrinks_thumbnail():
    raw = _encode(Image.new("RGB", (800, 600)))

    derived = generate_images(raw)

    assert _open(derived.thumbnail).size == (400, 300)
    assert _open(derived.main).size == (800, 600)


def test_alpha_and_palette_sources_encode():
    rgba = _encode(Image.new("RGBA", (500, 250), (255, 0, 0, 128)))
    palette = _encode(Image.new("P", (500, 250)))

    for raw in (rgba, palette):
        derived = generate_images(raw)
        assert _open(derived.thumbnail).size == (400, 200)


def test_exif_orientation_is_applied():
    exif = Image.Exif()
    exif[0x0112] = 6  # rotated 90 degrees clockwise
    raw = _encode(Image.new("RGB", (200, 100)), "JPEG", exif=exif.tobytes())

    derived = generate_images(raw)

    assert _open(derived.main).size == (100, 200)


def test_undecodable_bytes_raise():
    with pytest.raises(UnidentifiedImageError):
        generate_images(b"definitely not an image")


def test_render_tier_rounds_height():
    img = Image.new("RGB", (1000, 333))

    out = _open(render_tier(img, ImageTier("small", 100, 80)))

    assert out.size == (100, 33)
