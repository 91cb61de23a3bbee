"""Tests for quantum_canvas.core.image_pipeline — Pillow transform stages.

All inputs are tiny in-memory images built with Pillow; nothing touches the
file system.
"""

from __future__ import annotations

import io
from unittest.mock import patch

import pytest
from PIL import Image

from quantum_canvas.core.errors import ImageProcessingError
from quantum_canvas.core.image_pipeline import (
    apply_operation,
    decode_image,
    process_image,
    resolve_output_format,
)
from quantum_canvas.core.transforms import ResolutionKind, TransformParams, resolve_parameters


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class TestOutputFormat:
    """Test resolve_output_format()."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [(None, "jpeg"), ("JPG", "jpeg"), ("png", "png"), (" webp ", "webp")],
    )
    def test_known_formats(self, name, expected):
        assert resolve_output_format(name) == (expected, None)

    def test_unknown_format_falls_back_to_jpeg(self):
        fmt, note = resolve_output_format("tiff")
        assert fmt == "jpeg"
        assert "tiff" in note

    def test_avif_without_encoder_falls_back(self):
        with patch("quantum_canvas.core.image_pipeline.avif_supported", return_value=False):
            fmt, note = resolve_output_format("avif")
        assert fmt == "jpeg"
        assert "AVIF" in note


class TestResize:
    """Test the resize stage."""

    def test_single_width_keeps_aspect(self, make_png):
        result = process_image(make_png(200, 100), TransformParams(width=100), "resize", "png")
        assert (result.width, result.height) == (100, 50)

    def test_single_height_bounds_both_sides(self, make_png):
        result = process_image(make_png(200, 100), TransformParams(height=50), "resize", "png")
        assert (result.width, result.height) == (50, 25)

    def test_fill_stretches(self, make_png):
        params = TransformParams(width=30, height=90, fit="fill")
        result = process_image(make_png(200, 100), params, "resize", "png")
        assert (result.width, result.height) == (30, 90)

    def test_cover_and_contain_are_exact(self, make_png):
        for fit in ("cover", "contain"):
            params = TransformParams(width=40, height=40, fit=fit)
            result = process_image(make_png(200, 100), params, "resize", "png")
            assert (result.width, result.height) == (40, 40)

    def test_inside_is_default(self, make_png):
        params = TransformParams(width=100, height=100)
        result = process_image(make_png(200, 100), params, "resize", "png")
        assert (result.width, result.height) == (100, 50)

    def test_outside_covers_box(self, make_png):
        params = TransformParams(width=100, height=100, fit="outside")
        result = process_image(make_png(200, 100), params, "resize", "png")
        assert (result.width, result.height) == (200, 100)

    def test_no_dimensions_is_no_op(self, make_png):
        result = process_image(make_png(64, 48), TransformParams(), "resize", "png")
        assert (result.width, result.height) == (64, 48)


class TestCrop:
    """Test the crop stage."""

    def test_crop_box(self, make_png):
        params = TransformParams(left=10, top=5, width=20, height=15)
        result = process_image(make_png(64, 48), params, "crop", "png")
        assert (result.width, result.height) == (20, 15)

    def test_crop_is_clamped_to_image(self, make_png):
        params = TransformParams(left=50, top=40, width=100, height=100)
        result = process_image(make_png(64, 48), params, "crop", "png")
        assert (result.width, result.height) == (14, 8)

    def test_empty_crop_is_skipped(self, make_png):
        params = TransformParams(left=64, width=10)
        result = process_image(make_png(64, 48), params, "crop", "png")
        assert (result.width, result.height) == (64, 48)


class TestColourAndTone:
    """Test enhance and filter stages."""

    def test_brightness_zero_is_black(self, make_png):
        result = process_image(make_png(), TransformParams(brightness=0.0), "enhance", "png")
        assert _open(result.data).convert("RGB").getpixel((0, 0)) == (0, 0, 0)

    def test_grayscale_has_equal_channels(self, make_png):
        result = process_image(make_png(), TransformParams(grayscale=True), "filter", "png")
        r, g, b = _open(result.data).convert("RGB").getpixel((5, 5))
        assert r == g == b

    def test_sepia_is_warm(self, make_png):
        result = process_image(
            make_png(color=(128, 128, 128)), TransformParams(sepia=True), "filter", "png"
        )
        r, _, b = _open(result.data).convert("RGB").getpixel((5, 5))
        assert r > b

    def test_hue_shift_changes_colour(self, make_png):
        result = process_image(
            make_png(color=(255, 0, 0)), TransformParams(hue=120), "enhance", "png"
        )
        r, g, _ = _open(result.data).convert("RGB").getpixel((5, 5))
        assert g > r

    def test_alpha_is_preserved(self, make_png):
        data = make_png(color=(10, 200, 30, 100), mode="RGBA")
        result = process_image(data, TransformParams(brightness=1.5), "enhance", "png")
        image = _open(result.data)
        assert image.mode == "RGBA"
        assert image.getpixel((0, 0))[3] == 100

    def test_fields_outside_operation_are_ignored(self, make_png):
        """enhance has no tone stage, so grayscale is a no-op here."""
        result = process_image(
            make_png(color=(255, 0, 0)), TransformParams(grayscale=True), "enhance", "png"
        )
        assert _open(result.data).convert("RGB").getpixel((5, 5)) == (255, 0, 0)


class TestTransform:
    """Test rotate and mirror stages."""

    def test_rotate_90_swaps_dimensions(self, make_png):
        result = process_image(make_png(64, 48), TransformParams(rotate=90), "transform", "png")
        assert (result.width, result.height) == (48, 64)

    def test_rotate_is_clockwise(self):
        image = Image.new("RGB", (2, 1), (0, 0, 0))
        image.putpixel((0, 0), (255, 0, 0))
        rotated = apply_operation(image, "transform", TransformParams(rotate=90))
        # The left pixel ends up on top after a clockwise quarter turn.
        assert rotated.size == (1, 2)
        assert rotated.getpixel((0, 0))[0] > 200

    def test_flop_mirrors_horizontally(self):
        image = Image.new("RGB", (2, 1), (0, 0, 0))
        image.putpixel((0, 0), (255, 0, 0))
        result = apply_operation(image, "transform", TransformParams(flop=True))
        assert result.getpixel((1, 0)) == (255, 0, 0)

    def test_flip_mirrors_vertically(self):
        image = Image.new("RGB", (1, 2), (0, 0, 0))
        image.putpixel((0, 0), (255, 0, 0))
        result = apply_operation(image, "transform", TransformParams(flip=True))
        assert result.getpixel((0, 1)) == (255, 0, 0)


class TestProcessImage:
    """Test process_image() end to end."""

    def test_sizes_are_reported(self, make_png):
        data = make_png()
        result = process_image(data, TransformParams(), "resize", "png")
        assert result.original_size == len(data)
        assert result.processed_size == len(result.data)
        assert result.media_type == "image/png"
        assert result.note is None

    def test_jpeg_drops_alpha(self, make_png):
        data = make_png(color=(0, 0, 0, 0), mode="RGBA")
        result = process_image(data, TransformParams(), "resize", "jpeg", quality=50)
        assert result.format == "jpeg"
        assert _open(result.data).mode == "RGB"

    def test_webp_output(self, make_png):
        result = process_image(make_png(), TransformParams(), "resize", "webp")
        assert result.data[8:12] == b"WEBP"
        assert result.extension == "webp"

    def test_unknown_format_note(self, make_png):
        result = process_image(make_png(), TransformParams(), "resize", "bmp")
        assert result.format == "jpeg"
        assert result.note is not None

    def test_data_uri(self, make_png):
        result = process_image(make_png(), TransformParams(), "resize", "png")
        assert result.to_data_uri().startswith("data:image/png;base64,")

    def test_quality_out_of_range_is_clamped(self, make_png):
        result = process_image(make_png(), TransformParams(), "resize", "jpeg", quality=500)
        assert result.format == "jpeg"

    def test_undecodable_bytes(self):
        with pytest.raises(ImageProcessingError, match="Failed to decode image"):
            process_image(b"not an image", TransformParams(), "resize")

    def test_decode_applies_exif_orientation(self):
        image = Image.new("RGB", (40, 20), (10, 20, 30))
        exif = image.getexif()
        exif[0x0112] = 6  # rotate 90 CW on display
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", exif=exif)
        assert decode_image(buffer.getvalue()).size == (20, 40)


def _encode(image: Image.Image, fmt: str, **params) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def _palette_gif() -> bytes:
    return _encode(Image.new("RGB", (32, 32), (200, 120, 40)).convert("P"), "GIF")


def _transparent_palette_png() -> bytes:
    image = Image.new("RGB", (32, 32), (200, 120, 40)).convert("P")
    return _encode(image, "PNG", transparency=image.getpixel((0, 0)))


def _bilevel_png() -> bytes:
    return _encode(Image.new("1", (32, 32), 1), "PNG")


def _sixteen_bit_png() -> bytes:
    return _encode(Image.new("I;16", (32, 32), 40000), "PNG")


class TestImageModes:
    """Test palette, bilevel and 16-bit uploads through every stage."""

    @pytest.mark.parametrize(
        "data",
        [_palette_gif(), _transparent_palette_png(), _bilevel_png(), _sixteen_bit_png()],
        ids=["gif", "palette-png", "bilevel-png", "16-bit-png"],
    )
    @pytest.mark.parametrize(
        ("operation", "params"),
        [
            ("filter", TransformParams(blur=2.0)),
            ("filter", TransformParams(sharpen=1.5, sepia=True)),
            ("enhance", TransformParams(brightness=1.2, hue=30)),
            ("transform", TransformParams(rotate=45, flip=True)),
            ("resize", TransformParams(width=16)),
            ("ai-enhance", TransformParams(blur=2.0, saturation=1.2, flop=True)),
        ],
    )
    def test_operation_succeeds(self, data, operation, params):
        result = process_image(data, params, operation, "png")
        assert _open(result.data).size == (result.width, result.height)

    def test_gif_soft_keyword_fallback(self):
        resolved = resolve_parameters("ai-enhance", {}, prompt="make it soft")
        assert resolved.kind is ResolutionKind.FALLBACK_APPLIED
        result = process_image(_palette_gif(), resolved.params, "ai-enhance", "jpeg")
        assert (result.width, result.height) == (32, 32)

    def test_gif_decodes_as_rgb(self):
        assert decode_image(_palette_gif()).mode == "RGB"

    def test_palette_transparency_becomes_alpha(self):
        image = decode_image(_transparent_palette_png())
        assert image.mode == "RGBA"
        assert image.getchannel("A").getextrema() == (0, 0)

    def test_sixteen_bit_scaled_to_eight(self):
        image = decode_image(_sixteen_bit_png())
        assert image.mode == "L"
        assert 155 <= image.getpixel((0, 0)) <= 157
