"""Raster transform pipeline for uploaded images.

Applies a resolved :class:`~quantum_canvas.core.transforms.TransformParams`
to image bytes with Pillow and re-encodes the result.

Stage Order
-----------
Each operation runs a fixed sequence of stages; fields that are ``None`` turn
their stage into a no-op.

==========  ==================================================
Operation   Stages
==========  ==================================================
resize      resize
crop        crop
enhance     colour → sharpen
filter      blur → sharpen → tone
transform   rotate → mirror
ai-enhance  mirror → rotate → colour → blur → sharpen → tone
==========  ==================================================

``colour`` covers brightness, contrast, saturation and hue; ``mirror`` covers
flip (vertical) and flop (horizontal); ``tone`` covers grayscale and sepia.

Output Formats
--------------
``jpeg`` (alias ``jpg``), ``png``, ``webp`` and ``avif``.  Any other name, or
``avif`` when the installed Pillow has no AVIF encoder, falls back to jpeg
and the fallback is reported in :attr:`ProcessedImage.note`.
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError, features

from quantum_canvas.core.errors import ImageProcessingError
from quantum_canvas.core.transforms import TransformParams

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "jpeg"

# name -> (Pillow format, media type, file extension)
OUTPUT_FORMATS: dict[str, tuple[str, str, str]] = {
    "jpeg": ("JPEG", "image/jpeg", "jpg"),
    "png": ("PNG", "image/png", "png"),
    "webp": ("WEBP", "image/webp", "webp"),
    "avif": ("AVIF", "image/avif", "avif"),
}

STAGES: dict[str, tuple[str, ...]] = {
    "resize": ("resize",),
    "crop": ("crop",),
    "enhance": ("colour", "sharpen"),
    "filter": ("blur", "sharpen", "tone"),
    "transform": ("rotate", "mirror"),
    "ai-enhance": ("mirror", "rotate", "colour", "blur", "sharpen", "tone"),
}

_SEPIA_DARK = "#3b2a1a"
_SEPIA_LIGHT = "#f0dcb4"


@dataclass
class ProcessedImage:
    """Encoded output of :func:`process_image`."""

    data: bytes
    format: str
    media_type: str
    extension: str
    width: int
    height: int
    original_size: int
    note: str | None = None

    @property
    def processed_size(self) -> int:
        return len(self.data)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


def avif_supported() -> bool:
    """Whether the installed Pillow can encode AVIF."""
    try:
        return bool(features.check_module("avif"))
    except ValueError:
        # Pillow releases before native AVIF support do not know the module.
        return False


def resolve_output_format(name: str | None) -> tuple[str, str | None]:
    """Normalise an output format name.

    Returns:
        Tuple of ``(format_name, note)`` where *note* explains a fallback to
        jpeg, or is ``None``.
    """
    requested = (name or DEFAULT_FORMAT).strip().lower()
    if requested == "jpg":
        requested = "jpeg"
    if requested not in OUTPUT_FORMATS:
        return DEFAULT_FORMAT, f"Output format '{requested}' is not supported; encoded as jpeg"
    if requested == "avif" and not avif_supported():
        return DEFAULT_FORMAT, "AVIF encoding is not available on this server; encoded as jpeg"
    return requested, None


# ---------------------------------------------------------------------------
# Mode handling.  Stages only ever see the modes in _WORKING_MODES; colour
# stages work on RGB and re-attach the alpha band.
# ---------------------------------------------------------------------------

_WORKING_MODES = ("RGB", "RGBA", "L", "LA")


def _normalise_mode(image: Image.Image) -> Image.Image:
    """Convert palette, bilevel, CMYK and high bit-depth images to 8-bit bands."""
    if image.mode in _WORKING_MODES:
        return image
    if image.mode.startswith("I"):
        # 16-bit samples scaled down to 0-255.
        return image.convert("I").point(lambda value: value * (1 / 256)).convert("L")
    if image.mode == "F":
        return image.convert("L")
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _split_alpha(image: Image.Image) -> tuple[Image.Image, Image.Image | None]:
    if image.mode in ("RGBA", "LA"):
        rgba = image.convert("RGBA")
        return rgba.convert("RGB"), rgba.getchannel("A")
    return image.convert("RGB"), None


def _merge_alpha(image: Image.Image, alpha: Image.Image | None) -> Image.Image:
    if alpha is None:
        return image
    merged = image.convert("RGBA")
    merged.putalpha(alpha)
    return merged


# ---------------------------------------------------------------------------
# Stages.
# ---------------------------------------------------------------------------


def _resize(image: Image.Image, params: TransformParams) -> Image.Image:
    width, height = params.width, params.height
    if not width and not height:
        return image

    src_w, src_h = image.size
    if not width or not height:
        # A single dimension bounds both sides and keeps the aspect ratio.
        box = width or height
        scale = min(box / src_w, box / src_h)
        size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        return image.resize(size, Image.Resampling.LANCZOS)

    fit = params.fit or "inside"
    if fit == "fill":
        return image.resize((width, height), Image.Resampling.LANCZOS)
    if fit == "cover":
        return ImageOps.fit(image, (width, height), Image.Resampling.LANCZOS)
    if fit == "contain":
        return ImageOps.pad(image, (width, height), Image.Resampling.LANCZOS)

    pick = max if fit == "outside" else min
    scale = pick(width / src_w, height / src_h)
    size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
    return image.resize(size, Image.Resampling.LANCZOS)


def _crop(image: Image.Image, params: TransformParams) -> Image.Image:
    if all(v is None for v in (params.left, params.top, params.width, params.height)):
        return image

    img_w, img_h = image.size
    left = min(params.left or 0, img_w)
    top = min(params.top or 0, img_h)
    right = img_w if params.width is None else min(left + params.width, img_w)
    bottom = img_h if params.height is None else min(top + params.height, img_h)

    if right <= left or bottom <= top:
        logger.info(f"Crop box ({left}, {top}, {right}, {bottom}) is empty; skipping crop")
        return image
    return image.crop((left, top, right, bottom))


def _shift_hue(image: Image.Image, degrees: int) -> Image.Image:
    offset = round(degrees / 360 * 256) % 256
    if offset == 0:
        return image
    h, s, v = image.convert("HSV").split()
    h = h.point(lambda value: (value + offset) % 256)
    return Image.merge("HSV", (h, s, v)).convert("RGB")


def _colour(image: Image.Image, params: TransformParams) -> Image.Image:
    if all(
        v is None for v in (params.brightness, params.contrast, params.saturation, params.hue)
    ):
        return image

    rgb, alpha = _split_alpha(image)
    if params.brightness is not None:
        rgb = ImageEnhance.Brightness(rgb).enhance(params.brightness)
    if params.contrast is not None:
        rgb = ImageEnhance.Contrast(rgb).enhance(params.contrast)
    if params.saturation is not None:
        rgb = ImageEnhance.Color(rgb).enhance(params.saturation)
    if params.hue:
        rgb = _shift_hue(rgb, params.hue)
    return _merge_alpha(rgb, alpha)


def _blur(image: Image.Image, params: TransformParams) -> Image.Image:
    if params.blur is None:
        return image
    return image.filter(ImageFilter.GaussianBlur(radius=params.blur))


def _sharpen(image: Image.Image, params: TransformParams) -> Image.Image:
    if params.sharpen is None:
        return image
    rgb, alpha = _split_alpha(image)
    rgb = rgb.filter(ImageFilter.UnsharpMask(radius=2, percent=round(params.sharpen * 100)))
    return _merge_alpha(rgb, alpha)


def _tone(image: Image.Image, params: TransformParams) -> Image.Image:
    if not params.grayscale and not params.sepia:
        return image
    rgb, alpha = _split_alpha(image)
    gray = ImageOps.grayscale(rgb)
    if params.sepia:
        toned = ImageOps.colorize(gray, _SEPIA_DARK, _SEPIA_LIGHT)
    else:
        toned = gray.convert("RGB")
    return _merge_alpha(toned, alpha)


def _rotate(image: Image.Image, params: TransformParams) -> Image.Image:
    if not params.rotate or params.rotate % 360 == 0:
        return image
    fill = (0, 0, 0, 0) if image.mode == "RGBA" else None
    # Pillow rotates counter-clockwise; the API angle is clockwise.
    return image.rotate(
        -params.rotate,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor=fill,
    )


def _mirror(image: Image.Image, params: TransformParams) -> Image.Image:
    if params.flip:
        image = ImageOps.flip(image)
    if params.flop:
        image = ImageOps.mirror(image)
    return image


_STAGE_FUNCS = {
    "resize": _resize,
    "crop": _crop,
    "colour": _colour,
    "blur": _blur,
    "sharpen": _sharpen,
    "tone": _tone,
    "rotate": _rotate,
    "mirror": _mirror,
}


# ---------------------------------------------------------------------------
# Entry points.
# ---------------------------------------------------------------------------


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes, apply the EXIF orientation and normalise the mode.

    Palette (GIF, indexed PNG), bilevel, CMYK and 16-bit images are converted
    to RGB, RGBA or L so every stage can run on them.

    Raises:
        ImageProcessingError: If the bytes are not a readable image.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ImageProcessingError("Failed to decode image", details=str(e)) from e
    return _normalise_mode(ImageOps.exif_transpose(image))


def apply_operation(image: Image.Image, operation: str, params: TransformParams) -> Image.Image:
    """Run the stages of *operation* over *image*."""
    for stage in STAGES.get(operation, ()):
        image = _STAGE_FUNCS[stage](image, params)
    return image


def encode_image(image: Image.Image, output_format: str, quality: int) -> bytes:
    """Encode *image* with a format name from :data:`OUTPUT_FORMATS`."""
    pil_format = OUTPUT_FORMATS[output_format][0]
    save_kwargs: dict = {}

    if pil_format == "JPEG":
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        save_kwargs = {"quality": quality, "optimize": True}
    elif pil_format == "PNG":
        if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            image = image.convert("RGBA")
        save_kwargs = {"optimize": True}
    else:
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        save_kwargs = {"quality": quality}

    buffer = io.BytesIO()
    image.save(buffer, format=pil_format, **save_kwargs)
    return buffer.getvalue()


def process_image(
    data: bytes,
    params: TransformParams,
    operation: str,
    output_format: str | None = DEFAULT_FORMAT,
    quality: int = 80,
) -> ProcessedImage:
    """Decode, transform and re-encode an uploaded image.

    Args:
        data: Raw uploaded bytes.
        params: Resolved parameter set.
        operation: Operation name selecting the stage order.
        output_format: Requested output format name.
        quality: Encoder quality, clamped to 1–100.

    Returns:
        The encoded result with original and processed byte counts.

    Raises:
        ImageProcessingError: If decoding, a stage, or encoding fails.
    """
    fmt, note = resolve_output_format(output_format)
    quality = max(1, min(100, int(quality)))

    image = decode_image(data)
    try:
        result = apply_operation(image, operation, params)
        encoded = encode_image(result, fmt, quality)
    except (OSError, ValueError) as e:
        raise ImageProcessingError("Failed to process image", details=str(e)) from e

    _, media_type, extension = OUTPUT_FORMATS[fmt]
    logger.info(
        f"Processed image ({operation}): {image.size} -> {result.size}, "
        f"{len(data)} -> {len(encoded)} bytes as {fmt}"
    )
    return ProcessedImage(
        data=encoded,
        format=fmt,
        media_type=media_type,
        extension=extension,
        width=result.width,
        height=result.height,
        original_size=len(data),
        note=note,
    )
