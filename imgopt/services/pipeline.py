import asyncio
from dataclasses import replace
from io import BytesIO
from typing import Protocol

import structlog
from PIL import Image, ImageFilter, ImageOps

from imgopt.core.exceptions import (
    DecodeError,
    DimensionLimitError,
    EncodeError,
    TransformError,
    UnsupportedFormatError,
)
from imgopt.services.formats import (
    FORMAT_TO_PIL,
    REDUCE_FORMAT,
    VIDEO_MEDIA_TYPE,
    FileFormat,
    format_from_media_type,
    format_from_token,
    media_type_for,
)
from imgopt.services.options import DEFAULT_MAX_DIMENSION, SourceDescriptor, TransformPlan

logger = structlog.get_logger()

DEFAULT_REDUCE_MAX_WIDTH = 1024

# modes each encoder accepts, and what to convert to otherwise
_ENCODER_MODES: dict[FileFormat, tuple[frozenset[str], str]] = {
    FileFormat.JPG: (frozenset({"1", "L", "RGB", "CMYK"}), "RGB"),
    FileFormat.BMP: (frozenset({"1", "L", "P", "RGB", "RGBA"}), "RGBA"),
}

_WIDE_INT_MODES = frozenset({"I", "I;16", "I;16B", "I;16L", "I;16N"})


class VideoTranscoder(Protocol):
    async def gif_to_mp4(self, data: bytes) -> bytes: ...


def decode(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
        return ImageOps.exif_transpose(img)
    except Exception as e:
        raise DecodeError(str(e)) from e


def _to_8bit(img: Image.Image) -> Image.Image:
    """Convert modes that the filter and resampling code cannot handle to an 8-bit mode."""
    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode == "1" or img.mode == "F":
        return img.convert("L")
    if img.mode in _WIDE_INT_MODES:
        # 16-bit samples, scaled into 0..255
        return img.convert("I").point(lambda v: v * (1 / 256)).convert("L")
    return img


def _needs_8bit(mode: str, fmt: FileFormat) -> bool:
    if mode != "F" and mode not in _WIDE_INT_MODES:
        return False
    if fmt is FileFormat.TIFF:
        return False
    return not (fmt is FileFormat.PNG and mode != "F")


def apply_size_policy(plan: TransformPlan, source_width: int, max_width: int = DEFAULT_REDUCE_MAX_WIDTH) -> TransformPlan:
    if plan.reduce:
        return replace(plan, width=min(max_width, source_width), height=0, format=REDUCE_FORMAT)
    if plan.resize:
        return replace(plan, width=min(max_width, source_width), height=0)
    return plan


def target_size(size: tuple[int, int], width: int, height: int) -> tuple[int, int] | None:
    src_width, src_height = size
    if width <= 0 and height <= 0:
        return None
    if width > 0 and height > 0:
        return width, height
    if width > 0:
        return width, max(1, int(src_height * width / src_width + 0.5))
    return max(1, int(src_width * height / src_height + 0.5)), height


def resize(img: Image.Image, width: int, height: int, max_dimension: int = DEFAULT_MAX_DIMENSION) -> Image.Image:
    if width > max_dimension or height > max_dimension:
        raise DimensionLimitError(f"requested {width}x{height} exceeds {max_dimension}")
    size = target_size(img.size, width, height)
    if size is None or size == img.size:
        return img
    if max(size) > max_dimension:
        raise DimensionLimitError(f"target size {size[0]}x{size[1]} exceeds {max_dimension}")
    return _to_8bit(img).resize(size, Image.Resampling.LANCZOS)


def resolve_format(plan: TransformPlan, source: SourceDescriptor) -> FileFormat:
    if plan.format:
        fmt = format_from_token(plan.format)
    else:
        fmt = format_from_media_type(source.content_type)
    if fmt is FileFormat.UNSUPPORTED:
        raise UnsupportedFormatError(f"cannot encode to {plan.format or source.content_type!r}")
    return fmt


def encode(img: Image.Image, fmt: FileFormat) -> bytes:
    modes = _ENCODER_MODES.get(fmt)
    buffer = BytesIO()
    try:
        if _needs_8bit(img.mode, fmt):
            img = _to_8bit(img)
        if modes is not None and img.mode not in modes[0]:
            img = img.convert(modes[1])
        img.save(buffer, format=FORMAT_TO_PIL[fmt])
    except Exception as e:
        raise EncodeError(f"{fmt.value}: {e}") from e
    return buffer.getvalue()


def render_raster(
    data: bytes,
    source: SourceDescriptor,
    plan: TransformPlan,
    reduce_max_width: int = DEFAULT_REDUCE_MAX_WIDTH,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
) -> tuple[bytes, str]:
    img = decode(data)
    try:
        if plan.blur is not None and plan.blur > 0:
            img = _to_8bit(img).filter(ImageFilter.GaussianBlur(plan.blur))
        plan = apply_size_policy(plan, img.width, reduce_max_width)
        img = resize(img, plan.width, plan.height, max_dimension)
    except (ValueError, OSError, OverflowError, MemoryError) as e:
        raise TransformError(f"raster operation failed: {e}") from e
    fmt = resolve_format(plan, source)
    return encode(img, fmt), media_type_for(fmt)


async def transform(
    data: bytes,
    source: SourceDescriptor,
    plan: TransformPlan,
    transcoder: VideoTranscoder | None = None,
    reduce_max_width: int = DEFAULT_REDUCE_MAX_WIDTH,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
) -> tuple[bytes, str]:
    if plan.is_empty():
        return data, source.content_type

    if source.is_animated_gif and plan.wants_video:
        if transcoder is None:
            raise UnsupportedFormatError("video transcoding is not configured")
        logger.debug("gif_to_mp4", size=len(data))
        return await transcoder.gif_to_mp4(data), VIDEO_MEDIA_TYPE

    return await asyncio.to_thread(render_raster, data, source, plan, reduce_max_width, max_dimension)
