import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from io import BytesIO

import structlog
from PIL import Image

from imgopt.services.formats import ALLOWED_FORMATS, VIDEO_FORMAT, FileFormat, format_from_media_type

logger = structlog.get_logger()

DEFAULT_MAX_DIMENSION = 16000

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class TransformPlan:
    format: str | None = None
    reduce: bool = False
    resize: bool = False
    width: int = 0
    height: int = 0
    blur: float | None = None

    def is_empty(self) -> bool:
        return (
            self.format is None
            and not self.reduce
            and not self.resize
            and self.width <= 0
            and self.height <= 0
            and (self.blur is None or self.blur <= 0)
        )

    @property
    def wants_video(self) -> bool:
        return self.format == VIDEO_FORMAT


@dataclass(frozen=True)
class SourceDescriptor:
    content_type: str
    width: int = 0
    height: int = 0
    is_animated_gif: bool = False
    oversized: bool = False


def parse_bool(value: str | None) -> bool:
    return value in _TRUE_VALUES


def parse_int(value: str | None) -> int:
    if value is None or not _INT_RE.fullmatch(value):
        return 0
    return int(value)


def parse_blur(value: str | None) -> float | None:
    if not value:
        return None
    try:
        radius = float(value)
    except ValueError:
        return None
    if not math.isfinite(radius) or radius <= 0:
        return None
    return radius


def parse_format(value: str | None) -> str | None:
    if value in ALLOWED_FORMATS:
        return value
    return None


def set_pixel_limit(max_dimension: int = DEFAULT_MAX_DIMENSION) -> None:
    """Align Pillow's decompression-bomb guard with the dimension ceiling.

    Pillow warns above ``MAX_IMAGE_PIXELS`` and refuses headers above twice
    that. With the limit at ``max_dimension ** 2`` any image that fits the
    ceiling opens quietly, and a refused header always exceeds it.
    """
    Image.MAX_IMAGE_PIXELS = max_dimension * max_dimension


def describe_source(data: bytes, content_type: str) -> SourceDescriptor:
    width = height = 0
    oversized = False
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
    except Image.DecompressionBombError as e:
        logger.info("source_too_large", content_type=content_type, error=str(e))
        oversized = True
    except OSError as e:
        logger.debug("source_header_unreadable", content_type=content_type, error=str(e))
    return SourceDescriptor(
        content_type=content_type,
        width=width,
        height=height,
        is_animated_gif=format_from_media_type(content_type) is FileFormat.GIF,
        oversized=oversized,
    )


def exceeds_size_limit(source: SourceDescriptor, max_dimension: int = DEFAULT_MAX_DIMENSION) -> bool:
    return source.oversized or source.width > max_dimension or source.height > max_dimension


def resolve(params: Mapping[str, str], source: SourceDescriptor) -> TransformPlan:
    plan = TransformPlan(
        format=parse_format(params.get("format")),
        reduce=parse_bool(params.get("optimize")),
        resize=parse_bool(params.get("optimizeSize")),
        width=parse_int(params.get("width")),
        height=parse_int(params.get("height")),
        blur=parse_blur(params.get("blur")),
    )
    # GIF reduction is not supported; only the video conversion applies to GIF sources
    if source.is_animated_gif and plan.reduce and not plan.wants_video:
        return TransformPlan()
    return plan
