from enum import Enum


class FileFormat(Enum):
    PNG = "png"
    JPG = "jpg"
    GIF = "gif"
    WEBP = "webp"
    ICO = "ico"
    BMP = "bmp"
    TIFF = "tiff"
    UNSUPPORTED = "unsupported"


ALLOWED_FORMATS = frozenset({"jpg", "jpeg", "gif", "png", "webp", "bmp", "tiff", "ico", "mp4"})

VIDEO_FORMAT = "mp4"
VIDEO_MEDIA_TYPE = "video/mp4"
REDUCE_FORMAT = "webp"
DEFAULT_MEDIA_TYPE = "application/octet-stream"

TOKEN_TO_FORMAT = {
    "jpg": FileFormat.JPG,
    "jpeg": FileFormat.JPG,
    "png": FileFormat.PNG,
    "gif": FileFormat.GIF,
    "webp": FileFormat.WEBP,
    "ico": FileFormat.ICO,
    "bmp": FileFormat.BMP,
    "tiff": FileFormat.TIFF,
    "tif": FileFormat.TIFF,
}

MEDIA_TYPE_TO_FORMAT = {
    "image/jpeg": FileFormat.JPG,
    "image/jpg": FileFormat.JPG,
    "image/png": FileFormat.PNG,
    "image/gif": FileFormat.GIF,
    "image/webp": FileFormat.WEBP,
    "image/x-icon": FileFormat.ICO,
    "image/vnd.microsoft.icon": FileFormat.ICO,
    "image/bmp": FileFormat.BMP,
    "image/tiff": FileFormat.TIFF,
}

FORMAT_TO_MEDIA_TYPE = {
    FileFormat.JPG: "image/jpeg",
    FileFormat.PNG: "image/png",
    FileFormat.GIF: "image/gif",
    FileFormat.WEBP: "image/webp",
    FileFormat.ICO: "image/x-icon",
    FileFormat.BMP: "image/bmp",
    FileFormat.TIFF: "image/tiff",
}

# Pillow encoder name per output format
FORMAT_TO_PIL = {
    FileFormat.JPG: "JPEG",
    FileFormat.PNG: "PNG",
    FileFormat.GIF: "GIF",
    FileFormat.WEBP: "WEBP",
    FileFormat.ICO: "ICO",
    FileFormat.BMP: "BMP",
    FileFormat.TIFF: "TIFF",
}


def format_from_token(token: str | None) -> FileFormat:
    if not token:
        return FileFormat.UNSUPPORTED
    return TOKEN_TO_FORMAT.get(token.lower(), FileFormat.UNSUPPORTED)


def format_from_media_type(media_type: str | None) -> FileFormat:
    if not media_type:
        return FileFormat.UNSUPPORTED
    essence = media_type.split(";", 1)[0].strip().lower()
    return MEDIA_TYPE_TO_FORMAT.get(essence, FileFormat.UNSUPPORTED)


def media_type_for(fmt: FileFormat) -> str:
    return FORMAT_TO_MEDIA_TYPE.get(fmt, DEFAULT_MEDIA_TYPE)


def media_type_from_key(key: str) -> str | None:
    if "." not in key:
        return None
    fmt = format_from_token(key.rsplit(".", 1)[-1])
    if fmt is FileFormat.UNSUPPORTED:
        return None
    return media_type_for(fmt)


def detect_image_format(data: bytes) -> FileFormat:
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return FileFormat.PNG
    if data[:2] == b"\xff\xd8":
        return FileFormat.JPG
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return FileFormat.GIF
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return FileFormat.WEBP
    if data[:4] == b"\x00\x00\x01\x00":
        return FileFormat.ICO
    if data[:2] == b"BM":
        return FileFormat.BMP
    if data[:4] in (b"II*\x00", b"MM\x00*"):
        return FileFormat.TIFF
    return FileFormat.UNSUPPORTED


def detect_media_type(data: bytes) -> str:
    return media_type_for(detect_image_format(data))
