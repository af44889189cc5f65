from io import BytesIO

import pytest
from PIL import Image

from imgopt.services import formats
from imgopt.services.formats import FileFormat


def _make_test_image(fmt: str = "JPEG") -> bytes:
    img = Image.new("RGB", (16, 16), color="red")
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


class TestFormatFromToken:
    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ("jpg", FileFormat.JPG),
            ("jpeg", FileFormat.JPG),
            ("png", FileFormat.PNG),
            ("gif", FileFormat.GIF),
            ("webp", FileFormat.WEBP),
            ("ico", FileFormat.ICO),
            ("bmp", FileFormat.BMP),
            ("tiff", FileFormat.TIFF),
        ],
    )
    def test_known_tokens(self, token: str, expected: FileFormat) -> None:
        assert formats.format_from_token(token) is expected

    def test_video_token_is_not_an_image_format(self) -> None:
        assert formats.format_from_token("mp4") is FileFormat.UNSUPPORTED

    def test_unknown_and_empty(self) -> None:
        assert formats.format_from_token("xyz") is FileFormat.UNSUPPORTED
        assert formats.format_from_token("") is FileFormat.UNSUPPORTED
        assert formats.format_from_token(None) is FileFormat.UNSUPPORTED


class TestFormatFromMediaType:
    def test_jpeg_aliases(self) -> None:
        assert formats.format_from_media_type("image/jpeg") is FileFormat.JPG
        assert formats.format_from_media_type("image/jpg") is FileFormat.JPG

    def test_parameters_and_case_ignored(self) -> None:
        assert formats.format_from_media_type("Image/PNG; charset=binary") is FileFormat.PNG

    def test_icon_types(self) -> None:
        assert formats.format_from_media_type("image/x-icon") is FileFormat.ICO
        assert formats.format_from_media_type("image/vnd.microsoft.icon") is FileFormat.ICO

    def test_unmapped(self) -> None:
        assert formats.format_from_media_type("video/mp4") is FileFormat.UNSUPPORTED
        assert formats.format_from_media_type("") is FileFormat.UNSUPPORTED


class TestMediaTypes:
    def test_every_supported_format_has_encoder_and_media_type(self) -> None:
        for fmt in FileFormat:
            if fmt is FileFormat.UNSUPPORTED:
                continue
            assert fmt in formats.FORMAT_TO_PIL
            assert formats.media_type_for(fmt).startswith("image/")

    def test_unsupported_media_type(self) -> None:
        assert formats.media_type_for(FileFormat.UNSUPPORTED) == "application/octet-stream"

    def test_media_type_from_key(self) -> None:
        assert formats.media_type_from_key("photos/cat.JPG") == "image/jpeg"
        assert formats.media_type_from_key("photos/cat") is None
        assert formats.media_type_from_key("docs/readme.txt") is None


class TestDetectImageFormat:
    @pytest.mark.parametrize(
        ("pil_format", "expected"),
        [
            ("JPEG", FileFormat.JPG),
            ("PNG", FileFormat.PNG),
            ("GIF", FileFormat.GIF),
            ("WEBP", FileFormat.WEBP),
            ("BMP", FileFormat.BMP),
            ("TIFF", FileFormat.TIFF),
            ("ICO", FileFormat.ICO),
        ],
    )
    def test_magic_bytes(self, pil_format: str, expected: FileFormat) -> None:
        assert formats.detect_image_format(_make_test_image(pil_format)) is expected

    def test_unknown(self) -> None:
        assert formats.detect_image_format(b"\x00\x01\x02") is FileFormat.UNSUPPORTED

    def test_detect_media_type(self) -> None:
        assert formats.detect_media_type(_make_test_image("PNG")) == "image/png"
        assert formats.detect_media_type(b"plain text") == "application/octet-stream"
