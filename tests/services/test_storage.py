from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from imgopt.core.exceptions import ObjectNotFoundError
from imgopt.services.storage import LocalStorage, guess_media_type


def _make_test_image(fmt: str = "PNG") -> bytes:
    img = Image.new("RGB", (10, 10), color="red")
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


class TestGuessMediaType:
    def test_from_extension(self) -> None:
        assert guess_media_type("a/b.webp", b"") == "image/webp"

    def test_sniffed_without_extension(self) -> None:
        assert guess_media_type("a/b", _make_test_image("GIF")) == "image/gif"

    def test_unknown(self) -> None:
        assert guess_media_type("a/b.bin", b"???") == "application/octet-stream"


class TestLocalStorage:
    async def test_get_existing(self, tmp_path: Path) -> None:
        data = _make_test_image()
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "img.png").write_bytes(data)

        obj = await LocalStorage(tmp_path).get("nested/img.png")
        assert obj.data == data
        assert obj.content_type == "image/png"

    async def test_get_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ObjectNotFoundError):
            await LocalStorage(tmp_path).get("missing.png")

    async def test_directory_is_not_an_object(self, tmp_path: Path) -> None:
        (tmp_path / "dir").mkdir()
        with pytest.raises(ObjectNotFoundError):
            await LocalStorage(tmp_path).get("dir")

    async def test_path_escape_is_not_found(self, tmp_path: Path) -> None:
        root = tmp_path / "root"
        root.mkdir()
        (tmp_path / "secret.png").write_bytes(b"secret")
        storage = LocalStorage(root)
        with pytest.raises(ObjectNotFoundError):
            await storage.get("../secret.png")
        assert await storage.exists("../secret.png") is False

    async def test_put_creates_parents(self, tmp_path: Path) -> None:
        storage = LocalStorage(tmp_path)
        await storage.put("optimize/abc.webp", b"data", "image/webp")
        assert (tmp_path / "optimize" / "abc.webp").read_bytes() == b"data"
        assert await storage.exists("optimize/abc.webp") is True

    async def test_exists_missing(self, tmp_path: Path) -> None:
        assert await LocalStorage(tmp_path).exists("nope.png") is False

    async def test_writable(self, tmp_path: Path) -> None:
        assert LocalStorage(tmp_path).writable is True
