import struct
import zlib
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from imgopt.api.endpoints.images import get_optimizer
from imgopt.main import app
from imgopt.services.optimizer import ImageOptimizer
from imgopt.services.storage import LocalStorage


class FakeTranscoder:
    def __init__(self, output: bytes = b"\x00\x00\x00\x18ftypmp42fake-mp4") -> None:
        self.output = output
        self.calls: list[bytes] = []

    async def gif_to_mp4(self, data: bytes) -> bytes:
        self.calls.append(data)
        return self.output


def _png_chunk(tag: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", zlib.crc32(tag + body) & 0xFFFFFFFF)


@pytest.fixture
def png_header() -> Callable[[int, int], bytes]:
    """PNG with a valid header and no pixel data, for dimension checks without allocating the raster."""

    def build(width: int, height: int) -> bytes:
        ihdr = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
        return (
            b"\x89PNG\r\n\x1a\n"
            + _png_chunk(b"IHDR", ihdr)
            + _png_chunk(b"IDAT", b"")
            + _png_chunk(b"IEND", b"")
        )

    return build


@pytest.fixture
def pixel_limit() -> Iterator[None]:
    saved = Image.MAX_IMAGE_PIXELS
    yield
    Image.MAX_IMAGE_PIXELS = saved


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    root = tmp_path / "objects"
    root.mkdir()
    return root


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def optimizer(storage_dir: Path, transcoder: FakeTranscoder) -> ImageOptimizer:
    return ImageOptimizer(LocalStorage(storage_dir), transcoder=transcoder)


@pytest.fixture
async def client(optimizer: ImageOptimizer) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_optimizer] = lambda: optimizer
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_optimizer, None)
