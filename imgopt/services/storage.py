from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from imgopt.core.exceptions import ObjectNotFoundError, UpstreamFetchError
from imgopt.services.formats import detect_media_type, media_type_from_key

logger = structlog.get_logger()


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: str


class ObjectStorage(Protocol):
    writable: bool

    async def get(self, key: str) -> StoredObject: ...

    async def exists(self, key: str) -> bool: ...

    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def aclose(self) -> None: ...


def guess_media_type(key: str, data: bytes) -> str:
    return media_type_from_key(key) or detect_media_type(data)


class LocalStorage:
    writable = True

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root) or path == self.root:
            raise ObjectNotFoundError(key)
        return path

    async def get(self, key: str) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error("object_read_failed", key=key, error=str(e))
            raise UpstreamFetchError(key, str(e)) from e
        return StoredObject(data=data, content_type=guess_media_type(key, data))

    async def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except ObjectNotFoundError:
            return False

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        logger.info("object_saved", key=key, content_type=content_type, size=len(data))

    async def aclose(self) -> None:
        return None
