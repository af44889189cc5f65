import hashlib

import structlog

from imgopt.services.formats import REDUCE_FORMAT, VIDEO_FORMAT
from imgopt.services.options import SourceDescriptor, TransformPlan
from imgopt.services.storage import ObjectStorage, StoredObject

logger = structlog.get_logger()


def cache_key(key: str, plan: TransformPlan, source: SourceDescriptor, prefix: str = "optimize") -> str:
    digest = hashlib.sha1(
        "".join(
            [
                key,
                str(plan.reduce).lower(),
                str(plan.resize).lower(),
                plan.format or "",
                str(plan.width),
                str(plan.height),
                str(plan.blur or ""),
            ]
        ).encode()
    ).hexdigest()

    if source.is_animated_gif and plan.wants_video:
        ext = VIDEO_FORMAT
    elif plan.reduce:
        ext = REDUCE_FORMAT
    elif plan.format:
        ext = plan.format
    elif "." in key.rsplit("/", 1)[-1]:
        ext = key.rsplit(".", 1)[-1]
    else:
        ext = ""

    name = f"{digest}.{ext}" if ext else digest
    return f"{prefix.strip('/')}/{name}"


class DerivedCache:
    """Best-effort store of transformed objects next to the originals.

    Reads and writes never fail the request; there is no consistency guarantee
    between concurrent writers of the same key.
    """

    def __init__(self, storage: ObjectStorage, prefix: str = "optimize") -> None:
        self.storage = storage
        self.prefix = prefix

    async def load(self, key: str, plan: TransformPlan, source: SourceDescriptor) -> StoredObject | None:
        derived_key = cache_key(key, plan, source, self.prefix)
        try:
            if not await self.storage.exists(derived_key):
                return None
            return await self.storage.get(derived_key)
        except Exception as e:
            logger.warning("cache_read_failed", key=derived_key, error=str(e))
            return None

    async def store(self, key: str, plan: TransformPlan, source: SourceDescriptor, data: bytes, content_type: str) -> None:
        derived_key = cache_key(key, plan, source, self.prefix)
        try:
            await self.storage.put(derived_key, data, content_type)
        except Exception as e:
            logger.error("cache_write_failed", key=derived_key, error=str(e))
