from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from imgopt.config import Settings
from imgopt.core.exceptions import TransformError
from imgopt.services.cache import DerivedCache
from imgopt.services.gcs_storage import GcsStorage
from imgopt.services.options import (
    DEFAULT_MAX_DIMENSION,
    describe_source,
    exceeds_size_limit,
    resolve,
    set_pixel_limit,
)
from imgopt.services.origin_fetcher import HttpOriginStorage, build_http_client
from imgopt.services.pipeline import DEFAULT_REDUCE_MAX_WIDTH, VideoTranscoder, transform
from imgopt.services.storage import LocalStorage, ObjectStorage
from imgopt.services.transcoder import FfmpegTranscoder

logger = structlog.get_logger()


@dataclass(frozen=True)
class TransformResult:
    body: bytes
    content_type: str
    transformed: bool = False
    error: TransformError | None = None


class ImageOptimizer:
    def __init__(
        self,
        storage: ObjectStorage,
        transcoder: VideoTranscoder | None = None,
        cache: DerivedCache | None = None,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        reduce_max_width: int = DEFAULT_REDUCE_MAX_WIDTH,
    ) -> None:
        self.storage = storage
        self.transcoder = transcoder
        self.cache = cache
        self.max_dimension = max_dimension
        set_pixel_limit(max_dimension)
        self.reduce_max_width = reduce_max_width

    async def optimize(self, key: str, params: Mapping[str, str]) -> TransformResult:
        """Fetch ``key`` and apply the transform requested by ``params``.

        Storage failures propagate as ``UpstreamFetchError``. Transform failures
        never raise: the result carries the original bytes and the error.
        """
        original = await self.storage.get(key)
        source = describe_source(original.data, original.content_type)

        if exceeds_size_limit(source, self.max_dimension):
            logger.info("size_limit_bypass", key=key, width=source.width, height=source.height)
            return TransformResult(body=original.data, content_type=original.content_type)

        plan = resolve(params, source)
        if plan.is_empty():
            return TransformResult(body=original.data, content_type=original.content_type)

        if self.cache is not None:
            cached = await self.cache.load(key, plan, source)
            if cached is not None:
                return TransformResult(body=cached.data, content_type=cached.content_type, transformed=True)

        try:
            body, content_type = await transform(
                original.data,
                source,
                plan,
                self.transcoder,
                reduce_max_width=self.reduce_max_width,
                max_dimension=self.max_dimension,
            )
        except TransformError as e:
            logger.warning("transform_failed", key=key, kind=e.kind, error=str(e))
            return TransformResult(body=original.data, content_type=original.content_type, error=e)

        if self.cache is not None:
            await self.cache.store(key, plan, source, body, content_type)
        return TransformResult(body=body, content_type=content_type, transformed=True)

    async def aclose(self) -> None:
        await self.storage.aclose()


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "http":
        return HttpOriginStorage(settings.origin_url, build_http_client(settings), settings.max_fetch_bytes)
    if settings.storage_backend == "gcs":
        return GcsStorage(settings.gcs_bucket, project=settings.gcs_project)
    return LocalStorage(settings.storage_path)


def build_optimizer(settings: Settings) -> ImageOptimizer:
    storage = build_storage(settings)
    cache = None
    if settings.cache_enabled:
        if storage.writable:
            cache = DerivedCache(storage, settings.cache_prefix)
        else:
            logger.warning("cache_disabled_read_only_storage", backend=settings.storage_backend)
    return ImageOptimizer(
        storage,
        transcoder=FfmpegTranscoder(settings.ffmpeg_path, settings.transcode_timeout),
        cache=cache,
        max_dimension=settings.max_source_dimension,
        reduce_max_width=settings.reduce_max_width,
    )
