import asyncio

import structlog
from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from imgopt.core.exceptions import ObjectNotFoundError, UpstreamFetchError
from imgopt.services.storage import StoredObject, guess_media_type

logger = structlog.get_logger()


class GcsStorage:
    writable = True

    def __init__(self, bucket_name: str, project: str | None = None, client: storage.Client | None = None) -> None:
        self.client = client or storage.Client(project=project)
        self.bucket = self.client.bucket(bucket_name)

    def _get(self, key: str) -> StoredObject:
        try:
            blob = self.bucket.get_blob(key)
            if blob is None:
                raise ObjectNotFoundError(key)
            data = blob.download_as_bytes()
        except gcs_exceptions.NotFound as e:
            raise ObjectNotFoundError(key) from e
        except gcs_exceptions.GoogleAPICallError as e:
            logger.error("object_fetch_failed", bucket=self.bucket.name, key=key, error=str(e))
            raise UpstreamFetchError(key, str(e)) from e
        return StoredObject(data=data, content_type=blob.content_type or guess_media_type(key, data))

    def _exists(self, key: str) -> bool:
        try:
            return self.bucket.blob(key).exists()
        except gcs_exceptions.GoogleAPICallError as e:
            logger.warning("object_head_failed", bucket=self.bucket.name, key=key, error=str(e))
            raise UpstreamFetchError(key, str(e)) from e

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        self.bucket.blob(key).upload_from_string(data, content_type=content_type)
        logger.info("object_saved", bucket=self.bucket.name, key=key, content_type=content_type)

    async def get(self, key: str) -> StoredObject:
        return await asyncio.to_thread(self._get, key)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists, key)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self._put, key, data, content_type)

    async def aclose(self) -> None:
        self.client.close()
