from pathlib import Path
from urllib.parse import quote

import structlog
from resilient_httpx import AsyncProxyHttpClient, RetryPolicy

from imgopt.config import Settings
from imgopt.core.exceptions import ObjectNotFoundError, UpstreamFetchError
from imgopt.services.storage import StoredObject, guess_media_type

logger = structlog.get_logger()


def _read_proxy_file(path: str) -> list[str]:
    try:
        lines = Path(path).read_text().splitlines()
    except FileNotFoundError:
        logger.warning("proxy_file_not_found", path=path)
        return []
    return [line.strip() for line in lines if line.strip()]


def origin_proxy_pools(settings: Settings) -> dict[str, list[str]]:
    """Proxy URLs per pool name, inline entries first, then the pool's file. Empty pools are dropped."""
    pools: dict[str, list[str]] = {}
    for name in sorted(settings.proxies.keys() | settings.proxy_files.keys()):
        urls = list(settings.proxies.get(name, []))
        if name in settings.proxy_files:
            urls.extend(_read_proxy_file(settings.proxy_files[name]))
        if urls:
            pools[name] = urls
    return pools


def build_http_client(settings: Settings) -> AsyncProxyHttpClient:
    pools = origin_proxy_pools(settings)
    return AsyncProxyHttpClient(
        proxies=pools or None,
        proxy_strategy=settings.proxy_strategy,
        retry=RetryPolicy(max_attempts=settings.fetch_max_retries),
        timeout=settings.fetch_timeout,
        blacklist_threshold=settings.proxy_blacklist_threshold,
        blacklist_ttl=settings.proxy_blacklist_ttl,
        fallback_to_direct=True,
    )


class HttpOriginStorage:
    """Read-only object storage backed by an HTTP origin such as a public bucket URL."""

    writable = False

    def __init__(self, base_url: str, client: AsyncProxyHttpClient, max_bytes: int, pool: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.max_bytes = max_bytes
        self.pool = pool

    def object_url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key)}"

    async def get(self, key: str) -> StoredObject:
        url = self.object_url(key)
        try:
            async with self.client.stream("GET", url, pool=self.pool) as response:
                if response.status_code == 404:
                    raise ObjectNotFoundError(key)
                response.raise_for_status()
                declared = int(response.headers.get("Content-Length") or 0)
                if declared > self.max_bytes:
                    raise UpstreamFetchError(key, f"object exceeds {self.max_bytes} bytes")
                chunks: list[bytes] = []
                total = 0
                async for chunk in response.aiter_bytes():
                    total += len(chunk)
                    if total > self.max_bytes:
                        raise UpstreamFetchError(key, f"object exceeds {self.max_bytes} bytes")
                    chunks.append(chunk)
                header_type = response.headers.get("Content-Type", "")
        except UpstreamFetchError:
            raise
        except Exception as e:
            logger.error("object_fetch_failed", url=url, error=str(e))
            raise UpstreamFetchError(key, str(e)) from e

        data = b"".join(chunks)
        content_type = header_type.split(";", 1)[0].strip() or guess_media_type(key, data)
        return StoredObject(data=data, content_type=content_type)

    async def exists(self, key: str) -> bool:
        try:
            async with self.client.stream("HEAD", self.object_url(key), pool=self.pool) as response:
                return response.status_code == 200
        except Exception as e:
            logger.warning("object_head_failed", key=key, error=str(e))
            return False

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        logger.debug("origin_read_only", key=key)

    async def aclose(self) -> None:
        await self.client.aclose()
