from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "imgopt"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    cors_origins: list[str] = ["*"]

    storage_backend: Literal["local", "http", "gcs"] = "local"
    storage_path: str = "/app/objects"
    origin_url: str = ""
    gcs_bucket: str = ""
    gcs_project: str | None = None

    fetch_timeout: float = 15.0
    fetch_max_retries: int = 3
    max_fetch_bytes: int = 50 * 1024 * 1024
    proxies: dict[str, list[str]] = {}
    proxy_files: dict[str, str] = {}
    proxy_strategy: str = "round-robin"
    proxy_blacklist_threshold: int = 3
    proxy_blacklist_ttl: float = 300.0

    max_source_dimension: int = 16000
    reduce_max_width: int = 1024
    cache_max_age: int = 31536000
    cache_enabled: bool = False
    cache_prefix: str = "optimize"

    ffmpeg_path: str = "ffmpeg"
    transcode_timeout: float = 60.0


settings = Settings()
