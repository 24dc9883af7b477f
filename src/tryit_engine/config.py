"""Configuration for the Try It engine and its proxy server."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRYIT_", case_sensitive=False)

    service_name: str = Field(default="tryit-engine")

    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=9090)

    proxy_base_url: str = Field(default="http://localhost:9090")
    current_origin: Optional[str] = Field(default=None)

    default_timeout_ms: int = Field(default=30_000)
    proxy_max_timeout_ms: int = Field(default=120_000)
    spec_fetch_timeout_seconds: float = Field(default=15)
    max_url_length: int = Field(default=4096)

    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
