"""Service Configuration."""

from __future__ import annotations

from functools import lru_cache

from taskscope.shared.config import BaseServiceSettings


class ServiceSettings(BaseServiceSettings):
    """taskscope API settings."""
    service_name: str = "taskscope"
    cors_origins: list[str] = ["*"]


@lru_cache()
def get_settings() -> ServiceSettings:
    return ServiceSettings()
