from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backcast import __version__

if TYPE_CHECKING:
    from collections.abc import Mapping


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Path | None = None


class SchedulerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sweep_interval_seconds: int = Field(default=60, gt=0)
    stale_after_seconds: int = Field(default=3600, gt=0)
    sweep_limit: int = Field(default=5, gt=0)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)


class FetchConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = f"backcast/{__version__}"
    max_attempts: int = Field(default=3, gt=0)
    max_retry_wait_seconds: float = Field(default=60.0, gt=0)


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    database: DatabaseConfig = DatabaseConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    fetch: FetchConfig = FetchConfig()
    resources: list[str] = []

    @field_validator("resources")
    @classmethod
    def _validate_resources(cls, value: list[str]) -> list[str]:
        for url in value:
            if not _is_valid_url(url):
                msg = f"must be a valid URL: {url}"
                raise ValueError(msg)
        return value

    @classmethod
    def from_raw(cls, data: Mapping[str, object]) -> AppConfig:
        return cls.model_validate(data)
