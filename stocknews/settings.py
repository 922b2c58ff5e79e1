"""Configuration model for the feed aggregator."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import (
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from stocknews.models.domain import ThemeName


class Settings(BaseSettings):
    """Environment-driven settings for fetching, storage and logging."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    watchlist: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        alias="STOCKNEWS_WATCHLIST",
        description="Tickers to highlight, JSON array or comma separated.",
    )
    refresh_interval_seconds: PositiveInt = Field(
        300, alias="STOCKNEWS_REFRESH_INTERVAL_SECONDS", description="Auto refresh period (seconds)."
    )
    min_fetch_interval_seconds: PositiveInt = Field(
        60, alias="STOCKNEWS_MIN_FETCH_INTERVAL_SECONDS", description="Minimum gap between fetches of one source."
    )
    request_timeout_seconds: PositiveFloat = Field(
        15.0, alias="STOCKNEWS_REQUEST_TIMEOUT_SECONDS", description="Per-request HTTP timeout (seconds)."
    )
    content_retry_delay_ms: NonNegativeInt = Field(
        500, alias="STOCKNEWS_CONTENT_RETRY_DELAY_MS", description="Delay before retrying with the next user agent."
    )
    article_limit: PositiveInt = Field(100, alias="STOCKNEWS_ARTICLE_LIMIT", description="Rows loaded from the store.")
    poll_interval_ms: PositiveInt = Field(100, alias="STOCKNEWS_POLL_INTERVAL_MS", description="Consumer loop tick.")
    database_url: Optional[str] = Field(None, alias="STOCKNEWS_DATABASE_URL", description="SQLAlchemy database URL.")
    data_dir: str = Field("./var/stocknews", alias="STOCKNEWS_DATA_DIR", description="Database and view state directory.")
    config_dir: str = Field("./var/stocknews", alias="STOCKNEWS_CONFIG_DIR", description="Source list directory.")
    theme: str = Field("dark", alias="STOCKNEWS_THEME", description="Color theme name.")
    log_level: str = Field("INFO", alias="STOCKNEWS_LOG_LEVEL", description="Log level.")
    log_json: bool = Field(False, alias="LOG_JSON", description="Emit log records as JSON lines.")

    @field_validator("watchlist", mode="before")
    @classmethod
    def _parse_watchlist(cls, value: Any) -> List[Any]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    return json.loads(text)
                except json.JSONDecodeError as exc:
                    raise ValueError("STOCKNEWS_WATCHLIST must be a JSON array or a comma separated list.") from exc
            return text.split(",")
        if isinstance(value, (list, tuple)):
            return list(value)
        raise ValueError("STOCKNEWS_WATCHLIST must be a list.")

    @field_validator("watchlist")
    @classmethod
    def _normalize_watchlist(cls, value: List[str]) -> List[str]:
        tickers: List[str] = []
        for item in value:
            ticker = str(item).strip().upper()
            if ticker and ticker not in tickers:
                tickers.append(ticker)
        return tickers

    @field_validator("theme")
    @classmethod
    def _normalize_theme(cls, value: str) -> str:
        return ThemeName.parse(value).value

    @field_validator("data_dir", "config_dir")
    @classmethod
    def _validate_dir(cls, value: str) -> str:
        path = value.strip()
        if not path:
            raise ValueError("directory settings cannot be blank.")
        return path

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.data_dir) / 'articles.db'}"

    @property
    def sources_path(self) -> Path:
        return Path(self.config_dir) / "sources.json"

    @property
    def state_path(self) -> Path:
        return Path(self.data_dir) / "state.json"


@lru_cache()
def get_settings() -> Settings:
    """Return the Settings instance built from the environment."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"Invalid stocknews configuration: {exc}") from exc


def reset_settings_cache() -> None:
    """Clear the cached Settings (used by tests)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
