"""Application settings models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

from nsr_crawler import constants


class MongoSettings(BaseSettings):
    """Settings for the MongoDB record sink.

    Environment variables follow the ``MONGO_`` prefix, e.g. ``MONGO_URI`` or
    ``MONGO_COLLECTION``. Without a URI records stay in memory.
    """

    uri: str | None = None
    database: str = "nsr"
    collection: str = "specialists"
    batch_size: int = 50

    model_config = ConfigDict(extra="ignore", env_prefix="MONGO_")


class CrawlerSettings(BaseSettings):
    """Knobs of the crawl itself (``NSR_`` prefix).

    ``states`` and ``start_urls`` are JSON lists when given through the
    environment, e.g. ``NSR_STATES='["johor", "melaka"]'``.
    """

    search_url: str = constants.NSR_SEARCH_URL
    listing_url: str = constants.NSR_LISTING_URL
    filter_param: str = constants.FILTER_PARAM
    page_param: str = constants.PAGE_PARAM
    unfiltered_page_threshold: int = constants.UNFILTERED_PAGE_THRESHOLD

    states: list[str] = Field(default_factory=list)
    start_urls: list[str] = Field(default_factory=list)

    use_search_form: bool = True
    paginate: bool = True
    region_precedence: Literal["address", "listing"] = "address"

    concurrency: int = Field(default=5, ge=1)
    max_tasks: int = Field(default=0, ge=0)
    domain_delay: float = Field(default=0.5, ge=0)
    request_timeout: float = 15.0
    max_retries: int = Field(default=3, ge=0)
    retry_backoff: float = 1.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
    )

    model_config = ConfigDict(extra="ignore", env_prefix="NSR_")


class Settings(BaseSettings):
    """Top level settings loaded from ``.env``.

    Nested models read their own prefixes (``NSR_``, ``MONGO_``).
    """

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached application settings."""

    return Settings()
