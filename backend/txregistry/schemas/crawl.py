"""Pydantic schemas for crawl bookkeeping: log entries, errors, metadata."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LogLevel(str, Enum):
    """Severity of a crawl log entry."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogEntry(BaseModel):
    """One entry of the in-memory crawl log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    level: LogLevel
    message: str
    source: str = ""


class CrawlError(BaseModel):
    """A failure recorded during a crawl, fatal or isolated."""

    model_config = ConfigDict(frozen=True)

    source: str
    error: str
    timestamp: datetime


class CrawlMetadata(BaseModel):
    """Operational summary of the most recent crawl."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_run: datetime | None = None
    outcome: str = ""
    errors: list[CrawlError] = Field(default_factory=list)
    total_bytes: int = 0
    is_crawling: bool = False


class RegistryStatus(BaseModel):
    """Health summary of the registry service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool = True
    initialized: bool = False
    crawling: bool = False
    last_crawl: datetime | None = None
    registries: int = 0
    servers: int = 0
    errors: int = 0
