"""Exception hierarchy for the register crawler."""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for every error raised by the crawler."""


class FetchError(CrawlError):
    """Network failure, timeout or non-2xx response after retries ran out."""

    def __init__(self, url: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class BotDetectionError(FetchError):
    """The site answered with a 403-class refusal."""


class ParseError(CrawlError):
    """Expected document structure is missing."""


class ValidationError(CrawlError):
    """A register number does not satisfy the format rule."""

    def __init__(self, value: str | None) -> None:
        super().__init__(f"invalid NSR number: {value!r}")
        self.value = value


class PaginationGuardTrip(CrawlError):
    """Every next-page candidate was rejected by the validity guard."""

    def __init__(self, rejected: list[tuple[str, str]]) -> None:
        super().__init__(f"{len(rejected)} pagination candidate(s) rejected")
        self.rejected = rejected


class SinkError(CrawlError):
    """The record store rejected a write; the batch stays buffered."""
