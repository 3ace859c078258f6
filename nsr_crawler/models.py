"""Data model shared by the parsers, the frontier and the sinks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class EntityTarget:
    """One crawl bucket (a state) traversed in full.

    ``filter_value`` is what the search filter must carry on every page of
    this bucket; seed URLs that name no known state have none.
    """

    key: str
    label: str
    category: str = "regular"
    filter_value: str | None = None

    @property
    def is_special(self) -> bool:
        return self.category == "special"


class TaskKind(StrEnum):
    FORM = "FORM"
    LISTING = "LISTING"
    DETAIL = "DETAIL"


@dataclass(frozen=True)
class FormTask:
    """Fetch the search form so its hidden fields can be replayed."""

    url: str
    target: EntityTarget
    method: str = "GET"
    payload: dict[str, str] | None = None

    kind = TaskKind.FORM

    @property
    def dedup_key(self) -> str:
        return f"{self.kind}:{self.target.key}"


@dataclass(frozen=True)
class ListingTask:
    """Fetch one page of results for a target."""

    url: str
    target: EntityTarget
    page: int = 1
    method: str = "GET"
    payload: dict[str, str] | None = None

    kind = TaskKind.LISTING

    @property
    def dedup_key(self) -> str:
        return f"{self.kind}:{self.target.key}:{self.page}"


@dataclass(frozen=True)
class DetailTask:
    """Fetch the profile document of a single specialist."""

    url: str
    target: EntityTarget
    nsr_no: str
    stub: "EntityStub | None" = None
    method: str = "GET"
    payload: dict[str, str] | None = None

    kind = TaskKind.DETAIL

    @property
    def dedup_key(self) -> str:
        return f"{self.kind}:{self.nsr_no}"


CrawlTask = FormTask | ListingTask | DetailTask


@dataclass(frozen=True)
class EntityStub:
    """Row of a results page, enough to schedule a detail fetch."""

    nsr_no: str
    name: str
    profile_url: str
    title: str | None = None
    gender: str | None = None
    location: str | None = None
    specialty: str | None = None


@dataclass
class PaginationState:
    current_page: int = 1
    total_pages: int = 1
    has_next: bool = False


@dataclass(frozen=True)
class NextPage:
    url: str
    page: int


@dataclass(frozen=True)
class Region:
    state_id: int
    state: str
    category: str


class Qualification(BaseModel):
    degree: str
    awarding_body: str | None = None
    year: int | None = None

    model_config = ConfigDict(frozen=True)


class Record(BaseModel):
    """Canonical specialist record handed to the sink."""

    nsr_no: str
    profile_url: str
    name: str | None = None
    title: str | None = None
    gender: str | None = None
    specialty: str | None = None
    qualifications: list[str] = Field(default_factory=list)
    qualifications_structured: list[Qualification] = Field(default_factory=list)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    state_id: int | None = None
    state_category: str | None = None
    establishment: str | None = None
    sector: str | None = None
    last_renewal_date: date | None = None

    model_config = ConfigDict(frozen=True)

    def to_document(self) -> dict:
        """Return a JSON-ready dict (dates as ISO strings)."""
        return self.model_dump(mode="json")


@dataclass
class Outcome:
    """What the frontier learned from one fetched document."""

    tasks: list[CrawlTask] = field(default_factory=list)
    records: list[Record] = field(default_factory=list)
