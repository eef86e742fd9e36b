from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

LogEventType = Literal["info", "success", "error", "skip", "match"]
ApplicationStatus = Literal["submitted", "skipped"]

FAIL_OPEN_SCORE = -1


class AutomationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {AutomationState.STOPPED, AutomationState.FAILED}


class SkipReason(str, Enum):
    ALREADY_APPLIED = "already_applied"
    TITLE_BELOW_THRESHOLD = "title_below_threshold"
    DESCRIPTION_BELOW_THRESHOLD = "description_below_threshold"


class LogEvent(BaseModel):
    type: LogEventType
    message: str
    job_title: str | None = None
    match_score: int | None = None
    owner_id: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RelevanceResult(BaseModel):
    relevant: bool
    score: int

    @field_validator("score")
    @classmethod
    def validate_score(cls, value: int) -> int:
        if value != FAIL_OPEN_SCORE and not 0 <= value <= 100:
            raise ValueError("score must be between 0 and 100, or -1 when the provider failed")
        return value

    @property
    def failed_open(self) -> bool:
        return self.score == FAIL_OPEN_SCORE


class AutomationStatus(BaseModel):
    owner_id: str
    state: AutomationState
    processed: int = 0
    matched: int = 0
    skipped: int = 0
    errors: int = 0
    error: str = ""


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PageLink:
    url: str
    text: str = ""
    has_marker: bool = False


@dataclass(frozen=True, slots=True)
class CompanyLink:
    url: str
    name: str


@dataclass(frozen=True, slots=True)
class JobLink:
    url: str
    title: str
    already_applied: bool = False


@dataclass(frozen=True, slots=True)
class CrawlItem:
    company: CompanyLink
    job: JobLink


@dataclass(frozen=True, slots=True)
class CrawlSelectors:
    company_link: str
    job_link: str
    applied_marker: str
    job_description: str
    cover_letter: str


@dataclass(frozen=True, slots=True)
class ProfileEmbedding:
    owner_id: str
    model: str
    persona_text: str
    vector: tuple[float, ...]

    @property
    def cache_key(self) -> str:
        digest = hashlib.sha256(self.persona_text.encode("utf-8")).hexdigest()[:16]
        return f"{self.owner_id}:{self.model}:{digest}"
