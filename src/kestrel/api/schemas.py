from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from kestrel.types import ApplicationStatus, AutomationState


class ProfileUpdateRequest(BaseModel):
    resume_text: str = Field(min_length=1)


class ProfileResponse(BaseModel):
    owner_id: str
    has_resume: bool
    persona_text: str


class AutomationStatusResponse(BaseModel):
    owner_id: str
    state: AutomationState
    processed: int = 0
    matched: int = 0
    skipped: int = 0
    errors: int = 0
    error: str = ""


class LogEventResponse(BaseModel):
    type: str
    message: str
    job_title: str | None = None
    match_score: int | None = None
    owner_id: str = ""
    created_at: str | None = None


class ApplicationCreateRequest(BaseModel):
    owner_id: str
    job_title: str
    company_name: str = ""
    job_url: str
    status: ApplicationStatus = "submitted"
    cover_letter: str = ""
    match_score: int | None = Field(default=None, ge=-1, le=100)
    skip_reason: str = ""


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    job_title: str
    company_name: str
    job_url: str
    cover_letter: str
    status: str
    match_score: int | None
    skip_reason: str
    applied_at: datetime | None = None


class CompanyCreateRequest(BaseModel):
    owner_id: str
    url: str
    name: str = ""
    status: str = "visited"


class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    url: str
    name: str
    status: str
    visited_at: datetime | None = None
