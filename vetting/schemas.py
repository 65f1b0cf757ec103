"""Pydantic request/response schemas for the vetting API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Vettings
# ---------------------------------------------------------------------------


def _state_code(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip().upper()
    if len(v) != 2 or not v.isalpha():
        raise ValueError("candidate_state must be a two-letter state code")
    return v


class SurveyAnswer(BaseModel):
    question: str
    answer: str = ""


class VettingCreate(BaseModel):
    candidate_name: str
    candidate_response_id: str | None = None
    candidate_office: str | None = None
    candidate_district: str | None = None
    candidate_state: str | None = None
    candidate_party: str | None = None
    committee_id: int | None = None
    primary_date: date | None = None
    known_urls: list[str] = []
    survey_answers: list[SurveyAnswer] = []

    @field_validator("candidate_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("candidate_name must not be empty")
        return v

    @field_validator("candidate_state")
    @classmethod
    def state_code(cls, v: str | None) -> str | None:
        return _state_code(v)


class VettingOut(BaseModel):
    id: int
    candidate_name: str
    candidate_office: str | None = None
    candidate_district: str | None = None
    candidate_state: str | None = None
    candidate_party: str | None = None
    committee_id: int | None = None
    primary_date: str | None = None
    stage: str
    recommendation: str | None = None
    endorsement_result: str | None = None
    endorsed_at: str | None = None
    urgency: str = "normal"
    progress: dict[str, int] = {}
    created_at: str | None = None


class SectionOut(BaseModel):
    id: int
    vetting_id: int
    section_type: str
    status: str
    reviewed_data: dict[str, Any] | None = None
    ai_draft_data: dict[str, Any] | None = None
    notes: str | None = None
    assigned_member_ids: list[int] = []


class OpponentOut(BaseModel):
    id: int
    name: str
    party: str | None = None
    is_incumbent: bool = False
    background: str | None = None
    credibility: str | None = None
    fundraising: dict[str, Any] = {}
    endorsements: list[str] = []
    social_links: dict[str, str] = {}


class VettingDetail(VettingOut):
    candidate_response_id: str | None = None
    known_urls: list[str] = []
    interview_date: str | None = None
    interview_notes: str | None = None
    interviewers: list[str] = []
    recommendation_notes: str | None = None
    incomplete_sections: list[str] = []
    sections: list[SectionOut] = []
    opponents: list[OpponentOut] = []


class VettingUpdate(BaseModel):
    committee_id: int | None = None
    primary_date: date | None = None
    candidate_state: str | None = None

    @field_validator("candidate_state")
    @classmethod
    def state_code(cls, v: str | None) -> str | None:
        return _state_code(v)


class StageAdvance(BaseModel):
    target_stage: str


class StageCheckOut(BaseModel):
    from_stage: str
    to_stage: str | None = None
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class SectionUpdate(BaseModel):
    reviewed_data: dict[str, Any] | None = None
    status: str | None = None
    notes: str | None = None


class AcceptDraft(BaseModel):
    merge_strategy: Literal["replace", "merge"] = "replace"


class DraftRequest(BaseModel):
    force: bool = False


class AssignmentCreate(BaseModel):
    committee_member_id: int


# ---------------------------------------------------------------------------
# Opponents
# ---------------------------------------------------------------------------


class OpponentCreate(BaseModel):
    name: str
    party: str | None = None
    is_incumbent: bool = False
    background: str | None = None
    credibility: str | None = None
    fundraising: dict[str, Any] = {}
    endorsements: list[str] = []
    social_links: dict[str, str] = {}


class OpponentUpdate(BaseModel):
    name: str | None = None
    party: str | None = None
    is_incumbent: bool | None = None
    background: str | None = None
    credibility: str | None = None
    fundraising: dict[str, Any] | None = None
    endorsements: list[str] | None = None
    social_links: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Interview, recommendation, board vote
# ---------------------------------------------------------------------------


class InterviewUpdate(BaseModel):
    interview_date: datetime | None = None
    interview_notes: str | None = None
    interviewers: list[str] | None = None


class RecommendationCreate(BaseModel):
    recommendation: str
    notes: str | None = None


class VoteCreate(BaseModel):
    vote: str
    notes: str | None = None


class VoteOut(BaseModel):
    voter_id: str
    vote: str
    notes: str | None = None
    voted_at: str | None = None


class VoteTallyOut(BaseModel):
    endorse: int
    do_not_endorse: int
    no_position: int
    abstain: int
    total: int
    result: str
    finalized: bool = False
    endorsement_result: str | None = None
    votes: list[VoteOut] = []


# ---------------------------------------------------------------------------
# Audits
# ---------------------------------------------------------------------------


class AuditStart(BaseModel):
    force: bool = False


class AuditPlatformOut(BaseModel):
    id: int
    entity_type: str
    entity_name: str
    platform_type: str
    platform_name: str
    category: str
    platform_url: str | None = None
    confidence_score: float | None = None
    confidence_level: str | None = None
    discovery_method: str | None = None
    activity_status: str | None = None
    score_presence: float | None = None
    score_consistency: float | None = None
    score_quality: float | None = None
    score_accessibility: float | None = None
    total_score: int | None = None
    grade: str | None = None


class AuditOut(BaseModel):
    id: int
    vetting_id: int
    status: str
    triggered_by: str | None = None
    overall_score: int | None = None
    grade: str | None = None
    score_breakdown: dict[str, Any] = {}
    risk_assessment: dict[str, Any] = {}
    opponent_audits: list[dict[str, Any]] = []
    discovery_log: dict[str, Any] = {}
    error_message: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    platforms: list[AuditPlatformOut] = []


# ---------------------------------------------------------------------------
# Committees
# ---------------------------------------------------------------------------


class CommitteeCreate(BaseModel):
    name: str = Field(min_length=1)


class MemberCreate(BaseModel):
    contact_id: str
    name: str = ""
    email: str = ""
    role: str = "member"


class MemberUpdate(BaseModel):
    role: str | None = None
    is_active: bool | None = None


class MemberOut(BaseModel):
    id: int
    committee_id: int
    contact_id: str
    name: str
    email: str
    role: str
    is_active: bool


class CommitteeOut(BaseModel):
    id: int
    name: str
    members: list[MemberOut] = []
