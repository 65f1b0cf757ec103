"""Enumerated values used across the pipeline and the audit engine."""
from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    SURVEY_SUBMITTED = "survey_submitted"
    AUTO_AUDIT = "auto_audit"
    ASSIGNED = "assigned"
    RESEARCH = "research"
    INTERVIEW = "interview"
    COMMITTEE_REVIEW = "committee_review"
    BOARD_VOTE = "board_vote"
    PRESS_RELEASE_CREATED = "press_release_created"
    PRESS_RELEASE_PUBLISHED = "press_release_published"


class SectionType(StrEnum):
    DIGITAL_PRESENCE_AUDIT = "digital_presence_audit"
    EXECUTIVE_SUMMARY = "executive_summary"
    ELECTION_SCHEDULE = "election_schedule"
    VOTING_RULES = "voting_rules"
    CANDIDATE_BACKGROUND = "candidate_background"
    INCUMBENT_RECORD = "incumbent_record"
    OPPONENT_RESEARCH = "opponent_research"
    ELECTORAL_RESULTS = "electoral_results"
    DISTRICT_DATA = "district_data"


class SectionStatus(StrEnum):
    NOT_STARTED = "not_started"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NEEDS_REVISION = "needs_revision"


class Recommendation(StrEnum):
    ENDORSE = "endorse"
    DO_NOT_ENDORSE = "do_not_endorse"
    NO_POSITION = "no_position"


class VoteChoice(StrEnum):
    ENDORSE = "endorse"
    DO_NOT_ENDORSE = "do_not_endorse"
    NO_POSITION = "no_position"
    ABSTAIN = "abstain"


class CommitteeRole(StrEnum):
    CHAIR = "chair"
    MEMBER = "member"


class AuditStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EntityType(StrEnum):
    CANDIDATE = "candidate"
    OPPONENT = "opponent"


class PlatformCategory(StrEnum):
    SOCIAL_MEDIA = "social_media"
    PROFESSIONAL_NETWORK = "professional_network"
    CONTENT_PLATFORM = "content_platform"
    POLITICAL_PLATFORM = "political_platform"
    NEWS_MEDIA = "news_media"
    CAMPAIGN_WEBSITE = "campaign_website"
    WEBSITE = "website"
    OTHER = "other"


class ConfidenceLevel(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


class RiskCategory(StrEnum):
    SECURITY = "security"
    CONSISTENCY = "consistency"
    ABANDONMENT = "abandonment"
    REPUTATION = "reputation"
    COMPLIANCE = "compliance"


class RiskSeverity(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"
