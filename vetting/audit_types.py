"""Result types shared by the discovery, scoring, risk and orchestrator modules."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from vetting.enums import ConfidenceLevel, EntityType, RiskCategory, RiskSeverity

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@dataclass
class DiscoveredUrl:
    url: str
    title: str = ""
    snippet: str = ""
    discovery_method: str = "known"
    hop: int = 0


@dataclass
class HopLog:
    hop: int
    query: str
    results_found: int
    duration_ms: int
    error: str | None = None


@dataclass
class DiscoveryResult:
    urls: list[DiscoveredUrl] = field(default_factory=list)
    hops: list[HopLog] = field(default_factory=list)

    @property
    def total_searches(self) -> int:
        return len(self.hops)

    def log_dict(self) -> dict[str, Any]:
        return {
            "total_searches": self.total_searches,
            "urls_found": len(self.urls),
            "hops": [asdict(h) for h in self.hops],
        }


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfidenceFactors:
    name_match: float = 0.0        # 0-0.4
    office_match: float = 0.0      # 0-0.3
    location_match: float = 0.0    # 0-0.15
    domain_authority: float = 0.0  # 0-0.1
    content_signals: float = 0.0   # 0-0.05

    def total(self) -> float:
        return (
            self.name_match + self.office_match + self.location_match
            + self.domain_authority + self.content_signals
        )


@dataclass(frozen=True)
class ConfidenceResult:
    factors: ConfidenceFactors
    score: float
    level: ConfidenceLevel


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


@dataclass
class PlatformScoringInput:
    has_profile: bool = False
    is_active: bool = False
    last_activity_recent: bool = False  # within 30 days
    naming_consistent: bool = False
    messaging_consistent: bool = False
    has_logo: bool = False
    content_quality: Literal["good", "fair", "poor"] = "poor"
    professional_presentation: bool = False
    has_contact_info: bool = False
    has_email: bool = False
    has_phone: bool = False
    has_website: bool = False


@dataclass(frozen=True)
class PlatformScores:
    presence: float
    consistency: float
    quality: float
    accessibility: float
    total: int
    grade: str


@dataclass(frozen=True)
class ScoreBreakdown:
    digital_presence: float = 0.0
    campaign_consistency: float = 0.0
    communication_quality: float = 0.0
    voter_accessibility: float = 0.0
    competitive_positioning: float = 0.0
    total: int = 0
    grade: str = "F"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskResult:
    category: RiskCategory
    severity: RiskSeverity
    score: int
    description: str
    mitigation: str
    platform_url: str | None = None


@dataclass(frozen=True)
class RiskAssessment:
    overall_score: int
    overall_severity: RiskSeverity
    risks: list[RiskResult]
    category_scores: dict[str, int]
    critical_count: int = 0
    high_count: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "overall_severity": str(self.overall_severity),
            "category_scores": dict(self.category_scores),
            "critical_count": self.critical_count,
            "high_count": self.high_count,
            "risks": [
                {**asdict(r), "category": str(r.category), "severity": str(r.severity)}
                for r in self.risks
            ],
        }


# ---------------------------------------------------------------------------
# Platform rows and opponent sub-results
# ---------------------------------------------------------------------------


@dataclass
class PlatformResult:
    entity_type: EntityType
    entity_name: str
    platform_type: str
    platform_name: str
    category: str
    platform_url: str | None
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
    has_contact_info: bool = False
    has_email: bool = False
    has_phone: bool = False
    has_website: bool = False
    contact_methods: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["entity_type"] = str(self.entity_type)
        return d


@dataclass
class OpponentAuditResult:
    name: str
    party: str | None = None
    platform_count: int = 0
    overall_score: int | None = None
    grade: str | None = None
    platforms: list[PlatformResult] = field(default_factory=list)
    audit_failed: bool = False
    failure_reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "party": self.party,
            "platform_count": self.platform_count,
            "overall_score": self.overall_score,
            "grade": self.grade,
            "audit_failed": self.audit_failed,
            "failure_reason": self.failure_reason,
            "platforms": [p.as_dict() for p in self.platforms],
        }
