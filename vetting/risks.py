"""Risk assessment over a candidate's scored platforms.

Five categories, each capped at 100 and combined with fixed weights:

    security 0.30   consistency 0.25   abandonment 0.20
    reputation 0.15   compliance 0.10

Severity buckets: CRITICAL >= 80, HIGH >= 60, MEDIUM >= 40, LOW >= 20.
"""
from __future__ import annotations

from typing import Sequence

from vetting.audit_types import PlatformResult, RiskAssessment, RiskResult
from vetting.enums import EntityType, RiskCategory, RiskSeverity
from vetting.utils import round_half_up

SEVERITY_THRESHOLDS: list[tuple[int, RiskSeverity]] = [
    (80, RiskSeverity.CRITICAL),
    (60, RiskSeverity.HIGH),
    (40, RiskSeverity.MEDIUM),
    (20, RiskSeverity.LOW),
]

RISK_WEIGHTS: dict[RiskCategory, float] = {
    RiskCategory.SECURITY: 0.30,
    RiskCategory.CONSISTENCY: 0.25,
    RiskCategory.ABANDONMENT: 0.20,
    RiskCategory.REPUTATION: 0.15,
    RiskCategory.COMPLIANCE: 0.10,
}

CATEGORY_CAP = 100
INACTIVE_STATUSES = frozenset({"inactive", "abandoned"})


def get_severity(score: float) -> RiskSeverity:
    for threshold, level in SEVERITY_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskSeverity.NONE


# ---------------------------------------------------------------------------
# Category checks; each returns the risks it triggered
# ---------------------------------------------------------------------------


def _security(platforms: Sequence[PlatformResult]) -> list[RiskResult]:
    risks = [
        RiskResult(
            category=RiskCategory.SECURITY,
            severity=RiskSeverity.HIGH,
            score=25,
            description=f"{p.platform_name} does not use HTTPS",
            mitigation="Enable SSL/HTTPS to protect visitor data",
            platform_url=p.platform_url,
        )
        for p in platforms
        if p.platform_url and p.platform_url.startswith("http://")
    ]
    has_website = any(
        "website" in p.platform_name.lower()
        or (p.platform_url and "facebook" not in p.platform_url and "twitter" not in p.platform_url)
        for p in platforms
    )
    if platforms and not has_website:
        risks.append(RiskResult(
            category=RiskCategory.SECURITY,
            severity=RiskSeverity.MEDIUM,
            score=15,
            description="No dedicated campaign website detected",
            mitigation="Create a campaign website to control messaging and collect supporter info",
        ))
    return risks


def _consistency(platforms: Sequence[PlatformResult]) -> list[RiskResult]:
    scores = [p.score_consistency for p in platforms if p.score_consistency]
    if not scores:
        return []
    avg = sum(scores) / len(scores)
    if avg < 1:
        return [RiskResult(
            category=RiskCategory.CONSISTENCY,
            severity=RiskSeverity.HIGH,
            score=30,
            description="Severe messaging inconsistency across platforms",
            mitigation="Standardize campaign branding, logo, and messaging across all platforms",
        )]
    if avg < 2:
        return [RiskResult(
            category=RiskCategory.CONSISTENCY,
            severity=RiskSeverity.MEDIUM,
            score=15,
            description="Moderate messaging inconsistency detected",
            mitigation="Review and align platform bios, images, and campaign messaging",
        )]
    return []


def _abandonment(platforms: Sequence[PlatformResult]) -> list[RiskResult]:
    inactive = sum(1 for p in platforms if p.activity_status in INACTIVE_STATUSES)
    if not inactive:
        return []
    many = inactive >= 3
    return [RiskResult(
        category=RiskCategory.ABANDONMENT,
        severity=RiskSeverity.HIGH if many else RiskSeverity.MEDIUM,
        score=40 if many else 20,
        description=f"{inactive} inactive or abandoned platform(s) found",
        mitigation="Reactivate important accounts or deactivate to prevent voter confusion",
    )]


def _reputation(platforms: Sequence[PlatformResult]) -> list[RiskResult]:
    # Low content quality stands in for reputation until page content is analysed.
    low_quality = sum(1 for p in platforms if p.score_quality is not None and p.score_quality <= 1)
    if low_quality < 2:
        return []
    return [RiskResult(
        category=RiskCategory.REPUTATION,
        severity=RiskSeverity.MEDIUM,
        score=20,
        description=f"{low_quality} platform(s) have low content quality scores",
        mitigation="Improve content quality and professionalism on all public-facing platforms",
    )]


def _compliance(platforms: Sequence[PlatformResult]) -> list[RiskResult]:
    no_contact = sum(1 for p in platforms if not p.contact_methods)
    if not platforms or no_contact <= len(platforms) / 2:
        return []
    return [RiskResult(
        category=RiskCategory.COMPLIANCE,
        severity=RiskSeverity.MEDIUM,
        score=20,
        description="Most platforms lack visible contact or disclosure information",
        mitigation="Add FEC-required paid-for-by disclaimers and contact info on all campaign materials",
    )]


_CHECKS = {
    RiskCategory.SECURITY: _security,
    RiskCategory.CONSISTENCY: _consistency,
    RiskCategory.ABANDONMENT: _abandonment,
    RiskCategory.REPUTATION: _reputation,
    RiskCategory.COMPLIANCE: _compliance,
}


def assess_risks(platforms: Sequence[PlatformResult]) -> RiskAssessment:
    """Risk profile over the candidate's own platforms (opponent rows are ignored)."""
    own = [p for p in platforms if p.entity_type == EntityType.CANDIDATE]

    risks: list[RiskResult] = []
    category_scores: dict[str, int] = {}
    for category, check in _CHECKS.items():
        found = check(own)
        risks.extend(found)
        category_scores[category.value] = min(CATEGORY_CAP, sum(r.score for r in found))

    overall = int(round_half_up(sum(
        category_scores[category.value] * weight for category, weight in RISK_WEIGHTS.items()
    )))
    return RiskAssessment(
        overall_score=overall,
        overall_severity=get_severity(overall),
        risks=risks,
        category_scores=category_scores,
        critical_count=sum(1 for r in risks if r.severity == RiskSeverity.CRITICAL),
        high_count=sum(1 for r in risks if r.severity == RiskSeverity.HIGH),
    )
