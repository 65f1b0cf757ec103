"""Dual-level scoring.

Per platform (0-12): presence + consistency + quality + accessibility, each 0-3.

Overall (0-100), five dimensions of 0-20 each:

- digital presence: platform count, activity and scored coverage
- campaign consistency, communication quality, voter accessibility:
  the matching per-platform sub-score averaged and scaled to 0-20
- competitive positioning: baseline 10, adjusted against opponent averages
"""
from __future__ import annotations

from typing import Iterable, Sequence

from vetting.audit_types import (
    OpponentAuditResult, PlatformResult, PlatformScores, PlatformScoringInput, ScoreBreakdown,
)
from vetting.enums import EntityType
from vetting.utils import round_half_up

PLATFORM_GRADES: list[tuple[int, str]] = [
    (11, "A"), (9, "B"), (7, "C"), (5, "D"), (0, "F"),
]

OVERALL_GRADES: list[tuple[int, str]] = [
    (97, "A+"), (93, "A"), (90, "A-"),
    (87, "B+"), (83, "B"), (80, "B-"),
    (77, "C+"), (73, "C"), (70, "C-"),
    (67, "D+"), (63, "D"), (0, "F"),
]

MAX_COUNTED_PLATFORMS = 10
SUB_SCORE_MAX = 3
DIMENSION_MAX = 20
COMPETITIVE_BASELINE = 10


def get_grade(score: float, thresholds: Iterable[tuple[int, str]]) -> str:
    for minimum, grade in thresholds:
        if score >= minimum:
            return grade
    return "F"


# ---------------------------------------------------------------------------
# Per platform
# ---------------------------------------------------------------------------


def score_platform(inp: PlatformScoringInput) -> PlatformScores:
    presence = 0.0
    if inp.has_profile:
        presence += 1
    if inp.is_active:
        presence += 1
    elif inp.last_activity_recent:
        presence += 0.5
    if inp.has_logo:
        presence += 1

    consistency = float(inp.naming_consistent + inp.messaging_consistent + inp.has_logo)

    quality = {"good": 2.0, "fair": 1.0}.get(inp.content_quality, 0.0)
    if inp.professional_presentation:
        quality += 1

    accessibility = 1.0 if inp.has_contact_info else 0.0
    contact_count = sum([inp.has_email, inp.has_phone, inp.has_website])
    if contact_count >= 2:
        accessibility += 1
    if contact_count >= 3:
        accessibility += 1

    presence, consistency, quality, accessibility = (
        min(SUB_SCORE_MAX, v) for v in (presence, consistency, quality, accessibility)
    )
    total = int(round_half_up(presence + consistency + quality + accessibility))
    return PlatformScores(
        presence=presence,
        consistency=consistency,
        quality=quality,
        accessibility=accessibility,
        total=total,
        grade=get_grade(total, PLATFORM_GRADES),
    )


# ---------------------------------------------------------------------------
# Overall
# ---------------------------------------------------------------------------


def _avg_scaled(values: Sequence[float | None], count: int) -> float:
    avg = sum(v or 0 for v in values) / count
    return min(DIMENSION_MAX, avg / SUB_SCORE_MAX * DIMENSION_MAX)


def score_overall(
    platforms: Sequence[PlatformResult],
    opponent_audits: Sequence[OpponentAuditResult],
) -> ScoreBreakdown:
    """Composite candidate score; opponent platforms in *platforms* are ignored."""
    own = [p for p in platforms if p.entity_type == EntityType.CANDIDATE]
    count = len(own)
    if count == 0:
        return ScoreBreakdown()

    active = sum(1 for p in own if p.activity_status == "active")
    scored = sum(1 for p in own if p.total_score)
    digital_presence = min(
        DIMENSION_MAX,
        min(1, count / MAX_COUNTED_PLATFORMS) * 10 + active / count * 6 + scored / count * 4,
    )

    campaign_consistency = _avg_scaled([p.score_consistency for p in own], count)
    communication_quality = _avg_scaled([p.score_quality for p in own], count)
    voter_accessibility = _avg_scaled([p.score_accessibility for p in own], count)

    competitive = float(COMPETITIVE_BASELINE)
    if opponent_audits:
        n = len(opponent_audits)
        avg_opp_platforms = sum(o.platform_count for o in opponent_audits) / n
        if count > avg_opp_platforms:
            competitive += 5
        elif count == avg_opp_platforms:
            competitive += 2

        avg_opp_score = sum(o.overall_score or 0 for o in opponent_audits) / n
        own_avg_total = sum(p.total_score or 0 for p in own) / count
        if own_avg_total > avg_opp_score:
            competitive += 5
        elif own_avg_total >= avg_opp_score * 0.9:
            competitive += 2
    competitive = min(DIMENSION_MAX, competitive)

    total = int(round_half_up(
        digital_presence + campaign_consistency + communication_quality
        + voter_accessibility + competitive
    ))
    return ScoreBreakdown(
        digital_presence=round_half_up(digital_presence, 1),
        campaign_consistency=round_half_up(campaign_consistency, 1),
        communication_quality=round_half_up(communication_quality, 1),
        voter_accessibility=round_half_up(voter_accessibility, 1),
        competitive_positioning=round_half_up(competitive, 1),
        total=total,
        grade=get_grade(total, OVERALL_GRADES),
    )
