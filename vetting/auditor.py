"""Digital presence audit orchestrator.

Sequences discovery -> classification -> confidence -> platform scoring for
the candidate and each opponent, then overall scoring and risk assessment,
and persists the results. The audit row moves ``pending -> running ->
completed | failed``; every failure outside the per-opponent mini-audits is
recorded on the audit row instead of propagating.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from vetting.audit_types import (
    DiscoveredUrl, OpponentAuditResult, PlatformResult, PlatformScoringInput,
    RiskAssessment, ScoreBreakdown,
)
from vetting.classifier import classify_url
from vetting.confidence import calculate_confidence
from vetting.db import get_session, session_scope
from vetting.discovery import DiscoveryInput, discover_opponent_platforms, discover_platforms
from vetting.enums import AuditStatus, EntityType, SectionType, Stage
from vetting.errors import NotFoundError
from vetting.models import AuditPlatform, DigitalAudit, ReportSection, Vetting
from vetting.scoring import score_overall, score_platform
from vetting.risks import assess_risks
from vetting.search import SearchClient, build_search_client
from vetting.utils import json_parse, round_half_up, utcnow

log = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

AUDIT_SECTION = SectionType.DIGITAL_PRESENCE_AUDIT


@dataclass
class _Subject:
    """Snapshot of the vetting fields an audit needs, detached from the session."""
    name: str
    office: str | None
    state: str | None
    known_urls: list[str]
    opponents: list[tuple[str, str | None]]


# ---------------------------------------------------------------------------
# Platform processing
# ---------------------------------------------------------------------------


def process_platforms(
    urls: Sequence[DiscoveredUrl],
    entity_type: EntityType,
    entity_name: str,
    office: str | None,
    state: str | None,
) -> list[PlatformResult]:
    """Classify and score discovered URLs; unclassifiable URLs are dropped.

    Pages are not crawled, so activity, logo and contact signals are unknown
    and the remaining scoring inputs are derived from confidence.
    """
    results: list[PlatformResult] = []
    for discovered in urls:
        classification = classify_url(discovered.url)
        if classification is None:
            continue
        conf = calculate_confidence(discovered.url, discovered.title, entity_name, office, state)
        scores = score_platform(PlatformScoringInput(
            has_profile=True,
            naming_consistent=conf.score > 0.5,
            messaging_consistent=conf.score > 0.4,
            content_quality="good" if conf.score > 0.6 else "fair",
            professional_presentation=conf.score > 0.5,
        ))
        results.append(PlatformResult(
            entity_type=entity_type,
            entity_name=entity_name,
            platform_type=classification.platform_type,
            platform_name=classification.platform_name,
            category=classification.category.value,
            platform_url=discovered.url,
            confidence_score=round_half_up(conf.score, 2),
            confidence_level=conf.level.value,
            discovery_method=discovered.discovery_method,
            activity_status="unknown",
            score_presence=scores.presence,
            score_consistency=scores.consistency,
            score_quality=scores.quality,
            score_accessibility=scores.accessibility,
            total_score=scores.total,
            grade=scores.grade,
        ))
    return results


async def audit_opponent(
    name: str,
    party: str | None,
    office: str | None,
    state: str | None,
    search: SearchClient | None,
) -> OpponentAuditResult:
    discovery = await discover_opponent_platforms(name, state, office, search)
    platforms = process_platforms(discovery.urls, EntityType.OPPONENT, name, office, state)
    avg = (
        int(round_half_up(sum(p.total_score or 0 for p in platforms) / len(platforms)))
        if platforms else None
    )
    return OpponentAuditResult(
        name=name, party=party, platform_count=len(platforms), overall_score=avg, platforms=platforms,
    )


async def audit_opponents(
    subject: _Subject, search: SearchClient | None,
) -> list[OpponentAuditResult]:
    """Run every opponent mini-audit concurrently; one failure is recorded, not raised."""
    tasks = [
        audit_opponent(name, party, subject.office, subject.state, search)
        for name, party in subject.opponents
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)
    audits: list[OpponentAuditResult] = []
    for (name, party), result in zip(subject.opponents, results):
        if isinstance(result, Exception):
            log.warning("Opponent audit failed for %r: %s", name, result)
            audits.append(OpponentAuditResult(
                name=name, party=party, audit_failed=True,
                failure_reason=str(result) or type(result).__name__,
            ))
        else:
            audits.append(result)
    return audits


# ---------------------------------------------------------------------------
# Persistence steps
# ---------------------------------------------------------------------------


def _mark_running(session: Session, audit_id: int) -> bool:
    audit = session.get(DigitalAudit, audit_id)
    if audit is None:
        return False
    audit.status = AuditStatus.RUNNING.value
    audit.started_at = utcnow()
    audit.error_message = None
    session.commit()
    return True


def _load_subject(session: Session, vetting_id: int) -> _Subject:
    vetting = session.get(Vetting, vetting_id)
    if vetting is None:
        raise NotFoundError(f"Vetting {vetting_id} not found")
    return _Subject(
        name=vetting.candidate_name,
        office=vetting.candidate_office,
        state=vetting.candidate_state,
        known_urls=[u for u in json_parse(vetting.known_urls_json, []) if isinstance(u, str)],
        opponents=[(o.name, o.party) for o in vetting.opponents if (o.name or "").strip()],
    )


def build_draft_summary(
    breakdown: ScoreBreakdown,
    risk: RiskAssessment,
    platform_count: int,
    opponent_count: int,
) -> dict:
    risk_dict = risk.as_dict()
    return {
        "overall_score": breakdown.total,
        "grade": breakdown.grade,
        "score_breakdown": breakdown.as_dict(),
        "risk_assessment": {
            "overall_score": risk_dict["overall_score"],
            "overall_severity": risk_dict["overall_severity"],
            "risks": risk_dict["risks"],
        },
        "platform_count": platform_count,
        "opponent_count": opponent_count,
        "generated_at": utcnow().isoformat(),
    }


def _store_results(
    session: Session,
    vetting_id: int,
    audit_id: int,
    platforms: list[PlatformResult],
    breakdown: ScoreBreakdown,
    risk: RiskAssessment,
    opponents: list[OpponentAuditResult],
    discovery_log: dict,
    candidate_count: int,
) -> None:
    session.add_all([
        AuditPlatform(
            audit_id=audit_id,
            entity_type=p.entity_type.value,
            entity_name=p.entity_name,
            platform_type=p.platform_type,
            platform_name=p.platform_name,
            category=p.category,
            platform_url=p.platform_url,
            confidence_score=p.confidence_score,
            confidence_level=p.confidence_level,
            discovery_method=p.discovery_method,
            activity_status=p.activity_status,
            score_presence=p.score_presence,
            score_consistency=p.score_consistency,
            score_quality=p.score_quality,
            score_accessibility=p.score_accessibility,
            total_score=p.total_score,
            grade=p.grade,
            has_contact_info=p.has_contact_info,
            has_email=p.has_email,
            has_phone=p.has_phone,
            has_website=p.has_website,
        )
        for p in platforms
    ])

    section = session.execute(
        select(ReportSection).where(
            ReportSection.vetting_id == vetting_id,
            ReportSection.section_type == AUDIT_SECTION.value,
        )
    ).scalars().first()
    if section is None:
        raise NotFoundError(f"Report section {AUDIT_SECTION} missing for vetting {vetting_id}")
    section.ai_draft_data_json = json.dumps(
        build_draft_summary(breakdown, risk, candidate_count, len(opponents))
    )

    audit = session.get(DigitalAudit, audit_id)
    if audit is None:
        raise NotFoundError(f"Audit {audit_id} not found")
    audit.status = AuditStatus.COMPLETED.value
    audit.completed_at = utcnow()
    audit.overall_score = breakdown.total
    audit.grade = breakdown.grade
    audit.score_breakdown_json = json.dumps(breakdown.as_dict())
    audit.risk_json = json.dumps(risk.as_dict())
    audit.opponent_audits_json = json.dumps([o.as_dict() for o in opponents])
    audit.discovery_log_json = json.dumps(discovery_log)
    session.commit()


def advance_after_audit(session: Session, vetting_id: int) -> bool:
    """``auto_audit -> assigned`` only if the stage is still ``auto_audit``."""
    result = session.execute(
        update(Vetting)
        .where(Vetting.id == vetting_id, Vetting.stage == Stage.AUTO_AUDIT.value)
        .values(stage=Stage.ASSIGNED.value, updated_at=utcnow())
    )
    session.commit()
    return result.rowcount == 1


def _mark_failed(session: Session, audit_id: int, message: str) -> None:
    audit = session.get(DigitalAudit, audit_id)
    if audit is None:
        return
    audit.status = AuditStatus.FAILED.value
    audit.completed_at = utcnow()
    audit.error_message = message
    session.commit()


def _record_failure(session_factory: SessionFactory, audit_id: int, message: str) -> None:
    try:
        with session_scope(session_factory) as session:
            _mark_failed(session, audit_id, message)
    except Exception:
        log.exception("Could not mark audit %s failed", audit_id)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run_audit(
    vetting_id: int,
    audit_id: int,
    *,
    session_factory: SessionFactory = get_session,
    search: SearchClient | None = None,
) -> str:
    """Run one audit to a terminal state and return that state.

    *search* defaults to the provider configured in the environment.
    """
    try:
        with session_scope(session_factory) as session:
            if not _mark_running(session, audit_id):
                log.error("Audit %s not found, nothing to run", audit_id)
                return AuditStatus.FAILED.value

        if search is None:
            search = build_search_client()

        with session_scope(session_factory) as session:
            subject = _load_subject(session, vetting_id)

        log.info("Starting audit %s for %r", audit_id, subject.name)
        discovery = await discover_platforms(
            DiscoveryInput(
                candidate_name=subject.name,
                state=subject.state,
                office=subject.office,
                known_urls=subject.known_urls,
            ),
            search,
        )
        candidate_platforms = process_platforms(
            discovery.urls, EntityType.CANDIDATE, subject.name, subject.office, subject.state,
        )
        opponents = await audit_opponents(subject, search)

        breakdown = score_overall(candidate_platforms, opponents)
        risk = assess_risks(candidate_platforms)
        all_platforms = candidate_platforms + [p for o in opponents for p in o.platforms]

        with session_scope(session_factory) as session:
            _store_results(
                session, vetting_id, audit_id, all_platforms, breakdown, risk, opponents,
                discovery.log_dict(), len(candidate_platforms),
            )
    except Exception as exc:
        log.exception("Audit %s failed for vetting %s", audit_id, vetting_id)
        _record_failure(session_factory, audit_id, str(exc) or type(exc).__name__)
        return AuditStatus.FAILED.value

    # The audit row is already completed; a failed stage write is only logged.
    try:
        with session_scope(session_factory) as session:
            advanced = advance_after_audit(session, vetting_id)
    except Exception:
        log.exception("Audit %s completed but vetting %s could not be advanced", audit_id, vetting_id)
    else:
        if not advanced:
            log.info("Vetting %s left auto_audit during audit %s, stage not advanced", vetting_id, audit_id)

    log.info(
        "Audit %s completed for %r: score %d (%s)",
        audit_id, subject.name, breakdown.total, breakdown.grade,
    )
    return AuditStatus.COMPLETED.value
