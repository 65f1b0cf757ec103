"""Shared business logic for the vetting API and MCP server.

Every operation takes the caller's :class:`VettingContext`, checks the
permission predicate first, validates, then mutates and commits. Failures
raise the :mod:`vetting.errors` kinds; nothing is written before a check fails.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vetting import engine, permissions
from vetting.drafts import DraftContext, draft_handler_for, generate_draft
from vetting.enums import (
    AuditStatus, CommitteeRole, Recommendation, SectionStatus, SectionType, Stage, VoteChoice,
)
from vetting.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from vetting.models import (
    AuditPlatform, BoardVote, Committee, CommitteeMember, DigitalAudit, Opponent, ReportSection,
    SectionAssignment, Vetting,
)
from vetting.permissions import VettingContext
from vetting.utils import deep_merge, json_parse, utcnow

log = logging.getLogger(__name__)

Drafter = Callable[[str, DraftContext], Awaitable[dict[str, Any]]]

OPPONENT_FIELDS = ("name", "party", "is_incumbent", "background", "credibility")
OPPONENT_JSON_FIELDS = ("fundraising", "endorsements", "social_links")

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def section_dict(section: ReportSection) -> dict:
    return {
        "id": section.id,
        "vetting_id": section.vetting_id,
        "section_type": section.section_type,
        "status": section.status,
        "reviewed_data": json_parse(section.reviewed_data_json, None),
        "ai_draft_data": json_parse(section.ai_draft_data_json, None),
        "notes": section.notes,
        "assigned_member_ids": [a.committee_member_id for a in section.assignments],
    }


def opponent_dict(opp: Opponent) -> dict:
    return {
        "id": opp.id, "name": opp.name, "party": opp.party, "is_incumbent": opp.is_incumbent,
        "background": opp.background, "credibility": opp.credibility,
        "fundraising": json_parse(opp.fundraising_json, {}),
        "endorsements": json_parse(opp.endorsements_json, []),
        "social_links": json_parse(opp.social_links_json, {}),
    }


def vetting_summary(v: Vetting) -> dict:
    return {
        "id": v.id,
        "candidate_name": v.candidate_name,
        "candidate_office": v.candidate_office,
        "candidate_district": v.candidate_district,
        "candidate_state": v.candidate_state,
        "candidate_party": v.candidate_party,
        "committee_id": v.committee_id,
        "primary_date": _iso(v.primary_date),
        "stage": v.stage,
        "recommendation": v.recommendation,
        "endorsement_result": v.endorsement_result,
        "endorsed_at": _iso(v.endorsed_at),
        "urgency": engine.calculate_urgency(v.primary_date),
        "progress": engine.calculate_vetting_progress(v.sections),
        "created_at": _iso(v.created_at),
    }


def vetting_detail(v: Vetting) -> dict:
    base = vetting_summary(v)
    base.update({
        "candidate_response_id": v.candidate_response_id,
        "known_urls": json_parse(v.known_urls_json, []),
        "interview_date": _iso(v.interview_date),
        "interview_notes": v.interview_notes,
        "interviewers": json_parse(v.interviewers_json, []),
        "recommendation_notes": v.recommendation_notes,
        "incomplete_sections": [s.value for s in engine.get_incomplete_sections(v.sections)],
        "sections": [section_dict(s) for s in sorted(v.sections, key=lambda s: s.id)],
        "opponents": [opponent_dict(o) for o in sorted(v.opponents, key=lambda o: o.id)],
    })
    return base


def platform_dict(p: AuditPlatform) -> dict:
    return {
        "id": p.id, "entity_type": p.entity_type, "entity_name": p.entity_name,
        "platform_type": p.platform_type, "platform_name": p.platform_name, "category": p.category,
        "platform_url": p.platform_url, "confidence_score": p.confidence_score,
        "confidence_level": p.confidence_level, "discovery_method": p.discovery_method,
        "activity_status": p.activity_status, "score_presence": p.score_presence,
        "score_consistency": p.score_consistency, "score_quality": p.score_quality,
        "score_accessibility": p.score_accessibility, "total_score": p.total_score, "grade": p.grade,
    }


def audit_dict(audit: DigitalAudit, platforms: list[AuditPlatform] | None = None) -> dict:
    return {
        "id": audit.id,
        "vetting_id": audit.vetting_id,
        "status": audit.status,
        "triggered_by": audit.triggered_by,
        "overall_score": audit.overall_score,
        "grade": audit.grade,
        "score_breakdown": json_parse(audit.score_breakdown_json, {}),
        "risk_assessment": json_parse(audit.risk_json, {}),
        "opponent_audits": json_parse(audit.opponent_audits_json, []),
        "discovery_log": json_parse(audit.discovery_log_json, {}),
        "error_message": audit.error_message,
        "created_at": _iso(audit.created_at),
        "started_at": _iso(audit.started_at),
        "completed_at": _iso(audit.completed_at),
        "platforms": [platform_dict(p) for p in platforms or []],
    }


def member_dict(m: CommitteeMember) -> dict:
    return {
        "id": m.id, "committee_id": m.committee_id, "contact_id": m.contact_id,
        "name": m.name, "email": m.email, "role": m.role, "is_active": m.is_active,
    }


def committee_dict(c: Committee) -> dict:
    return {"id": c.id, "name": c.name, "members": [member_dict(m) for m in c.members]}


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def _require(allowed: bool, message: str = "Forbidden") -> None:
    if not allowed:
        raise PermissionDenied(message)


def _enum(enum_cls, value: str | None, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value!r}") from None


def get_vetting(session: Session, vetting_id: int) -> Vetting:
    vetting = session.get(Vetting, vetting_id)
    if vetting is None:
        raise NotFoundError("Vetting not found")
    return vetting


def get_section(session: Session, vetting_id: int, section_id: int) -> ReportSection:
    section = session.get(ReportSection, section_id)
    if section is None or section.vetting_id != vetting_id:
        raise NotFoundError("Section not found")
    return section


def get_opponent(session: Session, vetting_id: int, opponent_id: int) -> Opponent:
    opp = session.get(Opponent, opponent_id)
    if opp is None or opp.vetting_id != vetting_id:
        raise NotFoundError("Opponent not found")
    return opp


def _assigned_ids(section: ReportSection) -> list[int]:
    return [a.committee_member_id for a in section.assignments]


def _commit_unique(session: Session, message: str) -> None:
    """Commit, mapping a uniqueness violation to ConflictError."""
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(message) from exc


# ---------------------------------------------------------------------------
# Vettings
# ---------------------------------------------------------------------------


def list_vettings(session: Session, ctx: VettingContext, stage: str | None = None) -> list[Vetting]:
    _require(permissions.can_view_pipeline(ctx))
    q = select(Vetting).order_by(Vetting.id.desc())
    if stage:
        q = q.where(Vetting.stage == _enum(Stage, stage, "stage").value)
    return list(session.execute(q).scalars().all())


def view_vetting(session: Session, ctx: VettingContext, vetting_id: int) -> Vetting:
    _require(permissions.can_view_pipeline(ctx))
    return get_vetting(session, vetting_id)


def create_vetting(session: Session, ctx: VettingContext, data: dict[str, Any]) -> Vetting:
    """Create a vetting at ``survey_submitted`` with one ``not_started`` row per section type."""
    _require(permissions.can_create_vetting(ctx))
    name = (data.get("candidate_name") or "").strip()
    if not name:
        raise ValidationError("candidate_name is required")
    committee_id = data.get("committee_id")
    if committee_id is not None and session.get(Committee, committee_id) is None:
        raise NotFoundError("Committee not found")

    vetting = Vetting(
        candidate_name=name,
        candidate_response_id=data.get("candidate_response_id"),
        candidate_office=data.get("candidate_office"),
        candidate_district=data.get("candidate_district"),
        candidate_state=data.get("candidate_state"),
        candidate_party=data.get("candidate_party"),
        committee_id=committee_id,
        primary_date=data.get("primary_date"),
        known_urls_json=json.dumps([u for u in data.get("known_urls") or [] if u]),
        survey_answers_json=json.dumps(data.get("survey_answers") or []),
        stage=Stage.SURVEY_SUBMITTED.value,
    )
    vetting.sections = [
        ReportSection(section_type=section_type.value, status=status.value)
        for section_type, status in engine.initialize_section_states()
    ]
    session.add(vetting)
    session.commit()
    log.info("Created vetting %s for %r", vetting.id, name)
    return vetting


VETTING_UPDATE_FIELDS = ("committee_id", "primary_date", "candidate_state")


def update_vetting(session: Session, ctx: VettingContext, vetting_id: int, updates: dict[str, Any]) -> Vetting:
    _require(permissions.can_create_vetting(ctx))
    vetting = get_vetting(session, vetting_id)
    changes = {f: updates[f] for f in VETTING_UPDATE_FIELDS if updates.get(f) is not None}
    if not changes:
        raise ValidationError("No fields to update")
    if "committee_id" in changes and session.get(Committee, changes["committee_id"]) is None:
        raise NotFoundError("Committee not found")
    for field, value in changes.items():
        setattr(vetting, field, value)
    session.commit()
    return vetting


def next_stage_name(stage: str) -> str | None:
    nxt = engine.get_next_stage(stage)
    return nxt.value if nxt else None


def check_stage(session: Session, vetting: Vetting, target: str | None = None) -> engine.GateResult:
    """Gate evaluation for *target* (default: the next stage) without writing."""
    target = target or engine.get_next_stage(vetting.stage)
    if target is None:
        return engine.GateResult(False, f"{vetting.stage} is the final stage")
    return engine.can_advance_stage(
        vetting.stage, target, vetting.sections,
        has_recommendation=vetting.recommendation is not None,
        has_endorsement_result=vetting.endorsement_result is not None,
    )


def advance_stage(
    session: Session, ctx: VettingContext, vetting_id: int, target_stage: str,
) -> tuple[Vetting, DigitalAudit | None]:
    """Advance one stage with an update-where-stage-equals guard.

    Entering ``auto_audit`` also creates a pending audit, returned so the
    caller can schedule it.
    """
    _require(permissions.can_create_vetting(ctx))
    target = _enum(Stage, target_stage, "stage")
    vetting = get_vetting(session, vetting_id)
    from_stage = vetting.stage

    gate = check_stage(session, vetting, target.value)
    if not gate.allowed:
        raise ValidationError(gate.reason or "Stage transition not allowed", reason=gate.reason)

    result = session.execute(
        update(Vetting)
        .where(Vetting.id == vetting_id, Vetting.stage == from_stage)
        .values(stage=target.value, updated_at=utcnow())
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError("Stage was changed by another user. Please refresh.")

    audit = None
    if target == Stage.AUTO_AUDIT:
        audit = DigitalAudit(
            vetting_id=vetting_id, status=AuditStatus.PENDING.value, triggered_by=ctx.actor_id or None,
        )
        session.add(audit)
    session.commit()
    session.refresh(vetting)
    log.info("Vetting %s advanced %s -> %s", vetting_id, from_stage, target.value)
    return vetting, audit


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def update_section(
    session: Session, ctx: VettingContext, vetting_id: int, section_id: int, updates: dict[str, Any],
) -> ReportSection:
    section = get_section(session, vetting_id, section_id)
    _require(permissions.can_edit_section(ctx, _assigned_ids(section)))

    if all(updates.get(k) is None for k in ("reviewed_data", "status", "notes")):
        raise ValidationError("No fields to update")

    if updates.get("status") is not None:
        new_status = _enum(SectionStatus, updates["status"], "section status")
        if new_status != section.status and not engine.is_valid_section_transition(section.status, new_status):
            raise ValidationError(f"Cannot transition section from {section.status} to {new_status}")
        section.status = new_status.value
    if updates.get("reviewed_data") is not None:
        section.reviewed_data_json = json.dumps(updates["reviewed_data"])
    if updates.get("notes") is not None:
        section.notes = updates["notes"]
    session.commit()
    return section


def _start_work(section: ReportSection) -> None:
    if section.status in (SectionStatus.NOT_STARTED, SectionStatus.ASSIGNED):
        section.status = SectionStatus.IN_PROGRESS.value


def accept_draft(
    session: Session, ctx: VettingContext, vetting_id: int, section_id: int, merge_strategy: str = "replace",
) -> ReportSection:
    """Copy the AI draft into reviewed data, replacing it or deep-merging over it."""
    section = get_section(session, vetting_id, section_id)
    _require(permissions.can_edit_section(ctx, _assigned_ids(section)))
    if merge_strategy not in ("replace", "merge"):
        raise ValidationError(f"Invalid merge strategy: {merge_strategy!r}")

    draft = json_parse(section.ai_draft_data_json, None)
    if not draft:
        raise ValidationError("No AI draft to accept")

    if merge_strategy == "merge":
        existing = json_parse(section.reviewed_data_json, None) or {}
        reviewed = deep_merge(existing, draft)
    else:
        reviewed = draft
    section.reviewed_data_json = json.dumps(reviewed)
    _start_work(section)
    session.commit()
    return section


def _draft_context(session: Session, vetting: Vetting, exclude_section_id: int) -> DraftContext:
    section_data: dict[str, Any] = {}
    for s in vetting.sections:
        if s.id == exclude_section_id:
            continue
        # Reviewed data is authoritative; the AI draft is only a fallback.
        data = json_parse(s.reviewed_data_json, None) or json_parse(s.ai_draft_data_json, None)
        if data:
            section_data[s.section_type] = data
    return DraftContext(
        candidate_name=vetting.candidate_name,
        office=vetting.candidate_office,
        state=vetting.candidate_state,
        district=vetting.candidate_district,
        party=vetting.candidate_party,
        opponents=[(o.name, o.party) for o in sorted(vetting.opponents, key=lambda o: o.id)],
        survey_answers=json_parse(vetting.survey_answers_json, []),
        section_data=section_data,
    )


async def generate_ai_draft(
    session: Session,
    ctx: VettingContext,
    vetting_id: int,
    section_id: int,
    force: bool = False,
    drafter: Drafter | None = None,
) -> ReportSection:
    section = get_section(session, vetting_id, section_id)
    _require(permissions.can_edit_section(ctx, _assigned_ids(section)))

    if draft_handler_for(section.section_type) is None:
        raise ValidationError("No AI helper available for this section type", reason="unsupported_section")
    if section.ai_draft_data_json and not force:
        raise ConflictError("AI draft already exists. Pass force: true to regenerate.")

    draft_ctx = _draft_context(session, section.vetting, section.id)
    draft = await (drafter or generate_draft)(section.section_type, draft_ctx)
    section.ai_draft_data_json = json.dumps(draft)
    session.commit()
    return section


def assign_member(
    session: Session, ctx: VettingContext, vetting_id: int, section_id: int, member_id: int,
) -> SectionAssignment:
    _require(permissions.can_assign_sections(ctx))
    section = get_section(session, vetting_id, section_id)
    vetting = section.vetting
    if vetting.committee_id is None:
        raise ValidationError("Vetting has no committee assigned")
    member = session.get(CommitteeMember, member_id)
    if member is None:
        raise NotFoundError("Committee member not found")
    if member.committee_id != vetting.committee_id:
        raise ValidationError("Committee member does not belong to this vetting's committee")
    if not member.is_active:
        raise ValidationError("Committee member is not active")

    assignment = SectionAssignment(
        section_id=section.id, committee_member_id=member.id, assigned_by=ctx.actor_id,
    )
    section.assignments.append(assignment)
    if section.status == SectionStatus.NOT_STARTED:
        section.status = SectionStatus.ASSIGNED.value
    _commit_unique(session, "Member is already assigned to this section")
    return assignment


def unassign_member(
    session: Session, ctx: VettingContext, vetting_id: int, section_id: int, member_id: int,
) -> None:
    _require(permissions.can_assign_sections(ctx))
    section = get_section(session, vetting_id, section_id)
    assignment = session.execute(
        select(SectionAssignment).where(
            SectionAssignment.section_id == section.id,
            SectionAssignment.committee_member_id == member_id,
        )
    ).scalars().first()
    if assignment is None:
        raise NotFoundError("Assignment not found")
    session.delete(assignment)
    session.commit()


# ---------------------------------------------------------------------------
# Opponents
# ---------------------------------------------------------------------------


def _apply_opponent(opp: Opponent, data: dict[str, Any]) -> None:
    for field in OPPONENT_FIELDS:
        if data.get(field) is not None:
            setattr(opp, field, data[field])
    for field in OPPONENT_JSON_FIELDS:
        if data.get(field) is not None:
            setattr(opp, f"{field}_json", json.dumps(data[field]))


def add_opponent(session: Session, ctx: VettingContext, vetting_id: int, data: dict[str, Any]) -> Opponent:
    _require(permissions.can_manage_opponents(ctx))
    get_vetting(session, vetting_id)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Opponent name is required")
    opp = Opponent(vetting_id=vetting_id, name=name)
    _apply_opponent(opp, {**data, "name": name})
    session.add(opp)
    session.commit()
    return opp


def update_opponent(
    session: Session, ctx: VettingContext, vetting_id: int, opponent_id: int, data: dict[str, Any],
) -> Opponent:
    _require(permissions.can_manage_opponents(ctx))
    opp = get_opponent(session, vetting_id, opponent_id)
    if data.get("name") is not None:
        data = {**data, "name": data["name"].strip()}
        if not data["name"]:
            raise ValidationError("Opponent name must not be empty")
    if all(data.get(f) is None for f in OPPONENT_FIELDS + OPPONENT_JSON_FIELDS):
        raise ValidationError("No fields to update")
    _apply_opponent(opp, data)
    session.commit()
    return opp


def delete_opponent(session: Session, ctx: VettingContext, vetting_id: int, opponent_id: int) -> None:
    _require(permissions.can_delete_opponent(ctx))
    session.delete(get_opponent(session, vetting_id, opponent_id))
    session.commit()


# ---------------------------------------------------------------------------
# Interview and recommendation
# ---------------------------------------------------------------------------


def update_interview(
    session: Session, ctx: VettingContext, vetting_id: int, updates: dict[str, Any],
) -> Vetting:
    _require(permissions.can_record_interview(ctx))
    vetting = get_vetting(session, vetting_id)
    if all(updates.get(k) is None for k in ("interview_date", "interview_notes", "interviewers")):
        raise ValidationError("No fields to update")
    if updates.get("interview_date") is not None:
        vetting.interview_date = updates["interview_date"]
    if updates.get("interview_notes") is not None:
        vetting.interview_notes = updates["interview_notes"]
    if updates.get("interviewers") is not None:
        vetting.interviewers_json = json.dumps(updates["interviewers"])
    session.commit()
    return vetting


def record_recommendation(
    session: Session, ctx: VettingContext, vetting_id: int, recommendation: str, notes: str | None = None,
) -> Vetting:
    _require(permissions.can_make_recommendation(ctx))
    rec = _enum(Recommendation, recommendation, "recommendation")
    vetting = get_vetting(session, vetting_id)
    if engine.get_stage_index(vetting.stage) >= engine.get_stage_index(Stage.BOARD_VOTE):
        raise ValidationError("Recommendation cannot change once the board vote has started")
    vetting.recommendation = rec.value
    vetting.recommendation_notes = notes
    session.commit()
    return vetting


# ---------------------------------------------------------------------------
# Board vote
# ---------------------------------------------------------------------------


def _votes(session: Session, vetting_id: int) -> list[BoardVote]:
    return list(session.execute(
        select(BoardVote).where(BoardVote.vetting_id == vetting_id).order_by(BoardVote.id)
    ).scalars().all())


def record_board_vote(
    session: Session, ctx: VettingContext, vetting_id: int, vote: str, notes: str | None = None,
) -> BoardVote:
    """Record the caller's vote; re-casting replaces their earlier vote."""
    _require(permissions.can_cast_board_vote(ctx), "Forbidden: only board members can vote")
    if not ctx.actor_id:
        raise PermissionDenied("A voter identity is required")
    choice = _enum(VoteChoice, vote, "vote")
    vetting = get_vetting(session, vetting_id)
    if vetting.stage != Stage.BOARD_VOTE:
        raise ValidationError("Votes can only be cast at the board_vote stage")
    if vetting.endorsed_at is not None:
        raise ConflictError("Votes have already been finalized")

    existing = session.execute(
        select(BoardVote).where(BoardVote.vetting_id == vetting_id, BoardVote.voter_id == ctx.actor_id)
    ).scalars().first()
    if existing is None:
        existing = BoardVote(vetting_id=vetting_id, voter_id=ctx.actor_id, vote=choice.value, notes=notes)
        session.add(existing)
    else:
        existing.vote = choice.value
        existing.notes = notes
        existing.voted_at = utcnow()
    _commit_unique(session, "Vote was recorded concurrently. Please retry.")
    return existing


def vote_tally(session: Session, vetting: Vetting) -> dict:
    votes = _votes(session, vetting.id)
    tally = engine.tally_votes(v.vote for v in votes)
    return {
        **tally.as_dict(),
        "result": engine.get_endorsement_result(tally).value,
        "finalized": vetting.endorsed_at is not None,
        "endorsement_result": vetting.endorsement_result,
        "votes": [
            {"voter_id": v.voter_id, "vote": v.vote, "notes": v.notes, "voted_at": _iso(v.voted_at)}
            for v in votes
        ],
    }


def get_vote_tally(session: Session, ctx: VettingContext, vetting_id: int) -> dict:
    _require(permissions.can_view_pipeline(ctx) or permissions.can_cast_board_vote(ctx))
    return vote_tally(session, get_vetting(session, vetting_id))


def finalize_votes(session: Session, ctx: VettingContext, vetting_id: int) -> Vetting:
    """Store the tallied result once, guarded by ``endorsed_at IS NULL``."""
    _require(permissions.can_cast_board_vote(ctx), "Forbidden: only board members can finalize votes")
    vetting = get_vetting(session, vetting_id)
    if vetting.stage != Stage.BOARD_VOTE:
        raise ValidationError("Can only finalize votes at the board_vote stage")
    if vetting.endorsed_at is not None:
        raise ConflictError("Votes have already been finalized")

    tally = engine.tally_votes(v.vote for v in _votes(session, vetting_id))
    if tally.total - tally.abstain == 0:
        raise ValidationError("At least one non-abstain vote is required to finalize")
    result = engine.get_endorsement_result(tally)

    now = utcnow()
    written = session.execute(
        update(Vetting)
        .where(Vetting.id == vetting_id, Vetting.endorsed_at.is_(None))
        .values(endorsement_result=result.value, endorsed_at=now, updated_at=now)
    )
    if written.rowcount != 1:
        session.rollback()
        raise ConflictError("Votes were finalized by another user. Please refresh.")
    session.commit()
    session.refresh(vetting)
    log.info("Vetting %s board vote finalized: %s (%s)", vetting_id, result.value, tally.as_dict())
    return vetting


# ---------------------------------------------------------------------------
# Audits
# ---------------------------------------------------------------------------


def latest_audit(session: Session, vetting_id: int) -> DigitalAudit | None:
    return session.execute(
        select(DigitalAudit)
        .where(DigitalAudit.vetting_id == vetting_id)
        .order_by(DigitalAudit.id.desc())
        .limit(1)
    ).scalars().first()


def start_audit(session: Session, ctx: VettingContext, vetting_id: int, force: bool = False) -> DigitalAudit:
    """Create a pending audit; the caller schedules :func:`vetting.auditor.run_audit`."""
    _require(permissions.can_run_audit(ctx))
    get_vetting(session, vetting_id)
    current = latest_audit(session, vetting_id)
    if current is not None:
        if current.status in (AuditStatus.PENDING, AuditStatus.RUNNING):
            raise ConflictError("An audit is already running for this vetting")
        if current.status == AuditStatus.COMPLETED and not force:
            raise ConflictError("Audit already completed. Pass force: true to re-run.")
    audit = DigitalAudit(vetting_id=vetting_id, status=AuditStatus.PENDING.value, triggered_by=ctx.actor_id or None)
    session.add(audit)
    session.commit()
    return audit


def audit_platforms(session: Session, audit_id: int) -> list[AuditPlatform]:
    # entity_type ascending puts candidate rows before opponent rows
    return list(session.execute(
        select(AuditPlatform)
        .where(AuditPlatform.audit_id == audit_id)
        .order_by(AuditPlatform.entity_type.asc(), AuditPlatform.total_score.desc(), AuditPlatform.id)
    ).scalars().all())


def get_audit_result(session: Session, ctx: VettingContext, vetting_id: int) -> dict:
    _require(permissions.can_view_pipeline(ctx))
    get_vetting(session, vetting_id)
    audit = latest_audit(session, vetting_id)
    if audit is None:
        raise NotFoundError("No audit found for this vetting")
    return audit_dict(audit, audit_platforms(session, audit.id))


# ---------------------------------------------------------------------------
# Committees
# ---------------------------------------------------------------------------


def list_committees(session: Session, ctx: VettingContext) -> list[Committee]:
    _require(permissions.can_view_pipeline(ctx))
    return list(session.execute(select(Committee).order_by(Committee.id)).scalars().all())


def create_committee(session: Session, ctx: VettingContext, name: str) -> Committee:
    _require(permissions.can_manage_committee(ctx))
    if not (name or "").strip():
        raise ValidationError("Committee name is required")
    committee = Committee(name=name.strip())
    session.add(committee)
    session.commit()
    return committee


def add_member(session: Session, ctx: VettingContext, committee_id: int, data: dict[str, Any]) -> CommitteeMember:
    _require(permissions.can_manage_committee(ctx))
    if session.get(Committee, committee_id) is None:
        raise NotFoundError("Committee not found")
    role = _enum(CommitteeRole, data.get("role") or CommitteeRole.MEMBER.value, "role")
    contact_id = (data.get("contact_id") or "").strip()
    if not contact_id:
        raise ValidationError("contact_id is required")
    member = CommitteeMember(
        committee_id=committee_id,
        contact_id=contact_id,
        name=data.get("name") or "",
        email=data.get("email") or "",
        role=role.value,
        is_active=True,
    )
    session.add(member)
    session.commit()
    return member


def update_member(
    session: Session, ctx: VettingContext, committee_id: int, member_id: int, updates: dict[str, Any],
) -> CommitteeMember:
    _require(permissions.can_manage_committee(ctx))
    member = session.get(CommitteeMember, member_id)
    if member is None or member.committee_id != committee_id:
        raise NotFoundError("Committee member not found")
    if updates.get("role") is None and updates.get("is_active") is None:
        raise ValidationError("No fields to update")
    if updates.get("role") is not None:
        member.role = _enum(CommitteeRole, updates["role"], "role").value
    if updates.get("is_active") is not None:
        member.is_active = bool(updates["is_active"])
    session.commit()
    return member


def audit_section_summary(session: Session, vetting_id: int) -> dict | None:
    """AI draft stored on the digital-presence section, if any."""
    section = session.execute(
        select(ReportSection).where(
            ReportSection.vetting_id == vetting_id,
            ReportSection.section_type == SectionType.DIGITAL_PRESENCE_AUDIT.value,
        )
    ).scalars().first()
    return json_parse(section.ai_draft_data_json, None) if section else None

