"""Tests for the service layer: permissions, validation and conflict handling."""
from __future__ import annotations

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vetting import drafts, services
from vetting.drafts import DraftContext
from vetting.enums import AuditStatus, SectionStatus, SectionType, Stage
from vetting.errors import (
    ConflictError, DraftGenerationError, NotFoundError, PermissionDenied, ValidationError,
)
from vetting.models import Base, Committee, CommitteeMember
from vetting.permissions import VettingContext

NATIONAL = VettingContext(actor_id="nat-1", is_national=True)
OUTSIDER = VettingContext(actor_id="anon")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'vetting.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(factory):
    sess = factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def committee(session):
    c = Committee(name="Texas")
    c.members = [
        CommitteeMember(contact_id="c-chair", name="Chair", role="chair"),
        CommitteeMember(contact_id="c-1", name="Member One"),
        CommitteeMember(contact_id="c-2", name="Retired", is_active=False),
    ]
    session.add(c)
    session.commit()
    return c


@pytest.fixture()
def chair(committee):
    return VettingContext(
        actor_id="c-chair", committee_id=committee.id, committee_member_id=committee.members[0].id,
        is_committee_member=True, is_chair=True,
    )


@pytest.fixture()
def member(committee):
    return VettingContext(
        actor_id="c-1", committee_id=committee.id, committee_member_id=committee.members[1].id,
        is_committee_member=True,
    )


@pytest.fixture()
def vetting(session, committee):
    return services.create_vetting(session, NATIONAL, {
        "candidate_name": "Jane Doe",
        "candidate_office": "Senate",
        "candidate_state": "TX",
        "committee_id": committee.id,
        "known_urls": ["https://janedoe.com", ""],
        "survey_answers": [{"question": "Why run?", "answer": "To fix roads."}],
    })


def _section(vetting, section_type: SectionType):
    return next(s for s in vetting.sections if s.section_type == section_type)


def _set_stage(session, vetting, stage: Stage):
    vetting.stage = stage.value
    session.commit()


# ---------------------------------------------------------------------------
# Vettings and stages
# ---------------------------------------------------------------------------


class TestVettings:
    def test_create_initializes_sections(self, vetting):
        assert vetting.stage == Stage.SURVEY_SUBMITTED
        assert len(vetting.sections) == len(SectionType)
        assert all(s.status == SectionStatus.NOT_STARTED for s in vetting.sections)
        assert json.loads(vetting.known_urls_json) == ["https://janedoe.com"]

    def test_create_requires_chair_or_national(self, session, member):
        with pytest.raises(PermissionDenied):
            services.create_vetting(session, member, {"candidate_name": "X"})

    def test_create_rejects_blank_name(self, session):
        with pytest.raises(ValidationError):
            services.create_vetting(session, NATIONAL, {"candidate_name": "  "})

    def test_create_unknown_committee(self, session):
        with pytest.raises(NotFoundError):
            services.create_vetting(session, NATIONAL, {"candidate_name": "Jane", "committee_id": 99})

    def test_list_filters_by_stage(self, session, vetting, member):
        assert [v.id for v in services.list_vettings(session, member)] == [vetting.id]
        assert services.list_vettings(session, member, "research") == []
        with pytest.raises(ValidationError):
            services.list_vettings(session, member, "bogus")
        with pytest.raises(PermissionDenied):
            services.list_vettings(session, OUTSIDER)

    def test_update_vetting(self, session, vetting, chair):
        updated = services.update_vetting(session, chair, vetting.id, {"candidate_state": "OK"})
        assert updated.candidate_state == "OK"
        with pytest.raises(ValidationError):
            services.update_vetting(session, chair, vetting.id, {})


class TestAdvanceStage:
    def test_enter_auto_audit_creates_pending_audit(self, session, vetting, chair):
        advanced, audit = services.advance_stage(session, chair, vetting.id, "auto_audit")
        assert advanced.stage == Stage.AUTO_AUDIT
        assert audit.status == AuditStatus.PENDING
        assert audit.triggered_by == "c-chair"

    def test_skip_rejected_without_write(self, session, vetting, chair):
        with pytest.raises(ValidationError):
            services.advance_stage(session, chair, vetting.id, "research")
        assert services.get_vetting(session, vetting.id).stage == Stage.SURVEY_SUBMITTED

    def test_member_cannot_advance(self, session, vetting, member):
        with pytest.raises(PermissionDenied):
            services.advance_stage(session, member, vetting.id, "auto_audit")

    def test_interview_gate(self, session, vetting, chair):
        _set_stage(session, vetting, Stage.RESEARCH)
        with pytest.raises(ValidationError, match="Required report sections"):
            services.advance_stage(session, chair, vetting.id, "interview")
        for st in (SectionType.EXECUTIVE_SUMMARY, SectionType.CANDIDATE_BACKGROUND,
                   SectionType.OPPONENT_RESEARCH, SectionType.DISTRICT_DATA):
            _section(vetting, st).status = SectionStatus.COMPLETED.value
        session.commit()
        advanced, audit = services.advance_stage(session, chair, vetting.id, "interview")
        assert advanced.stage == Stage.INTERVIEW
        assert audit is None

    def test_stale_stage_is_conflict(self, factory, session, vetting, chair):
        other = factory()
        services.advance_stage(other, chair, vetting.id, "auto_audit")
        other.close()
        # *session* still holds the vetting at survey_submitted
        with pytest.raises(ConflictError):
            services.advance_stage(session, chair, vetting.id, "auto_audit")

    def test_check_stage_defaults_to_next(self, session, vetting):
        gate = services.check_stage(session, vetting)
        assert gate.allowed
        _set_stage(session, vetting, Stage.PRESS_RELEASE_PUBLISHED)
        assert not services.check_stage(session, vetting).allowed


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class TestSections:
    def test_assignment_advances_not_started(self, session, vetting, chair, committee):
        section = _section(vetting, SectionType.DISTRICT_DATA)
        services.assign_member(session, chair, vetting.id, section.id, committee.members[1].id)
        assert section.status == SectionStatus.ASSIGNED
        with pytest.raises(ConflictError):
            services.assign_member(session, chair, vetting.id, section.id, committee.members[1].id)

    def test_inactive_member_rejected(self, session, vetting, chair, committee):
        section = _section(vetting, SectionType.DISTRICT_DATA)
        with pytest.raises(ValidationError, match="not active"):
            services.assign_member(session, chair, vetting.id, section.id, committee.members[2].id)

    def test_member_from_other_committee(self, session, vetting, chair):
        other = Committee(name="Ohio", members=[CommitteeMember(contact_id="o-1")])
        session.add(other)
        session.commit()
        section = _section(vetting, SectionType.DISTRICT_DATA)
        with pytest.raises(ValidationError):
            services.assign_member(session, chair, vetting.id, section.id, other.members[0].id)

    def test_only_assigned_members_edit(self, session, vetting, chair, member, committee):
        section = _section(vetting, SectionType.VOTING_RULES)
        with pytest.raises(PermissionDenied):
            services.update_section(session, member, vetting.id, section.id, {"notes": "x"})
        services.assign_member(session, chair, vetting.id, section.id, committee.members[1].id)
        updated = services.update_section(session, member, vetting.id, section.id, {
            "status": "in_progress", "reviewed_data": {"primary_type": "open"},
        })
        assert updated.status == SectionStatus.IN_PROGRESS

    def test_invalid_section_transition(self, session, vetting, chair):
        section = _section(vetting, SectionType.VOTING_RULES)
        with pytest.raises(ValidationError):
            services.update_section(session, chair, vetting.id, section.id, {"status": "completed"})
        assert section.status == SectionStatus.NOT_STARTED

    def test_section_of_other_vetting(self, session, vetting, chair):
        other = services.create_vetting(session, NATIONAL, {"candidate_name": "John Roe"})
        with pytest.raises(NotFoundError):
            services.update_section(session, chair, vetting.id, other.sections[0].id, {"notes": "x"})

    def test_accept_draft_merge(self, session, vetting, chair):
        section = _section(vetting, SectionType.DISTRICT_DATA)
        section.reviewed_data_json = json.dumps({"cook_pvi": "R+5", "demographics": {"population": 1}})
        section.ai_draft_data_json = json.dumps({"demographics": {"median_age": 38}, "key_issues": ["water"]})
        session.commit()
        merged = services.accept_draft(session, chair, vetting.id, section.id, "merge")
        assert json.loads(merged.reviewed_data_json) == {
            "cook_pvi": "R+5", "demographics": {"population": 1, "median_age": 38}, "key_issues": ["water"],
        }
        assert merged.status == SectionStatus.IN_PROGRESS

    def test_accept_without_draft(self, session, vetting, chair):
        section = _section(vetting, SectionType.DISTRICT_DATA)
        with pytest.raises(ValidationError):
            services.accept_draft(session, chair, vetting.id, section.id)


class TestAIDraft:
    @pytest.mark.asyncio
    async def test_generate_and_conflict(self, session, vetting, chair):
        calls = []

        async def drafter(section_type, ctx):
            calls.append((section_type, ctx))
            return {"employment": "Engineer"}

        section = _section(vetting, SectionType.CANDIDATE_BACKGROUND)
        await services.generate_ai_draft(session, chair, vetting.id, section.id, drafter=drafter)
        assert json.loads(section.ai_draft_data_json) == {"employment": "Engineer"}
        assert calls[0][1].survey_answers == [{"question": "Why run?", "answer": "To fix roads."}]

        with pytest.raises(ConflictError):
            await services.generate_ai_draft(session, chair, vetting.id, section.id, drafter=drafter)
        await services.generate_ai_draft(session, chair, vetting.id, section.id, force=True, drafter=drafter)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unsupported_section(self, session, vetting, chair):
        section = _section(vetting, SectionType.ELECTION_SCHEDULE)
        with pytest.raises(ValidationError) as info:
            await services.generate_ai_draft(session, chair, vetting.id, section.id)
        assert info.value.reason == "unsupported_section"

    @pytest.mark.asyncio
    async def test_opponent_research_needs_opponent_before_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.setenv("LLM_PROVIDER", "anthropic")
        with pytest.raises(ValidationError) as info:
            await drafts.generate_draft("opponent_research", DraftContext(candidate_name="Jane Doe"))
        assert info.value.reason == "missing_opponent"

        ctx = DraftContext(candidate_name="Jane Doe", opponents=[("John Roe", "R")])
        with pytest.raises(DraftGenerationError) as err:
            await drafts.generate_draft("opponent_research", ctx)
        assert err.value.not_configured

    def test_district_needs_state(self):
        with pytest.raises(ValidationError) as info:
            drafts.build_prompt("district_data", DraftContext(candidate_name="Jane Doe"))
        assert info.value.reason == "missing_state"

    def test_summary_prompt_uses_other_sections(self):
        ctx = DraftContext(
            candidate_name="Jane Doe",
            section_data={"district_data": {"cook_pvi": "R+5"}, "executive_summary": {"summary": "old"}},
        )
        system, user = drafts.build_prompt("executive_summary", ctx)
        assert system == drafts.SUMMARY_SYSTEM
        assert "R+5" in user
        assert "old" not in user


# ---------------------------------------------------------------------------
# Opponents, recommendation, votes
# ---------------------------------------------------------------------------


class TestOpponents:
    def test_crud_and_permissions(self, session, vetting, member, chair):
        opp = services.add_opponent(session, member, vetting.id, {"name": " John Roe ", "endorsements": ["NRA"]})
        assert opp.name == "John Roe"
        services.update_opponent(session, member, vetting.id, opp.id, {"party": "R"})
        assert opp.party == "R"
        with pytest.raises(PermissionDenied):
            services.delete_opponent(session, member, vetting.id, opp.id)
        services.delete_opponent(session, chair, vetting.id, opp.id)
        with pytest.raises(NotFoundError):
            services.get_opponent(session, vetting.id, opp.id)


class TestRecommendationAndVotes:
    def test_recommendation_locks_at_board_vote(self, session, vetting, chair):
        _set_stage(session, vetting, Stage.COMMITTEE_REVIEW)
        services.record_recommendation(session, chair, vetting.id, "endorse", "Strong candidate")
        services.advance_stage(session, chair, vetting.id, "board_vote")
        with pytest.raises(ValidationError):
            services.record_recommendation(session, chair, vetting.id, "do_not_endorse")

    def test_votes_upsert_and_finalize(self, session, vetting):
        _set_stage(session, vetting, Stage.BOARD_VOTE)
        voters = [VettingContext(actor_id=f"board-{i}", is_board_voter=True) for i in range(4)]
        services.record_board_vote(session, voters[0], vetting.id, "do_not_endorse")
        services.record_board_vote(session, voters[0], vetting.id, "endorse")
        services.record_board_vote(session, voters[1], vetting.id, "endorse")
        services.record_board_vote(session, voters[2], vetting.id, "no_position")
        services.record_board_vote(session, voters[3], vetting.id, "abstain")

        tally = services.vote_tally(session, vetting)
        assert (tally["endorse"], tally["total"], tally["result"]) == (2, 4, "endorse")

        finalized = services.finalize_votes(session, voters[0], vetting.id)
        assert finalized.endorsement_result == "endorse"
        assert finalized.endorsed_at is not None
        with pytest.raises(ConflictError):
            services.finalize_votes(session, voters[0], vetting.id)
        with pytest.raises(ConflictError):
            services.record_board_vote(session, voters[1], vetting.id, "abstain")

    def test_only_board_votes(self, session, vetting, chair):
        _set_stage(session, vetting, Stage.BOARD_VOTE)
        with pytest.raises(PermissionDenied):
            services.record_board_vote(session, chair, vetting.id, "endorse")

    def test_vote_outside_board_stage(self, session, vetting):
        voter = VettingContext(actor_id="board-1", is_board_voter=True)
        with pytest.raises(ValidationError):
            services.record_board_vote(session, voter, vetting.id, "endorse")

    def test_all_abstain_cannot_finalize(self, session, vetting):
        _set_stage(session, vetting, Stage.BOARD_VOTE)
        voter = VettingContext(actor_id="board-1", is_board_voter=True)
        services.record_board_vote(session, voter, vetting.id, "abstain")
        with pytest.raises(ValidationError):
            services.finalize_votes(session, voter, vetting.id)


# ---------------------------------------------------------------------------
# Audits and committees
# ---------------------------------------------------------------------------


class TestAudits:
    def test_start_audit_conflicts(self, session, vetting, chair):
        audit = services.start_audit(session, chair, vetting.id)
        with pytest.raises(ConflictError, match="already running"):
            services.start_audit(session, chair, vetting.id)
        audit.status = AuditStatus.COMPLETED.value
        session.commit()
        with pytest.raises(ConflictError):
            services.start_audit(session, chair, vetting.id)
        rerun = services.start_audit(session, chair, vetting.id, force=True)
        assert rerun.id != audit.id

    def test_member_cannot_start_audit(self, session, vetting, member):
        with pytest.raises(PermissionDenied):
            services.start_audit(session, member, vetting.id)

    def test_no_audit_yet(self, session, vetting, member):
        with pytest.raises(NotFoundError):
            services.get_audit_result(session, member, vetting.id)


class TestCommittees:
    def test_national_manages_committees(self, session, chair):
        committee = services.create_committee(session, NATIONAL, "Florida")
        m = services.add_member(session, NATIONAL, committee.id, {"contact_id": "f-1", "role": "chair"})
        assert m.role == "chair"
        services.update_member(session, NATIONAL, committee.id, m.id, {"is_active": False})
        assert m.is_active is False
        with pytest.raises(PermissionDenied):
            services.create_committee(session, chair, "Nope")
        with pytest.raises(ValidationError):
            services.add_member(session, NATIONAL, committee.id, {"contact_id": "f-2", "role": "boss"})
