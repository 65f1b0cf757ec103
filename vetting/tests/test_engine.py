"""Tests for the pipeline state machine, section sub-workflow and vote tally."""
from __future__ import annotations

from datetime import date
from itertools import product
from types import SimpleNamespace

import pytest

from vetting import engine
from vetting.engine import VoteTally
from vetting.enums import Recommendation, SectionStatus, SectionType, Stage


def _sections(done: set[SectionType] = frozenset()) -> list[SimpleNamespace]:
    return [
        SimpleNamespace(
            section_type=s.value,
            status=SectionStatus.COMPLETED.value if s in done else SectionStatus.IN_PROGRESS.value,
        )
        for s in SectionType
    ]


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------


class TestStageTransitions:
    def test_table_covers_every_stage_but_the_last(self):
        sources = [src for src, _ in engine.STAGE_TRANSITIONS]
        assert sources == engine.STAGE_ORDER[:-1]
        assert engine.get_next_stage(Stage.PRESS_RELEASE_PUBLISHED) is None

    def test_only_adjacent_pairs_are_valid(self):
        allowed = set(engine.STAGE_TRANSITIONS)
        for src, dst in product(Stage, Stage):
            assert engine.is_valid_stage_transition(src, dst) == ((src, dst) in allowed)

    def test_unknown_stage_is_invalid(self):
        assert not engine.is_valid_stage_transition("draft", Stage.AUTO_AUDIT)
        assert engine.get_stage_index("draft") == -1

    def test_next_stage_follows_order(self):
        for i, stage in enumerate(engine.STAGE_ORDER[:-1]):
            assert engine.get_next_stage(stage) == engine.STAGE_ORDER[i + 1]

    def test_skipping_a_stage_is_rejected(self):
        gate = engine.can_advance_stage(Stage.SURVEY_SUBMITTED, Stage.RESEARCH, [])
        assert not gate.allowed
        assert "Cannot transition" in gate.reason


class TestStageGates:
    def test_interview_requires_all_required_sections(self):
        done = set(engine.REQUIRED_SECTIONS_FOR_REVIEW)
        assert engine.can_advance_stage(Stage.RESEARCH, Stage.INTERVIEW, _sections(done)).allowed

    @pytest.mark.parametrize("missing", engine.REQUIRED_SECTIONS_FOR_REVIEW)
    def test_interview_blocked_by_any_missing_section(self, missing):
        done = set(engine.REQUIRED_SECTIONS_FOR_REVIEW) - {missing}
        gate = engine.can_advance_stage(Stage.RESEARCH, Stage.INTERVIEW, _sections(done))
        assert not gate.allowed
        assert "Required report sections" in gate.reason

    def test_optional_sections_do_not_block(self):
        done = set(engine.REQUIRED_SECTIONS_FOR_REVIEW)
        sections = _sections(done)
        assert any(s.status != SectionStatus.COMPLETED for s in sections)
        assert engine.can_advance_to_review(sections)

    def test_board_vote_requires_recommendation(self):
        assert not engine.can_advance_stage(Stage.COMMITTEE_REVIEW, Stage.BOARD_VOTE, []).allowed
        assert engine.can_advance_stage(
            Stage.COMMITTEE_REVIEW, Stage.BOARD_VOTE, [], has_recommendation=True,
        ).allowed

    def test_press_release_requires_endorsement_result(self):
        gate = engine.can_advance_stage(Stage.BOARD_VOTE, Stage.PRESS_RELEASE_CREATED, [])
        assert not gate.allowed
        assert gate.reason == "Board vote must be finalized before creating press release"
        assert engine.can_advance_stage(
            Stage.BOARD_VOTE, Stage.PRESS_RELEASE_CREATED, [], has_endorsement_result=True,
        ).allowed

    def test_ungated_transition_allowed(self):
        assert engine.can_advance_stage(Stage.AUTO_AUDIT, Stage.ASSIGNED, []).allowed


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class TestSectionWorkflow:
    @pytest.mark.parametrize("src,dst", [
        ("not_started", "assigned"),
        ("not_started", "in_progress"),
        ("assigned", "in_progress"),
        ("in_progress", "completed"),
        ("in_progress", "needs_revision"),
        ("completed", "needs_revision"),
        ("needs_revision", "in_progress"),
    ])
    def test_valid(self, src, dst):
        assert engine.is_valid_section_transition(src, dst)

    @pytest.mark.parametrize("src,dst", [
        ("completed", "not_started"),
        ("assigned", "completed"),
        ("not_started", "completed"),
        ("needs_revision", "completed"),
        ("in_progress", "bogus"),
    ])
    def test_invalid(self, src, dst):
        assert not engine.is_valid_section_transition(src, dst)

    def test_initial_states(self):
        states = engine.initialize_section_states()
        assert [t for t, _ in states] == list(SectionType)
        assert all(s == SectionStatus.NOT_STARTED for _, s in states)

    def test_progress_and_incomplete(self):
        done = {SectionType.EXECUTIVE_SUMMARY, SectionType.VOTING_RULES, SectionType.DISTRICT_DATA}
        sections = _sections(done)
        assert engine.calculate_vetting_progress(sections) == {
            "completed": 3, "total": 9, "percentage": 33,
        }
        incomplete = engine.get_incomplete_sections(sections)
        assert len(incomplete) == 6
        assert SectionType.EXECUTIVE_SUMMARY not in incomplete


class TestUrgency:
    @pytest.mark.parametrize("days,expected", [(5, "red"), (13, "red"), (14, "amber"), (29, "amber"), (30, "normal")])
    def test_buckets(self, days, expected):
        today = date(2026, 3, 1)
        primary = date.fromordinal(today.toordinal() + days)
        assert engine.calculate_urgency(primary, today=today) == expected

    def test_no_primary_date(self):
        assert engine.calculate_urgency(None) == "normal"


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


class TestVoteTally:
    def test_tie_is_no_position(self):
        assert engine.get_endorsement_result(VoteTally(endorse=3, do_not_endorse=3)) == Recommendation.NO_POSITION

    def test_all_abstain_is_no_position(self):
        assert engine.get_endorsement_result(VoteTally(abstain=5)) == Recommendation.NO_POSITION

    def test_plurality_wins(self):
        tally = VoteTally(endorse=4, do_not_endorse=2, no_position=1)
        assert engine.get_endorsement_result(tally) == Recommendation.ENDORSE

    def test_do_not_endorse_plurality(self):
        tally = VoteTally(endorse=1, do_not_endorse=2, abstain=4)
        assert engine.get_endorsement_result(tally) == Recommendation.DO_NOT_ENDORSE

    def test_tally_counts(self):
        tally = engine.tally_votes(["endorse", "endorse", "abstain", "no_position"])
        assert tally.as_dict() == {
            "endorse": 2, "do_not_endorse": 0, "no_position": 1, "abstain": 1, "total": 4,
        }
