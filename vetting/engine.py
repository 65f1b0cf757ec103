"""Vetting pipeline state machine.

Three pieces of pure logic live here, with no persistence:

- **Stage transitions** -- a fixed forward-only chain of nine stages, with
  gates on ``research -> interview`` (required sections completed),
  ``committee_review -> board_vote`` (recommendation recorded) and
  ``board_vote -> press_release_created`` (endorsement result finalized).
- **Section sub-workflow** -- the five-state status machine every report
  section moves through.
- **Board vote tally** -- plurality over substantive votes, with ties and
  empty tallies resolving to ``no_position``.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Protocol

from vetting.enums import Recommendation, SectionStatus, SectionType, Stage, VoteChoice

# ---------------------------------------------------------------------------
# Stage table
# ---------------------------------------------------------------------------

STAGE_ORDER: list[Stage] = list(Stage)

STAGE_TRANSITIONS: list[tuple[Stage, Stage]] = [
    (Stage.SURVEY_SUBMITTED, Stage.AUTO_AUDIT),
    (Stage.AUTO_AUDIT, Stage.ASSIGNED),
    (Stage.ASSIGNED, Stage.RESEARCH),
    (Stage.RESEARCH, Stage.INTERVIEW),
    (Stage.INTERVIEW, Stage.COMMITTEE_REVIEW),
    (Stage.COMMITTEE_REVIEW, Stage.BOARD_VOTE),
    (Stage.BOARD_VOTE, Stage.PRESS_RELEASE_CREATED),
    (Stage.PRESS_RELEASE_CREATED, Stage.PRESS_RELEASE_PUBLISHED),
]

REQUIRED_SECTIONS_FOR_REVIEW: tuple[SectionType, ...] = (
    SectionType.EXECUTIVE_SUMMARY,
    SectionType.CANDIDATE_BACKGROUND,
    SectionType.OPPONENT_RESEARCH,
    SectionType.DISTRICT_DATA,
)

SECTION_DONE_STATUSES = frozenset({SectionStatus.COMPLETED})

SECTION_TRANSITIONS: dict[SectionStatus, frozenset[SectionStatus]] = {
    SectionStatus.NOT_STARTED: frozenset({SectionStatus.ASSIGNED, SectionStatus.IN_PROGRESS}),
    SectionStatus.ASSIGNED: frozenset({SectionStatus.IN_PROGRESS}),
    SectionStatus.IN_PROGRESS: frozenset({SectionStatus.COMPLETED, SectionStatus.NEEDS_REVISION}),
    SectionStatus.COMPLETED: frozenset({SectionStatus.NEEDS_REVISION}),
    SectionStatus.NEEDS_REVISION: frozenset({SectionStatus.IN_PROGRESS}),
}


class SectionState(Protocol):
    section_type: str
    status: str


@dataclass(frozen=True)
class GateResult:
    allowed: bool
    reason: str | None = None


def _coerce_stage(value: str) -> Stage | None:
    try:
        return Stage(value)
    except ValueError:
        return None


def _coerce_status(value: str) -> SectionStatus | None:
    try:
        return SectionStatus(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------


def is_valid_stage_transition(from_stage: str, to_stage: str) -> bool:
    src, dst = _coerce_stage(from_stage), _coerce_stage(to_stage)
    if src is None or dst is None:
        return False
    return (src, dst) in STAGE_TRANSITIONS


def get_stage_index(stage: str) -> int:
    s = _coerce_stage(stage)
    return STAGE_ORDER.index(s) if s is not None else -1


def get_next_stage(current: str) -> Stage | None:
    for src, dst in STAGE_TRANSITIONS:
        if src == current:
            return dst
    return None


def can_advance_to_review(sections: Iterable[SectionState]) -> bool:
    """True when every required section has a done status."""
    status_map = {s.section_type: s.status for s in sections}
    return all(status_map.get(required) in SECTION_DONE_STATUSES for required in REQUIRED_SECTIONS_FOR_REVIEW)


def can_advance_stage(
    from_stage: str,
    to_stage: str,
    sections: Iterable[SectionState],
    *,
    has_recommendation: bool = False,
    has_endorsement_result: bool = False,
) -> GateResult:
    """Check the adjacency table and the stage-specific gate for a transition."""
    if not is_valid_stage_transition(from_stage, to_stage):
        return GateResult(False, f"Cannot transition from {from_stage} to {to_stage}")

    if to_stage == Stage.INTERVIEW and not can_advance_to_review(sections):
        return GateResult(False, "Required report sections must be completed before scheduling interview")

    if to_stage == Stage.BOARD_VOTE and not has_recommendation:
        return GateResult(False, "Committee chair must submit a recommendation before board vote")

    if to_stage == Stage.PRESS_RELEASE_CREATED and not has_endorsement_result:
        return GateResult(False, "Board vote must be finalized before creating press release")

    return GateResult(True)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def is_valid_section_transition(from_status: str, to_status: str) -> bool:
    src, dst = _coerce_status(from_status), _coerce_status(to_status)
    if src is None or dst is None:
        return False
    return dst in SECTION_TRANSITIONS[src]


def initialize_section_states() -> list[tuple[SectionType, SectionStatus]]:
    return [(section, SectionStatus.NOT_STARTED) for section in SectionType]


def calculate_vetting_progress(sections: Iterable[SectionState]) -> dict[str, int]:
    total = len(SectionType)
    completed = sum(1 for s in sections if s.status in SECTION_DONE_STATUSES)
    return {
        "completed": completed,
        "total": total,
        "percentage": round(completed / total * 100) if total else 0,
    }


def get_incomplete_sections(sections: Iterable[SectionState]) -> list[SectionType]:
    done = {s.section_type for s in sections if s.status in SECTION_DONE_STATUSES}
    return [section for section in SectionType if section not in done]


def calculate_urgency(primary_date: date | None, today: date | None = None) -> str:
    """Urgency bucket from days remaining until the primary election."""
    if primary_date is None:
        return "normal"
    days = (primary_date - (today or date.today())).days
    if days < 14:
        return "red"
    if days < 30:
        return "amber"
    return "normal"


# ---------------------------------------------------------------------------
# Board vote tally
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoteTally:
    endorse: int = 0
    do_not_endorse: int = 0
    no_position: int = 0
    abstain: int = 0

    @property
    def total(self) -> int:
        return self.endorse + self.do_not_endorse + self.no_position + self.abstain

    def as_dict(self) -> dict[str, int]:
        return {
            "endorse": self.endorse,
            "do_not_endorse": self.do_not_endorse,
            "no_position": self.no_position,
            "abstain": self.abstain,
            "total": self.total,
        }


def tally_votes(votes: Iterable[str]) -> VoteTally:
    counts = Counter(VoteChoice(v) for v in votes)
    return VoteTally(
        endorse=counts[VoteChoice.ENDORSE],
        do_not_endorse=counts[VoteChoice.DO_NOT_ENDORSE],
        no_position=counts[VoteChoice.NO_POSITION],
        abstain=counts[VoteChoice.ABSTAIN],
    )


def get_endorsement_result(tally: VoteTally) -> Recommendation:
    """Plurality of substantive votes; a top-two tie or no substantive votes is no_position."""
    counts = sorted(
        [
            (Recommendation.ENDORSE, tally.endorse),
            (Recommendation.DO_NOT_ENDORSE, tally.do_not_endorse),
            (Recommendation.NO_POSITION, tally.no_position),
        ],
        key=lambda item: item[1],
        reverse=True,
    )
    if counts[0][1] == 0:
        return Recommendation.NO_POSITION
    if counts[0][1] == counts[1][1]:
        return Recommendation.NO_POSITION
    return counts[0][0]
