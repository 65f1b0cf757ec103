"""Permission predicates over the caller-supplied capability context.

The context is resolved upstream (authentication, role lookup); these
functions only branch on its flags.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class VettingContext:
    actor_id: str = ""
    committee_id: int | None = None
    committee_member_id: int | None = None
    is_committee_member: bool = False
    is_chair: bool = False
    is_national: bool = False
    is_board_voter: bool = False


def can_view_pipeline(ctx: VettingContext) -> bool:
    return ctx.is_committee_member or ctx.is_national


def can_create_vetting(ctx: VettingContext) -> bool:
    return ctx.is_chair or ctx.is_national


def can_assign_sections(ctx: VettingContext) -> bool:
    return ctx.is_chair or ctx.is_national


def can_edit_section(ctx: VettingContext, assigned_member_ids: Iterable[int]) -> bool:
    """Assigned members may edit; chair and national may edit any section."""
    if ctx.is_national or ctx.is_chair:
        return True
    if ctx.committee_member_id is None:
        return False
    return ctx.committee_member_id in set(assigned_member_ids)


def can_record_interview(ctx: VettingContext) -> bool:
    return ctx.is_committee_member or ctx.is_national


def can_make_recommendation(ctx: VettingContext) -> bool:
    return ctx.is_chair or ctx.is_national


def can_cast_board_vote(ctx: VettingContext) -> bool:
    return ctx.is_board_voter


def can_manage_committee(ctx: VettingContext) -> bool:
    return ctx.is_national


def can_run_audit(ctx: VettingContext) -> bool:
    return ctx.is_chair or ctx.is_national


def can_manage_opponents(ctx: VettingContext) -> bool:
    return ctx.is_committee_member or ctx.is_national


def can_delete_opponent(ctx: VettingContext) -> bool:
    return ctx.is_chair or ctx.is_national
