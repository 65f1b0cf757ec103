from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from vetting import engine, services
from vetting.db import init_db, session_scope
from vetting.errors import VettingError
from vetting.permissions import VettingContext
from vetting.scoring import OVERALL_GRADES, PLATFORM_GRADES

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def vetting_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Vetting",
    instructions=(
        "Read-only view of the candidate vetting pipeline. "
        "Start with list_vettings() to browse, then get_vetting(id) for sections and opponents, "
        "check_stage(id) to see what blocks the next stage, get_audit(id) for the digital "
        "presence audit and get_vote_tally(id) for the board vote."
    ),
    lifespan=vetting_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _context() -> VettingContext:
    """The MCP server runs locally for staff, so it reads with national visibility."""
    return VettingContext(actor_id=os.environ.get("VETTING_MCP_ACTOR", "mcp"), is_national=True)


def _error(exc: VettingError) -> dict:
    return {"error": str(exc)}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("vetting://overview")
def vetting_overview() -> str:
    """Overview of the vetting pipeline: stages, sections and vote choices."""
    return json.dumps({
        "system": "Candidate Vetting Pipeline",
        "stages": [s.value for s in engine.STAGE_ORDER],
        "gates": {
            "research -> interview": [s.value for s in engine.REQUIRED_SECTIONS_FOR_REVIEW],
            "committee_review -> board_vote": "recommendation recorded",
            "board_vote -> press_release_created": "board vote finalized",
        },
        "section_statuses": {k.value: sorted(v) for k, v in engine.SECTION_TRANSITIONS.items()},
        "vote_choices": ["endorse", "do_not_endorse", "no_position", "abstain"],
        "audit_grades": {
            "overall": {grade: minimum for minimum, grade in OVERALL_GRADES},
            "platform": {grade: minimum for minimum, grade in PLATFORM_GRADES},
        },
        "audit_notes": "Grades map to the minimum score; opponents are audited alongside the candidate.",
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_vettings(stage: str | None = None) -> list[dict] | dict:
    """List vettings, newest first.

    Args:
        stage: Optional stage filter, e.g. "research" or "board_vote".
    """
    with session_scope() as session:
        try:
            return [services.vetting_summary(v) for v in services.list_vettings(session, _context(), stage)]
        except VettingError as exc:
            return _error(exc)


@mcp.tool()
def get_vetting(vetting_id: int) -> dict:
    """Full vetting detail: sections, opponents, progress and urgency."""
    with session_scope() as session:
        try:
            return services.vetting_detail(services.view_vetting(session, _context(), vetting_id))
        except VettingError as exc:
            return _error(exc)


@mcp.tool()
def check_stage(vetting_id: int, target_stage: str | None = None) -> dict:
    """Whether the vetting may advance to *target_stage* (default: the next stage), and why not."""
    with session_scope() as session:
        try:
            vetting = services.view_vetting(session, _context(), vetting_id)
        except VettingError as exc:
            return _error(exc)
        gate = services.check_stage(session, vetting, target_stage)
        return {
            "vetting_id": vetting.id,
            "from_stage": vetting.stage,
            "to_stage": target_stage or services.next_stage_name(vetting.stage),
            "allowed": gate.allowed,
            "reason": gate.reason,
            "incomplete_sections": [s.value for s in engine.get_incomplete_sections(vetting.sections)],
        }


@mcp.tool()
def get_audit(vetting_id: int) -> dict:
    """Latest digital presence audit with scores, risks and platform rows."""
    with session_scope() as session:
        try:
            return services.get_audit_result(session, _context(), vetting_id)
        except VettingError as exc:
            return _error(exc)


@mcp.tool()
def get_vote_tally(vetting_id: int) -> dict:
    """Board vote counts and the endorsement result they produce."""
    with session_scope() as session:
        try:
            return services.get_vote_tally(session, _context(), vetting_id)
        except VettingError as exc:
            return _error(exc)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the vetting MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
