from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable, Generator

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from vetting import services
from vetting.auditor import run_audit
from vetting.db import get_session, init_db, session_generator
from vetting.drafts import generate_draft
from vetting.enums import CommitteeRole
from vetting.errors import (
    ConflictError, DependencyError, NotFoundError, PermissionDenied, ValidationError, VettingError,
)
from vetting.permissions import VettingContext
from vetting.schemas import (
    AcceptDraft,
    AssignmentCreate,
    AuditOut,
    AuditStart,
    CommitteeCreate,
    CommitteeOut,
    DraftRequest,
    InterviewUpdate,
    MemberCreate,
    MemberOut,
    MemberUpdate,
    OpponentCreate,
    OpponentOut,
    OpponentUpdate,
    RecommendationCreate,
    SectionOut,
    SectionUpdate,
    StageAdvance,
    StageCheckOut,
    VettingCreate,
    VettingDetail,
    VettingOut,
    VettingUpdate,
    VoteCreate,
    VoteTallyOut,
)
from vetting.search import SearchClient, build_search_client

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Candidate Vetting",
    version="0.1.0",
    description=(
        "Candidate vetting pipeline and digital presence audits for an endorsement committee. "
        "The caller's capabilities arrive in X-* headers set by the upstream gateway."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Vettings", "description": "Create vettings and move them through the pipeline stages."},
        {"name": "Sections", "description": "Report sections: edits, assignments and AI drafts."},
        {"name": "Opponents", "description": "Opponents researched for a vetting."},
        {"name": "Board Vote", "description": "Board votes, tally and finalization."},
        {"name": "Audits", "description": "Digital presence audits. Search requires TAVILY_API_KEY."},
        {"name": "Committees", "description": "Committee and member management (national only)."},
    ],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS = (
    (ValidationError, 400),
    (PermissionDenied, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


@app.exception_handler(VettingError)
async def vetting_error_handler(request: Request, exc: VettingError):
    status = 500
    for kind, code in _STATUS:
        if isinstance(exc, kind):
            status = code
            break
    if isinstance(exc, DependencyError):
        status = 503 if exc.not_configured else 502
        log.warning("Dependency failure on %s %s: %s", request.method, request.url.path, exc)
    content = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.reason:
        content["reason"] = exc.reason
    return JSONResponse(status_code=status, content=content)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def session_factory() -> Callable[[], Session]:
    """Factory for sessions opened by background audits."""
    return get_session


def search_client() -> SearchClient | None:
    return build_search_client()


def draft_generator():
    return generate_draft


def vetting_context(
    x_actor_id: str = Header(""),
    x_committee_member_id: int | None = Header(None),
    x_committee_id: int | None = Header(None),
    x_committee_role: str | None = Header(None),
    x_national: bool = Header(False),
    x_board_voter: bool = Header(False),
) -> VettingContext:
    return VettingContext(
        actor_id=x_actor_id,
        committee_id=x_committee_id,
        committee_member_id=x_committee_member_id,
        is_committee_member=x_committee_member_id is not None,
        is_chair=x_committee_member_id is not None and x_committee_role == CommitteeRole.CHAIR,
        is_national=x_national,
        is_board_voter=x_board_voter,
    )


def _schedule_audit(
    tasks: BackgroundTasks, vetting_id: int, audit_id: int,
    factory: Callable[[], Session], search: SearchClient | None,
) -> None:
    tasks.add_task(run_audit, vetting_id, audit_id, session_factory=factory, search=search)


# ---------------------------------------------------------------------------
# Routes: Vettings
# ---------------------------------------------------------------------------


@app.get("/api/vettings", response_model=list[VettingOut],
         tags=["Vettings"], summary="List vettings, newest first, optionally filtered by stage")
async def list_vettings(
    stage: str | None = None,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return [services.vetting_summary(v) for v in services.list_vettings(session, ctx, stage)]


@app.post("/api/vettings", response_model=VettingDetail, status_code=201,
          tags=["Vettings"], summary="Promote a submitted survey response into a vetting")
async def create_vetting(
    body: VettingCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    data = body.model_dump()
    data["survey_answers"] = [a.model_dump() for a in body.survey_answers]
    return services.vetting_detail(services.create_vetting(session, ctx, data))


@app.get("/api/vettings/{vetting_id}", response_model=VettingDetail,
         tags=["Vettings"], summary="Get a vetting with sections, opponents and progress")
async def get_vetting(
    vetting_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.vetting_detail(services.view_vetting(session, ctx, vetting_id))


@app.patch("/api/vettings/{vetting_id}", response_model=VettingDetail,
           tags=["Vettings"], summary="Update committee, primary date or state")
async def update_vetting(
    vetting_id: int,
    body: VettingUpdate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.vetting_detail(services.update_vetting(session, ctx, vetting_id, body.model_dump()))


@app.get("/api/vettings/{vetting_id}/stage", response_model=StageCheckOut,
         tags=["Vettings"], summary="Check whether the vetting can advance (default: to the next stage)")
async def check_stage(
    vetting_id: int,
    target_stage: str | None = None,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    vetting = services.view_vetting(session, ctx, vetting_id)
    gate = services.check_stage(session, vetting, target_stage)
    return {
        "from_stage": vetting.stage,
        "to_stage": target_stage or services.next_stage_name(vetting.stage),
        "allowed": gate.allowed,
        "reason": gate.reason,
    }


@app.post("/api/vettings/{vetting_id}/stage", response_model=VettingDetail,
          tags=["Vettings"], summary="Advance the vetting one stage; entering auto_audit starts an audit")
async def advance_stage(
    vetting_id: int,
    body: StageAdvance,
    tasks: BackgroundTasks,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
    factory: Callable[[], Session] = Depends(session_factory),
    search: SearchClient | None = Depends(search_client),
):
    vetting, audit = services.advance_stage(session, ctx, vetting_id, body.target_stage)
    if audit is not None:
        _schedule_audit(tasks, vetting_id, audit.id, factory, search)
    return services.vetting_detail(vetting)


@app.put("/api/vettings/{vetting_id}/interview", response_model=VettingDetail,
         tags=["Vettings"], summary="Record interview date, notes and interviewers")
async def update_interview(
    vetting_id: int,
    body: InterviewUpdate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    vetting = services.update_interview(session, ctx, vetting_id, body.model_dump())
    return services.vetting_detail(vetting)


@app.put("/api/vettings/{vetting_id}/recommendation", response_model=VettingDetail,
         tags=["Vettings"], summary="Record the committee recommendation (chair or national)")
async def record_recommendation(
    vetting_id: int,
    body: RecommendationCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    vetting = services.record_recommendation(session, ctx, vetting_id, body.recommendation, body.notes)
    return services.vetting_detail(vetting)


# ---------------------------------------------------------------------------
# Routes: Sections
# ---------------------------------------------------------------------------


@app.patch("/api/vettings/{vetting_id}/sections/{section_id}", response_model=SectionOut,
           tags=["Sections"], summary="Update reviewed data, status or notes (partial update)")
async def update_section(
    vetting_id: int,
    section_id: int,
    body: SectionUpdate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    section = services.update_section(session, ctx, vetting_id, section_id, body.model_dump())
    return services.section_dict(section)


@app.post("/api/vettings/{vetting_id}/sections/{section_id}/accept-draft", response_model=SectionOut,
          tags=["Sections"], summary="Copy the AI draft into reviewed data (replace or merge)")
async def accept_draft(
    vetting_id: int,
    section_id: int,
    body: AcceptDraft | None = None,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    strategy = body.merge_strategy if body else "replace"
    return services.section_dict(services.accept_draft(session, ctx, vetting_id, section_id, strategy))


@app.post("/api/vettings/{vetting_id}/sections/{section_id}/ai-draft", response_model=SectionOut,
          tags=["Sections"], summary="Generate an AI draft for the section. Requires an LLM API key.")
async def generate_ai_draft(
    vetting_id: int,
    section_id: int,
    body: DraftRequest | None = None,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
    drafter=Depends(draft_generator),
):
    section = await services.generate_ai_draft(
        session, ctx, vetting_id, section_id, force=bool(body and body.force), drafter=drafter,
    )
    return services.section_dict(section)


@app.post("/api/vettings/{vetting_id}/sections/{section_id}/assignments", response_model=SectionOut,
          status_code=201, tags=["Sections"], summary="Assign a committee member to the section")
async def assign_member(
    vetting_id: int,
    section_id: int,
    body: AssignmentCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    services.assign_member(session, ctx, vetting_id, section_id, body.committee_member_id)
    return services.section_dict(services.get_section(session, vetting_id, section_id))


@app.delete("/api/vettings/{vetting_id}/sections/{section_id}/assignments/{member_id}",
            tags=["Sections"], summary="Remove a member's assignment from the section")
async def unassign_member(
    vetting_id: int,
    section_id: int,
    member_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    services.unassign_member(session, ctx, vetting_id, section_id, member_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Opponents
# ---------------------------------------------------------------------------


@app.post("/api/vettings/{vetting_id}/opponents", response_model=OpponentOut, status_code=201,
          tags=["Opponents"], summary="Add an opponent")
async def add_opponent(
    vetting_id: int,
    body: OpponentCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.opponent_dict(services.add_opponent(session, ctx, vetting_id, body.model_dump()))


@app.patch("/api/vettings/{vetting_id}/opponents/{opponent_id}", response_model=OpponentOut,
           tags=["Opponents"], summary="Update an opponent (partial update)")
async def update_opponent(
    vetting_id: int,
    opponent_id: int,
    body: OpponentUpdate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    opp = services.update_opponent(session, ctx, vetting_id, opponent_id, body.model_dump())
    return services.opponent_dict(opp)


@app.delete("/api/vettings/{vetting_id}/opponents/{opponent_id}",
            tags=["Opponents"], summary="Delete an opponent (chair or national)")
async def delete_opponent(
    vetting_id: int,
    opponent_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    services.delete_opponent(session, ctx, vetting_id, opponent_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Board vote (finalize before parameterized paths)
# ---------------------------------------------------------------------------


@app.post("/api/vettings/{vetting_id}/votes/finalize", response_model=VoteTallyOut,
          tags=["Board Vote"], summary="Tally votes and store the endorsement result")
async def finalize_votes(
    vetting_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    vetting = services.finalize_votes(session, ctx, vetting_id)
    return services.vote_tally(session, vetting)


@app.post("/api/vettings/{vetting_id}/votes", response_model=VoteTallyOut,
          tags=["Board Vote"], summary="Cast or replace the caller's board vote")
async def cast_vote(
    vetting_id: int,
    body: VoteCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    services.record_board_vote(session, ctx, vetting_id, body.vote, body.notes)
    return services.get_vote_tally(session, ctx, vetting_id)


@app.get("/api/vettings/{vetting_id}/votes", response_model=VoteTallyOut,
         tags=["Board Vote"], summary="Vote tally with the derived endorsement result")
async def get_votes(
    vetting_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.get_vote_tally(session, ctx, vetting_id)


# ---------------------------------------------------------------------------
# Routes: Audits
# ---------------------------------------------------------------------------


@app.post("/api/vettings/{vetting_id}/audit", response_model=AuditOut, status_code=202,
          tags=["Audits"], summary="Start a digital presence audit in the background")
async def start_audit(
    vetting_id: int,
    tasks: BackgroundTasks,
    body: AuditStart | None = None,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
    factory: Callable[[], Session] = Depends(session_factory),
    search: SearchClient | None = Depends(search_client),
):
    audit = services.start_audit(session, ctx, vetting_id, force=bool(body and body.force))
    _schedule_audit(tasks, vetting_id, audit.id, factory, search)
    return services.audit_dict(audit)


@app.get("/api/vettings/{vetting_id}/audit", response_model=AuditOut,
         tags=["Audits"], summary="Latest audit with platform rows (candidate first, best score first)")
async def get_audit(
    vetting_id: int,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.get_audit_result(session, ctx, vetting_id)


# ---------------------------------------------------------------------------
# Routes: Committees
# ---------------------------------------------------------------------------


@app.get("/api/committees", response_model=list[CommitteeOut],
         tags=["Committees"], summary="List committees with their members")
async def list_committees(
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return [services.committee_dict(c) for c in services.list_committees(session, ctx)]


@app.post("/api/committees", response_model=CommitteeOut, status_code=201,
          tags=["Committees"], summary="Create a committee")
async def create_committee(
    body: CommitteeCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.committee_dict(services.create_committee(session, ctx, body.name))


@app.post("/api/committees/{committee_id}/members", response_model=MemberOut, status_code=201,
          tags=["Committees"], summary="Add a member to a committee")
async def add_member(
    committee_id: int,
    body: MemberCreate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.member_dict(services.add_member(session, ctx, committee_id, body.model_dump()))


@app.patch("/api/committees/{committee_id}/members/{member_id}", response_model=MemberOut,
           tags=["Committees"], summary="Change a member's role or active flag")
async def update_member(
    committee_id: int,
    member_id: int,
    body: MemberUpdate,
    ctx: VettingContext = Depends(vetting_context),
    session: Session = Depends(db_session),
):
    return services.member_dict(services.update_member(session, ctx, committee_id, member_id, body.model_dump()))


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("vetting.app:app", host="127.0.0.1", port=8002, reload=True)


if __name__ == "__main__":
    main()
