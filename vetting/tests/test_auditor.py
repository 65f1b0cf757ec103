"""Tests for the audit orchestrator: state handling, opponent isolation and stage advancement."""
from __future__ import annotations

import json

import pytest
from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vetting import auditor
from vetting.auditor import run_audit
from vetting.enums import AuditStatus, EntityType, SectionType, Stage
from vetting.models import AuditPlatform, Base, DigitalAudit, Opponent, ReportSection, Vetting
from vetting.search import SearchResult


class FakeSearch:
    def __init__(self, by_name: dict[str, list[str]], on_search=None):
        self.by_name = by_name
        self.on_search = on_search

    async def search(self, query, *, max_results=10, depth="basic"):
        if self.on_search:
            self.on_search(query)
        for name, urls in self.by_name.items():
            if name in query:
                return [SearchResult(title=f"{name} official", url=u) for u in urls]
        return []


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def seeded(factory):
    """A vetting at auto_audit with two opponents and a pending audit."""
    session = factory()
    vetting = Vetting(
        candidate_name="Jane Doe",
        candidate_office="Senate",
        candidate_state="TX",
        known_urls_json=json.dumps(["https://janedoe-for-senate.com"]),
        stage=Stage.AUTO_AUDIT.value,
    )
    vetting.sections = [ReportSection(section_type=s.value) for s in SectionType]
    vetting.opponents = [Opponent(name="John Roe", party="R"), Opponent(name="Bad Opponent")]
    session.add(vetting)
    session.flush()
    audit = DigitalAudit(vetting_id=vetting.id, status=AuditStatus.PENDING.value)
    session.add(audit)
    session.commit()
    ids = vetting.id, audit.id
    session.close()
    return ids


def _load(factory, vetting_id, audit_id):
    session = factory()
    try:
        return session.get(Vetting, vetting_id), session.get(DigitalAudit, audit_id)
    finally:
        session.close()


SEARCH = FakeSearch({
    "Jane Doe": ["https://facebook.com/janedoeforsenate", "https://ballotpedia.org/Jane_Doe"],
    "John Roe": ["https://johnroe.com", "https://x.com/johnroe"],
})


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRunAudit:
    @pytest.mark.asyncio
    async def test_success_completes_and_advances(self, factory, seeded):
        vetting_id, audit_id = seeded
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.COMPLETED

        vetting, audit = _load(factory, vetting_id, audit_id)
        assert vetting.stage == Stage.ASSIGNED
        assert audit.status == AuditStatus.COMPLETED
        assert audit.started_at is not None and audit.completed_at is not None
        assert audit.overall_score is not None and audit.grade
        assert json.loads(audit.discovery_log_json)["total_searches"] == 7

        session = factory()
        rows = session.execute(select(AuditPlatform).where(AuditPlatform.audit_id == audit_id)).scalars().all()
        candidate = [r for r in rows if r.entity_type == EntityType.CANDIDATE]
        opponent = [r for r in rows if r.entity_type == EntityType.OPPONENT]
        assert {r.platform_type for r in candidate} == {"campaign-website", "facebook", "ballotpedia"}
        assert {r.entity_name for r in opponent} == {"John Roe"}

        section = session.execute(
            select(ReportSection).where(
                ReportSection.vetting_id == vetting_id,
                ReportSection.section_type == SectionType.DIGITAL_PRESENCE_AUDIT.value,
            )
        ).scalars().one()
        draft = json.loads(section.ai_draft_data_json)
        session.close()
        assert draft["overall_score"] == audit.overall_score
        assert draft["platform_count"] == 3
        assert draft["opponent_count"] == 2
        assert "overall_severity" in draft["risk_assessment"]

    @pytest.mark.asyncio
    async def test_load_failure_marks_failed_and_keeps_stage(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded

        def broken_load(session, vid):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(auditor, "_load_subject", broken_load)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.FAILED

        vetting, audit = _load(factory, vetting_id, audit_id)
        assert audit.status == AuditStatus.FAILED
        assert audit.error_message == "database is locked"
        assert vetting.stage == Stage.AUTO_AUDIT

    @pytest.mark.asyncio
    async def test_mark_running_failure_does_not_leave_pending(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded

        def locked(session, aid):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(auditor, "_mark_running", locked)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.FAILED

        vetting, audit = _load(factory, vetting_id, audit_id)
        assert audit.status == AuditStatus.FAILED
        assert audit.error_message == "database is locked"
        assert vetting.stage == Stage.AUTO_AUDIT

    @pytest.mark.asyncio
    async def test_mark_failed_error_is_logged_not_raised(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded

        def locked(session, *args):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(auditor, "_load_subject", locked)
        monkeypatch.setattr(auditor, "_mark_failed", locked)
        assert await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH) == AuditStatus.FAILED

    @pytest.mark.asyncio
    async def test_stage_write_failure_keeps_completed_audit(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded

        def locked(session, vid):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(auditor, "advance_after_audit", locked)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.COMPLETED

        vetting, audit = _load(factory, vetting_id, audit_id)
        assert audit.status == AuditStatus.COMPLETED
        assert vetting.stage == Stage.AUTO_AUDIT

    @pytest.mark.asyncio
    async def test_missing_report_section_fails_audit(self, factory, seeded):
        vetting_id, audit_id = seeded
        session = factory()
        session.execute(delete(ReportSection).where(
            ReportSection.vetting_id == vetting_id,
            ReportSection.section_type == SectionType.DIGITAL_PRESENCE_AUDIT.value,
        ))
        session.commit()
        session.close()

        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.FAILED
        self._assert_failed_untouched(factory, vetting_id, audit_id)

    @pytest.mark.asyncio
    async def test_platform_persist_failure_fails_audit(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded
        real_store = auditor._store_results

        def failing_store(session, *args):
            def commit():
                raise RuntimeError("disk I/O error")
            session.commit = commit
            return real_store(session, *args)

        monkeypatch.setattr(auditor, "_store_results", failing_store)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.FAILED
        _, audit = _load(factory, vetting_id, audit_id)
        assert audit.error_message == "disk I/O error"
        self._assert_failed_untouched(factory, vetting_id, audit_id)

    @staticmethod
    def _assert_failed_untouched(factory, vetting_id, audit_id):
        vetting, audit = _load(factory, vetting_id, audit_id)
        assert audit.status == AuditStatus.FAILED
        assert audit.error_message
        assert vetting.stage == Stage.AUTO_AUDIT
        session = factory()
        rows = session.execute(select(AuditPlatform).where(AuditPlatform.audit_id == audit_id)).scalars().all()
        session.close()
        assert rows == []

    @pytest.mark.asyncio
    async def test_missing_vetting_fails_audit(self, factory, seeded):
        _, audit_id = seeded
        status = await run_audit(9999, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.FAILED
        _, audit = _load(factory, 9999, audit_id)
        assert "not found" in audit.error_message

    @pytest.mark.asyncio
    async def test_missing_audit_row(self, factory, seeded):
        vetting_id, _ = seeded
        assert await run_audit(vetting_id, 4242, session_factory=factory, search=SEARCH) == AuditStatus.FAILED

    @pytest.mark.asyncio
    async def test_opponent_failure_is_isolated(self, factory, seeded, monkeypatch):
        vetting_id, audit_id = seeded
        real = auditor.discover_opponent_platforms

        async def flaky(name, state, office, search, timeout=None):
            if name == "Bad Opponent":
                raise ConnectionError("search backend reset")
            return await real(name, state, office, search, timeout)

        monkeypatch.setattr(auditor, "discover_opponent_platforms", flaky)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=SEARCH)
        assert status == AuditStatus.COMPLETED

        _, audit = _load(factory, vetting_id, audit_id)
        opponents = {o["name"]: o for o in json.loads(audit.opponent_audits_json)}
        assert opponents["Bad Opponent"]["audit_failed"] is True
        assert opponents["Bad Opponent"]["failure_reason"] == "search backend reset"
        assert opponents["John Roe"]["audit_failed"] is False
        assert opponents["John Roe"]["platform_count"] == 2

    @pytest.mark.asyncio
    async def test_concurrent_stage_change_is_not_clobbered(self, factory, seeded):
        vetting_id, audit_id = seeded
        moved = []

        def move_stage(query):
            if moved:
                return
            session = factory()
            session.get(Vetting, vetting_id).stage = Stage.RESEARCH.value
            session.commit()
            session.close()
            moved.append(True)

        search = FakeSearch(SEARCH.by_name, on_search=move_stage)
        status = await run_audit(vetting_id, audit_id, session_factory=factory, search=search)
        assert status == AuditStatus.COMPLETED

        vetting, _ = _load(factory, vetting_id, audit_id)
        assert vetting.stage == Stage.RESEARCH

    @pytest.mark.asyncio
    async def test_without_search_provider_audits_known_urls(self, factory, seeded, monkeypatch):
        monkeypatch.delenv("TAVILY_API_KEY", raising=False)
        monkeypatch.delenv("SEARCH_PROVIDER", raising=False)
        vetting_id, audit_id = seeded
        status = await run_audit(vetting_id, audit_id, session_factory=factory)
        assert status == AuditStatus.COMPLETED

        session = factory()
        rows = session.execute(select(AuditPlatform).where(AuditPlatform.audit_id == audit_id)).scalars().all()
        session.close()
        assert [r.platform_url for r in rows] == ["https://janedoe-for-senate.com"]


class TestProcessPlatforms:
    def test_unclassifiable_urls_dropped(self):
        from vetting.audit_types import DiscoveredUrl

        urls = [
            DiscoveredUrl(url="https://janedoe-for-senate.com", title="Jane Doe for Senate"),
            DiscoveredUrl(url="https://facebook.com/groups/tx-politics"),
        ]
        results = auditor.process_platforms(urls, EntityType.CANDIDATE, "Jane Doe", "Senate", "TX")
        assert len(results) == 1
        assert results[0].platform_type == "campaign-website"
        assert results[0].confidence_score == 0.65
        assert results[0].activity_status == "unknown"
        assert results[0].total_score == results[0].score_presence + results[0].score_consistency \
            + results[0].score_quality + results[0].score_accessibility
