from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from vetting.enums import AuditStatus, CommitteeRole, SectionStatus, Stage


class Base(DeclarativeBase):
    pass


class Committee(Base):
    __tablename__ = "committees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    members: Mapped[list[CommitteeMember]] = relationship(
        "CommitteeMember", back_populates="committee", cascade="all, delete-orphan",
    )


class CommitteeMember(Base):
    __tablename__ = "committee_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    committee_id: Mapped[int] = mapped_column(Integer, ForeignKey("committees.id"), nullable=False)
    contact_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(300), default="")
    role: Mapped[str] = mapped_column(String(20), default=CommitteeRole.MEMBER.value)  # chair | member
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    committee: Mapped[Committee] = relationship("Committee", back_populates="members")


class Vetting(Base):
    __tablename__ = "vettings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_response_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    candidate_name: Mapped[str] = mapped_column(String(300), nullable=False)
    candidate_office: Mapped[str | None] = mapped_column(String(200), nullable=True)
    candidate_district: Mapped[str | None] = mapped_column(String(100), nullable=True)
    candidate_state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    candidate_party: Mapped[str | None] = mapped_column(String(100), nullable=True)
    known_urls_json: Mapped[str] = mapped_column(Text, default="[]")
    survey_answers_json: Mapped[str] = mapped_column(Text, default="[]")  # [{question, answer}]
    committee_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("committees.id"), nullable=True)
    primary_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    stage: Mapped[str] = mapped_column(String(40), default=Stage.SURVEY_SUBMITTED.value)
    interview_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    interview_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    interviewers_json: Mapped[str] = mapped_column(Text, default="[]")
    recommendation: Mapped[str | None] = mapped_column(String(30), nullable=True)
    recommendation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    endorsement_result: Mapped[str | None] = mapped_column(String(30), nullable=True)
    endorsed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    sections: Mapped[list[ReportSection]] = relationship(
        "ReportSection", back_populates="vetting", cascade="all, delete-orphan",
    )
    opponents: Mapped[list[Opponent]] = relationship(
        "Opponent", back_populates="vetting", cascade="all, delete-orphan",
    )
    votes: Mapped[list[BoardVote]] = relationship(
        "BoardVote", back_populates="vetting", cascade="all, delete-orphan",
    )
    audits: Mapped[list[DigitalAudit]] = relationship(
        "DigitalAudit", back_populates="vetting", cascade="all, delete-orphan",
    )


class ReportSection(Base):
    __tablename__ = "report_sections"
    __table_args__ = (UniqueConstraint("vetting_id", "section_type", name="uq_section_per_vetting"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vetting_id: Mapped[int] = mapped_column(Integer, ForeignKey("vettings.id"), nullable=False)
    section_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default=SectionStatus.NOT_STARTED.value)
    reviewed_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # human-authored
    ai_draft_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # machine seed
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    vetting: Mapped[Vetting] = relationship("Vetting", back_populates="sections")
    assignments: Mapped[list[SectionAssignment]] = relationship(
        "SectionAssignment", back_populates="section", cascade="all, delete-orphan",
    )


class SectionAssignment(Base):
    __tablename__ = "section_assignments"
    __table_args__ = (
        UniqueConstraint("section_id", "committee_member_id", name="uq_assignment_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    section_id: Mapped[int] = mapped_column(Integer, ForeignKey("report_sections.id"), nullable=False)
    committee_member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("committee_members.id"), nullable=False,
    )
    assigned_by: Mapped[str] = mapped_column(String(100), default="")
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    section: Mapped[ReportSection] = relationship("ReportSection", back_populates="assignments")


class Opponent(Base):
    __tablename__ = "opponents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vetting_id: Mapped[int] = mapped_column(Integer, ForeignKey("vettings.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    party: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_incumbent: Mapped[bool] = mapped_column(Boolean, default=False)
    background: Mapped[str | None] = mapped_column(Text, nullable=True)
    credibility: Mapped[str | None] = mapped_column(Text, nullable=True)
    fundraising_json: Mapped[str] = mapped_column(Text, default="{}")
    endorsements_json: Mapped[str] = mapped_column(Text, default="[]")
    social_links_json: Mapped[str] = mapped_column(Text, default="{}")

    vetting: Mapped[Vetting] = relationship("Vetting", back_populates="opponents")


class BoardVote(Base):
    __tablename__ = "board_votes"
    __table_args__ = (UniqueConstraint("vetting_id", "voter_id", name="uq_vote_per_voter"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vetting_id: Mapped[int] = mapped_column(Integer, ForeignKey("vettings.id"), nullable=False)
    voter_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vote: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    voted_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    vetting: Mapped[Vetting] = relationship("Vetting", back_populates="votes")


class DigitalAudit(Base):
    __tablename__ = "digital_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vetting_id: Mapped[int] = mapped_column(Integer, ForeignKey("vettings.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=AuditStatus.PENDING.value)
    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(5), nullable=True)
    score_breakdown_json: Mapped[str] = mapped_column(Text, default="{}")
    risk_json: Mapped[str] = mapped_column(Text, default="{}")
    opponent_audits_json: Mapped[str] = mapped_column(Text, default="[]")
    discovery_log_json: Mapped[str] = mapped_column(Text, default="{}")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    vetting: Mapped[Vetting] = relationship("Vetting", back_populates="audits")
    platforms: Mapped[list[AuditPlatform]] = relationship(
        "AuditPlatform", back_populates="audit", cascade="all, delete-orphan",
    )


class AuditPlatform(Base):
    __tablename__ = "audit_platforms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    audit_id: Mapped[int] = mapped_column(Integer, ForeignKey("digital_audits.id"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # candidate | opponent
    entity_name: Mapped[str] = mapped_column(String(300), default="")
    platform_type: Mapped[str] = mapped_column(String(50), default="")
    platform_name: Mapped[str] = mapped_column(String(200), default="")
    category: Mapped[str] = mapped_column(String(50), default="")
    platform_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence_level: Mapped[str | None] = mapped_column(String(10), nullable=True)
    discovery_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    activity_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    score_presence: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_consistency: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_quality: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_accessibility: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(5), nullable=True)
    has_contact_info: Mapped[bool] = mapped_column(Boolean, default=False)
    has_email: Mapped[bool] = mapped_column(Boolean, default=False)
    has_phone: Mapped[bool] = mapped_column(Boolean, default=False)
    has_website: Mapped[bool] = mapped_column(Boolean, default=False)

    audit: Mapped[DigitalAudit] = relationship("DigitalAudit", back_populates="platforms")
