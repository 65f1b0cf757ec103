"""Draft generation for report sections.

Each section type with a draft helper has one handler that checks its
preconditions and builds the prompt pair sent to the LLM. Section types
without a handler resolve to :data:`UNSUPPORTED` rather than falling through.

The LLM client supports Anthropic (default) and OpenAI or OpenAI-compatible
endpoints, selected with ``LLM_PROVIDER`` / ``LLM_MODEL``.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from vetting.enums import SectionType
from vetting.errors import DraftGenerationError, ValidationError

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# LLM client
# ---------------------------------------------------------------------------


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.provider = provider or os.environ.get("LLM_PROVIDER", "anthropic")
        self.model = model or os.environ.get("LLM_MODEL", "")
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            key = self._api_key or os.environ.get("ANTHROPIC_API_KEY")
            if not key:
                raise DraftGenerationError("ANTHROPIC_API_KEY is not set", not_configured=True)
            import anthropic
            self.model = self.model or "claude-haiku-4-5-20251001"
            self._client = anthropic.AsyncAnthropic(api_key=key)
        elif self.provider in ("openai", "openai_compatible"):
            kwargs: dict[str, Any] = {}
            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            url = self._base_url or os.environ.get("OPENAI_BASE_URL")
            if not key and not url:
                raise DraftGenerationError("OPENAI_API_KEY is not set", not_configured=True)
            import openai
            self.model = self.model or "gpt-4o-mini"
            if key:
                kwargs["api_key"] = key
            if url:
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise DraftGenerationError(f"Unknown LLM provider: {self.provider!r}", not_configured=True)

    async def call(self, system: str, user: str) -> dict[str, Any]:
        """Send system+user message to the LLM, return parsed JSON."""
        try:
            if self.provider == "anthropic":
                response = await self._client.messages.create(
                    model=self.model,
                    max_tokens=4096,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                )
                text = response.content[0].text.strip()
                m = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, re.DOTALL)
                if m:
                    text = m.group(1)
            else:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    max_tokens=4096,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                )
                text = response.choices[0].message.content or "{}"
        except Exception as exc:
            raise DraftGenerationError(f"LLM API call failed: {exc}") from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DraftGenerationError(f"LLM returned invalid JSON: {text[:200]}") from exc
        if not isinstance(data, dict):
            raise DraftGenerationError("LLM returned JSON that is not an object")
        return data


# ---------------------------------------------------------------------------
# Draft context and prompts
# ---------------------------------------------------------------------------


@dataclass
class DraftContext:
    candidate_name: str
    office: str | None = None
    state: str | None = None
    district: str | None = None
    party: str | None = None
    opponents: list[tuple[str, str | None]] = field(default_factory=list)
    survey_answers: list[dict[str, str]] = field(default_factory=list)
    # section_type -> reviewed data, else AI draft
    section_data: dict[str, Any] = field(default_factory=dict)


_JSON_ONLY = "Respond with a single JSON object and nothing else. Use null for unknown values."

OPPONENT_SYSTEM = f"""You are a political research analyst preparing an opponent research brief
for an endorsement committee. Use only publicly known facts; say so when unsure.
{_JSON_ONLY}
Keys: background (str), experience (str), fundraising {{estimated_total (str), sources [str]}},
strengths [str], weaknesses [str], key_issues [str], endorsements [str]."""

DISTRICT_SYSTEM = f"""You are an election data analyst summarising a legislative district.
{_JSON_ONLY}
Keys: cook_pvi (str), demographics {{population, median_age, median_income, race_ethnicity {{str: float}}}},
voter_registration {{republican, democrat, independent, other}},
electoral_history [{{year (int), winner (str), party (str), margin (str)}}],
key_issues [str], geographic_notes (str)."""

VOTING_RULES_SYSTEM = f"""You are an election law researcher summarising a state's voting rules.
{_JSON_ONLY}
Keys: voter_eligibility (str), registration_rules {{deadline (str), online_available (bool), same_day (bool)}},
absentee_rules {{no_excuse_required (bool), early_voting_days (int|null), mail_ballot_deadline (str)}},
primary_type (str), runoff_rules (str), key_dates [{{event (str), date (str)}}]."""

BACKGROUND_SYSTEM = f"""You are drafting the candidate background section of a vetting report.
Base the draft on the candidate details and survey answers provided.
{_JSON_ONLY}
Keys: employment (str), education (str), political_experience (str), community_involvement (str),
key_positions [str], notable_achievements [str]."""

SUMMARY_SYSTEM = f"""You are writing the executive summary of a candidate vetting report from the
other report sections. Be balanced and cite the sections you rely on.
{_JSON_ONLY}
Keys: summary (str), overall_assessment (str), strengths [str], concerns [str], recommendation (str)."""


def _header(ctx: DraftContext) -> list[str]:
    lines = [f"CANDIDATE: {ctx.candidate_name}"]
    for label, value in (
        ("OFFICE", ctx.office), ("STATE", ctx.state), ("DISTRICT", ctx.district), ("PARTY", ctx.party),
    ):
        if value:
            lines.append(f"{label}: {value}")
    return lines


def _opponent_prompt(ctx: DraftContext) -> tuple[str, str]:
    named = [(n, p) for n, p in ctx.opponents if (n or "").strip()]
    if not named:
        raise ValidationError(
            "No opponents added to this vetting yet. Add an opponent with a name before generating research.",
            reason="missing_opponent",
        )
    name, party = named[0]
    lines = [f"OPPONENT: {name}", f"PARTY: {party or 'Unknown'}"]
    lines += [f"RACE: {ctx.office or 'Unknown'} {ctx.district or ''}".rstrip(), f"STATE: {ctx.state or 'Unknown'}"]
    return OPPONENT_SYSTEM, "\n".join(lines)


def _require_state(ctx: DraftContext, what: str) -> str:
    if not ctx.state:
        raise ValidationError(f"Candidate state is required for {what}", reason="missing_state")
    return ctx.state


def _district_prompt(ctx: DraftContext) -> tuple[str, str]:
    state = _require_state(ctx, "district research")
    return DISTRICT_SYSTEM, "\n".join([
        f"STATE: {state}",
        f"DISTRICT: {ctx.district or 'At-Large'}",
        f"OFFICE: {ctx.office or 'Unknown'}",
    ])


def _voting_rules_prompt(ctx: DraftContext) -> tuple[str, str]:
    state = _require_state(ctx, "voting rules research")
    return VOTING_RULES_SYSTEM, f"STATE: {state}"


def _background_prompt(ctx: DraftContext) -> tuple[str, str]:
    lines = _header(ctx)
    if ctx.survey_answers:
        lines.append("\n--- SURVEY ANSWERS ---")
        for a in ctx.survey_answers:
            lines.append(f"Q: {a.get('question', '')}\nA: {a.get('answer', '')}")
    return BACKGROUND_SYSTEM, "\n".join(lines)


def _summary_prompt(ctx: DraftContext) -> tuple[str, str]:
    lines = _header(ctx)
    for section_type, data in ctx.section_data.items():
        if section_type == SectionType.EXECUTIVE_SUMMARY.value or not data:
            continue
        lines.append(f"\n--- {section_type.upper()} ---")
        lines.append(json.dumps(data, indent=1, default=str)[:6000])
    return SUMMARY_SYSTEM, "\n".join(lines)


PromptBuilder = Callable[[DraftContext], tuple[str, str]]

DRAFT_HANDLERS: dict[SectionType, PromptBuilder] = {
    SectionType.OPPONENT_RESEARCH: _opponent_prompt,
    SectionType.DISTRICT_DATA: _district_prompt,
    SectionType.VOTING_RULES: _voting_rules_prompt,
    SectionType.CANDIDATE_BACKGROUND: _background_prompt,
    SectionType.EXECUTIVE_SUMMARY: _summary_prompt,
}

UNSUPPORTED = None


def draft_handler_for(section_type: str) -> PromptBuilder | None:
    """Handler for *section_type*, or :data:`UNSUPPORTED`."""
    try:
        return DRAFT_HANDLERS.get(SectionType(section_type), UNSUPPORTED)
    except ValueError:
        return UNSUPPORTED


def build_prompt(section_type: str, ctx: DraftContext) -> tuple[str, str]:
    handler = draft_handler_for(section_type)
    if handler is UNSUPPORTED:
        raise ValidationError("No AI helper available for this section type", reason="unsupported_section")
    return handler(ctx)


async def generate_draft(
    section_type: str, ctx: DraftContext, client: LLMClient | None = None,
) -> dict[str, Any]:
    """Check preconditions, then call the LLM. Validation errors come before configuration errors."""
    system, user = build_prompt(section_type, ctx)
    client = client or LLMClient()
    log.info("Generating %s draft for %r", section_type, ctx.candidate_name)
    return await client.call(system, user)
