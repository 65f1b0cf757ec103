"""Confidence scorer: how likely a discovered URL belongs to the named candidate.

Five independent signals, summed and clamped to [0, 1]:

    name_match        0-0.4   candidate name in URL/title
    office_match      0-0.3   office string or keywords, plus a state-code token
    location_match    0-0.15  full state name, else the bare state code
    domain_authority  0-0.1   political databases and major platforms rank highest
    content_signals   0-0.05  political keywords
"""
from __future__ import annotations

import re

from vetting.audit_types import ConfidenceFactors, ConfidenceResult
from vetting.enums import ConfidenceLevel
from vetting.utils import hostname

HIGH_THRESHOLD = 0.7
MEDIUM_THRESHOLD = 0.5
LOW_THRESHOLD = 0.3

# Checked in order by host substring.
DOMAIN_AUTHORITY: dict[str, float] = {
    "ballotpedia.org": 0.1,
    "votesmart.org": 0.1,
    "opensecrets.org": 0.1,
    "fec.gov": 0.1,
    "govtrack.us": 0.1,
    "congress.gov": 0.1,
    "linkedin.com": 0.1,
    "facebook.com": 0.1,
    "twitter.com": 0.1,
    "x.com": 0.1,
    "instagram.com": 0.09,
    "youtube.com": 0.09,
    "tiktok.com": 0.08,
    "patch.com": 0.07,
    "medium.com": 0.07,
    "substack.com": 0.07,
}

STATE_NAMES: dict[str, str] = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "DC": "District of Columbia",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois",
    "IN": "Indiana", "IA": "Iowa", "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana",
    "ME": "Maine", "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma", "OR": "Oregon",
    "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina", "SD": "South Dakota",
    "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VT": "Vermont", "VA": "Virginia",
    "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}

CONTENT_KEYWORDS = (
    "campaign", "candidate", "election", "vote", "elect",
    "republican", "democrat", "libertarian", "conservative", "progressive",
    "district", "precinct", "ballot", "endorsement",
)


def calculate_confidence(
    url: str,
    title: str,
    candidate_name: str,
    office: str | None,
    state: str | None,
) -> ConfidenceResult:
    text = f"{url.lower()} {(title or '').lower()}"
    factors = ConfidenceFactors(
        name_match=name_match(text, candidate_name),
        office_match=office_match(text, office, state),
        location_match=location_match(text, state),
        domain_authority=domain_authority(url),
        content_signals=content_signals(text),
    )
    score = max(0.0, min(1.0, factors.total()))
    return ConfidenceResult(factors=factors, score=score, level=confidence_level(score))


def confidence_level(score: float) -> ConfidenceLevel:
    if score >= HIGH_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    if score >= LOW_THRESHOLD:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.NONE


def name_match(text: str, name: str) -> float:
    parts = (name or "").lower().split()
    if not parts:
        return 0.0
    if "".join(parts) in text or "-".join(parts) in text:
        return 0.4
    if len(parts) >= 2:
        first, last = parts[0], parts[-1]
        if first in text and last in text:
            return 0.35
        if last in text:
            return 0.2
        if first in text:
            return 0.1
    return 0.0


def office_match(text: str, office: str | None, state: str | None) -> float:
    score = 0.0
    if office:
        office_lower = office.lower()
        if office_lower in text:
            score += 0.2
        elif any(kw in text for kw in office_lower.split() if len(kw) > 3):
            score += 0.1

    # State code as its own token, e.g. "/tx/" or "-tx-"
    if state and len(state) == 2:
        if re.search(rf"[^a-z]{re.escape(state.lower())}[^a-z]", f" {text} "):
            score += 0.1

    return min(0.3, score)


def location_match(text: str, state: str | None) -> float:
    """Full state name scores 0.15; the bare two-letter code anywhere in the text 0.08."""
    if not state:
        return 0.0
    state_lower = state.strip().lower()
    full_name = STATE_NAMES.get(state_lower.upper(), state_lower if len(state_lower) > 2 else "").lower()
    if full_name and any(
        form in text for form in (full_name, full_name.replace(" ", "-"), full_name.replace(" ", ""))
    ):
        return 0.15
    if len(state_lower) == 2 and state_lower in text:
        return 0.08
    return 0.0


def domain_authority(url: str) -> float:
    host = hostname(url)
    if not host:
        return 0.03
    for domain, score in DOMAIN_AUTHORITY.items():
        if domain in host:
            return score
    if host.endswith(".gov"):
        return 0.09
    if host.endswith(".org"):
        return 0.06
    if host.endswith(".com"):
        return 0.05
    return 0.03


def content_signals(text: str) -> float:
    matches = sum(1 for kw in CONTENT_KEYWORDS if kw in text)
    return min(0.05, matches * 0.015)
