"""Platform classifier: map a URL to a platform type, display name and category.

Ordered regex rules are tried first (first match wins). Anything else on a
host outside the known platform domains is treated as a custom domain and
labelled a campaign website when it carries a political keyword.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from vetting.enums import PlatformCategory
from vetting.utils import hostname


@dataclass(frozen=True)
class PlatformClassification:
    platform_type: str
    platform_name: str
    category: PlatformCategory


_C = PlatformCategory

# (pattern, platform_type, platform_name, category) -- order matters
_PLATFORM_RULES: list[tuple[re.Pattern[str], str, str, PlatformCategory]] = [
    (re.compile(p, re.IGNORECASE), t, n, c)
    for p, t, n, c in [
        # Political databases
        (r"ballotpedia\.org", "ballotpedia", "Ballotpedia", _C.POLITICAL_PLATFORM),
        (r"votesmart\.org", "votesmart", "VoteSmart", _C.POLITICAL_PLATFORM),
        (r"opensecrets\.org", "opensecrets", "OpenSecrets", _C.POLITICAL_PLATFORM),
        (r"fec\.gov", "fec", "FEC", _C.POLITICAL_PLATFORM),
        (r"govtrack\.us", "govtrack", "GovTrack", _C.POLITICAL_PLATFORM),
        (r"congress\.gov", "congress-gov", "Congress.gov", _C.POLITICAL_PLATFORM),
        (r"followthemoney\.org", "followthemoney", "FollowTheMoney", _C.POLITICAL_PLATFORM),
        (r"vote411\.org", "vote411", "Vote411", _C.POLITICAL_PLATFORM),
        (r"isidewith\.com", "isidewith", "iSideWith", _C.POLITICAL_PLATFORM),
        # Social networks
        (r"facebook\.com/(?!marketplace|groups)", "facebook", "Facebook", _C.SOCIAL_MEDIA),
        (r"twitter\.com", "twitter", "Twitter/X", _C.SOCIAL_MEDIA),
        (r"(?<![a-z0-9])x\.com", "twitter", "X (Twitter)", _C.SOCIAL_MEDIA),
        (r"instagram\.com", "instagram", "Instagram", _C.SOCIAL_MEDIA),
        (r"tiktok\.com", "tiktok", "TikTok", _C.SOCIAL_MEDIA),
        (r"threads\.net", "threads", "Threads", _C.SOCIAL_MEDIA),
        (r"nextdoor\.com", "nextdoor", "Nextdoor", _C.SOCIAL_MEDIA),
        (r"truthsocial\.com", "truthsocial", "Truth Social", _C.SOCIAL_MEDIA),
        (r"rumble\.com", "rumble", "Rumble", _C.SOCIAL_MEDIA),
        # Professional networks
        (r"linkedin\.com/in/", "linkedin-personal", "LinkedIn (Personal)", _C.PROFESSIONAL_NETWORK),
        (r"linkedin\.com/company/", "linkedin-company", "LinkedIn (Company)", _C.PROFESSIONAL_NETWORK),
        (r"linkedin\.com", "linkedin", "LinkedIn", _C.PROFESSIONAL_NETWORK),
        # Content platforms
        (r"youtube\.com/(?:@|c/|channel/|user/)", "youtube", "YouTube", _C.CONTENT_PLATFORM),
        (r"youtu\.be", "youtube", "YouTube", _C.CONTENT_PLATFORM),
        (r"medium\.com", "medium", "Medium", _C.CONTENT_PLATFORM),
        (r"substack\.com", "substack", "Substack", _C.CONTENT_PLATFORM),
        (r"podcasts\.apple\.com", "apple-podcasts", "Apple Podcasts", _C.CONTENT_PLATFORM),
        (r"spotify\.com/show", "spotify-podcast", "Spotify Podcast", _C.CONTENT_PLATFORM),
        # News / media
        (r"patch\.com", "patch", "Patch", _C.NEWS_MEDIA),
        (r"localnews", "local-news", "Local News", _C.NEWS_MEDIA),
        # Scheduling / events
        (r"eventbrite\.com", "eventbrite", "Eventbrite", _C.OTHER),
        (r"meetup\.com", "meetup", "Meetup", _C.OTHER),
        (r"calendly\.com", "calendly", "Calendly", _C.OTHER),
        (r"linktree", "linktree", "Linktree", _C.OTHER),
    ]
]

KNOWN_PLATFORM_DOMAINS = frozenset({
    "linkedin.com", "facebook.com", "twitter.com", "x.com", "instagram.com",
    "youtube.com", "medium.com", "substack.com", "tiktok.com", "threads.net",
    "ballotpedia.org", "votesmart.org", "opensecrets.org", "fec.gov",
    "govtrack.us", "congress.gov", "patch.com", "eventbrite.com",
    "meetup.com", "calendly.com", "truthsocial.com", "rumble.com",
    "nextdoor.com",
})

POLITICAL_KEYWORDS = ("campaign", "elect", "vote", "for", "committee")

_TLD_RE = re.compile(r"\.(com|org|net|io|co|us|info|gov)$", re.IGNORECASE)


def classify_url(url: str) -> PlatformClassification | None:
    """Classify *url*; ``None`` when the string is not URL-like or its host is a
    known platform that no rule recognised (e.g. a Facebook group)."""
    if not url or not isinstance(url, str):
        return None
    normalized = url.strip().lower()
    if not normalized.startswith(("http://", "https://")) and "." not in normalized:
        return None

    for pattern, platform_type, platform_name, category in _PLATFORM_RULES:
        if pattern.search(normalized):
            return PlatformClassification(platform_type, platform_name, category)

    host = hostname(normalized)
    if not host:
        return None
    if any(domain in host for domain in KNOWN_PLATFORM_DOMAINS):
        return None
    return _classify_custom_domain(normalized, host)


def _classify_custom_domain(url: str, host: str) -> PlatformClassification:
    clean = host.removeprefix("www.")
    political = any(kw in clean or kw in url for kw in POLITICAL_KEYWORDS)
    if political:
        return PlatformClassification("campaign-website", format_domain_name(clean), _C.CAMPAIGN_WEBSITE)
    return PlatformClassification("custom-website", format_domain_name(clean), _C.WEBSITE)


def format_domain_name(domain: str) -> str:
    """``janedoe-for-senate.com`` -> ``Janedoe For Senate``."""
    without_tld = _TLD_RE.sub("", domain)
    return " ".join(w[:1].upper() + w[1:] for w in re.split(r"[.-]", without_tld) if w)


def is_political_platform(url: str) -> bool:
    c = classify_url(url)
    return c is not None and c.category == PlatformCategory.POLITICAL_PLATFORM


def is_social_media(url: str) -> bool:
    c = classify_url(url)
    return c is not None and c.category == PlatformCategory.SOCIAL_MEDIA
