from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from brightspots.core.fields import INTEREST_CATEGORIES, SurveyRecord, is_blank, resolve_field
from brightspots.core.scoring import (
    INTEREST_LEVELS,
    empty_counts,
    interest_weight,
    is_interest_level,
    weighted_score,
)

logger = logging.getLogger(__name__)

START_TIME_FORMAT = "%d-%m-%Y %H:%M"

CUSTOMER_THEME = "customerTheme"
TECH = "tech"
TAG_DOMAINS = (CUSTOMER_THEME, TECH)

# domain -> (tags attribute, free-text attribute)
_DOMAIN_FIELDS = {
    CUSTOMER_THEME: ("customer_themes_tags", "customer_themes_text"),
    TECH: ("emerging_tech_tags", "emerging_tech_text"),
}

ANONYMOUS = "Anonymous"
UNKNOWN_COMPANY = "Unknown Company"


@dataclass
class SurveySummary:
    total_responses: int
    companies: int
    start_date: Optional[datetime]
    end_date: Optional[datetime]


@dataclass
class TagFrequency:
    tag: str
    frequency: int


@dataclass
class TagEntry:
    id: str
    name: str
    company: str
    content: str
    tags: List[str]


@dataclass
class Respondent:
    company: str
    name: str
    role: str


@dataclass
class RollupItem:
    name: str
    interest_counts: Dict[str, int]
    respondents: Dict[str, List[Respondent]]
    total_mentions: int
    weighted_score: float


@dataclass
class CompanyMember:
    id: str
    name: str
    themes: str
    emerging_tech: str


@dataclass
class CompanyGroup:
    name: str
    count: int
    respondents: List[CompanyMember] = field(default_factory=list)


@dataclass
class CompanyProfile:
    """What a company said, taken from its records without a role."""
    name: str
    contributors: List[str] = field(default_factory=list)
    customer_themes: List[str] = field(default_factory=list)
    emerging_tech: List[str] = field(default_factory=list)
    # category -> item -> strongest level any contributor gave
    interests: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass
class Person:
    id: str
    name: str
    role: str
    company: str
    customer_themes: str
    emerging_tech: str
    interests: Dict[str, Dict[str, str]] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def parse_start_times(records: Iterable[SurveyRecord]) -> pd.Series:
    """Parse 'DD-MM-YYYY HH:MM' start times; unparseable values become NaT."""
    values = [r.start_time.strip() for r in records]
    return pd.to_datetime(pd.Series(values, dtype="object"), format=START_TIME_FORMAT, errors="coerce")


def summary(records: Iterable[SurveyRecord]) -> SurveySummary:
    records = list(records)
    companies = {r.company for r in records if not is_blank(r.company)}

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    if records:
        parsed = parse_start_times(records).dropna()
        skipped = len(records) - len(parsed)
        if skipped:
            logger.warning("Ignoring %s record(s) with an unparseable start time.", skipped)
        if not parsed.empty:
            start_date = parsed.min().to_pydatetime()
            end_date = parsed.max().to_pydatetime()

    return SurveySummary(
        total_responses=len(records),
        companies=len(companies),
        start_date=start_date,
        end_date=end_date,
    )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def implicit_tags_from_text(text: Optional[str]) -> List[str]:
    """Comma-separated free text doubles as a tag list; anything else yields no tags."""
    if not text or "," not in text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def effective_tags(record: SurveyRecord, domain: str) -> List[str]:
    tags_attr, text_attr = _domain_fields(domain)
    tags = getattr(record, tags_attr)
    if tags:
        return list(tags)
    return implicit_tags_from_text(getattr(record, text_attr))


def _domain_fields(domain: str):
    if domain not in _DOMAIN_FIELDS:
        raise ValueError(f"Unknown tag domain {domain!r}; expected one of {TAG_DOMAINS}")
    return _DOMAIN_FIELDS[domain]


def _domain_for_tag_field(tag_field: str) -> str:
    try:
        attr, kind = resolve_field(tag_field)
    except KeyError:
        raise ValueError(f"{tag_field!r} is not a tag field") from None
    if kind != "tags":
        raise ValueError(f"{tag_field!r} is not a tag field")
    for domain, (tags_attr, _) in _DOMAIN_FIELDS.items():
        if tags_attr == attr:
            return domain
    raise ValueError(f"{tag_field!r} is not a tag field")


def tag_frequencies(records: Iterable[SurveyRecord], tag_field: str) -> List[TagFrequency]:
    """
    Count tags across all records, case-sensitive.

    `tag_field` is a tag list field (e.g. 'customerThemesTags' or
    'emergingTechVendorProductTags'). Records with an empty list contribute
    their comma-separated free text instead. Sorted by count, descending;
    equal counts keep first-seen order.
    """
    domain = _domain_for_tag_field(tag_field)
    counts: Dict[str, int] = {}
    for record in records:
        for tag in effective_tags(record, domain):
            if not tag.strip():
                continue
            counts[tag] = counts.get(tag, 0) + 1

    freqs = [TagFrequency(tag=tag, frequency=n) for tag, n in counts.items()]
    return sorted(freqs, key=lambda f: f.frequency, reverse=True)


def _to_entry(record: SurveyRecord, domain: str) -> TagEntry:
    _, text_attr = _domain_fields(domain)
    return TagEntry(
        id=record.id,
        name=record.respondent_name or ANONYMOUS,
        company=record.company or UNKNOWN_COMPANY,
        content=getattr(record, text_attr),
        tags=effective_tags(record, domain),
    )


def entries_by_tag(records: Iterable[SurveyRecord], tag: str, domain: str = CUSTOMER_THEME) -> List[TagEntry]:
    """Records whose tags contain `tag`, compared case-insensitively."""
    _domain_fields(domain)
    wanted = (tag or "").lower()
    out: List[TagEntry] = []
    for record in records:
        if any(t.lower() == wanted for t in effective_tags(record, domain)):
            out.append(_to_entry(record, domain))
    return out


def customer_theme_entries(records: Iterable[SurveyRecord]) -> List[TagEntry]:
    return [_to_entry(r, CUSTOMER_THEME) for r in records if not is_blank(r.customer_themes_text)]


def emerging_tech_entries(records: Iterable[SurveyRecord]) -> List[TagEntry]:
    return [_to_entry(r, TECH) for r in records if not is_blank(r.emerging_tech_text)]


def company_tag_index(records: Iterable[SurveyRecord], tag: str) -> List[str]:
    """
    Companies whose customer-theme tags contain `tag`.

    Unlike entries_by_tag this comparison is case-sensitive and only looks at
    the explicit tag list.
    """
    companies: List[str] = []
    for record in records:
        if record.company and tag in record.customer_themes_tags and record.company not in companies:
            companies.append(record.company)
    return companies


# ---------------------------------------------------------------------------
# Interest rollups
# ---------------------------------------------------------------------------

def _category(interest_field: str) -> str:
    try:
        attr, kind = resolve_field(interest_field)
    except KeyError:
        raise ValueError(f"{interest_field!r} is not one of {INTEREST_CATEGORIES}") from None
    if kind != "interest":
        raise ValueError(f"{interest_field!r} is not one of {INTEREST_CATEGORIES}")
    return attr


def rollup(records: Iterable[SurveyRecord], interest_field: str) -> List[RollupItem]:
    """
    One entry per item named under `interest_field` (challenges, techConcepts
    or productsVendors), with per-level counts, the respondents behind each
    level and the weighted score. Sorted by weighted score, descending; ties
    keep the order in which items were first seen.
    """
    attr = _category(interest_field)
    records = list(records)

    items: Dict[str, RollupItem] = {}
    for record in records:
        for name in getattr(record, attr):
            if name not in items:
                items[name] = RollupItem(
                    name=name,
                    interest_counts=empty_counts(),
                    respondents={level: [] for level in INTEREST_LEVELS},
                    total_mentions=0,
                    weighted_score=0.0,
                )

    for record in records:
        for name, level in getattr(record, attr).items():
            if not is_interest_level(level):
                continue
            item = items[name]
            item.interest_counts[level] += 1
            item.respondents[level].append(
                Respondent(
                    company=record.company or UNKNOWN_COMPANY,
                    name=record.respondent_name,
                    role=record.role,
                )
            )

    for item in items.values():
        item.total_mentions = sum(item.interest_counts.values())
        item.weighted_score = weighted_score(item.interest_counts)

    return sorted(items.values(), key=lambda i: i.weighted_score, reverse=True)


# ---------------------------------------------------------------------------
# Companies and people
# ---------------------------------------------------------------------------

def companies(records: Iterable[SurveyRecord]) -> List[CompanyGroup]:
    groups: Dict[str, CompanyGroup] = {}
    for record in records:
        if is_blank(record.company):
            continue
        group = groups.setdefault(record.company, CompanyGroup(name=record.company, count=0))
        group.count += 1
        group.respondents.append(
            CompanyMember(
                id=record.id,
                name=record.respondent_name,
                themes=record.customer_themes_text,
                emerging_tech=record.emerging_tech_text,
            )
        )
    return sorted(groups.values(), key=lambda g: g.count, reverse=True)


def _strongest_interests(record: SurveyRecord, into: Dict[str, Dict[str, str]]) -> None:
    for category in INTEREST_CATEGORIES:
        target = into.setdefault(category, {})
        for item, level in record.interest_map(category).items():
            current = target.get(item)
            if current is None or interest_weight(level) > interest_weight(current):
                target[item] = level


def company_profiles(records: Iterable[SurveyRecord]) -> Dict[str, CompanyProfile]:
    profiles: Dict[str, CompanyProfile] = {}
    for record in records:
        if record.has_role or is_blank(record.company):
            continue
        profile = profiles.setdefault(record.company, CompanyProfile(name=record.company))
        if not is_blank(record.respondent_name):
            profile.contributors.append(record.respondent_name)
        if not is_blank(record.customer_themes_text):
            profile.customer_themes.append(record.customer_themes_text)
        if not is_blank(record.emerging_tech_text):
            profile.emerging_tech.append(record.emerging_tech_text)
        _strongest_interests(record, profile.interests)
    return profiles


def people(records: Iterable[SurveyRecord]) -> List[Person]:
    out: List[Person] = []
    for index, record in enumerate(r for r in records if r.has_role):
        interests: Dict[str, Dict[str, str]] = {}
        _strongest_interests(record, interests)
        out.append(
            Person(
                id=record.id,
                name=record.respondent_name if not is_blank(record.respondent_name) else f"{ANONYMOUS} {index + 1}",
                role=record.role,
                company=record.company or "Unknown",
                customer_themes=record.customer_themes_text,
                emerging_tech=record.emerging_tech_text,
                interests=interests,
            )
        )
    return out


# ---------------------------------------------------------------------------
# Frames for display
# ---------------------------------------------------------------------------

def rollup_frame(items: List[RollupItem], labels: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    labels = labels or {}
    rows = []
    for item in items:
        row = {"Item": item.name}
        for level in INTEREST_LEVELS:
            row[labels.get(level, level)] = item.interest_counts[level]
        row["Total mentions"] = item.total_mentions
        row["Weighted score"] = round(item.weighted_score, 2)
        rows.append(row)
    columns = ["Item"] + [labels.get(l, l) for l in INTEREST_LEVELS] + ["Total mentions", "Weighted score"]
    return pd.DataFrame(rows, columns=columns)


def tag_frequency_frame(freqs: List[TagFrequency]) -> pd.DataFrame:
    return pd.DataFrame([{"Tag": f.tag, "Frequency": f.frequency} for f in freqs], columns=["Tag", "Frequency"])
