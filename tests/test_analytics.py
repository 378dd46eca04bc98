"""
Tests for the read-side aggregations over survey records.
Run with: pytest tests/test_analytics.py -v
"""
from datetime import datetime

import pytest

from brightspots.core import analytics
from brightspots.core.analytics import (
    ANONYMOUS,
    TECH,
    UNKNOWN_COMPANY,
    company_profiles,
    company_tag_index,
    companies,
    entries_by_tag,
    implicit_tags_from_text,
    people,
    rollup,
    rollup_frame,
    summary,
    tag_frequencies,
    tag_frequency_frame,
)
from brightspots.core.scoring import (
    NOTHING_HEARD,
    REASONABLE_INTEREST,
    STRONG_INTEREST,
    VAGUE_INTEREST,
)
from conftest import make_store, raw_record


def _records(*raws):
    return make_store(list(raws)).all()


# ============================================================================
# Summary
# ============================================================================

class TestSummary:

    def test_counts_and_date_range(self):
        records = _records(
            raw_record("1", "Acme", start_time="05-06-2024 09:30"),
            raw_record("2", "Acme", start_time="01-06-2024 10:00"),
            raw_record("3", "Beta", start_time="12-06-2024 17:45"),
        )
        result = summary(records)
        assert result.total_responses == 3
        assert result.companies == 2
        assert result.start_date == datetime(2024, 6, 1, 10, 0)
        assert result.end_date == datetime(2024, 6, 12, 17, 45)

    def test_unparseable_times_are_skipped(self):
        records = _records(
            raw_record("1", start_time="garbage"),
            raw_record("2", start_time="2024-06-01T10:00:00"),
            raw_record("3", start_time="03-06-2024 08:15"),
        )
        result = summary(records)
        assert result.start_date == datetime(2024, 6, 3, 8, 15)
        assert result.end_date == result.start_date

    def test_no_valid_times(self):
        result = summary(_records(raw_record("1", start_time="")))
        assert result.start_date is None and result.end_date is None

    def test_empty(self):
        result = summary([])
        assert result.total_responses == 0
        assert result.companies == 0
        assert result.start_date is None

    def test_blank_company_not_counted(self):
        result = summary(_records(raw_record("1", "  "), raw_record("2", "Beta")))
        assert result.companies == 1


# ============================================================================
# Tags
# ============================================================================

class TestTags:

    def test_frequencies_count_and_order(self):
        records = _records(
            raw_record("1", newCustomerThemesTags=["a", "b"]),
            raw_record("2", newCustomerThemesTags=["a"]),
            raw_record("3", newCustomerThemesTags=[]),
        )
        freqs = tag_frequencies(records, "newCustomerThemesTags")
        assert [(f.tag, f.frequency) for f in freqs] == [("a", 2), ("b", 1)]

    def test_ties_keep_first_seen_order(self):
        records = _records(
            raw_record("1", emergingTechVendorProductTags=["Zeta", "Alpha"]),
        )
        freqs = tag_frequencies(records, "emergingTechVendorProductTags")
        assert [f.tag for f in freqs] == ["Zeta", "Alpha"]

    def test_frequencies_are_case_sensitive(self):
        records = _records(
            raw_record("1", newCustomerThemesTags=["AI"]),
            raw_record("2", newCustomerThemesTags=["ai"]),
        )
        assert {f.tag: f.frequency for f in tag_frequencies(records, "customerThemesTags")} == {"AI": 1, "ai": 1}

    def test_implicit_tags_from_comma_text(self):
        assert implicit_tags_from_text("AI, Cloud, Security") == ["AI", "Cloud", "Security"]
        assert implicit_tags_from_text("Just one theme") == []
        assert implicit_tags_from_text("") == []
        assert implicit_tags_from_text("a, ,b") == ["a", "b"]

    def test_empty_tag_list_uses_free_text(self):
        records = _records(raw_record("1", newCustomerThemes="AI, Cloud, Security"))
        freqs = tag_frequencies(records, "newCustomerThemesTags")
        assert [f.tag for f in freqs] == ["AI", "Cloud", "Security"]

    def test_explicit_tags_win_over_free_text(self):
        records = _records(raw_record("1", newCustomerThemes="AI, Cloud", newCustomerThemesTags=["Data"]))
        assert [f.tag for f in tag_frequencies(records, "newCustomerThemesTags")] == ["Data"]

    def test_non_tag_field_rejected(self):
        with pytest.raises(ValueError):
            tag_frequencies([], "challenges")
        with pytest.raises(ValueError):
            tag_frequencies([], "nope")

    def test_entries_by_tag_case_insensitive_with_defaults(self):
        records = _records(
            raw_record("1", "", "", newCustomerThemes="cloud first", newCustomerThemesTags=["Cloud"]),
            raw_record("2", "Beta", "Bo", newCustomerThemesTags=["AI"]),
        )
        entries = entries_by_tag(records, "cloud")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.id == "1"
        assert entry.name == ANONYMOUS
        assert entry.company == UNKNOWN_COMPANY
        assert entry.content == "cloud first"
        assert entry.tags == ["Cloud"]

    def test_entries_by_tag_tech_domain(self):
        records = _records(raw_record("1", emergingTechVendorProduct="Rust, WebAssembly"))
        entries = entries_by_tag(records, "webassembly", TECH)
        assert [e.id for e in entries] == ["1"]
        assert entries_by_tag(records, "webassembly") == []

    def test_unknown_domain_rejected(self):
        with pytest.raises(ValueError):
            entries_by_tag([], "x", "nope")

    def test_company_tag_index_is_case_sensitive(self):
        records = _records(
            raw_record("1", "Acme", newCustomerThemesTags=["Cloud"]),
            raw_record("2", "Acme", newCustomerThemesTags=["Cloud"]),
            raw_record("3", "Beta", newCustomerThemesTags=["cloud"]),
            raw_record("4", "Gamma", newCustomerThemes="Cloud, AI"),
        )
        assert company_tag_index(records, "Cloud") == ["Acme"]
        assert company_tag_index(records, "cloud") == ["Beta"]

    def test_theme_and_tech_entry_lists(self):
        records = _records(
            raw_record("1", newCustomerThemes="x"),
            raw_record("2", emergingTechVendorProduct="y"),
            raw_record("3"),
        )
        assert [e.id for e in analytics.customer_theme_entries(records)] == ["1"]
        assert [e.id for e in analytics.emerging_tech_entries(records)] == ["2"]


# ============================================================================
# Rollups
# ============================================================================

class TestRollup:

    def test_counts_scores_and_respondents(self):
        records = _records(
            raw_record("1", "Acme", "Anne", role="CTO", challenges={"Skills": STRONG_INTEREST, "Legacy": VAGUE_INTEREST}),
            raw_record("2", "Beta", "Bo", challenges={"Skills": REASONABLE_INTEREST}),
        )
        items = rollup(records, "challenges")

        assert [i.name for i in items] == ["Skills", "Legacy"]
        skills = items[0]
        assert skills.interest_counts[STRONG_INTEREST] == 1
        assert skills.interest_counts[REASONABLE_INTEREST] == 1
        assert skills.total_mentions == 2
        assert skills.weighted_score == pytest.approx(2.5)
        assert [(r.company, r.name, r.role) for r in skills.respondents[STRONG_INTEREST]] == [("Acme", "Anne", "CTO")]

    def test_invalid_levels_are_ignored_but_item_listed(self):
        records = _records(raw_record("1", techConcepts={"Quantum": "Very keen", "Edge": NOTHING_HEARD}))
        items = {i.name: i for i in rollup(records, "techConcepts")}
        assert items["Quantum"].total_mentions == 0
        assert items["Quantum"].weighted_score == 0.0
        assert items["Edge"].total_mentions == 1

    def test_ties_keep_first_seen_order(self):
        records = _records(
            raw_record("1", productsVendors={"B": VAGUE_INTEREST}),
            raw_record("2", productsVendors={"A": VAGUE_INTEREST}),
        )
        assert [i.name for i in rollup(records, "productsVendors")] == ["B", "A"]

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            rollup([], "newCustomerThemes")

    def test_frame_columns(self):
        records = _records(raw_record("1", challenges={"Skills": STRONG_INTEREST}))
        frame = rollup_frame(rollup(records, "challenges"))
        assert list(frame["Item"]) == ["Skills"]
        assert frame.loc[0, STRONG_INTEREST] == 1
        assert frame.loc[0, "Weighted score"] == 3.0

    def test_tag_frame(self):
        records = _records(raw_record("1", newCustomerThemesTags=["a"]))
        frame = tag_frequency_frame(tag_frequencies(records, "newCustomerThemesTags"))
        assert list(frame.columns) == ["Tag", "Frequency"]
        assert frame.loc[0, "Frequency"] == 1


# ============================================================================
# Companies and people
# ============================================================================

class TestCompanies:

    def test_grouping(self, acme_beta_records):
        groups = companies(make_store(acme_beta_records).all())
        assert [(g.name, g.count) for g in groups] == [("Acme", 2), ("Beta", 1)]
        assert [m.id for m in groups[0].respondents] == ["1", "2"]

    def test_blank_company_excluded(self):
        assert companies(_records(raw_record("1", ""))) == []

    def test_profiles_use_role_less_records_and_strongest_level(self):
        records = _records(
            raw_record("1", "Acme", "Anne", newCustomerThemes="Cloud", challenges={"Skills": VAGUE_INTEREST}),
            raw_record("2", "Acme", "Bram", challenges={"Skills": STRONG_INTEREST}),
            raw_record("3", "Acme", "Cas", role="CTO", challenges={"Budget": STRONG_INTEREST}),
        )
        profiles = company_profiles(records)

        acme = profiles["Acme"]
        assert acme.contributors == ["Anne", "Bram"]
        assert acme.customer_themes == ["Cloud"]
        assert acme.interests["challenges"] == {"Skills": STRONG_INTEREST}

    def test_people_only_records_with_role(self):
        records = _records(
            raw_record("1", "Acme", "Anne"),
            raw_record("2", "", "", role="CTO", techConcepts={"AI": REASONABLE_INTEREST}),
            raw_record("3", "Beta", "Bo", role="CIO"),
        )
        result = people(records)
        assert [(p.id, p.name, p.company) for p in result] == [
            ("2", f"{ANONYMOUS} 1", "Unknown"),
            ("3", "Bo", "Beta"),
        ]
        assert result[0].interests["techConcepts"] == {"AI": REASONABLE_INTEREST}
