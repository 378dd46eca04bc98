from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Source column mapping
#
# The survey tool exports Dutch column headers ('Jouw bedrijf', 'Rol', ...).
# Each attribute lists the keys it is read from; the first key is the one
# written back on export so delta files keep the original layout.
# ---------------------------------------------------------------------------

TEXT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("Id", "id"),
    "company": ("Jouw bedrijf", "company"),
    "respondent_name": ("Jouw naam", "respondentName"),
    "role": ("Rol", "role"),
    "start_time": ("Start time", "startTime"),
    "customer_themes_text": ("newCustomerThemes", "customerThemesText"),
    "emerging_tech_text": ("emergingTechVendorProduct", "emergingTechText"),
}

TAG_FIELDS: Dict[str, Tuple[str, ...]] = {
    "customer_themes_tags": ("newCustomerThemesTags", "customerThemesTags"),
    "emerging_tech_tags": ("emergingTechVendorProductTags", "emergingTechTags"),
}

# item name -> interest level
INTEREST_FIELDS: Dict[str, Tuple[str, ...]] = {
    "challenges": ("challenges",),
    "tech_concepts": ("techConcepts",),
    "products_vendors": ("productsVendors",),
}

# maps merged one level deep by a delta
NESTED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "theme_assessments": ("themeAssessments",),
    "interest_details": ("interestDetails",),
}

INTEREST_CATEGORIES = ("challenges", "techConcepts", "productsVendors")

# source key -> (attribute, kind)
_SOURCE_INDEX: Dict[str, Tuple[str, str]] = {}
for _kind, _table in (
    ("text", TEXT_FIELDS),
    ("tags", TAG_FIELDS),
    ("interest", INTEREST_FIELDS),
    ("nested", NESTED_FIELDS),
):
    for _attr, _keys in _table.items():
        for _key in _keys:
            _SOURCE_INDEX[_key] = (_attr, _kind)

_EXPORT_KEYS: Dict[str, str] = {
    attr: keys[0]
    for table in (TEXT_FIELDS, TAG_FIELDS, INTEREST_FIELDS, NESTED_FIELDS)
    for attr, keys in table.items()
}

# camelCase category name (as stored in interestDetails) -> attribute
CATEGORY_ATTRS: Dict[str, str] = {
    "challenges": "challenges",
    "techConcepts": "tech_concepts",
    "productsVendors": "products_vendors",
}


def resolve_field(name: str) -> Tuple[str, str]:
    """
    Return (attribute, kind) for a source key, a camelCase alias or an attribute name.

    Raises KeyError for names that are not part of the record shape.
    """
    if name in _SOURCE_INDEX:
        return _SOURCE_INDEX[name]
    for kind, table in (
        ("text", TEXT_FIELDS),
        ("tags", TAG_FIELDS),
        ("interest", INTEREST_FIELDS),
        ("nested", NESTED_FIELDS),
    ):
        if name in table:
            return name, kind
    raise KeyError(name)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

def clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return ""
    return str(value)


def clean_tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for tag in value:
        if tag is None or isinstance(tag, (dict, list)):
            continue
        out.append(str(tag))
    return out


def clean_interest_map(value: Any) -> Dict[str, str]:
    """Keep item -> level pairs whose level is a non-blank string."""
    if not isinstance(value, dict):
        return {}
    out: Dict[str, str] = {}
    for item, level in value.items():
        if not isinstance(level, str) or not level.strip():
            continue
        out[str(item)] = level
    return out


def clean_nested_map(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {str(k): copy.deepcopy(v) for k, v in value.items()}


_CLEANERS = {
    "text": clean_text,
    "tags": clean_tags,
    "interest": clean_interest_map,
    "nested": clean_nested_map,
}


def clean_value(kind: str, value: Any) -> Any:
    return _CLEANERS[kind](value)


def is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass
class SurveyRecord:
    """
    One respondent submission in the fixed internal shape.

    Unknown source columns are kept in `extra` and written back untouched.
    """
    id: str
    company: str = ""
    respondent_name: str = ""
    role: str = ""
    start_time: str = ""
    customer_themes_text: str = ""
    customer_themes_tags: List[str] = field(default_factory=list)
    emerging_tech_text: str = ""
    emerging_tech_tags: List[str] = field(default_factory=list)
    challenges: Dict[str, str] = field(default_factory=dict)
    tech_concepts: Dict[str, str] = field(default_factory=dict)
    products_vendors: Dict[str, str] = field(default_factory=dict)
    theme_assessments: Dict[str, Any] = field(default_factory=dict)
    interest_details: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_role(self) -> bool:
        return not is_blank(self.role)

    def interest_map(self, category: str) -> Dict[str, str]:
        return getattr(self, CATEGORY_ATTRS[category])

    @classmethod
    def from_source(cls, raw: Dict[str, Any], fallback_id: str = "") -> "SurveyRecord":
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}

        for key, value in raw.items():
            if key not in _SOURCE_INDEX:
                extra[key] = copy.deepcopy(value)
                continue
            attr, kind = _SOURCE_INDEX[key]
            # the export key wins over an alias when both are present
            if attr in values and key != _EXPORT_KEYS[attr]:
                continue
            values[attr] = clean_value(kind, value)

        record_id = values.pop("id", "").strip()
        if not record_id:
            record_id = fallback_id
        values["company"] = values.get("company", "").strip()

        return cls(id=record_id, extra=extra, **values)

    def to_source(self) -> Dict[str, Any]:
        """Serialize back to the export layout (source column names)."""
        out: Dict[str, Any] = copy.deepcopy(self.extra)
        for attr, key in _EXPORT_KEYS.items():
            out[key] = copy.deepcopy(getattr(self, attr))
        return out
