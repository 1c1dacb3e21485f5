"""Survey profile data contract and the repository-boundary converter.

Stored survey documents are loosely shaped: optional fields, camelCase
keys, numbers as strings.  :func:`profile_from_record` is the single
place where defaults are resolved and values validated.  Everything
downstream (constraints, scorer, ranker) works with a strict, frozen
:class:`Profile` and never re-checks for missing fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from roommate_match.errors import ActionableError
from roommate_match.text import is_blank

if TYPE_CHECKING:
    from collections.abc import Mapping

# ---------------------------------------------------------------------------
# Fixed vocabularies
# ---------------------------------------------------------------------------

HOUSING_REGIONS: dict[str, tuple[str, ...]] = {
    "Bay Area": (
        "San Francisco",
        "Mountain View",
        "Menlo Park",
        "San Jose",
        "Palo Alto",
        "Sunnyvale",
        "Santa Clara",
    ),
    "Seattle Area": ("Seattle", "Bellevue", "Redmond", "Kirkland"),
    "New York Area": ("Manhattan", "Brooklyn", "Queens"),
    "Other": (),
}

PREFERENCE_ITEMS: tuple[str, ...] = (
    "Okay with pets",
    "Okay with smoking",
    "Okay with alcohol",
    "Okay with parties",
    "Clean common areas",
    "Quiet hours",
    "Early riser",
    "Night owl",
    "Overnight guests",
    "Shared groceries",
)

# Ordered scale; the index is the categorical position used for distance
ROOMMATE_COUNTS: tuple[str, ...] = ("1", "2", "3", "4+")


class PreferenceStrength(StrEnum):
    """How strongly a user feels about a preference item."""

    DEAL_BREAKER = "deal breaker"
    PREFER_NOT = "prefer not"
    NEUTRAL = "neutral"
    PREFER = "prefer"
    MUST_HAVE = "must have"

    @property
    def valence(self) -> int:
        """Signed weight used to detect agreement and conflict."""
        return _VALENCE[self]


_VALENCE: dict[PreferenceStrength, int] = {
    PreferenceStrength.DEAL_BREAKER: -4,
    PreferenceStrength.PREFER_NOT: -1,
    PreferenceStrength.NEUTRAL: 0,
    PreferenceStrength.PREFER: 1,
    PreferenceStrength.MUST_HAVE: 4,
}

# Defaults applied when the stored document omits a field
_DEFAULT_MIN_BUDGET = 1000
_DEFAULT_MAX_BUDGET = 1500
_DEFAULT_ROOMMATES = "1"


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Profile:
    """One user's submitted housing survey.

    ``preferences`` maps a preference item to its strength; each item
    appears at most once.  ``gender`` is stored lowercased and trimmed.
    """

    user_email: str
    gender: str
    room_with_different_gender: bool
    housing_region: str
    housing_cities: tuple[str, ...]
    start_date: date
    end_date: date
    desired_roommates: str
    min_budget: int
    max_budget: int
    preferences: Mapping[str, PreferenceStrength] = field(
        default_factory=lambda: MappingProxyType({})
    )
    additional_notes: str = ""
    internship_company: str = ""
    first_name: str = ""
    is_submitted: bool = True
    is_draft: bool = False
    is_test_user: bool = False

    @property
    def is_eligible(self) -> bool:
        """Only submitted surveys take part in matching."""
        return self.is_submitted

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view in the stored (camelCase) shape."""
        return {
            "userEmail": self.user_email,
            "firstName": self.first_name,
            "gender": self.gender,
            "roomWithDifferentGender": self.room_with_different_gender,
            "housingRegion": self.housing_region,
            "housingCities": list(self.housing_cities),
            "internshipStartDate": self.start_date.isoformat(),
            "internshipEndDate": self.end_date.isoformat(),
            "internshipCompany": self.internship_company,
            "desiredRoommates": self.desired_roommates,
            "minBudget": self.min_budget,
            "maxBudget": self.max_budget,
            "preferences": [
                {"item": item, "strength": strength.value}
                for item, strength in self.preferences.items()
            ],
            "additionalNotes": self.additional_notes,
            "isSubmitted": self.is_submitted,
            "isDraft": self.is_draft,
        }


# ---------------------------------------------------------------------------
# Repository boundary
# ---------------------------------------------------------------------------


def profile_from_record(record: Mapping[str, Any], *, is_test_user: bool = False) -> Profile:
    """Convert a stored survey document into a validated :class:`Profile`.

    Accepts both the document-store camelCase keys and snake_case keys.
    Missing optional fields receive the survey's defaults; missing or
    invalid required fields raise ``ActionableError`` (INVALID_PROFILE).
    """
    user_email = str(_get(record, "userEmail", "user_email") or "").strip()
    if not user_email:
        raise ActionableError.invalid_profile(user_email, "userEmail", "is missing or empty")

    region = str(_get(record, "housingRegion", "housing_region") or "").strip()
    if region not in HOUSING_REGIONS:
        raise ActionableError.invalid_profile(
            user_email,
            "housingRegion",
            f"'{region}' is not one of {', '.join(HOUSING_REGIONS)}",
        )

    cities_raw = _get(record, "housingCities", "housing_cities")
    cities = tuple(str(c) for c in cities_raw) if isinstance(cities_raw, list | tuple) else ()

    start = _parse_date(user_email, "internshipStartDate", _get(record, "internshipStartDate", "start_date"))
    end = _parse_date(user_email, "internshipEndDate", _get(record, "internshipEndDate", "end_date"))
    if end < start:
        raise ActionableError.invalid_profile(
            user_email,
            "internshipEndDate",
            f"{end.isoformat()} is before start date {start.isoformat()}",
        )

    desired = str(_get(record, "desiredRoommates", "desired_roommates") or _DEFAULT_ROOMMATES).strip()
    if desired not in ROOMMATE_COUNTS:
        raise ActionableError.invalid_profile(
            user_email,
            "desiredRoommates",
            f"'{desired}' is not one of {', '.join(ROOMMATE_COUNTS)}",
        )

    min_budget = _parse_budget(user_email, "minBudget", _get(record, "minBudget", "min_budget"), _DEFAULT_MIN_BUDGET)
    max_budget = _parse_budget(user_email, "maxBudget", _get(record, "maxBudget", "max_budget"), _DEFAULT_MAX_BUDGET)
    if min_budget > max_budget:
        raise ActionableError.invalid_profile(
            user_email,
            "minBudget",
            f"{min_budget} is greater than maxBudget {max_budget}",
        )

    notes = _get(record, "additionalNotes", "additional_notes")
    company = _get(record, "internshipCompany", "internship_company")

    return Profile(
        user_email=user_email,
        gender=str(record.get("gender") or "").strip().lower(),
        room_with_different_gender=bool(_get(record, "roomWithDifferentGender", "room_with_different_gender")),
        housing_region=region,
        housing_cities=cities,
        start_date=start,
        end_date=end,
        desired_roommates=desired,
        min_budget=min_budget,
        max_budget=max_budget,
        preferences=_parse_preferences(user_email, record.get("preferences")),
        additional_notes="" if is_blank(notes) else str(notes),
        internship_company="" if is_blank(company) else str(company).strip(),
        first_name=str(_get(record, "firstName", "first_name") or ""),
        is_submitted=bool(_get(record, "isSubmitted", "is_submitted")),
        is_draft=bool(_get(record, "isDraft", "is_draft")),
        is_test_user=is_test_user,
    )


def _get(record: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = record.get(camel)
    if value is None:
        value = record.get(snake)
    return value


def _parse_date(user_email: str, field_name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or (isinstance(value, str) and is_blank(value)):
        raise ActionableError.invalid_profile(user_email, field_name, "is missing")
    # Accept full ISO timestamps by keeping only the calendar date part
    text = str(value).strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ActionableError.invalid_profile(
            user_email, field_name, f"'{value}' is not an ISO date (YYYY-MM-DD)"
        ) from None


def _parse_budget(user_email: str, field_name: str, value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ActionableError.invalid_profile(user_email, field_name, "must be a number")
    try:
        budget = int(float(value))
    except (TypeError, ValueError):
        raise ActionableError.invalid_profile(
            user_email, field_name, f"'{value}' is not a number"
        ) from None
    if budget < 0:
        raise ActionableError.invalid_profile(user_email, field_name, f"{budget} is negative")
    return budget


def _parse_preferences(user_email: str, raw: Any) -> Mapping[str, PreferenceStrength]:
    """Build an item → strength mapping; a repeated item keeps its last strength."""
    if not isinstance(raw, list | tuple):
        return MappingProxyType({})

    parsed: dict[str, PreferenceStrength] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            raise ActionableError.invalid_profile(
                user_email, "preferences", f"entry {entry!r} is not an {{item, strength}} object"
            )
        item = str(entry.get("item", "")).strip()
        if item not in PREFERENCE_ITEMS:
            raise ActionableError.invalid_profile(
                user_email, "preferences", f"unknown preference item '{item}'"
            )
        strength_raw = str(entry.get("strength", "")).strip().lower()
        try:
            strength = PreferenceStrength(strength_raw)
        except ValueError:
            raise ActionableError.invalid_profile(
                user_email,
                "preferences",
                f"'{strength_raw}' is not a valid strength for '{item}'",
            ) from None
        parsed[item] = strength
    return MappingProxyType(parsed)
