"""Hard-constraint gate: cheap, in-memory disqualification of pairs.

Six rules, all of which must pass:

1. **Gender**: different genders require *both* users to have opted
   into mixed-gender rooming.
2. **Region**: housing regions must match exactly.  City overlap is a
   scoring signal, not a gate.
3. **Timing**: the date ranges must intersect, and the overlap must
   cover at least 75% of the *longer* range.
4. **Budget**: the ``[min, max]`` ranges must intersect; touching at a
   boundary counts.
5. **Roommate count**: ``"1"`` against ``"4+"`` (either order) fails.
6. **Preference conflict**: a shared item marked ``must have`` by one
   user and ``deal breaker`` by the other fails.

Every rule is symmetric, so argument order never changes the outcome.
A failed constraint is an expected result, never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from roommate_match.profiles.model import PreferenceStrength

if TYPE_CHECKING:
    from roommate_match.profiles.model import Profile

MIN_TIMING_OVERLAP = 0.75

_EXCLUSIVE_ROOMMATE_PAIR = frozenset({"1", "4+"})
_CLASHING_STRENGTHS = frozenset({PreferenceStrength.MUST_HAVE, PreferenceStrength.DEAL_BREAKER})


@dataclass(frozen=True)
class ConstraintReport:
    """Per-dimension outcome of the hard-constraint gate for one pair."""

    gender_compatible: bool
    region_match: bool
    timing_overlap: bool
    timing_overlap_percentage: float
    budget_compatible: bool
    roommates_compatible: bool
    preferences_compatible: bool

    @property
    def passes(self) -> bool:
        return (
            self.gender_compatible
            and self.region_match
            and self.timing_overlap
            and self.budget_compatible
            and self.roommates_compatible
            and self.preferences_compatible
        )

    def failed_dimensions(self) -> list[str]:
        """Names of the constraints that failed, in rule order."""
        checks = [
            ("gender", self.gender_compatible),
            ("region", self.region_match),
            ("timing", self.timing_overlap),
            ("budget", self.budget_compatible),
            ("roommates", self.roommates_compatible),
            ("preferences", self.preferences_compatible),
        ]
        return [name for name, ok in checks if not ok]

    def to_dict(self) -> dict[str, object]:
        return {
            "genderCompatible": self.gender_compatible,
            "regionMatch": self.region_match,
            "timingOverlap": self.timing_overlap,
            "timingOverlapPercentage": round(self.timing_overlap_percentage, 2),
            "budgetCompatible": self.budget_compatible,
            "roommatesCompatible": self.roommates_compatible,
            "preferencesCompatible": self.preferences_compatible,
        }


# ---------------------------------------------------------------------------
# Pairwise measures (shared with the scorer)
# ---------------------------------------------------------------------------


def timing_overlap_fraction(user: Profile, candidate: Profile) -> float:
    """Overlap of the two date ranges divided by the longer range's duration.

    Returns 0.0 when the ranges do not intersect.  Two identical
    single-day ranges overlap completely (1.0).
    """
    overlap_start = max(user.start_date, candidate.start_date)
    overlap_end = min(user.end_date, candidate.end_date)
    if overlap_end < overlap_start:
        return 0.0

    longer = max(
        (user.end_date - user.start_date).days,
        (candidate.end_date - candidate.start_date).days,
    )
    if longer == 0:
        return 1.0
    return (overlap_end - overlap_start).days / longer


def genders_compatible(user: Profile, candidate: Profile) -> bool:
    if user.gender == candidate.gender:
        return True
    return user.room_with_different_gender and candidate.room_with_different_gender


def budgets_intersect(user: Profile, candidate: Profile) -> bool:
    return not (user.max_budget < candidate.min_budget or candidate.max_budget < user.min_budget)


def roommate_counts_compatible(user: Profile, candidate: Profile) -> bool:
    return {user.desired_roommates, candidate.desired_roommates} != _EXCLUSIVE_ROOMMATE_PAIR


def preferences_compatible(user: Profile, candidate: Profile) -> bool:
    """False if any shared item is ``must have`` for one and ``deal breaker`` for the other."""
    for item, strength in user.preferences.items():
        other = candidate.preferences.get(item)
        if other is None:
            continue
        if {strength, other} == _CLASHING_STRENGTHS:
            return False
    return True


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class ConstraintFilter:
    """Boolean gate run before any scoring or network work.

    ``passes`` short-circuits on the first failing rule; ``detail``
    evaluates every rule for diagnostics.
    """

    def __init__(self, min_timing_overlap: float = MIN_TIMING_OVERLAP) -> None:
        self.min_timing_overlap = min_timing_overlap

    def passes(self, user: Profile, candidate: Profile) -> bool:
        if not genders_compatible(user, candidate):
            return False
        if user.housing_region != candidate.housing_region:
            return False
        if timing_overlap_fraction(user, candidate) < self.min_timing_overlap:
            return False
        if not budgets_intersect(user, candidate):
            return False
        if not roommate_counts_compatible(user, candidate):
            return False
        return preferences_compatible(user, candidate)

    def detail(self, user: Profile, candidate: Profile) -> ConstraintReport:
        overlap = timing_overlap_fraction(user, candidate)
        return ConstraintReport(
            gender_compatible=genders_compatible(user, candidate),
            region_match=user.housing_region == candidate.housing_region,
            timing_overlap=overlap >= self.min_timing_overlap,
            timing_overlap_percentage=overlap * 100,
            budget_compatible=budgets_intersect(user, candidate),
            roommates_compatible=roommate_counts_compatible(user, candidate),
            preferences_compatible=preferences_compatible(user, candidate),
        )
