"""Deterministic weighted compatibility scoring.

The base score for a requester → candidate pair is a weighted sum of
four factors, each first normalised to [0.0, 1.0]:

==============  ======  ==================================================
Factor          Weight  Sub-score
==============  ======  ==================================================
location        30      0.7 for the (guaranteed) region match, plus 0.3 ×
                        shared cities ÷ the larger city list
budget          25      overlap width ÷ union width of the budget ranges
timing          25      ``min(1, (overlap − 0.75) × 4 + 0.75)``
preferences     20      ``preferences × 0.8 + roommate_count × 0.2``
==============  ======  ==================================================

The weighted total is scaled to a 0–100 percentage.  When both users
name the same employer, the score moves 40% of the way toward 100
(diminishing returns, so it can never exceed 100).

The hard-constraint gate is re-run here: callers that skipped
pre-filtering still never receive a score for an incompatible pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from roommate_match.matching.constraints import ConstraintFilter, timing_overlap_fraction
from roommate_match.profiles.model import ROOMMATE_COUNTS, PreferenceStrength
from roommate_match.text import same_employer

if TYPE_CHECKING:
    from collections.abc import Mapping

    from roommate_match.profiles.model import Profile

logger = logging.getLogger(__name__)

# -- Weights (sum to 100) ---------------------------------------------------
LOCATION_WEIGHT = 30
BUDGET_WEIGHT = 25
TIMING_WEIGHT = 25
PREFERENCES_WEIGHT = 20
_TOTAL_WEIGHT = LOCATION_WEIGHT + BUDGET_WEIGHT + TIMING_WEIGHT + PREFERENCES_WEIGHT

# Share of the combined preference term taken by each part
PREFERENCE_SHARE = 0.8
ROOMMATE_SHARE = 0.2

REGION_MATCH_CREDIT = 0.7
CITY_OVERLAP_CREDIT = 0.3

EMPLOYER_BONUS_FACTOR = 0.4

# Extra penalty for a must-have/deal-breaker clash that slipped past the gate
_CLASH_PENALTY = -12
_MAX_VALENCE = 4

_ROOMMATE_STEP_SCORES: dict[int, float] = {0: 1.0, 1: 0.8, 2: 0.6}


@dataclass(frozen=True)
class Subscores:
    """Per-factor scores as percentages (0–100) for display and debugging."""

    location: float
    budget: float
    timing: float
    roommate: float
    preferences: float
    additional_info: float | None = None

    @property
    def combined_preferences(self) -> float:
        """The pre-weight preference term, as a percentage."""
        return self.preferences * PREFERENCE_SHARE + self.roommate * ROOMMATE_SHARE

    def to_dict(self) -> dict[str, float]:
        result = {
            "locationScore": self.location,
            "budgetScore": self.budget,
            "timingScore": self.timing,
            "roommateScore": self.roommate,
            "preferencesScore": self.preferences,
        }
        if self.additional_info is not None:
            result["additionalInfoScore"] = self.additional_info
        return result


@dataclass(frozen=True)
class CompatibilityScore:
    """Score for one directed pair (requester → ``candidate_id``)."""

    candidate_id: str
    score: float
    subscores: Subscores
    explanation: str | None = None
    notes_valence: float | None = None
    employer_bonus: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "candidateId": self.candidate_id,
            "score": round(self.score, 2),
            "subscores": {k: round(v, 2) for k, v in self.subscores.to_dict().items()},
        }
        if self.explanation is not None:
            result["explanation"] = self.explanation
        if self.notes_valence is not None:
            result["notesValence"] = self.notes_valence
        if self.employer_bonus:
            result["employerBonus"] = True
        return result

    def with_updates(self, **changes: Any) -> CompatibilityScore:
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Sub-score functions (each returns a value in [0.0, 1.0])
# ---------------------------------------------------------------------------


def location_score(user: Profile, candidate: Profile) -> float:
    """Fixed credit for the region match plus a city-overlap bonus."""
    largest = max(len(user.housing_cities), len(candidate.housing_cities))
    if largest == 0 or not user.housing_cities or not candidate.housing_cities:
        return REGION_MATCH_CREDIT
    shared = len(set(user.housing_cities) & set(candidate.housing_cities))
    return REGION_MATCH_CREDIT + CITY_OVERLAP_CREDIT * (shared / largest)


def budget_score(user: Profile, candidate: Profile) -> float:
    """Overlap of the two budget ranges as a fraction of their union.

    Identical single-point budgets score 1.0.
    """
    overlap = max(0, min(user.max_budget, candidate.max_budget) - max(user.min_budget, candidate.min_budget))
    union = max(user.max_budget, candidate.max_budget) - min(user.min_budget, candidate.min_budget)
    if union == 0:
        return 1.0
    return overlap / union


def timing_score(overlap_fraction: float) -> float:
    """Map an overlap fraction (≥ 0.75 after the gate) onto [0.75, 1.0]."""
    return max(0.0, min(1.0, (overlap_fraction - 0.75) * 4 + 0.75))


def roommate_score(user: Profile, candidate: Profile) -> float:
    """1.0 for equal counts, 0.8 one step apart, 0.6 two steps apart."""
    distance = abs(
        ROOMMATE_COUNTS.index(user.desired_roommates)
        - ROOMMATE_COUNTS.index(candidate.desired_roommates)
    )
    return _ROOMMATE_STEP_SCORES.get(distance, 0.0)


def preference_score(
    user_prefs: Mapping[str, PreferenceStrength],
    candidate_prefs: Mapping[str, PreferenceStrength],
) -> float:
    """Agreement across preference items both users answered.

    Same-side valences add the weaker magnitude; opposing valences add
    their (negative) product.  A must have against a deal breaker scores
    a fixed penalty instead.  Returns 0.5 when no item is shared.
    """
    total = 0
    max_possible = 0
    for item, strength in user_prefs.items():
        other = candidate_prefs.get(item)
        if other is None:
            continue
        a, b = strength.valence, other.valence
        if {strength, other} == {PreferenceStrength.MUST_HAVE, PreferenceStrength.DEAL_BREAKER}:
            total += _CLASH_PENALTY
        elif (a >= 0 and b >= 0) or (a <= 0 and b <= 0):
            total += min(abs(a), abs(b))
        else:
            total += a * b
        max_possible += _MAX_VALENCE

    if max_possible == 0:
        return 0.5
    return max(0.0, min(1.0, (total + max_possible) / (2 * max_possible)))


def apply_employer_bonus(score: float) -> float:
    """Move *score* 40% of the way toward 100."""
    return score + (100.0 - score) * EMPLOYER_BONUS_FACTOR


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class CompatibilityScorer:
    """Computes the deterministic base score for a requester → candidate pair.

    Parameters
    ----------
    constraint_filter:
        The gate re-run before scoring.  Defaults to the standard rules.
    """

    def __init__(self, constraint_filter: ConstraintFilter | None = None) -> None:
        self._constraints = constraint_filter or ConstraintFilter()

    @property
    def constraints(self) -> ConstraintFilter:
        return self._constraints

    def score(self, user: Profile, candidate: Profile) -> CompatibilityScore | None:
        """Return the base score, or ``None`` if the pair cannot be matched.

        ``None`` is returned for unsubmitted profiles, a self-match, a
        candidate without an identifier, or a failed hard constraint.
        """
        if not user.is_submitted or not candidate.is_submitted:
            return None
        candidate_id = candidate.user_email.strip()
        if not candidate_id:
            return None
        if user.user_email == candidate.user_email:
            return None
        if not self._constraints.passes(user, candidate):
            logger.debug("%s → %s fails hard constraints", user.user_email, candidate_id)
            return None

        location = location_score(user, candidate)
        budget = budget_score(user, candidate)
        timing = timing_score(timing_overlap_fraction(user, candidate))
        roommates = roommate_score(user, candidate)
        preferences = preference_score(user.preferences, candidate.preferences)
        combined = preferences * PREFERENCE_SHARE + roommates * ROOMMATE_SHARE

        weighted = (
            LOCATION_WEIGHT * location
            + BUDGET_WEIGHT * budget
            + TIMING_WEIGHT * timing
            + PREFERENCES_WEIGHT * combined
        )
        total = min(100.0, weighted / _TOTAL_WEIGHT * 100)

        bonus = same_employer(user.internship_company, candidate.internship_company)
        if bonus:
            total = apply_employer_bonus(total)

        logger.debug(
            "%s → %s base score %.1f (loc=%.2f budget=%.2f timing=%.2f pref=%.2f room=%.2f bonus=%s)",
            user.user_email,
            candidate_id,
            total,
            location,
            budget,
            timing,
            preferences,
            roommates,
            bonus,
        )

        return CompatibilityScore(
            candidate_id=candidate_id,
            score=total,
            subscores=Subscores(
                location=location * 100,
                budget=budget * 100,
                timing=timing * 100,
                roommate=roommates * 100,
                preferences=preferences * 100,
            ),
            employer_bonus=bonus,
        )
