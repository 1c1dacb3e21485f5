"""Blend the deterministic base score with the notes analysis.

The notes valence (−10..+10) is added as percentage points to the
*pre-weight* preference term (``preferences × 0.8 + roommate × 0.2``).
The change in that term is then carried into the overall score at an
effective 30% share, since the preference and roommate sub-scores are
combined before their weight applies.

Order of operations for one pair:

1. Base score.  ``None`` or below ``min_threshold`` stops here, before
   any model call is paid for.
2. Notes analysis.  ``prune`` vetoes the pair outright.
3. Blend, clamp, and re-check the threshold.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from roommate_match.config import DEFAULT_MIN_THRESHOLD
from roommate_match.matching.notes import notes_display_score
from roommate_match.matching.scorer import PREFERENCE_SHARE, ROOMMATE_SHARE

if TYPE_CHECKING:
    from roommate_match.matching.notes import NotesCompatibilityAnalyzer
    from roommate_match.matching.scorer import CompatibilityScore, CompatibilityScorer
    from roommate_match.profiles.model import Profile

logger = logging.getLogger(__name__)

# Effective share of the overall score carried by the combined preference term
NOTES_DELTA_SHARE = 0.30

TIMEOUT_EXPLANATION = "Notes analysis timed out; base score shown"


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def blend_notes_valence(base: CompatibilityScore, valence: float) -> CompatibilityScore:
    """Apply a notes valence to *base* and return the adjusted score.

    The preferences sub-score is back-solved so that, with the roommate
    sub-score unchanged, it reproduces the new combined term.  The
    ``additional_info`` sub-score is the valence rescaled to 0–100.
    """
    subscores = base.subscores
    original_combined = subscores.combined_preferences
    new_combined = _clamp_percent(original_combined + valence)
    adjusted_preferences = _clamp_percent(
        (new_combined - subscores.roommate * ROOMMATE_SHARE) / PREFERENCE_SHARE
    )
    delta = (new_combined - original_combined) * NOTES_DELTA_SHARE

    return base.with_updates(
        score=_clamp_percent(base.score + delta),
        subscores=replace(
            subscores,
            preferences=adjusted_preferences,
            additional_info=notes_display_score(valence),
        ),
        notes_valence=valence,
    )


class ScoreCombiner:
    """Produces the enhanced score for a requester → candidate pair.

    Parameters
    ----------
    scorer:
        Deterministic base scorer (re-runs the constraint gate).
    analyzer:
        Notes analyzer.  Its failures are already neutralised.
    """

    def __init__(
        self,
        scorer: CompatibilityScorer,
        analyzer: NotesCompatibilityAnalyzer,
    ) -> None:
        self._scorer = scorer
        self._analyzer = analyzer

    @property
    def scorer(self) -> CompatibilityScorer:
        return self._scorer

    async def enhanced_score(
        self,
        user: Profile,
        candidate: Profile,
        min_threshold: float = DEFAULT_MIN_THRESHOLD,
        *,
        timeout: float | None = None,
    ) -> CompatibilityScore | None:
        """Return the enhanced score, or ``None`` if the pair is filtered out.

        When *timeout* elapses before the notes analysis finishes, the
        outstanding calls are cancelled and the base score is returned
        with an explanation saying so.
        """
        base = self._scorer.score(user, candidate)
        if base is None:
            return None
        if base.score < min_threshold:
            logger.debug(
                "%s → %s base score %.1f below threshold %.1f, skipping notes",
                user.user_email,
                base.candidate_id,
                base.score,
                min_threshold,
            )
            return None

        try:
            analysis = await asyncio.wait_for(
                self._analyzer.analyze(user.additional_notes, candidate.additional_notes),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(
                "Notes analysis for %s → %s exceeded %.1fs, using base score",
                user.user_email,
                base.candidate_id,
                timeout,
            )
            return base.with_updates(explanation=TIMEOUT_EXPLANATION)

        if analysis.prune:
            logger.debug("%s → %s vetoed by notes analysis", user.user_email, base.candidate_id)
            return None

        enhanced = blend_notes_valence(base, analysis.score).with_updates(
            explanation=analysis.explanation,
        )
        if enhanced.score < min_threshold:
            logger.debug(
                "%s → %s enhanced score %.1f fell below threshold %.1f",
                user.user_email,
                base.candidate_id,
                enhanced.score,
                min_threshold,
            )
            return None
        return enhanced
