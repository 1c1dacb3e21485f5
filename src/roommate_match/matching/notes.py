"""Qualitative compatibility of free-text "additional notes".

The analyzer asks the language model to compare two users' notes across
lifestyle categories and return ``{"score": -10..10, "explanation": ...}``.

**Symmetry.** A single prompt is order-sensitive ("Roommate 1" vs
"Roommate 2"), so the model is asked twice, once per order, and the
two scores are averaged.  The pair is first put into a canonical order,
so ``analyze(a, b)`` and ``analyze(b, a)`` issue identical calls and
produce the identical average.

**Veto.** An averaged score at or below the prune threshold (default
−5) sets ``prune``: a hard veto independent of the numeric base score.

**Failure.** Any failed completion call or unparseable response degrades to a
neutral result (score 0, no prune) with a diagnostic explanation.  The
error is logged here, once; callers never see it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError, field_validator

from roommate_match.errors import ActionableError
from roommate_match.text import is_blank

if TYPE_CHECKING:
    from roommate_match.llm.completion import CompletionClient

logger = logging.getLogger(__name__)

SCORE_LIMIT = 10.0
DEFAULT_PRUNE_THRESHOLD = -5.0
NO_NOTES_EXPLANATION = "no notes"

# Directional scores further apart than this keep both explanations
EXPLANATION_DIVERGENCE = 2.0

_NOTES_PROMPT = """\
You are a roommate compatibility analyzer.
You will be given the "Additional Notes" sections of two potential roommates.
They have already passed the hard constraints (region, dates, budget), so they
are broadly compatible; the notes hold whatever else they felt was worth saying.

Roommate 1: "{first}"

Roommate 2: "{second}"

ANALYSIS INSTRUCTIONS:
1. Extract information from each roommate's notes into these categories:
   - Sleep schedule
   - Noise tolerance
   - Kitchen habits
   - Cleanliness expectations
   - Socializing style
   - Guest policy
   - Any other lifestyle factor mentioned

2. For each category with information from both roommates, assign a mini-score:
   -2: direct conflict that would cause significant issues
   -1: mild conflict or friction point
   +1: generally compatible
   +2: highly complementary or matching

3. Combine the mini-scores into one final score between -10 and +10.
   - Do NOT return 0 by default; lean positive or negative even with little
     information.  A neutral 0 should be rare.
   - -10 to -7: extremely incompatible lifestyles
   - -6 to -3: several notable conflicts
   - -2 to -1: minor conflicts that could be worked through
   - +1 to +2: slightly more positives than negatives
   - +3 to +6: good, complementary lifestyles
   - +7 to +10: exceptionally compatible
   - Any potential dealbreaker mentioned should give -3 or lower.

4. Respond ONLY with a JSON object, no text before or after it:
{{"score": <number between -10 and 10>, "explanation": "<brief reason>"}}
"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_SCORE_RE = re.compile(r"[\"']?score[\"']?\s*[:=]\s*([+-]?\d+(?:\.\d+)?)", re.IGNORECASE)
_EXPLANATION_RE = re.compile(r"[\"']?explanation[\"']?\s*[:=]\s*\"((?:[^\"\\]|\\.)*)\"", re.IGNORECASE | re.DOTALL)


class NotesVerdict(BaseModel):
    """Schema of one model response.  Out-of-range scores are clamped."""

    score: float
    explanation: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _reject_non_numeric(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError("score must be a number")
        return value

    @field_validator("score")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_notes_score(value)


@dataclass(frozen=True)
class NotesAnalysisResult:
    """Outcome of comparing two users' notes."""

    score: float
    explanation: str
    prune: bool = False


def clamp_notes_score(value: float) -> float:
    return max(-SCORE_LIMIT, min(SCORE_LIMIT, float(value)))


def notes_display_score(valence: float) -> float:
    """Map a notes valence onto 0–100 (−10 → 0, 0 → 50, +10 → 100)."""
    return (valence + SCORE_LIMIT) / (2 * SCORE_LIMIT) * 100


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_notes_response(raw: str) -> NotesVerdict:
    """Deserialize a model response into a :class:`NotesVerdict`.

    Tries strict JSON + schema validation on the outermost ``{...}``
    block first (code fences are tolerated).  If that fails, a regex
    pass extracts ``score`` and, if present, ``explanation`` from the
    raw text.  Raises ``ActionableError`` (MALFORMED_RESPONSE) when no
    score can be recovered.
    """
    text = _FENCE_RE.sub("", raw.strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return NotesVerdict.model_validate(json.loads(text[start : end + 1]))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.debug("Strict notes parse failed, trying regex fallback: %s", exc)

    score_match = _SCORE_RE.search(text)
    if score_match is None:
        raise ActionableError.malformed_response(raw, "no numeric 'score' found")

    explanation_match = _EXPLANATION_RE.search(text)
    explanation = explanation_match.group(1).replace('\\"', '"') if explanation_match else ""
    logger.warning("Recovered notes score from malformed response via regex: %r", raw[:120])
    return NotesVerdict(score=float(score_match.group(1)), explanation=explanation)


def merge_explanations(first: NotesVerdict, second: NotesVerdict) -> str:
    """Keep the longer explanation, or both when the directional scores diverge."""
    a = first.explanation.strip()
    b = second.explanation.strip()
    if abs(first.score - second.score) > EXPLANATION_DIVERGENCE and a and b and a != b:
        return f"{a}\n{b}"
    return a if len(a) >= len(b) else b


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class NotesCompatibilityAnalyzer:
    """Scores two users' free-text notes with an order-independent result.

    Parameters
    ----------
    client:
        The completion client.  Its throttle bounds outbound calls.
    prune_threshold:
        Averaged scores at or below this value set ``prune``.
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        prune_threshold: float = DEFAULT_PRUNE_THRESHOLD,
    ) -> None:
        self._client = client
        self.prune_threshold = prune_threshold

    async def analyze(self, notes_a: str, notes_b: str) -> NotesAnalysisResult:
        """Compare two notes texts.

        Returns a neutral result without calling the model when either
        text is empty or whitespace.
        """
        if is_blank(notes_a) or is_blank(notes_b):
            return NotesAnalysisResult(score=0.0, explanation=NO_NOTES_EXPLANATION)

        first, second = sorted((notes_a.strip(), notes_b.strip()))
        try:
            forward, backward = await asyncio.gather(
                self._ask(first, second),
                self._ask(second, first),
            )
        except ActionableError as exc:
            logger.warning("Notes analysis failed, treating as neutral: %s", exc.error)
            return NotesAnalysisResult(
                score=0.0,
                explanation=f"Notes analysis unavailable ({exc.error_type.value}): {exc.error}",
            )
        except Exception as exc:
            logger.warning("Notes analysis failed unexpectedly, treating as neutral: %s", exc)
            return NotesAnalysisResult(
                score=0.0,
                explanation=f"Notes analysis unavailable ({type(exc).__name__}): {exc}",
            )

        score = clamp_notes_score((forward.score + backward.score) / 2)
        prune = score <= self.prune_threshold
        if prune:
            logger.info("Notes analysis vetoed pair with averaged score %.1f", score)
        return NotesAnalysisResult(
            score=score,
            explanation=merge_explanations(forward, backward),
            prune=prune,
        )

    async def _ask(self, first: str, second: str) -> NotesVerdict:
        raw = await self._client.complete(_NOTES_PROMPT.format(first=first, second=second))
        return parse_notes_response(raw)
