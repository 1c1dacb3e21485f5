"""Match service: the ranking API exposed to the surrounding application.

Builds every matching component from :class:`~roommate_match.config.Settings`
and exposes three request-scoped operations:

- ``recommendations``: ranked candidates for one user
- ``pairwise_compare``: score for one specific pair
- ``explain_pair``: constraint report, pass/fail, and score for a pair

One :class:`CompletionClient` is shared by every request served by a
service instance, so its throttle is the global outbound limit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from roommate_match.errors import ActionableError
from roommate_match.llm.completion import CompletionClient
from roommate_match.matching.combiner import ScoreCombiner
from roommate_match.matching.constraints import ConstraintFilter
from roommate_match.matching.notes import NotesCompatibilityAnalyzer
from roommate_match.matching.scorer import CompatibilityScorer
from roommate_match.pipeline.ranker import MatchRanker
from roommate_match.profiles.model import HOUSING_REGIONS
from roommate_match.profiles.repository import ProfileStore

if TYPE_CHECKING:
    from roommate_match.config import MatchingOptions, Settings
    from roommate_match.matching.constraints import ConstraintReport
    from roommate_match.matching.scorer import CompatibilityScore
    from roommate_match.pipeline.ranker import RankSummary
    from roommate_match.profiles.model import Profile
    from roommate_match.profiles.repository import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairComparison:
    """Diagnostic view of one pair: both profiles, the gate, and the score."""

    user_a: Profile
    user_b: Profile
    report: ConstraintReport
    score: CompatibilityScore | None

    @property
    def passes_constraints(self) -> bool:
        return self.report.passes

    def to_dict(self) -> dict[str, Any]:
        return {
            "user1": self.user_a.to_dict(),
            "user2": self.user_b.to_dict(),
            "passesHardConstraints": self.passes_constraints,
            "constraintDetails": self.report.to_dict(),
            "compatibilityScore": self.score.to_dict() if self.score else None,
        }


class MatchService:
    """Wires repository, scorer, notes analyzer, combiner, and ranker.

    Usage::

        service = MatchService(load_settings())
        await service.health_check()
        matches = await service.recommendations("ada@example.com", limit=10)
    """

    def __init__(
        self,
        settings: Settings,
        *,
        repository: ProfileRepository | None = None,
        client: CompletionClient | None = None,
    ) -> None:
        self._settings = settings
        self._repository = repository or ProfileStore.from_files(
            settings.profiles.profiles_path,
            test_profiles_path=settings.profiles.test_profiles_path,
            blocks_path=settings.profiles.blocks_path,
        )
        self._client = client or CompletionClient(
            base_url=settings.ollama.base_url,
            llm_model=settings.ollama.llm_model,
            temperature=settings.ollama.temperature,
            max_concurrent=settings.ollama.max_concurrent_requests,
            requests_per_minute=settings.ollama.requests_per_minute,
        )
        self._scorer = CompatibilityScorer(ConstraintFilter())
        self._analyzer = NotesCompatibilityAnalyzer(
            self._client,
            prune_threshold=settings.matching.prune_threshold,
        )
        self._combiner = ScoreCombiner(self._scorer, self._analyzer)
        self._ranker = MatchRanker(
            self._repository,
            self._combiner,
            max_concurrent=settings.matching.max_concurrent_scoring,
            request_timeout=settings.matching.request_timeout,
        )

    @property
    def repository(self) -> ProfileRepository:
        return self._repository

    async def health_check(self) -> None:
        """Fail fast if Ollama is down or the model is not pulled."""
        await self._client.health_check()

    # -- Ranking API ---------------------------------------------------------

    async def recommendations(
        self,
        user_id: str,
        region: str | None = None,
        min_score: float | None = None,
        limit: int | None = None,
        *,
        enhanced: bool | None = None,
        include_test_pool: bool | None = None,
    ) -> list[CompatibilityScore]:
        """Ranked candidates for *user_id*.  ``None`` arguments use settings."""
        matches, _summary = await self.rank(
            user_id,
            region=region,
            min_score=min_score,
            limit=limit,
            enhanced=enhanced,
            include_test_pool=include_test_pool,
        )
        return matches

    async def rank(
        self,
        user_id: str,
        region: str | None = None,
        min_score: float | None = None,
        limit: int | None = None,
        *,
        enhanced: bool | None = None,
        include_test_pool: bool | None = None,
    ) -> tuple[list[CompatibilityScore], RankSummary]:
        """Like :meth:`recommendations` but also returns the run summary."""
        if region is not None and region not in HOUSING_REGIONS:
            raise ActionableError.validation(
                "region",
                f"'{region}' is not one of {', '.join(HOUSING_REGIONS)}",
            )
        options = self._options(min_score, enhanced, include_test_pool)
        return await self._ranker.rank(user_id, options, region=region, limit=limit)

    async def pairwise_compare(
        self,
        user_a: str,
        user_b: str,
        enhanced: bool | None = None,
        *,
        min_score: float | None = None,
    ) -> CompatibilityScore | None:
        """Score *user_b* for *user_a*, or ``None`` if the pair is filtered out.

        Raises:
            ActionableError: VALIDATION for a self-comparison,
                PROFILE_NOT_FOUND for an unknown user, BLOCKED if either
                user is blocked system-wide or by the other.
        """
        comparison = await self.explain_pair(user_a, user_b, enhanced, min_score=min_score)
        return comparison.score

    async def explain_pair(
        self,
        user_a: str,
        user_b: str,
        enhanced: bool | None = None,
        *,
        min_score: float | None = None,
    ) -> PairComparison:
        """Full diagnostic comparison of two users (same checks as ``pairwise_compare``)."""
        if user_a == user_b:
            raise ActionableError.validation(
                "user_b",
                "cannot compare a user with themselves",
                suggestion="Pass two different user identifiers",
            )
        await self._check_blocks(user_a, user_b)

        profile_a = await self._repository.get_profile(user_a)
        profile_b = await self._repository.get_profile(user_b)
        options = self._options(min_score, enhanced, None)

        if options.enhanced_scoring:
            score = await self._combiner.enhanced_score(
                profile_a,
                profile_b,
                options.min_threshold,
                timeout=self._settings.matching.request_timeout,
            )
        else:
            score = self._scorer.score(profile_a, profile_b)
            if score is not None and score.score < options.min_threshold:
                score = None

        return PairComparison(
            user_a=profile_a,
            user_b=profile_b,
            report=self._scorer.constraints.detail(profile_a, profile_b),
            score=score,
        )

    # -- Internal ------------------------------------------------------------

    def _options(
        self,
        min_score: float | None,
        enhanced: bool | None,
        include_test_pool: bool | None,
    ) -> MatchingOptions:
        options = self._settings.matching.to_options()
        if min_score is not None:
            if not 0 <= min_score <= 100:
                raise ActionableError.validation(
                    "min_score",
                    f"must be between 0 and 100, got {min_score}",
                )
            options = replace(options, min_threshold=float(min_score))
        if enhanced is not None:
            options = replace(options, enhanced_scoring=enhanced)
        if include_test_pool is not None:
            options = replace(options, include_test_pool=include_test_pool)
        return options

    async def _check_blocks(self, user_a: str, user_b: str) -> None:
        flags = await asyncio.gather(
            self._repository.is_blocked(user_a),
            self._repository.is_blocked(user_b),
            self._repository.is_blocked(user_a, by=user_b),
            self._repository.is_blocked(user_b, by=user_a),
        )
        if any(flags):
            logger.info("Comparison of %s and %s refused: blocked", user_a, user_b)
            raise ActionableError.blocked(user_a, user_b)
