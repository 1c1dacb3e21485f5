"""Candidate fan-out, filtering, and final ranking.

The MatchRanker turns one requester into a sorted candidate list.  It
performs these steps in sequence:

1. **Load**: the requester's profile (``PROFILE_NOT_FOUND`` if absent)
   and the eligible pool (submitted, optionally region-scoped).
2. **Deduplicate**: repeated identities are collapsed, first kept, and
   the requester is always removed.
3. **Block filtering**: candidates blocked system-wide, or blocked by
   or against the requester, are dropped.  Lookups run concurrently
   under the same bound as scoring.
4. **Constraint pre-filter**: the cheap synchronous gate, so only
   viable pairs reach network-bound work.
5. **Scoring**: enhanced (base + notes) or basic, bounded fan-out with
   a per-request deadline on the notes analysis.
6. **Sort and truncate**: descending by score, then the limit.

One candidate's failure never aborts the batch: it is logged, counted,
and left out of the results.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from roommate_match.config import MatchingOptions
from roommate_match.errors import ActionableError
from roommate_match.profiles.repository import ProfileFilter

if TYPE_CHECKING:
    from roommate_match.matching.combiner import ScoreCombiner
    from roommate_match.matching.scorer import CompatibilityScore
    from roommate_match.profiles.model import Profile
    from roommate_match.profiles.repository import ProfileRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 16


@dataclass
class RankSummary:
    """Statistics from one ranking request."""

    total_candidates: int = 0
    total_duplicates: int = 0
    total_blocked: int = 0
    total_failed_constraints: int = 0
    total_excluded: int = 0
    total_failed: int = 0
    total_returned: int = 0


class MatchRanker:
    """Scores a requester against the candidate pool and ranks the results.

    Parameters
    ----------
    repository:
        Source of profiles and block relationships.
    combiner:
        Enhanced scorer.  Its ``scorer`` serves basic mode and its
        constraint gate serves the pre-filter.
    max_concurrent:
        Upper bound on in-flight block lookups and scoring tasks.
    request_timeout:
        Seconds allowed for notes analysis across the whole request.
        Candidates still waiting when it elapses keep their base score.
    """

    def __init__(
        self,
        repository: ProfileRepository,
        combiner: ScoreCombiner,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        request_timeout: float | None = None,
    ) -> None:
        self._repository = repository
        self._combiner = combiner
        self._scorer = combiner.scorer
        self.max_concurrent = max_concurrent
        self.request_timeout = request_timeout

    async def recommend(
        self,
        user_id: str,
        options: MatchingOptions | None = None,
        *,
        region: str | None = None,
        limit: int | None = None,
    ) -> list[CompatibilityScore]:
        """Ranked matches for *user_id*, best first."""
        matches, _summary = await self.rank(user_id, options, region=region, limit=limit)
        return matches

    async def rank(
        self,
        user_id: str,
        options: MatchingOptions | None = None,
        *,
        region: str | None = None,
        limit: int | None = None,
    ) -> tuple[list[CompatibilityScore], RankSummary]:
        """Run the full filter-score-sort pipeline for one requester.

        Args:
            user_id: Requester identifier (email).
            options: Scoring mode, threshold, and pool selection.
                Defaults to enhanced scoring at threshold 50.
            region: Restrict candidates to one housing region.
            limit: Keep only the top *limit* matches.

        Returns:
            A tuple of (matches sorted descending by score, summary).

        Raises:
            ActionableError: PROFILE_NOT_FOUND for an unknown requester,
                VALIDATION for a non-positive *limit*.
        """
        opts = options or MatchingOptions()
        if limit is not None and limit < 1:
            raise ActionableError.validation("limit", f"must be a positive integer, got {limit}")

        summary = RankSummary()
        user = await self._repository.get_profile(user_id)
        if not user.is_eligible:
            logger.warning("Requester %s has not submitted a survey; no matches", user.user_email)
            return [], summary
        if await self._repository.is_blocked(user.user_email):
            logger.warning("Requester %s is blocked system-wide; no matches", user.user_email)
            return [], summary

        pool = await self._repository.list_eligible_profiles(
            ProfileFilter(
                region=region,
                exclude_user=user.user_email,
                include_test_pool=opts.include_test_pool,
            )
        )
        summary.total_candidates = len(pool)

        # Step 1: Deduplicate and drop the requester
        candidates = self._deduplicate(user, pool)
        summary.total_duplicates = len(pool) - len(candidates)

        semaphore = asyncio.Semaphore(self.max_concurrent)

        # Step 2: Block filtering
        blocked_flags = await asyncio.gather(
            *[self._is_blocked_pair(user, c, semaphore) for c in candidates]
        )
        unblocked = [c for c, blocked in zip(candidates, blocked_flags, strict=True) if not blocked]
        summary.total_blocked = len(candidates) - len(unblocked)

        # Step 3: Constraint pre-filter (synchronous, before any network work)
        constraints = self._scorer.constraints
        viable = [c for c in unblocked if constraints.passes(user, c)]
        summary.total_failed_constraints = len(unblocked) - len(viable)

        # Step 4: Bounded scoring fan-out
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.request_timeout if self.request_timeout is not None else None

        async def _score_one(candidate: Profile) -> tuple[CompatibilityScore | None, bool]:
            async with semaphore:
                try:
                    if not opts.enhanced_scoring:
                        base = self._scorer.score(user, candidate)
                        if base is None or base.score < opts.min_threshold:
                            return None, False
                        return base, False
                    timeout = max(0.0, deadline - loop.time()) if deadline is not None else None
                    return await self._combiner.enhanced_score(
                        user, candidate, opts.min_threshold, timeout=timeout
                    ), False
                except ActionableError as exc:
                    logger.warning(
                        "Scoring failed for %s → %s: %s",
                        user.user_email,
                        candidate.user_email,
                        exc.error,
                    )
                    return None, True
                except Exception:
                    logger.exception(
                        "Unexpected scoring failure for %s → %s",
                        user.user_email,
                        candidate.user_email,
                    )
                    return None, True

        outcomes = await asyncio.gather(*[_score_one(c) for c in viable])

        matches: list[CompatibilityScore] = []
        for score, failed in outcomes:
            if failed:
                summary.total_failed += 1
            elif score is None:
                summary.total_excluded += 1
            else:
                matches.append(score)

        # Step 5: Sort descending, ties by identifier for a stable order
        matches.sort(key=lambda s: (-s.score, s.candidate_id))
        if limit is not None:
            matches = matches[:limit]
        summary.total_returned = len(matches)

        logger.info(
            "Ranked %d matches for %s: %d candidates, %d duplicates, %d blocked, "
            "%d failed constraints, %d below threshold %.1f or vetoed, %d failed",
            summary.total_returned,
            user.user_email,
            summary.total_candidates,
            summary.total_duplicates,
            summary.total_blocked,
            summary.total_failed_constraints,
            summary.total_excluded,
            opts.min_threshold,
            summary.total_failed,
        )
        return matches, summary

    @staticmethod
    def _deduplicate(user: Profile, pool: list[Profile]) -> list[Profile]:
        seen = {user.user_email}
        unique: list[Profile] = []
        for candidate in pool:
            if candidate.user_email in seen:
                continue
            seen.add(candidate.user_email)
            unique.append(candidate)
        return unique

    async def _is_blocked_pair(
        self,
        user: Profile,
        candidate: Profile,
        semaphore: asyncio.Semaphore,
    ) -> bool:
        """Blocked either way, or system-wide.  A failed lookup counts as blocked."""
        async with semaphore:
            try:
                return await self._repository.is_blocked(
                    candidate.user_email, by=user.user_email
                ) or await self._repository.is_blocked(user.user_email, by=candidate.user_email)
            except ActionableError as exc:
                logger.warning(
                    "Block lookup failed for %s, excluding candidate: %s",
                    candidate.user_email,
                    exc.error,
                )
                return True
