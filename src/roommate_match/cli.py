"""CLI command handlers for the roommate matching engine.

Each public function corresponds to a CLI subcommand and encapsulates
the wiring, orchestration, and output for that command.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roommate_match.matching.scorer import CompatibilityScore
    from roommate_match.pipeline.service import PairComparison

_RULE = "=" * 60


def _format_match(rank: int, match: CompatibilityScore) -> list[str]:
    """Printable lines for one ranked match."""
    subs = match.subscores
    lines = [
        f"{rank}. [{match.score:.1f}] {match.candidate_id}",
        (
            f"   Location: {subs.location:.0f} | Budget: {subs.budget:.0f} | "
            f"Timing: {subs.timing:.0f} | Roommates: {subs.roommate:.0f} | "
            f"Preferences: {subs.preferences:.0f}"
        ),
    ]
    if subs.additional_info is not None:
        lines.append(f"   Notes: {subs.additional_info:.0f} (valence {match.notes_valence:+.1f})")
    if match.employer_bonus:
        lines.append("   Same employer bonus applied")
    if match.explanation:
        lines.append(f"   {match.explanation}")
    return lines


def _format_comparison(comparison: PairComparison) -> list[str]:
    report = comparison.report
    failed = report.failed_dimensions()
    verdict = "PASS" if comparison.passes_constraints else f"FAIL ({', '.join(failed)})"

    def mark(ok: bool) -> str:
        return "ok" if ok else "FAIL"

    lines = [
        _RULE,
        f"  {comparison.user_a.user_email}  vs  {comparison.user_b.user_email}",
        _RULE,
        f"  Hard constraints:  {verdict}",
        f"    Gender:          {mark(report.gender_compatible)}",
        f"    Region:          {mark(report.region_match)}",
        f"    Timing:          {mark(report.timing_overlap)} ({report.timing_overlap_percentage:.0f}% overlap)",
        f"    Budget:          {mark(report.budget_compatible)}",
        f"    Roommates:       {mark(report.roommates_compatible)}",
        f"    Preferences:     {mark(report.preferences_compatible)}",
        _RULE,
    ]
    if comparison.score is None:
        lines.append("  No match (filtered out, below threshold, or vetoed)")
    else:
        lines.append(f"  Score: {comparison.score.score:.1f}")
        lines.extend(_format_match(1, comparison.score)[1:])
    return lines


def handle_recommend(args: argparse.Namespace) -> None:
    """Print ranked matches for one user."""
    from roommate_match.config import load_settings
    from roommate_match.pipeline.service import MatchService

    settings = load_settings(args.settings)
    service = MatchService(settings)
    enhanced = False if args.basic else None
    include_test_pool = True if args.include_test_pool else None

    async def _run() -> None:
        if enhanced is not False and settings.matching.enhanced_scoring:
            await service.health_check()

        matches, summary = await service.rank(
            args.user,
            region=args.region,
            min_score=args.min_score,
            limit=args.limit,
            enhanced=enhanced,
            include_test_pool=include_test_pool,
        )

        print(f"\n{_RULE}")
        print(f" Matches for {args.user}")
        print(_RULE)
        print(f" Candidates:        {summary.total_candidates}")
        print(f" Blocked:           {summary.total_blocked}")
        print(f" Failed gate:       {summary.total_failed_constraints}")
        print(f" Below threshold:   {summary.total_excluded}")
        print(f" Failed:            {summary.total_failed}")
        print(f" Returned:          {summary.total_returned}")
        print(f"{_RULE}\n")

        if not matches:
            print("No compatible roommates found.")
            return
        for i, match in enumerate(matches, 1):
            for line in _format_match(i, match):
                print(line)
            print()

    asyncio.run(_run())


def handle_compare(args: argparse.Namespace) -> None:
    """Print the constraint report and score for two users."""
    from roommate_match.config import load_settings
    from roommate_match.pipeline.service import MatchService

    settings = load_settings(args.settings)
    service = MatchService(settings)
    enhanced = False if args.basic else None

    async def _run() -> None:
        comparison = await service.explain_pair(args.user_a, args.user_b, enhanced)
        for line in _format_comparison(comparison):
            print(line)

    asyncio.run(_run())


def handle_check(args: argparse.Namespace) -> None:
    """Verify Ollama is reachable and the configured model is pulled."""
    from roommate_match.config import load_settings
    from roommate_match.llm.completion import CompletionClient

    settings = load_settings(args.settings)
    client = CompletionClient(
        base_url=settings.ollama.base_url,
        llm_model=settings.ollama.llm_model,
    )
    asyncio.run(client.health_check())
    print(f"Ollama OK: {settings.ollama.llm_model} available at {settings.ollama.base_url}")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="roommate-match",
        description="Roommate compatibility matching with LLM-scored notes",
    )
    parser.add_argument(
        "--settings",
        type=str,
        default="config/settings.toml",
        metavar="PATH",
        help="Path to settings.toml (default: config/settings.toml)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Also write a timestamped log file to DIR",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # -- recommend -----------------------------------------------------------
    recommend_p = sub.add_parser("recommend", help="Rank compatible roommates for a user")
    recommend_p.add_argument("user", type=str, help="Requester's email address")
    recommend_p.add_argument("--region", type=str, default=None, help="Restrict to one housing region")
    recommend_p.add_argument(
        "--min-score",
        type=float,
        default=None,
        metavar="N",
        help="Minimum score 0-100 (default: [matching].min_threshold)",
    )
    recommend_p.add_argument("--limit", type=int, default=None, metavar="N", help="Show the top N only")
    recommend_p.add_argument(
        "--basic",
        action="store_true",
        help="Skip notes analysis (deterministic score only)",
    )
    recommend_p.add_argument(
        "--include-test-pool",
        action="store_true",
        help="Also consider seeded test users",
    )

    # -- compare -------------------------------------------------------------
    compare_p = sub.add_parser("compare", help="Explain the compatibility of two users")
    compare_p.add_argument("user_a", type=str, help="First user's email address")
    compare_p.add_argument("user_b", type=str, help="Second user's email address")
    compare_p.add_argument(
        "--basic",
        action="store_true",
        help="Skip notes analysis (deterministic score only)",
    )

    # -- check ---------------------------------------------------------------
    sub.add_parser("check", help="Verify Ollama and the configured model are available")

    return parser
