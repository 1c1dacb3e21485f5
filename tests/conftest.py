"""Global test configuration: shared fixtures and factories.

This conftest provides:

1. **Profile factories**: ``make_profile`` builds a strict
   :class:`Profile` directly; ``make_record`` builds the raw camelCase
   survey document the repository stores.  Both default to a pair that
   passes every hard constraint, so each test overrides only the field
   it is about.

2. **I/O-boundary fixtures**: ``mock_completion_client`` is a real
   :class:`CompletionClient` instance with its network methods replaced
   by ``AsyncMock`` stubs.  Everything else (store, scorer, combiner,
   ranker) runs for real in tests.

3. **Settings factory**: ``make_settings`` points the profile paths at
   ``tmp_path`` so no test touches the real ``data/`` directory.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Any
from unittest.mock import AsyncMock

import pytest

from roommate_match.config import MatchingConfig, OllamaConfig, ProfilesConfig, Settings
from roommate_match.llm.completion import CompletionClient
from roommate_match.profiles.model import PreferenceStrength, Profile

NEUTRAL_VERDICT = '{"score": 0, "explanation": "Nothing notable either way."}'


# ---------------------------------------------------------------------------
# Profile factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_profile():
    """Factory fixture returning a callable that produces a Profile.

    ``preferences`` may be given as ``{item: "must have"}`` strings.

    Usage::

        def test_something(make_profile):
            a = make_profile("a@example.com")
            b = make_profile("b@example.com", min_budget=1500, max_budget=2500)
    """

    def _factory(
        user_email: str = "a@example.com",
        *,
        gender: str = "female",
        room_with_different_gender: bool = False,
        housing_region: str = "Bay Area",
        housing_cities: tuple[str, ...] = ("San Francisco",),
        start_date: date = date(2026, 6, 1),
        end_date: date = date(2026, 8, 31),
        desired_roommates: str = "2",
        min_budget: int = 1000,
        max_budget: int = 2000,
        preferences: dict[str, str] | None = None,
        additional_notes: str = "",
        internship_company: str = "",
        is_submitted: bool = True,
    ) -> Profile:
        prefs = {item: PreferenceStrength(s) for item, s in (preferences or {}).items()}
        return Profile(
            user_email=user_email,
            gender=gender,
            room_with_different_gender=room_with_different_gender,
            housing_region=housing_region,
            housing_cities=housing_cities,
            start_date=start_date,
            end_date=end_date,
            desired_roommates=desired_roommates,
            min_budget=min_budget,
            max_budget=max_budget,
            preferences=MappingProxyType(prefs),
            additional_notes=additional_notes,
            internship_company=internship_company,
            is_submitted=is_submitted,
        )

    return _factory


@pytest.fixture
def make_record():
    """Factory fixture returning a callable that produces a stored survey document.

    Keyword overrides are merged over a complete, valid camelCase record;
    pass ``None`` to drop a key entirely.

    Usage::

        def test_something(make_record):
            record = make_record("a@example.com", housingRegion="Seattle Area")
            record = make_record("b@example.com", minBudget=None)
    """

    def _factory(user_email: str = "a@example.com", **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "userEmail": user_email,
            "firstName": user_email.split("@")[0].title(),
            "gender": "female",
            "roomWithDifferentGender": False,
            "housingRegion": "Bay Area",
            "housingCities": ["San Francisco"],
            "internshipStartDate": "2026-06-01",
            "internshipEndDate": "2026-08-31",
            "internshipCompany": "",
            "desiredRoommates": "2",
            "minBudget": 1000,
            "maxBudget": 2000,
            "preferences": [],
            "additionalNotes": "",
            "isSubmitted": True,
            "isDraft": False,
        }
        for key, value in overrides.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = value
        return record

    return _factory


# ---------------------------------------------------------------------------
# I/O-boundary fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_completion_client() -> CompletionClient:
    """CompletionClient with stubbed I/O methods; no Ollama connection needed.

    Uses ``CompletionClient.__new__`` to create a real instance without
    calling ``__init__`` (which would create an ``ollama.AsyncClient``).
    ``complete`` returns a neutral verdict unless a test reconfigures it.
    """
    client = CompletionClient.__new__(CompletionClient)
    client.base_url = "http://localhost:11434"
    client.llm_model = "mistral:7b"
    client.temperature = 0.1
    client.max_retries = 3
    client.base_delay = 0.0
    client.complete = AsyncMock(return_value=NEUTRAL_VERDICT)  # type: ignore[method-assign]
    client.health_check = AsyncMock()  # type: ignore[method-assign]
    return client


# ---------------------------------------------------------------------------
# Settings factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings(tmp_path: Path):
    """Factory fixture returning a callable that produces a Settings instance.

    Profile paths are rooted under ``tmp_path``; ``[matching]`` fields
    can be overridden by keyword.

    Usage::

        def test_something(make_settings):
            settings = make_settings()
            settings = make_settings(enhanced_scoring=False, min_threshold=0)
    """

    def _factory(**matching_overrides: Any) -> Settings:
        return Settings(
            matching=MatchingConfig(**matching_overrides),
            ollama=OllamaConfig(),
            profiles=ProfilesConfig(
                profiles_path=str(tmp_path / "profiles.json"),
                test_profiles_path=str(tmp_path / "test_profiles.json"),
                blocks_path=str(tmp_path / "blocks.jsonl"),
            ),
        )

    return _factory
