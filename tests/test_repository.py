"""ProfileStore tests: pools, eligibility filtering, blocks, and file loading.

Maps to BDD specs: TestProfileLookup, TestEligiblePool, TestBlockChecks,
TestFileLoading
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from roommate_match.errors import ActionableError, ErrorType
from roommate_match.profiles.repository import BlockRecord, ProfileFilter, ProfileStore

if TYPE_CHECKING:
    from pathlib import Path


class TestProfileLookup:
    """REQUIREMENT: get_profile finds a user in the regular pool, then the test pool.

    WHO: The ranker loading the requester; the service loading a pair
    WHAT: Regular-pool records win over test-pool records with the same
          identifier; an absent identifier raises PROFILE_NOT_FOUND; a
          stored record that fails validation raises INVALID_PROFILE
    WHY: A missing requester must surface as a 404-equivalent, not an
         empty list that looks like "no matches"
    """

    async def test_regular_pool_profile_is_found(self, make_record) -> None:
        """A user stored in the regular pool is returned as a Profile."""
        store = ProfileStore([make_record("a@example.com")])
        profile = await store.get_profile("a@example.com")
        assert profile.user_email == "a@example.com"
        assert profile.is_test_user is False

    async def test_test_pool_is_searched_second(self, make_record) -> None:
        """A user only in the test pool is found and flagged as a test user."""
        store = ProfileStore(test_records=[make_record("t@example.com")])
        profile = await store.get_profile("t@example.com")
        assert profile.is_test_user is True

    async def test_regular_pool_wins_over_test_pool(self, make_record) -> None:
        """When both pools hold the identifier, the regular record is used."""
        store = ProfileStore(
            [make_record("a@example.com", firstName="Real")],
            test_records=[make_record("a@example.com", firstName="Seed")],
        )
        profile = await store.get_profile("a@example.com")
        assert profile.first_name == "Real"

    async def test_absent_user_raises_profile_not_found(self) -> None:
        """An unknown identifier raises PROFILE_NOT_FOUND."""
        store = ProfileStore()
        with pytest.raises(ActionableError) as exc_info:
            await store.get_profile("ghost@example.com")
        assert exc_info.value.error_type == ErrorType.PROFILE_NOT_FOUND

    async def test_invalid_stored_record_raises_invalid_profile(self, make_record) -> None:
        """A direct lookup of a malformed record surfaces the validation error."""
        store = ProfileStore([make_record("bad@example.com", housingRegion="Atlantis")])
        with pytest.raises(ActionableError) as exc_info:
            await store.get_profile("bad@example.com")
        assert exc_info.value.error_type == ErrorType.INVALID_PROFILE

    async def test_added_profile_is_visible(self, make_profile) -> None:
        """add_profile accepts already-converted Profile objects."""
        store = ProfileStore()
        store.add_profile(make_profile("late@example.com"))
        profile = await store.get_profile("late@example.com")
        assert profile.user_email == "late@example.com"


class TestEligiblePool:
    """REQUIREMENT: The candidate pool holds only submitted, valid, in-scope profiles.

    WHO: The ranker building the candidate list
    WHAT: Unsubmitted surveys are excluded; invalid records are skipped
          with a warning; region and exclude_user filters apply; the
          test pool is included only on request
    WHY: One malformed document must not abort ranking for everyone,
         and seeded test users must never leak into real recommendations
    """

    async def test_unsubmitted_profiles_are_excluded(self, make_record) -> None:
        """Draft surveys never appear as candidates."""
        store = ProfileStore(
            [make_record("a@example.com"), make_record("draft@example.com", isSubmitted=False)]
        )
        pool = await store.list_eligible_profiles()
        assert [p.user_email for p in pool] == ["a@example.com"]

    async def test_invalid_records_are_skipped_with_warning(
        self, make_record, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A broken record is logged and skipped; valid ones are still returned."""
        store = ProfileStore(
            [make_record("a@example.com"), make_record("bad@example.com", minBudget="abc")]
        )
        pool = await store.list_eligible_profiles()
        assert [p.user_email for p in pool] == ["a@example.com"]
        assert "Skipping unusable profile" in caplog.text

    async def test_region_filter_applies(self, make_record) -> None:
        """Only profiles in the requested region are returned."""
        store = ProfileStore(
            [
                make_record("bay@example.com"),
                make_record("sea@example.com", housingRegion="Seattle Area"),
            ]
        )
        pool = await store.list_eligible_profiles(ProfileFilter(region="Seattle Area"))
        assert [p.user_email for p in pool] == ["sea@example.com"]

    async def test_excluded_user_is_omitted(self, make_record) -> None:
        """exclude_user removes the requester from their own candidate pool."""
        store = ProfileStore([make_record("a@example.com"), make_record("b@example.com")])
        pool = await store.list_eligible_profiles(ProfileFilter(exclude_user="a@example.com"))
        assert [p.user_email for p in pool] == ["b@example.com"]

    async def test_test_pool_is_opt_in(self, make_record) -> None:
        """Test users appear only when include_test_pool is set."""
        store = ProfileStore(
            [make_record("a@example.com")],
            test_records=[make_record("t@example.com")],
        )
        default_pool = await store.list_eligible_profiles()
        with_tests = await store.list_eligible_profiles(ProfileFilter(include_test_pool=True))
        assert [p.user_email for p in default_pool] == ["a@example.com"]
        assert [p.user_email for p in with_tests] == ["a@example.com", "t@example.com"]


class TestBlockChecks:
    """REQUIREMENT: is_blocked honours system blocks and individual blocks.

    WHO: The ranker and service filtering blocked pairs
    WHAT: An active system block blocks the target for everyone; an
          active individual block applies only when the blocker is given;
          inactive blocks are ignored
    WHY: Showing a banned or blocked user as a match is a safety failure
    """

    async def test_system_block_applies_without_blocker(self) -> None:
        """A system block is reported even when no blocker is specified."""
        store = ProfileStore(blocks=[BlockRecord("x@example.com", "system", is_system_block=True)])
        assert await store.is_blocked("x@example.com") is True
        assert await store.is_blocked("x@example.com", by="anyone@example.com") is True

    async def test_individual_block_applies_only_to_its_blocker(self) -> None:
        """A personal block is visible only when checked against the blocker."""
        store = ProfileStore(blocks=[BlockRecord("x@example.com", "a@example.com")])
        assert await store.is_blocked("x@example.com") is False
        assert await store.is_blocked("x@example.com", by="a@example.com") is True
        assert await store.is_blocked("x@example.com", by="b@example.com") is False

    async def test_inactive_block_is_ignored(self) -> None:
        """A lifted block no longer filters the user."""
        store = ProfileStore(
            blocks=[BlockRecord("x@example.com", "system", active=False, is_system_block=True)]
        )
        assert await store.is_blocked("x@example.com") is False

    def test_block_from_dict_derives_system_flag_from_blocker(self) -> None:
        """A record blocked by 'system' without an explicit flag is a system block."""
        block = BlockRecord.from_dict({"blockedUserEmail": "x@example.com", "blockedByEmail": "system"})
        assert block.is_system_block is True
        assert block.active is True

    def test_block_from_dict_without_target_raises_validation(self) -> None:
        """A block record missing its target cannot be applied."""
        with pytest.raises(ActionableError) as exc_info:
            BlockRecord.from_dict({"blockedByEmail": "system"})
        assert exc_info.value.error_type == ErrorType.VALIDATION


class TestFileLoading:
    """REQUIREMENT: ProfileStore.from_files loads JSON profiles and JSONL blocks.

    WHO: The service building its repository from [profiles] settings
    WHAT: The main profiles file is required (CONFIG if missing or not a
          JSON array); the test-profile and block files are optional;
          malformed block lines are skipped with a warning
    WHY: A typo in the profiles path must fail at startup, while a
         corrupt block line must not take the whole block list down
    """

    async def test_profiles_and_blocks_load_from_disk(self, tmp_path: Path, make_record) -> None:
        """Records and blocks written to disk are available through the store."""
        profiles = tmp_path / "profiles.json"
        profiles.write_text(json.dumps([make_record("a@example.com")]), encoding="utf-8")
        blocks = tmp_path / "blocks.jsonl"
        blocks.write_text(
            json.dumps({"blockedUserEmail": "a@example.com", "blockedByEmail": "system"}) + "\n",
            encoding="utf-8",
        )
        store = ProfileStore.from_files(profiles, blocks_path=blocks)
        assert (await store.get_profile("a@example.com")).user_email == "a@example.com"
        assert await store.is_blocked("a@example.com") is True

    def test_missing_profiles_file_raises_config_error(self, tmp_path: Path) -> None:
        """The main profiles file is required."""
        with pytest.raises(ActionableError) as exc_info:
            ProfileStore.from_files(tmp_path / "absent.json")
        assert exc_info.value.error_type == ErrorType.CONFIG

    def test_non_array_profiles_file_raises_config_error(self, tmp_path: Path) -> None:
        """A JSON object instead of an array is rejected."""
        path = tmp_path / "profiles.json"
        path.write_text('{"userEmail": "a@example.com"}', encoding="utf-8")
        with pytest.raises(ActionableError) as exc_info:
            ProfileStore.from_files(path)
        assert exc_info.value.error_type == ErrorType.CONFIG

    async def test_missing_optional_files_are_treated_as_empty(self, tmp_path: Path) -> None:
        """Absent test-profile and block files leave those collections empty."""
        path = tmp_path / "profiles.json"
        path.write_text("[]", encoding="utf-8")
        store = ProfileStore.from_files(
            path,
            test_profiles_path=tmp_path / "none.json",
            blocks_path=tmp_path / "none.jsonl",
        )
        assert await store.list_eligible_profiles(ProfileFilter(include_test_pool=True)) == []
        assert await store.is_blocked("anyone@example.com") is False

    async def test_malformed_block_lines_are_skipped(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A corrupt JSONL line is logged and skipped; later lines still load."""
        path = tmp_path / "profiles.json"
        path.write_text("[]", encoding="utf-8")
        blocks = tmp_path / "blocks.jsonl"
        blocks.write_text(
            "{not json}\n"
            + json.dumps({"blockedUserEmail": "x@example.com", "blockedByEmail": "system"})
            + "\n",
            encoding="utf-8",
        )
        store = ProfileStore.from_files(path, blocks_path=blocks)
        assert await store.is_blocked("x@example.com") is True
        assert "Skipping malformed block record" in caplog.text
