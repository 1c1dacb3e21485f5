"""Profile and block-list access for the matching engine.

:class:`ProfileRepository` is the seam between matching and whatever
stores survey documents.  Methods are async because production stores
are network-backed; the ranker treats every lookup as I/O.

:class:`ProfileStore` is the bundled implementation.  It holds two
pools, mirroring how surveys are kept in production:

1. **Regular pool**: real users' submitted surveys.
2. **Test pool**: seeded test users, included in candidate lists only
   when a caller explicitly asks for them.

Records are kept raw and converted through
:func:`~roommate_match.profiles.model.profile_from_record` on read, so a
single malformed document makes only *that* profile unusable: direct
lookups raise INVALID_PROFILE, bulk listings skip it with a warning.

Block records are loaded from an append-only JSONL file, one object per
line::

    {"blockedUserEmail": "x@example.com", "blockedByEmail": "system",
     "active": true, "isSystemBlock": true}
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from roommate_match.errors import ActionableError
from roommate_match.profiles.model import Profile, profile_from_record

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

SYSTEM_BLOCKER = "system"


@dataclass(frozen=True)
class ProfileFilter:
    """Selection criteria for :meth:`ProfileRepository.list_eligible_profiles`."""

    region: str | None = None
    exclude_user: str | None = None
    include_test_pool: bool = False


@dataclass(frozen=True)
class BlockRecord:
    """One block: ``blocked_user_email`` was blocked by ``blocked_by_email``."""

    blocked_user_email: str
    blocked_by_email: str
    active: bool = True
    is_system_block: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BlockRecord:
        blocked = data.get("blockedUserEmail", data.get("blocked_user_email"))
        blocker = data.get("blockedByEmail", data.get("blocked_by_email"))
        if not blocked or not blocker:
            raise ActionableError.validation(
                field_name="block",
                reason=f"record {dict(data)!r} needs blockedUserEmail and blockedByEmail",
            )
        is_system = data.get("isSystemBlock", data.get("is_system_block"))
        return cls(
            blocked_user_email=str(blocked),
            blocked_by_email=str(blocker),
            active=bool(data.get("active", True)),
            is_system_block=bool(is_system) if is_system is not None else blocker == SYSTEM_BLOCKER,
        )


class ProfileRepository(ABC):
    """Read-only access to survey profiles and block relationships."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile:
        """Return the profile for *user_id*.

        Raises ``ActionableError`` PROFILE_NOT_FOUND when absent and
        INVALID_PROFILE when the stored record cannot be used.
        """
        ...

    @abstractmethod
    async def list_eligible_profiles(self, profile_filter: ProfileFilter | None = None) -> list[Profile]:
        """Return submitted, valid profiles matching *profile_filter*."""
        ...

    @abstractmethod
    async def is_blocked(self, target: str, by: str | None = None) -> bool:
        """True if *target* is blocked system-wide, or (when *by* is given) by *by*."""
        ...


class ProfileStore(ProfileRepository):
    """In-memory :class:`ProfileRepository` with a regular and a test pool.

    Usage::

        store = ProfileStore.from_files("data/profiles.json", blocks_path="data/blocks.jsonl")
        profile = await store.get_profile("ana@example.com")
    """

    def __init__(
        self,
        records: Iterable[Mapping[str, Any] | Profile] = (),
        *,
        test_records: Iterable[Mapping[str, Any] | Profile] = (),
        blocks: Iterable[BlockRecord] = (),
    ) -> None:
        self._regular: list[Mapping[str, Any] | Profile] = list(records)
        self._test: list[Mapping[str, Any] | Profile] = list(test_records)
        self._blocks: list[BlockRecord] = list(blocks)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_files(
        cls,
        profiles_path: str | Path,
        *,
        test_profiles_path: str | Path | None = None,
        blocks_path: str | Path | None = None,
    ) -> ProfileStore:
        """Load profiles (JSON arrays) and blocks (JSONL) from disk.

        A missing test-profile or block file is treated as empty; the
        main profiles file is required.
        """
        records = _load_json_records(Path(profiles_path), required=True)
        test_records = (
            _load_json_records(Path(test_profiles_path), required=False)
            if test_profiles_path
            else []
        )
        blocks = _load_blocks(Path(blocks_path)) if blocks_path else []
        logger.info(
            "Loaded %d profile records, %d test records, %d blocks",
            len(records),
            len(test_records),
            len(blocks),
        )
        return cls(records, test_records=test_records, blocks=blocks)

    def add_profile(self, record: Mapping[str, Any] | Profile, *, test_pool: bool = False) -> None:
        (self._test if test_pool else self._regular).append(record)

    def add_block(self, block: BlockRecord) -> None:
        self._blocks.append(block)

    # ------------------------------------------------------------------
    # ProfileRepository
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Profile:
        for pool, is_test in ((self._regular, False), (self._test, True)):
            for record in pool:
                if _record_id(record) == user_id:
                    return _to_profile(record, is_test=is_test)
        raise ActionableError.profile_not_found(user_id)

    async def list_eligible_profiles(self, profile_filter: ProfileFilter | None = None) -> list[Profile]:
        criteria = profile_filter or ProfileFilter()
        pools: list[tuple[list[Mapping[str, Any] | Profile], bool]] = [(self._regular, False)]
        if criteria.include_test_pool:
            pools.append((self._test, True))

        eligible: list[Profile] = []
        skipped = 0
        for pool, is_test in pools:
            for record in pool:
                if criteria.exclude_user and _record_id(record) == criteria.exclude_user:
                    continue
                try:
                    profile = _to_profile(record, is_test=is_test)
                except ActionableError as exc:
                    logger.warning("Skipping unusable profile: %s", exc.error)
                    skipped += 1
                    continue
                if not profile.is_eligible:
                    continue
                if criteria.region and profile.housing_region != criteria.region:
                    continue
                eligible.append(profile)

        logger.debug(
            "Eligible pool: %d profiles (%d invalid skipped, region=%s, test_pool=%s)",
            len(eligible),
            skipped,
            criteria.region,
            criteria.include_test_pool,
        )
        return eligible

    async def is_blocked(self, target: str, by: str | None = None) -> bool:
        for block in self._blocks:
            if not block.active or block.blocked_user_email != target:
                continue
            if block.is_system_block:
                return True
            if by is not None and block.blocked_by_email == by:
                return True
        return False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _record_id(record: Mapping[str, Any] | Profile) -> str:
    if isinstance(record, Profile):
        return record.user_email
    return str(record.get("userEmail") or record.get("user_email") or "").strip()


def _to_profile(record: Mapping[str, Any] | Profile, *, is_test: bool) -> Profile:
    if isinstance(record, Profile):
        return record
    return profile_from_record(record, is_test_user=is_test)


def _load_json_records(path: Path, *, required: bool) -> list[dict[str, Any]]:
    if not path.exists():
        if required:
            raise ActionableError.config(
                field_name="profiles.profiles_path",
                reason=f"Profiles file not found: {path}",
                suggestion=f"Create {path} with a JSON array of survey records",
            )
        logger.warning("Optional profiles file %s not found, treating as empty", path)
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ActionableError.config(
            field_name="profiles.profiles_path",
            reason=f"{path} is not valid JSON: {exc}",
        ) from None
    if not isinstance(data, list):
        raise ActionableError.config(
            field_name="profiles.profiles_path",
            reason=f"{path} must contain a JSON array of survey records",
        )
    return [r for r in data if isinstance(r, dict)]


def _load_blocks(path: Path) -> list[BlockRecord]:
    if not path.exists():
        logger.warning("Blocks file %s not found, no blocks loaded", path)
        return []
    blocks: list[BlockRecord] = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            blocks.append(BlockRecord.from_dict(json.loads(line)))
        except (json.JSONDecodeError, AttributeError, ActionableError) as exc:
            logger.warning("Skipping malformed block record at %s:%d: %s", path, line_no, exc)
    return blocks
