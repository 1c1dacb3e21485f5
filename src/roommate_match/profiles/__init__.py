"""Profile layer: survey data contract and repository access."""

from roommate_match.profiles.model import (
    HOUSING_REGIONS,
    PREFERENCE_ITEMS,
    ROOMMATE_COUNTS,
    PreferenceStrength,
    Profile,
    profile_from_record,
)
from roommate_match.profiles.repository import (
    BlockRecord,
    ProfileFilter,
    ProfileRepository,
    ProfileStore,
)

__all__ = [
    "HOUSING_REGIONS",
    "PREFERENCE_ITEMS",
    "ROOMMATE_COUNTS",
    "BlockRecord",
    "PreferenceStrength",
    "Profile",
    "ProfileFilter",
    "ProfileRepository",
    "ProfileStore",
    "profile_from_record",
]
