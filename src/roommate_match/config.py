"""Configuration loading and validation.

Loads ``settings.toml`` and validates all fields at startup, before any
profiles are loaded or completion calls are made.  A bad weight or URL
discovered halfway through a ranking run would surface as a confusing
per-candidate failure instead of one clear startup error.

The validated config is exposed as a :class:`Settings` dataclass with
typed fields for each section: ``matching``, ``ollama``, and
``profiles``.  Core matching code never reads settings or environment
variables directly; it receives an explicit :class:`MatchingOptions`.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from roommate_match.errors import ActionableError

# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

DEFAULT_MIN_THRESHOLD = 50.0


@dataclass(frozen=True)
class MatchingOptions:
    """Per-request matching switches injected into the ranker."""

    enhanced_scoring: bool = True
    min_threshold: float = DEFAULT_MIN_THRESHOLD
    include_test_pool: bool = False


@dataclass
class MatchingConfig:
    """Matching thresholds and fan-out limits from ``[matching]``."""

    enhanced_scoring: bool = True
    min_threshold: float = DEFAULT_MIN_THRESHOLD
    include_test_pool: bool = False
    prune_threshold: float = -5.0
    request_timeout: float = 30.0
    max_concurrent_scoring: int = 16

    def to_options(self) -> MatchingOptions:
        return MatchingOptions(
            enhanced_scoring=self.enhanced_scoring,
            min_threshold=self.min_threshold,
            include_test_pool=self.include_test_pool,
        )


@dataclass
class OllamaConfig:
    """Ollama connection and throttle settings from ``[ollama]``."""

    base_url: str = "http://localhost:11434"
    llm_model: str = "mistral:7b"
    temperature: float = 0.1
    max_concurrent_requests: int = 4
    requests_per_minute: int = 60


@dataclass
class ProfilesConfig:
    """Profile data sources from ``[profiles]``."""

    profiles_path: str = "data/profiles.json"
    test_profiles_path: str | None = None
    blocks_path: str | None = None


@dataclass
class Settings:
    """Top-level validated configuration."""

    matching: MatchingConfig
    ollama: OllamaConfig
    profiles: ProfilesConfig


# ---------------------------------------------------------------------------
# Default settings path
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load and validate settings from a TOML file.

    Raises :class:`~roommate_match.errors.ActionableError`:
      - CONFIG if the file is missing, malformed, or a required field is absent
      - VALIDATION if field values are out of range

    Returns a fully validated :class:`Settings` instance.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"Settings file not found: {filepath}",
            suggestion=f"Create {filepath} or copy from config/settings.toml.example",
        )

    raw_text = filepath.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"TOML syntax error: {exc}",
            suggestion=f"Fix TOML syntax in {filepath}",
        ) from None

    return _validate(data, filepath)


def _validate(data: dict[str, object], filepath: Path) -> Settings:
    """Validate raw TOML data and return a Settings instance."""

    # -- profiles section ----------------------------------------------------
    profiles_section = _require_section(data, "profiles", filepath)
    profiles_path = _require_field(profiles_section, "profiles_path", "profiles", filepath)
    if not isinstance(profiles_path, str) or not profiles_path.strip():
        raise ActionableError.config(
            field_name="profiles.profiles_path",
            reason="profiles.profiles_path must be a non-empty path string",
            suggestion="Point [profiles].profiles_path at a JSON file of survey records",
        )

    profiles = ProfilesConfig(
        profiles_path=profiles_path,
        test_profiles_path=_optional_str(profiles_section.get("test_profiles_path")),
        blocks_path=_optional_str(profiles_section.get("blocks_path")),
    )

    # -- matching section ----------------------------------------------------
    matching_data = data.get("matching", {})
    if not isinstance(matching_data, dict):
        matching_data = {}

    matching = MatchingConfig(
        enhanced_scoring=bool(matching_data.get("enhanced_scoring", True)),
        min_threshold=float(matching_data.get("min_threshold", DEFAULT_MIN_THRESHOLD)),
        include_test_pool=bool(matching_data.get("include_test_pool", False)),
        prune_threshold=float(matching_data.get("prune_threshold", -5.0)),
        request_timeout=float(matching_data.get("request_timeout", 30.0)),
        max_concurrent_scoring=int(matching_data.get("max_concurrent_scoring", 16)),
    )

    if not 0.0 <= matching.min_threshold <= 100.0:
        raise ActionableError.validation(
            field_name="matching.min_threshold",
            reason=f"is {matching.min_threshold}, must be between 0 and 100",
            suggestion="Set [matching].min_threshold to a percentage between 0 and 100",
        )
    if not -10.0 <= matching.prune_threshold <= 10.0:
        raise ActionableError.validation(
            field_name="matching.prune_threshold",
            reason=f"is {matching.prune_threshold}, must be between -10 and 10",
            suggestion="Set [matching].prune_threshold within the notes score range",
        )
    if matching.request_timeout <= 0:
        raise ActionableError.validation(
            field_name="matching.request_timeout",
            reason=f"is {matching.request_timeout}, must be > 0",
            suggestion="Set [matching].request_timeout to a positive number of seconds",
        )
    if matching.max_concurrent_scoring < 1:
        raise ActionableError.validation(
            field_name="matching.max_concurrent_scoring",
            reason=f"is {matching.max_concurrent_scoring}, must be >= 1",
        )

    # -- ollama section ------------------------------------------------------
    ollama_data = data.get("ollama", {})
    if not isinstance(ollama_data, dict):
        ollama_data = {}

    base_url = str(ollama_data.get("base_url", "http://localhost:11434"))
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name="ollama.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
            suggestion="Set [ollama].base_url to a URL starting with http:// or https://",
        )

    ollama = OllamaConfig(
        base_url=base_url,
        llm_model=str(ollama_data.get("llm_model", "mistral:7b")),
        temperature=float(ollama_data.get("temperature", 0.1)),
        max_concurrent_requests=int(ollama_data.get("max_concurrent_requests", 4)),
        requests_per_minute=int(ollama_data.get("requests_per_minute", 60)),
    )

    for limit_name in ("max_concurrent_requests", "requests_per_minute"):
        value = getattr(ollama, limit_name)
        if value < 1:
            raise ActionableError.validation(
                field_name=f"ollama.{limit_name}",
                reason=f"is {value}, must be >= 1",
                suggestion=f"Set [ollama].{limit_name} to a positive integer",
            )
    if not 0.0 <= ollama.temperature <= 2.0:
        raise ActionableError.validation(
            field_name="ollama.temperature",
            reason=f"is {ollama.temperature}, must be between 0.0 and 2.0",
        )

    return Settings(matching=matching, ollama=ollama, profiles=profiles)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_section(data: dict[str, object], name: str, filepath: Path) -> dict[str, object]:
    """Return a required top-level section, or raise CONFIG error."""
    section = data.get(name)
    if section is None or not isinstance(section, dict):
        raise ActionableError.config(
            field_name=name,
            reason=f"Required section [{name}] is missing from {filepath}",
            suggestion=f"Add a [{name}] section to {filepath}",
        )
    return section


def _require_field(
    section: dict[str, object], field_name: str, section_name: str, filepath: Path
) -> object:
    """Return a required field within a section, or raise CONFIG error."""
    value = section.get(field_name)
    if value is None:
        raise ActionableError.config(
            field_name=f"{section_name}.{field_name}",
            reason=f"Required field '{field_name}' is missing from [{section_name}] in {filepath}",
            suggestion=f"Add '{field_name}' to the [{section_name}] section in {filepath}",
        )
    return value
