"""Actionable error hierarchy for the roommate matching engine.

Errors are classified by **recovery path**, not by origin.
Each error type carries structured guidance for three audiences:
  - The calling code (typed ``error_type`` for routing)
  - The human operator (``suggestion`` + ``troubleshooting`` steps)
  - An AI agent (``ai_guidance`` with concrete next actions)

A failed hard constraint is *not* an error.  Incompatible pairs are an
expected outcome of matching and are represented as ``None`` scores.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class ErrorType(StrEnum):
    """Recovery-path categories: what to *do*, not where it came from."""

    CONFIG = "config"
    CONNECTION = "connection"
    COMPLETION = "completion"
    PROFILE_NOT_FOUND = "profile_not_found"
    INVALID_PROFILE = "invalid_profile"
    MALFORMED_RESPONSE = "malformed_response"
    BLOCKED = "blocked"
    VALIDATION = "validation"
    UNEXPECTED = "unexpected"


# ---------------------------------------------------------------------------
# Guidance dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AIGuidance:
    """Machine-readable guidance for an AI agent consuming this error."""

    action_required: str
    command: str | None = None
    discovery_tool: str | None = None
    checks: list[str] | None = None
    steps: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"action_required": self.action_required}
        if self.command is not None:
            result["command"] = self.command
        if self.discovery_tool is not None:
            result["discovery_tool"] = self.discovery_tool
        if self.checks is not None:
            result["checks"] = self.checks
        if self.steps is not None:
            result["steps"] = self.steps
        return result


@dataclass(frozen=True)
class Troubleshooting:
    """Sequential, human-readable recovery steps for the operator."""

    steps: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"steps": self.steps}


# ---------------------------------------------------------------------------
# Base actionable error
# ---------------------------------------------------------------------------


@dataclass
class ActionableError(Exception):
    """Structured error with embedded recovery guidance.

    Use the factory classmethods rather than constructing directly;
    they encode domain knowledge so callers don't have to.
    """

    error: str
    error_type: ErrorType
    service: str

    success: bool = field(default=False, init=False)
    suggestion: str | None = None
    ai_guidance: AIGuidance | None = None
    troubleshooting: Troubleshooting | None = None
    context: dict[str, Any] | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    # Make it work as a real exception
    def __post_init__(self) -> None:
        super().__init__(self.error)

    # -- serialisation -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Compact JSON-ready dict; ``None`` values are excluded."""
        result: dict[str, Any] = {
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type.value,
            "service": self.service,
            "timestamp": self.timestamp,
        }
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion
        if self.ai_guidance is not None:
            result["ai_guidance"] = self.ai_guidance.to_dict()
        if self.troubleshooting is not None:
            result["troubleshooting"] = self.troubleshooting.to_dict()
        if self.context is not None:
            result["context"] = self.context
        return result

    # -- factory methods -----------------------------------------------------

    @classmethod
    def config(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Missing or invalid configuration in settings.toml."""
        return cls(
            error=f"Configuration error: {field_name}: {reason}",
            error_type=ErrorType.CONFIG,
            service="settings.toml",
            suggestion=suggestion or f"Fix '{field_name}' in config/settings.toml",
            ai_guidance=AIGuidance(
                action_required=f"Correct the '{field_name}' value in config/settings.toml",
                checks=[
                    "Verify config/settings.toml exists",
                    f"Verify '{field_name}' is present and valid",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Open config/settings.toml",
                    f"2. Locate the '{field_name}' setting",
                    f"3. Fix the issue: {reason}",
                    "4. Save and re-run",
                ]
            ),
        )

    @classmethod
    def connection(
        cls,
        service: str,
        url: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Service unreachable (Ollama, profile data source)."""
        return cls(
            error=f"Cannot connect to {service} at {url}: {raw_error}",
            error_type=ErrorType.CONNECTION,
            service=service,
            suggestion=suggestion or f"Verify {service} is running at {url}",
            ai_guidance=AIGuidance(
                action_required=f"Verify {service} is reachable",
                command=f"curl -s {url}",
                checks=[
                    f"Is {service} running?",
                    f"Is the URL {url} correct in settings.toml?",
                    "Is a VPN or firewall blocking the connection?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Verify {service} is running",
                    f"2. Test connectivity: curl -s {url}",
                    "3. Check the URL in config/settings.toml matches the running service",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def completion(
        cls,
        model: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Text-completion call failed after retries (non-2xx, timeout, missing model)."""
        return cls(
            error=f"Completion call failed for model '{model}': {raw_error}",
            error_type=ErrorType.COMPLETION,
            service="Ollama",
            suggestion=suggestion or f"Verify model '{model}' is pulled and Ollama is responsive",
            ai_guidance=AIGuidance(
                action_required="Verify Ollama model availability",
                command=f"ollama list | grep {model}",
                checks=[
                    "Is Ollama running?",
                    f"Is model '{model}' pulled? Run: ollama pull {model}",
                    "Is the configured request rate above what the host can serve?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Check Ollama is running: ollama list",
                    f"2. If model missing: ollama pull {model}",
                    "3. If overloaded: lower [ollama].max_concurrent_requests",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def profile_not_found(
        cls,
        user_id: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Requested profile identifier is absent from every pool."""
        return cls(
            error=f"Profile not found for '{user_id}'",
            error_type=ErrorType.PROFILE_NOT_FOUND,
            service="profiles",
            suggestion=suggestion or "Verify the user has submitted the housing survey",
            ai_guidance=AIGuidance(
                action_required=f"Confirm '{user_id}' exists in the profile store",
                checks=[
                    "Is the identifier spelled exactly as stored (email address)?",
                    "Is the user in the test pool? Retry with --include-test-pool",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Open the profiles file configured in [profiles].profiles_path",
                    f"2. Search for '{user_id}'",
                    "3. Re-run with the correct identifier",
                ]
            ),
        )

    @classmethod
    def invalid_profile(
        cls,
        user_id: str,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """A stored profile record is missing required fields or has bad values."""
        return cls(
            error=f"Invalid profile '{user_id or '<unknown>'}': {field_name}: {reason}",
            error_type=ErrorType.INVALID_PROFILE,
            service="profiles",
            suggestion=suggestion or f"Fix '{field_name}' in the stored survey record",
            ai_guidance=AIGuidance(
                action_required=f"Correct '{field_name}' for profile '{user_id}'",
                checks=[f"Verify '{field_name}' is present and valid"],
            ),
            context={"user_id": user_id, "field": field_name},
        )

    @classmethod
    def malformed_response(
        cls,
        raw_response: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Model output could not be parsed as a notes verdict."""
        preview = raw_response[:200]
        return cls(
            error=f"Malformed completion response: {reason}",
            error_type=ErrorType.MALFORMED_RESPONSE,
            service="Ollama",
            suggestion=suggestion or "The model ignored the JSON instructions; retry or switch models",
            ai_guidance=AIGuidance(
                action_required="Inspect the raw model output and tighten the prompt",
                checks=[
                    "Does the response contain a JSON object?",
                    "Is 'score' a number between -10 and 10?",
                ],
            ),
            context={"raw_response": preview},
        )

    @classmethod
    def blocked(
        cls,
        user_a: str,
        user_b: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """One of the two users is blocked system-wide or by the other."""
        return cls(
            error=f"Cannot compare '{user_a}' and '{user_b}': one or both users are blocked",
            error_type=ErrorType.BLOCKED,
            service="blocks",
            suggestion=suggestion or "Blocked users are never matched; no action is needed",
            ai_guidance=AIGuidance(
                action_required="Do not retry; blocks are intentional",
            ),
        )

    @classmethod
    def validation(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Input validation failure (TOML, CLI args, API arguments)."""
        return cls(
            error=f"Validation error: {field_name}: {reason}",
            error_type=ErrorType.VALIDATION,
            service="validation",
            suggestion=suggestion or f"Fix '{field_name}': {reason}",
            ai_guidance=AIGuidance(
                action_required=f"Correct the value for '{field_name}'",
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Check the value of '{field_name}'",
                    f"2. Issue: {reason}",
                    "3. Correct and retry",
                ]
            ),
        )

    @classmethod
    def unexpected(
        cls,
        service: str,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Catch-all for truly unexpected failures."""
        return cls(
            error=f"Unexpected error in {service} during {operation}: {raw_error}",
            error_type=ErrorType.UNEXPECTED,
            service=service,
            suggestion=suggestion or "This is an unexpected error; check logs for details",
            ai_guidance=AIGuidance(
                action_required="Analyze the error and escalate if needed",
                checks=[
                    "Check the full traceback in logs",
                    f"Is {service} in a known-good state?",
                ],
            ),
        )

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        service: str,
        operation: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Auto-classify an exception by keyword patterns.

        A caller-supplied ``suggestion`` is always preserved; it carries
        context the generic classifier cannot infer.
        """
        error_str = str(error).lower()
        raw_error = str(error)

        if any(kw in error_str for kw in ("timeout", "timed out")):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("connection refused", "unreachable", "resolve")):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("json", "decode", "parse")):
            return cls.malformed_response(raw_error, raw_error, suggestion=suggestion)

        return cls.unexpected(service, operation, raw_error, suggestion=suggestion)
