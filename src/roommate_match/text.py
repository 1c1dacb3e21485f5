"""Shared text-processing utilities.

Pure functions with no domain dependencies, safe to import from any
layer (CLI, pipeline, matching, profiles).
"""

from __future__ import annotations


def is_blank(text: str | None) -> bool:
    """True for ``None``, the empty string, or whitespace-only text."""
    return text is None or not text.strip()


def normalize_key(text: str | None) -> str:
    """Trimmed, lowercased comparison key.  Internal spacing is kept.

    >>> normalize_key("  Acme Corp ")
    'acme corp'
    """
    if text is None:
        return ""
    return text.strip().lower()


def same_employer(company_a: str | None, company_b: str | None) -> bool:
    """True when both employers are non-empty and equal after normalisation."""
    key_a = normalize_key(company_a)
    key_b = normalize_key(company_b)
    return bool(key_a) and key_a == key_b
