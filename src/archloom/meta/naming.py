"""Name normalization for case-insensitive entity deduplication."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_COUNTER_RE = re.compile(r"\s+\d+$")


def normalize_name(name: str) -> str:
    """Lowercase, trim, and collapse internal whitespace.

    Hyphens and underscores are preserved, so ``"PAYMENT-GATEWAY"`` becomes
    ``"payment-gateway"`` and ``"Data   Warehouse"`` becomes ``"data warehouse"``.
    """
    return _WHITESPACE_RE.sub(" ", name.lower().strip())


def names_equivalent(first: str, second: str) -> bool:
    return normalize_name(first) == normalize_name(second)


def suggest_alternative_names(base_name: str, existing: set[str], count: int = 3) -> list[str]:
    """Suggest *count* normalized names not yet present in *existing*.

    ``"Customer Management"`` with ``{"customer management"}`` taken yields
    ``["customer management 2", "customer management 3", ...]``.
    """
    normalized = _TRAILING_COUNTER_RE.sub("", normalize_name(base_name))
    suggestions: list[str] = []
    counter = 2
    while len(suggestions) < count:
        candidate = f"{normalized} {counter}"
        if candidate not in existing:
            suggestions.append(candidate)
        counter += 1
    return suggestions
