"""Closest-pattern suggestions for steps that matched nothing."""

from __future__ import annotations

from typing import Iterable

from .models import StepPattern

SIMILARITY_THRESHOLD = 0.5
MAX_SUGGESTIONS = 3


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity in [0, 1], case-insensitive."""
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(a, b) / longest


def rank_patterns(clean_text: str, candidates: Iterable[StepPattern]) -> list[tuple[float, StepPattern]]:
    """Score candidates against the literal pattern text, best first, above the threshold only."""
    scored = [(similarity(clean_text, pattern.pattern), pattern) for pattern in candidates]
    qualifying = [entry for entry in scored if entry[0] > SIMILARITY_THRESHOLD]
    return sorted(qualifying, key=lambda entry: entry[0], reverse=True)


def suggest(clean_text: str, candidates: Iterable[StepPattern]) -> str:
    ranked = rank_patterns(clean_text, candidates)
    if not ranked:
        return (
            f'Step "{clean_text}" is not yet implemented. '
            "Add a step pattern that matches this text."
        )
    descriptions: list[str] = []
    for _, pattern in ranked:
        if pattern.description not in descriptions:
            descriptions.append(pattern.description)
    quoted = ", ".join(f'"{description}"' for description in descriptions[:MAX_SUGGESTIONS])
    return f"Did you mean: {quoted}?"
