"""Condition labels shared by inventory rows and installed parts.

Two vocabularies meet here. Inventory is partitioned by the configured labels
(``Working``, ``Used``, ``Defective``, ``Unknown`` by default). Technicians
removing a part describe it with a looser set of words (``working``,
``faulty``, ...), which the removal policy maps back onto inventory labels.
"""

from __future__ import annotations

from typing import Sequence

from .errors import InvalidRequest

__all__ = [
    "REMOVAL_CONDITION_POLICY",
    "DEFAULT_REMOVAL_CONDITION",
    "normalize_condition",
    "resolve_install_condition",
    "map_removal_condition",
    "condition_rank",
]


REMOVAL_CONDITION_POLICY: dict[str, str] = {
    "working": "Working",
    "faulty": "Used",
    "defective": "Defective",
    "unknown": "Working",
}
DEFAULT_REMOVAL_CONDITION = "Working"


def _clean(raw: str | None) -> str:
    return " ".join((raw or "").split())


def normalize_condition(raw: str | None, vocabulary: Sequence[str]) -> str | None:
    """Return the vocabulary label matching ``raw`` case-insensitively, else ``None``."""

    cleaned = _clean(raw).lower()
    if not cleaned:
        return None
    for label in vocabulary:
        if label.lower() == cleaned:
            return label
    return None


def resolve_install_condition(raw: str | None, vocabulary: Sequence[str], default: str) -> str:
    """Condition requested for a new install; blank means ``default``."""

    if not _clean(raw):
        return normalize_condition(default, vocabulary) or default
    label = normalize_condition(raw, vocabulary)
    if label is None:
        raise InvalidRequest(
            f"Unknown condition: {raw}",
            details={"allowed": list(vocabulary)},
        )
    return label


def map_removal_condition(raw: str | None) -> str:
    """Map a removal description to the inventory condition it is returned under.

    Unrecognised or empty input falls back to ``Working``.
    """

    return REMOVAL_CONDITION_POLICY.get(_clean(raw).lower(), DEFAULT_REMOVAL_CONDITION)


def condition_rank(label: str | None, vocabulary: Sequence[str]) -> int:
    """Position of ``label`` in ``vocabulary``; unknown labels sort last."""

    lowered = [item.lower() for item in vocabulary]
    try:
        return lowered.index((label or "").lower())
    except ValueError:
        return len(lowered)
