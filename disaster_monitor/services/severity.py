"""Severity tier classification.

Reports carry a free-form ``level`` label supplied by whoever filed
them. Clients only render three colours, so every label is reduced to
a ``SeverityTier``. The recognised labels live in a mapping table
rather than in code so operators can extend the synonym list through
the ``SEVERITY_TABLE`` config key without a release.
"""
from __future__ import annotations

import enum
from typing import Any, Iterable, Mapping, Optional


class SeverityTier(enum.Enum):
    """Colour tier shown by the client for a report."""
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"


# Checked top to bottom; a label listed under two tiers takes the first.
DEFAULT_SEVERITY_TABLE: dict[SeverityTier, tuple[str, ...]] = {
    SeverityTier.RED: ("特别严重", "critical", "red"),
    SeverityTier.ORANGE: ("严重", "severe", "orange", "较重"),
}


def build_severity_table(
    overrides: Optional[Mapping[str, Iterable[str]]] = None,
) -> dict[SeverityTier, tuple[str, ...]]:
    """Return a classification table, optionally replacing tiers from config.

    ``overrides`` maps a tier value (``"red"``, ``"orange"``) to the
    labels that select it. Tiers absent from ``overrides`` keep their
    default labels. Yellow needs no entry since it is the fallback.
    """
    table = dict(DEFAULT_SEVERITY_TABLE)
    for tier_name, labels in (overrides or {}).items():
        tier = SeverityTier(tier_name)
        if tier is SeverityTier.YELLOW:
            continue
        table[tier] = tuple(labels)
    # keep red ahead of orange regardless of override order
    return {tier: table[tier] for tier in (SeverityTier.RED, SeverityTier.ORANGE) if tier in table}


def classify_severity(
    level: Any,
    table: Optional[Mapping[SeverityTier, Iterable[str]]] = None,
) -> SeverityTier:
    """Map a severity label to its colour tier.

    Matching is exact and case-sensitive. Missing, empty and
    unrecognised labels all fall back to ``SeverityTier.YELLOW``;
    a label is never escalated on a guess.
    """
    if level is None or level == "":
        return SeverityTier.YELLOW
    label = str(level)
    for tier, labels in (table if table is not None else DEFAULT_SEVERITY_TABLE).items():
        if label in labels:
            return tier
    return SeverityTier.YELLOW
