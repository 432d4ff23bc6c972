"""Track matching against ordered include/exclude rules.

Matching is case-insensitive substring matching on the stringified field
value. Include patterns are AND-ed within a field and across fields: the
field must exist and contain every listed substring. Exclude patterns reject
a track when the field exists and contains any listed substring; a missing
field never triggers an exclude.
"""

from __future__ import annotations

from collections.abc import Sequence

from defaulter.domain.models import Track
from defaulter.policy.exceptions import RuleConfigurationError
from defaulter.policy.models import (
    DISABLED,
    DISABLED_MATCH,
    ChainSpec,
    FieldPatterns,
    MatchRule,
    TrackMatch,
)


def _field_text(track: Track, name: str) -> str | None:
    """Return the lowercased field value, or None when missing or empty."""
    value = track.field_value(name)
    if value is None:
        return None
    text = str(value).lower()
    return text or None


def _passes_include(track: Track, include: FieldPatterns) -> bool:
    for name, patterns in include.items():
        text = _field_text(track, name)
        if text is None:
            return False
        if not all(p.lower() in text for p in patterns):
            return False
    return True


def _passes_exclude(track: Track, exclude: FieldPatterns) -> bool:
    for name, patterns in exclude.items():
        text = _field_text(track, name)
        if text is None:
            continue
        if any(p.lower() in text for p in patterns):
            return False
    return True


def satisfies(track: Track, rule: MatchRule) -> bool:
    """Check whether a track satisfies both halves of a rule."""
    return _passes_include(track, rule.include) and _passes_exclude(
        track, rule.exclude
    )


def select(tracks: Sequence[Track], chain: ChainSpec) -> TrackMatch | None:
    """Select a track from candidates using a rule chain.

    Rules are tried in chain order; for each rule the candidates are scanned
    in their given order and the first satisfying track wins. The first rule
    yielding a match ends the evaluation.

    Args:
        tracks: Candidate tracks of a single kind.
        chain: Ordered rules, "disabled", or None.

    Returns:
        The match, DISABLED_MATCH (stream id 0) for "disabled", or None.

    Raises:
        RuleConfigurationError: If chain is an unsupported value.
    """
    if chain is None:
        return None
    if chain == DISABLED:
        return DISABLED_MATCH
    if isinstance(chain, str):
        raise RuleConfigurationError(f"unsupported chain value '{chain}'")

    for rule in chain:
        for track in tracks:
            if satisfies(track, rule):
                return TrackMatch(track=track, rule=rule)
    return None
