"""Rule models for stream selection.

A group's rules for one library are two optional rule chains, one for audio
and one for subtitles. A chain is an ordered tuple of MatchRule evaluated
first-to-last; the subtitle chain may instead be the literal "disabled".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, Union

from defaulter.domain.models import Track

DISABLED: Literal["disabled"] = "disabled"
"""Chain value that selects "no subtitles" unconditionally."""

# Field name -> substrings. A single string in config is stored as a 1-tuple.
FieldPatterns = Mapping[str, tuple[str, ...]]


@dataclass(frozen=True)
class OnMatch:
    """Cross-track override carried by a rule.

    When an audio rule matches, ``subtitles`` replaces the group's subtitle
    chain for that part; when a subtitle rule matches, ``audio`` replaces
    the group's audio chain.
    """

    subtitles: ChainSpec = None
    audio: ChainSpec = None

    @property
    def is_empty(self) -> bool:
        return self.subtitles is None and self.audio is None


@dataclass(frozen=True)
class MatchRule:
    """One include/exclude rule of a chain."""

    include: FieldPatterns = field(default_factory=dict)
    exclude: FieldPatterns = field(default_factory=dict)
    on_match: OnMatch = field(default_factory=OnMatch)


RuleChain = tuple[MatchRule, ...]

ChainSpec = Union[RuleChain, Literal["disabled"], None]


@dataclass(frozen=True)
class GroupRules:
    """Audio and subtitle chains configured for one group of one library."""

    audio: ChainSpec = None
    subtitles: ChainSpec = None


@dataclass(frozen=True)
class TrackMatch:
    """Result of evaluating a chain against candidate tracks.

    ``track`` is None only for the "disabled" sentinel, whose stream id is 0.
    ``rule`` is the rule that selected the track.
    """

    track: Track | None = None
    rule: MatchRule | None = None

    @property
    def stream_id(self) -> int:
        return self.track.id if self.track is not None else 0

    @property
    def is_disabled(self) -> bool:
        return self.track is None

    @property
    def on_match(self) -> OnMatch:
        if self.rule is None:
            return OnMatch()
        return self.rule.on_match


DISABLED_MATCH = TrackMatch()
