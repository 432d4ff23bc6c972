"""Rule loading and validation.

This module provides Pydantic models for the ``filters`` section of the
configuration file and converts validated data to the frozen rule models
used by the matcher.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from defaulter.policy.models import (
    DISABLED,
    ChainSpec,
    GroupRules,
    MatchRule,
    OnMatch,
)

PatternValue = Union[str, list[str]]


def _normalize_patterns(value: dict[str, PatternValue]) -> dict[str, tuple[str, ...]]:
    return {
        name: (patterns,) if isinstance(patterns, str) else tuple(patterns)
        for name, patterns in value.items()
    }


class OverrideRuleModel(BaseModel):
    """Pydantic model for a rule inside an on_match override chain."""

    model_config = ConfigDict(extra="forbid")

    include: dict[str, PatternValue] = Field(default_factory=dict)
    exclude: dict[str, PatternValue] = Field(default_factory=dict)

    def to_rule(self) -> MatchRule:
        return MatchRule(
            include=_normalize_patterns(self.include),
            exclude=_normalize_patterns(self.exclude),
        )


OverrideChain = Union[Literal["disabled"], list[OverrideRuleModel]]


class AudioOnMatchModel(BaseModel):
    """Overrides applied when an audio rule matches."""

    model_config = ConfigDict(extra="forbid")

    subtitles: OverrideChain | None = None


class SubtitleOnMatchModel(BaseModel):
    """Overrides applied when a subtitle rule matches."""

    model_config = ConfigDict(extra="forbid")

    audio: OverrideChain | None = None


class AudioRuleModel(OverrideRuleModel):
    """Pydantic model for an audio rule."""

    on_match: AudioOnMatchModel | None = None

    def to_rule(self) -> MatchRule:
        on_match = OnMatch()
        if self.on_match is not None:
            on_match = OnMatch(subtitles=_convert_chain(self.on_match.subtitles))
        return MatchRule(
            include=_normalize_patterns(self.include),
            exclude=_normalize_patterns(self.exclude),
            on_match=on_match,
        )


class SubtitleRuleModel(OverrideRuleModel):
    """Pydantic model for a subtitle rule."""

    on_match: SubtitleOnMatchModel | None = None

    def to_rule(self) -> MatchRule:
        on_match = OnMatch()
        if self.on_match is not None:
            on_match = OnMatch(audio=_convert_chain(self.on_match.audio))
        return MatchRule(
            include=_normalize_patterns(self.include),
            exclude=_normalize_patterns(self.exclude),
            on_match=on_match,
        )


class GroupFiltersModel(BaseModel):
    """Pydantic model for one group's rules within a library."""

    model_config = ConfigDict(extra="forbid")

    audio: list[AudioRuleModel] | None = None
    subtitles: Union[Literal["disabled"], list[SubtitleRuleModel], None] = None

    @field_validator("audio", "subtitles")
    @classmethod
    def validate_chain_not_empty(cls, v: Any) -> Any:
        """Treat an empty rule list the same as an absent chain."""
        if isinstance(v, list) and not v:
            return None
        return v

    def to_group_rules(self) -> GroupRules:
        return GroupRules(
            audio=_convert_chain(self.audio),
            subtitles=_convert_chain(self.subtitles),
        )


def _convert_chain(chain: Any) -> ChainSpec:
    if chain is None:
        return None
    if chain == DISABLED:
        return DISABLED
    return tuple(rule.to_rule() for rule in chain)


def build_library_rules(
    filters: dict[str, dict[str, GroupFiltersModel | None]],
) -> dict[str, dict[str, GroupRules]]:
    """Convert validated filters to rules keyed by library then group.

    A group listed without any rules gets an empty GroupRules, which never
    produces a plan but still shows up in the startup digest.
    """
    return {
        library: {
            group: model.to_group_rules() if model is not None else GroupRules()
            for group, model in (groups or {}).items()
        }
        for library, groups in filters.items()
    }
