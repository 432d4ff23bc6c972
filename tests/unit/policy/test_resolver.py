"""Unit tests for selection resolution and plan building."""

import logging
from dataclasses import replace

import pytest
from factories import make_part, make_track

from defaulter.domain.enums import TrackKind
from defaulter.policy.exceptions import RuleConfigurationError
from defaulter.policy.models import DISABLED, GroupRules, MatchRule, OnMatch
from defaulter.policy.resolver import plan_updates, resolve, resolve_parts

SUB = TrackKind.SUBTITLE


@pytest.fixture
def part():
    return make_part(
        500,
        make_track(
            1, language="English", extendedDisplayTitle="English (AAC Stereo)",
            selected=True,
        ),
        make_track(2, language="English", extendedDisplayTitle="English (DTS 5.1)"),
        make_track(3, language="Japanese", extendedDisplayTitle="Japanese (AAC)"),
        make_track(
            10, SUB, language="English", extendedDisplayTitle="English (SRT)",
            selected=True,
        ),
        make_track(11, SUB, language="English", extendedDisplayTitle="English Forced",
                   forced=1),
        title="Movie",
    )


class TestResolve:
    """Tests for resolve()."""

    def test_audio_only_plan(self, part) -> None:
        """An audio match produces an audio-only plan."""
        rules = GroupRules(audio=(MatchRule(include={"codec": ("dts",)}),))
        assert resolve(part, rules) is None

        rules = GroupRules(
            audio=(MatchRule(include={"extendedDisplayTitle": ("dts",)}),)
        )
        plan = resolve(part, rules)
        assert plan is not None
        assert plan.audio.id == 2
        assert plan.audio.label == "English (DTS 5.1)"
        assert plan.subtitles is None
        assert plan.from_audio.id == 1
        assert plan.from_audio.label == "English (AAC Stereo)"
        assert plan.query_params() == {"audioStreamID": "2"}

    def test_disabled_subtitles(self, part) -> None:
        """'disabled' subtitles produce stream id 0."""
        plan = resolve(part, GroupRules(subtitles=DISABLED))
        assert plan.subtitles.id == 0
        assert plan.subtitles.is_disabled
        assert plan.query_params() == {"subtitleStreamID": "0"}
        assert plan.from_subtitles.id == 10

    def test_audio_override_disables_subtitles(self, part) -> None:
        """An audio on_match of 'disabled' wins over the subtitle chain."""
        rules = GroupRules(
            audio=(
                MatchRule(
                    include={"language": ("japanese",)},
                    on_match=OnMatch(subtitles=DISABLED),
                ),
            ),
            subtitles=(MatchRule(include={"language": ("english",)}),),
        )
        plan = resolve(part, rules)
        assert plan.audio.id == 3
        assert plan.subtitles.id == 0

    def test_audio_override_replaces_subtitle_chain(self, part) -> None:
        """An audio on_match chain is evaluated instead of the group chain."""
        rules = GroupRules(
            audio=(
                MatchRule(
                    include={"language": ("english",)},
                    on_match=OnMatch(
                        subtitles=(MatchRule(include={"forced": ("1",)}),)
                    ),
                ),
            ),
            subtitles=DISABLED,
        )
        plan = resolve(part, rules)
        assert plan.audio.id == 1
        assert plan.subtitles.id == 11

    def test_subtitle_override_replaces_audio_chain(self, part) -> None:
        """A subtitle on_match audio chain replaces the group's audio chain."""
        rules = GroupRules(
            audio=(MatchRule(include={"language": ("english",)}),),
            subtitles=(
                MatchRule(
                    include={"extendedDisplayTitle": ("srt",)},
                    on_match=OnMatch(
                        audio=(MatchRule(include={"language": ("japanese",)}),)
                    ),
                ),
            ),
        )
        plan = resolve(part, rules)
        assert plan.audio.id == 3
        assert plan.subtitles.id == 10

    def test_override_without_match_clears_selection(self, part) -> None:
        """An override chain that selects nothing leaves that kind unset."""
        rules = GroupRules(
            audio=(
                MatchRule(
                    include={"language": ("english",)},
                    on_match=OnMatch(
                        subtitles=(MatchRule(include={"language": ("klingon",)}),)
                    ),
                ),
            ),
            subtitles=DISABLED,
        )
        plan = resolve(part, rules)
        assert plan.audio.id == 1
        assert plan.subtitles is None

    def test_nested_override_is_rejected(self, part) -> None:
        """Override rules carrying their own on_match are a configuration error."""
        nested = MatchRule(
            include={"language": ("english",)},
            on_match=OnMatch(audio=(MatchRule(),)),
        )
        rules = GroupRules(
            audio=(MatchRule(on_match=OnMatch(subtitles=(nested,))),),
        )
        with pytest.raises(RuleConfigurationError, match="audio.on_match.subtitles"):
            resolve(part, rules)

    def test_disabled_audio_chain_is_ignored(self, part) -> None:
        """Audio cannot be disabled; the audio selection is left untouched."""
        rules = GroupRules(audio=DISABLED, subtitles=DISABLED)
        plan = resolve(part, rules)
        assert plan.audio is None
        assert plan.subtitles.id == 0

    def test_single_track_part_is_skipped(self, caplog) -> None:
        """Parts with fewer than two tracks never produce a plan."""
        single = make_part(7, make_track(1, language="English"), title="Solo")
        with caplog.at_level(logging.INFO):
            assert resolve(single, GroupRules(subtitles=DISABLED)) is None
        assert "has only one stream" in caplog.text

    def test_video_stream_counts_towards_minimum(self) -> None:
        """One video plus one audio stream is enough to disable subtitles."""
        single = make_part(7, make_track(1, language="English"), title="Solo")
        with_video = replace(single, stream_count=2)
        plan = resolve(with_video, GroupRules(subtitles=DISABLED))
        assert plan.subtitles.id == 0
        assert plan.audio is None

    def test_no_match_returns_none(self, part) -> None:
        """Nothing matched means no plan."""
        rules = GroupRules(audio=(MatchRule(include={"language": ("german",)}),))
        assert resolve(part, rules) is None

    def test_empty_rules_return_none(self, part) -> None:
        """A group without chains never produces a plan."""
        assert resolve(part, GroupRules()) is None

    def test_plan_carries_part_identity(self, part) -> None:
        """Plans keep the part id, rating key and title."""
        plan = resolve(part, GroupRules(subtitles=DISABLED))
        assert (plan.part_id, plan.rating_key, plan.title) == (500, 1, "Movie")


class TestResolveParts:
    """Tests for resolve_parts() and plan_updates()."""

    def test_evaluation_error_drops_only_that_part(self, part, caplog) -> None:
        """A failing part is logged and skipped; other parts still resolve."""
        nested = MatchRule(on_match=OnMatch(audio=(MatchRule(),)))
        bad_rules = GroupRules(
            audio=(MatchRule(on_match=OnMatch(subtitles=(nested,))),),
        )
        with caplog.at_level(logging.ERROR):
            assert resolve_parts([part], bad_rules) == []
        assert "Error while evaluating streams for Part ID 500" in caplog.text

    def test_keeps_part_order(self, part) -> None:
        """Plans are returned in part order."""
        other = make_part(
            600,
            make_track(1, language="English"),
            make_track(2, SUB, language="English"),
        )
        plans = resolve_parts([other, part], GroupRules(subtitles=DISABLED))
        assert [p.part_id for p in plans] == [600, 500]

    def test_plan_updates_omits_groups_without_plans(self, part) -> None:
        """Groups keep configuration order and empty groups are dropped."""
        plan_set = plan_updates(
            [part],
            {
                "zeta": GroupRules(subtitles=DISABLED),
                "nothing": GroupRules(),
                "alpha": GroupRules(
                    audio=(MatchRule(include={"language": ("japanese",)}),)
                ),
            },
        )
        assert list(plan_set) == ["zeta", "alpha"]
        assert plan_set["alpha"][0].audio.id == 3
