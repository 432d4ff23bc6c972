"""Selection resolution for media parts.

Combines the track matcher for audio and subtitles of one part, applies the
cross-track ``on_match`` overrides, and produces an UpdatePlan when there is
something to push.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from defaulter.domain.models import Part, StreamSelection, UpdatePlan
from defaulter.policy.exceptions import RuleConfigurationError
from defaulter.policy.matcher import select
from defaulter.policy.models import DISABLED, ChainSpec, GroupRules, TrackMatch

logger = logging.getLogger(__name__)


def _ensure_single_hop(chain: ChainSpec, path: str) -> None:
    """Reject override chains whose rules carry further overrides."""
    if chain is None or chain == DISABLED:
        return
    for idx, rule in enumerate(chain):
        if not rule.on_match.is_empty:
            raise RuleConfigurationError(
                "override rules cannot carry on_match", path=f"{path}[{idx}]"
            )


def _match_audio(part: Part, chain: ChainSpec) -> TrackMatch | None:
    if chain == DISABLED:
        # Plex has no "no audio" selection; leave the audio default untouched.
        logger.debug("Part ID %s: audio chain is 'disabled', ignoring", part.part_id)
        return None
    return select(part.audio_tracks, chain)


def _match_subtitles(part: Part, chain: ChainSpec) -> TrackMatch | None:
    return select(part.subtitle_tracks, chain)


def resolve(part: Part, rules: GroupRules) -> UpdatePlan | None:
    """Resolve the default streams one group should get for a part.

    Args:
        part: Part snapshot with its audio and subtitle tracks. Video
            streams count towards the two-stream minimum.
        rules: The group's audio and subtitle chains.

    Returns:
        UpdatePlan with at least one selection, or None when the part has
        fewer than two tracks or nothing matched.

    Raises:
        RuleConfigurationError: If an override chain nests another override.
    """
    if part.total_streams < 2:
        logger.info(
            "Part ID %s ('%s') has only one stream. Skipping.",
            part.part_id,
            part.title,
        )
        return None

    from_audio = None
    if (current := part.selected_audio) is not None:
        from_audio = StreamSelection(current.id, current.current_label)
    from_subtitles = None
    if (current := part.selected_subtitle) is not None:
        from_subtitles = StreamSelection(current.id, current.current_label)

    audio = _match_audio(part, rules.audio)
    subtitles = _match_subtitles(part, rules.subtitles)

    # One hop per kind: override chains are never re-triggered.
    if audio is not None and audio.on_match.subtitles is not None:
        override = audio.on_match.subtitles
        _ensure_single_hop(override, "audio.on_match.subtitles")
        subtitles = _match_subtitles(part, override)

    if subtitles is not None and subtitles.on_match.audio is not None:
        override = subtitles.on_match.audio
        _ensure_single_hop(override, "subtitles.on_match.audio")
        audio = _match_audio(part, override)

    audio_selection = None
    if audio is not None and audio.track is not None and audio.stream_id:
        audio_selection = StreamSelection(audio.stream_id, audio.track.label or "")
        logger.info(
            "Part ID %s ('%s'): match found for audio stream %s",
            part.part_id,
            part.title,
            audio.track.extended_display_title,
        )
    else:
        logger.debug(
            "Part ID %s ('%s'): no match found for audio streams",
            part.part_id,
            part.title,
        )

    subtitle_selection = None
    if subtitles is not None:
        if subtitles.is_disabled:
            subtitle_selection = StreamSelection(0, "Disabled")
            logger.info("Part ID %s ('%s'): subtitles disabled", part.part_id, part.title)
        else:
            track = subtitles.track
            subtitle_selection = StreamSelection(track.id, track.label or "")
            logger.info(
                "Part ID %s ('%s'): match found for subtitle stream %s",
                part.part_id,
                part.title,
                track.extended_display_title,
            )
    else:
        logger.debug(
            "Part ID %s ('%s'): no match found for subtitle streams",
            part.part_id,
            part.title,
        )

    plan = UpdatePlan(
        part_id=part.part_id,
        rating_key=part.rating_key,
        title=part.title,
        audio=audio_selection,
        subtitles=subtitle_selection,
        from_audio=from_audio,
        from_subtitles=from_subtitles,
    )
    return plan if plan.has_changes else None


def resolve_parts(parts: Iterable[Part], rules: GroupRules) -> list[UpdatePlan]:
    """Resolve plans for several parts with the same group rules.

    Evaluation errors are logged and only drop the plan of the offending part.

    Args:
        parts: Parts in metadata-fetch order.
        rules: The group's rules.

    Returns:
        Plans in the same order as the parts that produced one.
    """
    plans: list[UpdatePlan] = []
    for part in parts:
        try:
            plan = resolve(part, rules)
        except Exception as e:
            logger.error(
                "Error while evaluating streams for Part ID %s: %s. Skipping",
                part.part_id,
                e,
            )
            continue
        if plan is not None:
            plans.append(plan)
    return plans


def plan_updates(
    parts: Sequence[Part], rules_by_group: Mapping[str, GroupRules]
) -> dict[str, list[UpdatePlan]]:
    """Build the per-group plan set for a batch of parts.

    Groups keep configuration order; groups without any plan are omitted.
    """
    plan_set: dict[str, list[UpdatePlan]] = {}
    for group, rules in rules_by_group.items():
        plans = resolve_parts(parts, rules)
        if plans:
            plan_set[group] = plans
    return plan_set
