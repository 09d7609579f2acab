"""
Effect Registry - the flat, timeline-space effect list.

Effects are independent of clips: they are found by half-open interval
overlap against whatever range the caller asks about. There is no check that
an effect lines up with any clip; orphaned effects are legal and inert.
"""

from __future__ import annotations

import logging
import math
from copy import deepcopy
from typing import Any

from pydantic import TypeAdapter, ValidationError

from timeline_core.models.project_models import (
    BackgroundEffect,
    CursorEffect,
    EditResult,
    EffectRecord,
    EffectType,
    Project,
    ZoomEffect,
    ZoomState,
)
from timeline_core.operators.timeline_operator import (
    InvalidOperationError,
    InvalidRangeError,
    commit_edit,
    find_clip,
    find_effect,
)
from timeline_core.utils.easing import interpolate


logger = logging.getLogger(__name__)

_effect_adapter: TypeAdapter[EffectRecord] = TypeAdapter(EffectRecord)

GLOBAL_BACKGROUND_ID = "background-global"
GLOBAL_CURSOR_ID = "cursor-global"


# =============================================================================
# QUERIES
# =============================================================================


def query_effects(
    project: Project,
    start: float,
    end: float,
    effect_type: EffectType | str | None = None,
    enabled_only: bool = False,
) -> list[EffectRecord]:
    """
    Effects whose [start_time, end_time) overlaps [start, end).

    Args:
        project: Project to search
        start: Range start (timeline ms)
        end: Range end, exclusive (timeline ms)
        effect_type: Only return effects of this type
        enabled_only: Skip disabled effects

    Returns:
        Matching effects in registry order
    """
    if effect_type is not None:
        try:
            effect_type = EffectType(effect_type).value
        except ValueError as e:
            raise InvalidOperationError(f"Unknown effect type: {effect_type}") from e
    return [
        effect
        for effect in project.effects
        if effect.start_time < end
        and effect.end_time > start
        and (effect_type is None or effect.type == effect_type)
        and (not enabled_only or effect.enabled)
    ]


def effects_in_range(project: Project, start: float, end: float) -> list[EffectRecord]:
    return query_effects(project, start, end)


def effects_for_clip(project: Project, clip_id: str) -> list[EffectRecord]:
    """Effects overlapping the clip's current timeline window."""
    _, _, clip = find_clip(project, clip_id)
    return query_effects(project, clip.start_time, clip.end_time)


def zoom_state_at(project: Project, timestamp_ms: float) -> ZoomState:
    """
    Camera transform at a timeline position.

    The enabled zoom effect covering the timestamp with the latest start
    wins. Scale and focus ease in from (centre, 1x) over intro_ms, hold, and
    ease back out over outro_ms. Returns the identity state when no zoom
    covers the timestamp.
    """
    covering = [
        effect
        for effect in project.effects
        if effect.type == EffectType.ZOOM.value
        and effect.enabled
        and effect.start_time <= timestamp_ms < effect.end_time
    ]
    if not covering:
        return ZoomState()

    # max() keeps the first of equal starts
    effect = max(covering, key=lambda e: e.start_time)
    data = effect.data

    duration = effect.end_time - effect.start_time
    intro = data.intro_ms
    outro = data.outro_ms
    if intro + outro > duration:
        ratio = duration / (intro + outro)
        intro *= ratio
        outro *= ratio

    elapsed = timestamp_ms - effect.start_time
    remaining = effect.end_time - timestamp_ms

    if intro > 0 and elapsed < intro:
        progress = elapsed / intro
    elif outro > 0 and remaining < outro:
        progress = remaining / outro
    else:
        progress = 1.0

    return ZoomState(
        x=interpolate(0.5, data.target_x, progress),
        y=interpolate(0.5, data.target_y, progress),
        scale=interpolate(1.0, data.scale, progress),
    )


# =============================================================================
# MUTATIONS
# =============================================================================


def _normalize_keys(model_cls: type, patch: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase aliases in a patch onto field names; unknown keys are rejected."""
    by_alias = {
        (info.alias or name): name for name, info in model_cls.model_fields.items()
    }
    normalized = {by_alias.get(key, key): value for key, value in patch.items()}
    unknown = sorted(key for key in normalized if key not in model_cls.model_fields)
    if unknown:
        raise InvalidOperationError(
            f"Unknown field(s) for {model_cls.__name__}: {', '.join(unknown)}"
        )
    return normalized


def add_effect(project: Project, effect: EffectRecord | dict[str, Any]) -> EditResult:
    if isinstance(effect, dict):
        try:
            effect = _effect_adapter.validate_python(effect)
        except ValidationError as e:
            raise InvalidOperationError(f"Invalid effect record: {e}") from e

    if any(existing.id == effect.id for existing in project.effects):
        raise InvalidOperationError(f"Effect id already exists: {effect.id}")

    working = deepcopy(project)
    working.effects.append(deepcopy(effect))

    return commit_edit(
        working,
        operation_type="add_effect",
        description=(
            f"Added {effect.type} effect '{effect.id}' "
            f"[{effect.start_time:.0f}, {effect.end_time:.0f})"
        ),
        operation_data={"effect": effect.model_dump(by_alias=True)},
    )


def remove_effect(project: Project, effect_id: str) -> EditResult:
    index, effect = find_effect(project, effect_id)

    working = deepcopy(project)
    working.effects.pop(index)

    return commit_edit(
        working,
        operation_type="remove_effect",
        description=f"Removed {effect.type} effect '{effect_id}'",
        operation_data={"effect_id": effect_id},
    )


def update_effect(project: Project, effect_id: str, patch: dict[str, Any]) -> EditResult:
    """
    Apply a partial update to one effect.

    `data` in the patch is merged into the existing payload rather than
    replacing it. Changing an effect's type is not supported.
    """
    index, effect = find_effect(project, effect_id)
    patch = _normalize_keys(type(effect), patch)

    if "id" in patch and patch["id"] != effect_id:
        raise InvalidOperationError("Effect ids cannot be changed")
    if "type" in patch and patch["type"] != effect.type:
        raise InvalidOperationError(
            f"Cannot change effect '{effect_id}' from {effect.type} to {patch['type']}"
        )

    merged = effect.model_dump()
    data_patch = patch.pop("data", None)
    merged.update(patch)
    if data_patch:
        merged["data"].update(_normalize_keys(type(effect.data), data_patch))

    start = merged["start_time"]
    end = merged["end_time"]
    if end <= start:
        raise InvalidRangeError(
            f"Effect '{effect_id}' update gives end_time {end} <= start_time {start}"
        )

    try:
        updated = _effect_adapter.validate_python(merged)
    except ValidationError as e:
        raise InvalidOperationError(f"Invalid update for effect '{effect_id}': {e}") from e

    working = deepcopy(project)
    working.effects[index] = updated
    changed = sorted(patch) + (["data"] if data_patch else [])

    return commit_edit(
        working,
        operation_type="update_effect",
        description=f"Updated {effect.type} effect '{effect_id}' ({', '.join(changed)})",
        operation_data={"effect_id": effect_id, "patch": patch, "data": data_patch},
    )


def ensure_global_effects(project: Project) -> EditResult:
    """Add the default full-timeline background and cursor effects if missing."""
    working = deepcopy(project)
    added = ensure_global_effects_in_place(working)
    return commit_edit(
        working,
        operation_type="ensure_global_effects",
        description=f"Ensured global effects ({len(added)} added)",
        operation_data={"added": added},
    )


def ensure_global_effects_in_place(project: Project) -> list[str]:
    """Working-copy variant used by other operations; returns the added ids."""
    added: list[str] = []
    existing_ids = {effect.id for effect in project.effects}

    if not any(e.type == EffectType.BACKGROUND.value for e in project.effects):
        effect_id = _unique_id(GLOBAL_BACKGROUND_ID, existing_ids)
        project.effects.append(
            BackgroundEffect(id=effect_id, start_time=0, end_time=math.inf)
        )
        added.append(effect_id)

    if not any(e.type == EffectType.CURSOR.value for e in project.effects):
        effect_id = _unique_id(GLOBAL_CURSOR_ID, existing_ids)
        project.effects.append(
            CursorEffect(id=effect_id, start_time=0, end_time=math.inf)
        )
        added.append(effect_id)

    return added


def _unique_id(base: str, taken: set[str]) -> str:
    candidate = base
    n = 1
    while candidate in taken:
        n += 1
        candidate = f"{base}-{n}"
    taken.add(candidate)
    return candidate


# =============================================================================
# WINDOW SHIFTING (used by edit operations)
# =============================================================================


def is_shift_exempt(effect: EffectRecord) -> bool:
    """Background and timeline-spanning effects never follow clip moves."""
    return effect.type == EffectType.BACKGROUND.value or effect.is_global


def shift_effects_for_windows(
    effects: list[EffectRecord],
    windows: list[tuple[float, float, float]],
) -> list[str]:
    """
    Shift effects fully contained in a moved clip's old window.

    Args:
        effects: The working copy's effect list (mutated in place)
        windows: (old_start, old_end, delta) per moved clip, taken from the
            pre-edit snapshot

    Returns:
        Ids of the effects that moved
    """
    moved: list[str] = []
    active = [w for w in windows if w[2] != 0]
    if not active:
        return moved

    for effect in effects:
        if is_shift_exempt(effect):
            continue
        for old_start, old_end, delta in active:
            if effect.start_time >= old_start and effect.end_time <= old_end:
                effect.start_time += delta
                effect.end_time += delta
                moved.append(effect.id)
                break

    if moved:
        logger.debug("Shifted %d effect(s) with their clips: %s", len(moved), moved)
    return moved


def zoom_effects(project: Project) -> list[ZoomEffect]:
    return [e for e in project.effects if isinstance(e, ZoomEffect)]
