"""
Non-destructive timeline editing core for screen recordings.

Keeps a project of recordings, clips on tracks and a flat list of
timeline-space effects consistent across edits, and seeds zoom effects from
pointer telemetry.

Usage:
    from timeline_core import create_project, add_recording, apply_edit, zoom_state_at

    result = add_recording(create_project("Demo"), recording)
    project = result.project

    clip_id = project.tracks[0].clips[0].id
    project = apply_edit(
        project, {"operation": "split_clip", "clip_id": clip_id, "split_time": 4000}
    ).project

    state = zoom_state_at(project, 2500)
    print(state.x, state.y, state.scale)
"""

from .models.detector_models import ZoomDetectorConfig
from .models.project_models import (
    CURRENT_SCHEMA_VERSION,
    BackgroundEffect,
    Clip,
    ClipPatch,
    CursorEffect,
    EditResult,
    EffectRecord,
    EffectType,
    KeystrokeEffect,
    PointerEvent,
    Project,
    Recording,
    Track,
    ZoomEffect,
    ZoomEffectData,
    ZoomState,
)
from .operators.edit_history import EditHistory
from .operators.effect_registry import (
    add_effect,
    effects_for_clip,
    effects_in_range,
    ensure_global_effects,
    query_effects,
    remove_effect,
    update_effect,
    zoom_state_at,
)
from .operators.migrations import Migration, MigrationRunner, migration_runner
from .operators.project_operator import (
    add_recording,
    create_project,
    dump_project,
    dump_project_json,
    load_project,
)
from .operators.time_mapper import source_to_timeline, timeline_to_source
from .operators.timeline_editor import (
    add_clip,
    apply_edit,
    change_playback_rate,
    duplicate_clip,
    move_clip,
    remove_clip,
    split_clip,
    trim_end,
    trim_start,
    update_clip,
)
from .operators.timeline_operator import (
    ClipNotFoundError,
    DegenerateDurationError,
    EffectNotFoundError,
    InvalidOperationError,
    InvalidRangeError,
    RecordingNotFoundError,
    TimelineError,
    TrackNotFoundError,
)
from .operators.zoom_detector import ZoomDetector

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "BackgroundEffect",
    "Clip",
    "ClipPatch",
    "CursorEffect",
    "EditHistory",
    "EditResult",
    "EffectRecord",
    "EffectType",
    "KeystrokeEffect",
    "PointerEvent",
    "Project",
    "Recording",
    "Track",
    "ZoomEffect",
    "ZoomEffectData",
    "ZoomState",
    "ZoomDetectorConfig",
    "ZoomDetector",
    "Migration",
    "MigrationRunner",
    "migration_runner",
    "source_to_timeline",
    "timeline_to_source",
    "add_clip",
    "apply_edit",
    "change_playback_rate",
    "duplicate_clip",
    "move_clip",
    "remove_clip",
    "split_clip",
    "trim_end",
    "trim_start",
    "update_clip",
    "add_effect",
    "effects_for_clip",
    "effects_in_range",
    "ensure_global_effects",
    "query_effects",
    "remove_effect",
    "update_effect",
    "zoom_state_at",
    "add_recording",
    "create_project",
    "dump_project",
    "dump_project_json",
    "load_project",
    "ClipNotFoundError",
    "DegenerateDurationError",
    "EffectNotFoundError",
    "InvalidOperationError",
    "InvalidRangeError",
    "RecordingNotFoundError",
    "TimelineError",
    "TrackNotFoundError",
]
