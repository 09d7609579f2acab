"""
Project Operator - project lifecycle.

Creating projects, importing recordings (which seeds clips and zoom effects)
and loading/dumping the persisted project shape. Loading runs any pending
schema migrations before the project is handed to callers.
"""

from __future__ import annotations

import json
import logging
from copy import deepcopy
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from timeline_core.models.detector_models import ZoomDetectorConfig
from timeline_core.models.project_models import (
    Clip,
    EditResult,
    Project,
    Recording,
    Track,
    TrackKind,
)
from timeline_core.operators.effect_registry import ensure_global_effects_in_place
from timeline_core.operators.migrations import MigrationRunner, migration_runner
from timeline_core.operators.time_mapper import source_to_timeline
from timeline_core.operators.timeline_operator import (
    DegenerateDurationError,
    InvalidOperationError,
    calculate_duration,
    commit_edit,
    get_track,
    sort_track,
    track_overlaps,
)
from timeline_core.operators.zoom_detector import ZoomDetector


logger = logging.getLogger(__name__)


def create_project(name: str = "Untitled", project_id: str | None = None) -> Project:
    """Empty project with a single video track."""
    return Project(
        id=project_id or f"project-{uuid4()}",
        name=name,
        tracks=[Track(id=f"track-{uuid4()}", name="Video 1", kind=TrackKind.VIDEO)],
    )


def add_recording(
    project: Project,
    recording: Recording,
    detector: ZoomDetector | None = None,
    track_id: str | None = None,
    detect_zooms: bool = True,
) -> EditResult:
    """
    Import a recording into a project.

    Registers the recording, places a whole-recording clip at the end of the
    target track (default: first video track), seeds zoom effects from the
    recording's pointer events mapped through that clip, and makes sure the
    global background/cursor effects exist.

    Args:
        project: Current project
        recording: Recording to import
        detector: Zoom detector (default: one configured from ZOOM_* env vars)
        track_id: Track to place the clip on
        detect_zooms: Set False to import without auto zoom effects

    Returns:
        EditResult with the new project
    """
    if any(r.id == recording.id for r in project.recordings):
        raise InvalidOperationError(f"Recording already in project: {recording.id}")
    if recording.duration_ms <= 0:
        raise DegenerateDurationError(recording.id, recording.duration_ms)
    if track_id is not None:
        get_track(project, track_id)

    working = deepcopy(project)
    working.recordings.append(deepcopy(recording))

    if track_id is not None:
        track = get_track(working, track_id)
    elif working.video_tracks:
        track = working.video_tracks[0]
    else:
        track = Track(id=f"track-{uuid4()}", name="Video 1", kind=TrackKind.VIDEO)
        working.tracks.append(track)

    sort_track(track)
    start = max((c.end_time for c in track.clips), default=0.0)
    clip = Clip(
        id=f"clip-{uuid4()}",
        recording_id=recording.id,
        start_time=start,
        duration=recording.duration_ms,
        source_in=0.0,
        source_out=recording.duration_ms,
    )
    track.clips.append(clip)

    zoom_ids: list[str] = []
    if detect_zooms:
        detector = detector or ZoomDetector(ZoomDetectorConfig.from_env())
        existing_ids = {e.id for e in working.effects}
        for effect in detector.detect_for_recording(recording):
            if effect.id in existing_ids:
                logger.warning("Skipping detected zoom %s: id already in use", effect.id)
                continue
            working.effects.append(
                effect.model_copy(
                    update={
                        "start_time": source_to_timeline(effect.start_time, clip),
                        "end_time": source_to_timeline(effect.end_time, clip),
                    }
                )
            )
            zoom_ids.append(effect.id)

    global_ids = ensure_global_effects_in_place(working)

    return commit_edit(
        working,
        operation_type="add_recording",
        description=(
            f"Added recording '{recording.id}' ({recording.duration_ms:.0f}ms) "
            f"as clip '{clip.id}' with {len(zoom_ids)} zoom effect(s)"
        ),
        operation_data={
            "recording_id": recording.id,
            "clip_id": clip.id,
            "track_id": track.id,
            "zoom_effect_ids": zoom_ids,
            "global_effect_ids": global_ids,
        },
    )


# =============================================================================
# PERSISTENCE
# =============================================================================


def load_project(
    data: dict[str, Any] | str,
    runner: MigrationRunner | None = None,
) -> Project:
    """
    Parse a persisted project (dict or JSON text) and migrate it to the latest schema.

    A missing schemaVersion means version 0.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidOperationError(f"Project file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidOperationError("Project file must be a JSON object")

    data = dict(data)
    if "schemaVersion" not in data and "schema_version" not in data:
        data["schemaVersion"] = 0

    try:
        project = Project.model_validate(data)
    except ValidationError as e:
        raise InvalidOperationError(f"Invalid project file: {e}") from e

    runner = runner or migration_runner
    if runner.needs_migration(project):
        project = runner.migrate_project(project)

    for track in project.tracks:
        sort_track(track)
        overlaps = track_overlaps(track)
        if overlaps:
            logger.warning(
                "Project %s track %s has overlapping clips: %s", project.id, track.id, overlaps
            )
    project.duration = calculate_duration(project)
    return project


def dump_project(project: Project) -> dict[str, Any]:
    """Persisted (camelCase) dict form. Global effects keep float('inf') ends."""
    return project.model_dump(by_alias=True, mode="python")


def dump_project_json(project: Project, indent: int | None = 2) -> str:
    """Persisted JSON text; infinite effect ends are written as Infinity."""
    return project.model_dump_json(by_alias=True, indent=indent)
