"""
Timeline Operator - shared lookups, errors and the commit step for edits.

Every edit operation follows the same shape:
1. Look up the targets on the caller's project (raising if stale)
2. Validate the requested change against that snapshot
3. Apply it to a deep copy
4. commit_edit() re-sorts tracks, recomputes the timeline duration and
   wraps the copy in an EditResult

Nothing here mutates the caller's project.
"""

from __future__ import annotations

import logging
from typing import Any

from timeline_core.models.project_models import (
    Clip,
    EditResult,
    EffectRecord,
    Project,
    Recording,
    Track,
)


logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class TimelineError(Exception):
    """Base exception for timeline operations."""
    pass


class InvalidRangeError(TimelineError):
    """Raised when a split/trim point or time range is outside valid bounds."""
    pass


class DegenerateDurationError(TimelineError):
    """Raised when an edit would leave a clip with duration <= 0."""
    def __init__(self, clip_id: str, duration: float):
        self.clip_id = clip_id
        self.duration = duration
        super().__init__(
            f"Edit would give clip {clip_id} a non-positive duration ({duration})"
        )


class ClipNotFoundError(TimelineError):
    """Raised when a clip id does not exist on any track."""
    def __init__(self, clip_id: str):
        self.clip_id = clip_id
        super().__init__(f"Clip not found: {clip_id}")


class EffectNotFoundError(TimelineError):
    """Raised when an effect id does not exist."""
    def __init__(self, effect_id: str):
        self.effect_id = effect_id
        super().__init__(f"Effect not found: {effect_id}")


class TrackNotFoundError(TimelineError):
    """Raised when a track id does not exist."""
    def __init__(self, track_id: str):
        self.track_id = track_id
        super().__init__(f"Track not found: {track_id}")


class RecordingNotFoundError(TimelineError):
    """Raised when a recording id does not exist."""
    def __init__(self, recording_id: str):
        self.recording_id = recording_id
        super().__init__(f"Recording not found: {recording_id}")


class InvalidOperationError(TimelineError):
    """Raised when an operation is invalid."""
    pass


# =============================================================================
# LOOKUPS
# =============================================================================


def find_clip(project: Project, clip_id: str) -> tuple[Track, int, Clip]:
    """Return (track, index, clip) for a clip id, or raise ClipNotFoundError."""
    for track in project.tracks:
        for index, clip in enumerate(track.clips):
            if clip.id == clip_id:
                return track, index, clip
    raise ClipNotFoundError(clip_id)


def get_track(project: Project, track_id: str) -> Track:
    for track in project.tracks:
        if track.id == track_id:
            return track
    raise TrackNotFoundError(track_id)


def get_recording(project: Project, recording_id: str) -> Recording:
    for recording in project.recordings:
        if recording.id == recording_id:
            return recording
    raise RecordingNotFoundError(recording_id)


def find_effect(project: Project, effect_id: str) -> tuple[int, EffectRecord]:
    for index, effect in enumerate(project.effects):
        if effect.id == effect_id:
            return index, effect
    raise EffectNotFoundError(effect_id)


def calculate_duration(project: Project) -> float:
    """Timeline duration: the latest clip end over all tracks (0 if empty)."""
    max_end = 0.0
    for clip in project.all_clips():
        max_end = max(max_end, clip.end_time)
    return max_end


def clips_overlap(a_start: float, a_end: float, b_start: float, b_end: float) -> bool:
    return a_start < b_end and b_start < a_end


def track_overlaps(track: Track) -> list[tuple[str, str]]:
    """Pairs of clip ids on a track whose timeline ranges overlap."""
    ordered = sorted(track.clips, key=lambda c: c.start_time)
    pairs = []
    for i, clip in enumerate(ordered):
        for other in ordered[i + 1:]:
            if other.start_time >= clip.end_time:
                break
            pairs.append((clip.id, other.id))
    return pairs


# =============================================================================
# COMMIT
# =============================================================================


def sort_track(track: Track) -> None:
    """Order clips by start_time; ties keep their current (insertion) order."""
    track.clips = sorted(track.clips, key=lambda c: c.start_time)


def commit_edit(
    project: Project,
    operation_type: str,
    description: str,
    operation_data: dict[str, Any] | None = None,
) -> EditResult:
    """
    Finalize an edited working copy.

    Args:
        project: The working copy (already deep-copied by the caller)
        operation_type: Machine-readable operation name
        description: Human-readable summary for logs/history
        operation_data: Parameters of the operation

    Returns:
        EditResult holding the finalized project
    """
    for track in project.tracks:
        sort_track(track)
    project.duration = calculate_duration(project)

    logger.info("%s: %s", operation_type, description)

    return EditResult(
        project=project,
        operation_type=operation_type,
        description=description,
        operation_data=operation_data or {},
    )
