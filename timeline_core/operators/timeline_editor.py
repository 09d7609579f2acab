"""
Timeline Editor - clip edit operations.

Each operation validates against the caller's project, applies the change to
a deep copy and returns an EditResult. On any error the caller's project is
untouched. Clips keep the no-overlap invariant per track; reflow and push
cascades are explicit loops over the track's clip indices, and effects fully
inside a shifted clip's old window move with it.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Callable
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from timeline_core.models.project_models import (
    SOURCE_ABS_TOLERANCE,
    AddClipRequest,
    ChangePlaybackRateRequest,
    Clip,
    ClipPatch,
    DuplicateClipRequest,
    EditRequest,
    EditResult,
    MoveClipRequest,
    Project,
    RemoveClipRequest,
    SplitClipRequest,
    Track,
    TrimEndRequest,
    TrimStartRequest,
    UpdateClipRequest,
)
from timeline_core.operators.effect_registry import shift_effects_for_windows
from timeline_core.operators.time_mapper import effective_duration, timeline_to_source
from timeline_core.operators.timeline_operator import (
    DegenerateDurationError,
    InvalidOperationError,
    InvalidRangeError,
    RecordingNotFoundError,
    clips_overlap,
    commit_edit,
    find_clip,
    get_recording,
    get_track,
    sort_track,
)


logger = logging.getLogger(__name__)

# (old_start, old_end, delta) for every clip an operation moved
ShiftWindows = list[tuple[float, float, float]]

_edit_request_adapter: TypeAdapter[EditRequest] = TypeAdapter(EditRequest)


# =============================================================================
# HELPERS
# =============================================================================


def _new_clip_id() -> str:
    return f"clip-{uuid4()}"


def _working_copy(project: Project, clip_id: str) -> tuple[Project, Track, int, Clip]:
    """Deep copy with tracks in start order, plus the located clip in that copy."""
    working = deepcopy(project)
    for track in working.tracks:
        sort_track(track)
    track, index, clip = find_clip(working, clip_id)
    return working, track, index, clip


def _rebuild_clip(clip: Clip, **changes: Any) -> Clip:
    """Validated copy of a clip with some fields replaced."""
    values = clip.model_dump()
    values.update(changes)
    try:
        return Clip.model_validate(values)
    except ValidationError as e:
        raise InvalidRangeError(f"Invalid result for clip {clip.id}: {e}") from e


def _recording_limit(project: Project, recording_id: str) -> float | None:
    """Duration of the clip's recording, or None for clips whose recording is gone."""
    try:
        return get_recording(project, recording_id).duration_ms
    except RecordingNotFoundError:
        return None


def _check_source_range(
    project: Project,
    clip_id: str,
    recording_id: str,
    source_in: float,
    source_out: float,
) -> None:
    if source_in < -SOURCE_ABS_TOLERANCE:
        raise InvalidRangeError(
            f"Clip {clip_id} source_in {source_in:.3f} precedes the recording start"
        )
    limit = _recording_limit(project, recording_id)
    if limit is not None and source_out > limit + SOURCE_ABS_TOLERANCE:
        raise InvalidRangeError(
            f"Clip {clip_id} source_out {source_out:.3f} exceeds recording "
            f"{recording_id} duration {limit:.3f}"
        )


def _check_duration(clip_id: str, duration: float) -> None:
    if duration <= SOURCE_ABS_TOLERANCE:
        raise DegenerateDurationError(clip_id, duration)


def _reflow_following(track: Track, index: int, delta: float, windows: ShiftWindows) -> int:
    """
    Shift every clip after `index` by `delta`, in index order.

    Returns the number of clips shifted.
    """
    if delta == 0:
        return 0
    shifted = 0
    for i in range(index + 1, len(track.clips)):
        clip = track.clips[i]
        windows.append((clip.start_time, clip.end_time, delta))
        clip.start_time = clip.start_time + delta
        shifted += 1
    return shifted


def _place_clip(track: Track, candidate: Clip, windows: ShiftWindows) -> Clip:
    """
    Insert `candidate` into a track (which must not already hold it).

    If its start falls inside the preceding clip, it is moved forward to that
    clip's end. If its end then overlaps the next clip, that clip and all
    later ones are pushed forward by the overlap.
    """
    start = candidate.start_time
    predecessor = None
    for clip in track.clips:
        if clip.start_time < start:
            predecessor = clip
        else:
            break
    if predecessor is not None and predecessor.end_time > start:
        logger.debug(
            "Clip %s overlaps %s; moving start %.3f -> %.3f",
            candidate.id, predecessor.id, start, predecessor.end_time,
        )
        start = predecessor.end_time
        candidate = _rebuild_clip(candidate, start_time=start)

    insert_at = len(track.clips)
    for i, clip in enumerate(track.clips):
        if clip.start_time >= start:
            insert_at = i
            break

    if insert_at < len(track.clips):
        overlap = candidate.end_time - track.clips[insert_at].start_time
        if overlap > 0:
            logger.debug(
                "Clip %s end overlaps %s by %.3f; pushing %d clip(s)",
                candidate.id, track.clips[insert_at].id, overlap,
                len(track.clips) - insert_at,
            )
            _reflow_following(track, insert_at - 1, overlap, windows)

    track.clips.insert(insert_at, candidate)
    return candidate


# =============================================================================
# SPLIT
# =============================================================================


def split_clip(
    project: Project,
    clip_id: str,
    split_time: float,
    new_clip_id: str | None = None,
) -> EditResult:
    """
    Split a clip at a timeline position.

    The first half keeps the clip id; the second half gets `new_clip_id` (or a
    fresh one). No other clip moves and effects are left alone.

    Raises:
        InvalidRangeError: split_time is not strictly inside the clip
    """
    _, _, clip = find_clip(project, clip_id)
    if not clip.start_time < split_time < clip.end_time:
        raise InvalidRangeError(
            f"Split point {split_time} is not inside clip {clip_id} "
            f"[{clip.start_time}, {clip.end_time})"
        )

    source_split = timeline_to_source(split_time, clip)
    first_duration = split_time - clip.start_time
    second_duration = clip.end_time - split_time
    _check_duration(clip_id, first_duration)
    _check_duration(clip_id, second_duration)

    working, track, index, clip = _working_copy(project, clip_id)
    first = _rebuild_clip(
        clip,
        duration=first_duration,
        source_out=source_split,
    )
    second = _rebuild_clip(
        clip,
        id=new_clip_id or _new_clip_id(),
        start_time=split_time,
        duration=second_duration,
        source_in=source_split,
    )
    track.clips[index:index + 1] = [first, second]

    return commit_edit(
        working,
        operation_type="split_clip",
        description=f"Split clip '{clip_id}' at {split_time:.0f}ms",
        operation_data={
            "clip_id": clip_id,
            "split_time": split_time,
            "first_clip_id": first.id,
            "second_clip_id": second.id,
        },
    )


# =============================================================================
# TRIM
# =============================================================================


def trim_start(project: Project, clip_id: str, new_start: float) -> EditResult:
    """
    Ripple-trim the head of a clip.

    The media currently at timeline position `new_start` becomes the clip's
    first frame. The clip keeps its start_time, so its end moves by
    -(new_start - start_time) and every later clip on the track follows.
    A `new_start` before the clip start extends the head back into the
    recording.
    """
    _, _, clip = find_clip(project, clip_id)
    trim_amount = new_start - clip.start_time
    new_duration = clip.duration - trim_amount
    _check_duration(clip_id, new_duration)

    new_source_in = timeline_to_source(new_start, clip)
    _check_source_range(project, clip_id, clip.recording_id, new_source_in, clip.source_out)
    new_source_in = max(0.0, new_source_in)

    working, track, index, clip = _working_copy(project, clip_id)
    old_end = clip.end_time
    track.clips[index] = _rebuild_clip(
        clip,
        duration=new_duration,
        source_in=new_source_in,
    )
    delta = track.clips[index].end_time - old_end

    windows: ShiftWindows = []
    shifted = _reflow_following(track, index, delta, windows)
    moved_effects = shift_effects_for_windows(working.effects, windows)

    return commit_edit(
        working,
        operation_type="trim_start",
        description=(
            f"Trimmed start of clip '{clip_id}' by {trim_amount:.0f}ms "
            f"({shifted} clip(s) reflowed)"
        ),
        operation_data={
            "clip_id": clip_id,
            "new_start": new_start,
            "delta": delta,
            "reflowed": shifted,
            "moved_effects": moved_effects,
        },
    )


def trim_end(project: Project, clip_id: str, new_end: float) -> EditResult:
    """
    Move the tail of a clip to timeline position `new_end`.

    Later clips on the track are reflowed by the change in end time.
    """
    _, _, clip = find_clip(project, clip_id)
    new_duration = new_end - clip.start_time
    _check_duration(clip_id, new_duration)

    new_source_out = timeline_to_source(new_end, clip)
    _check_source_range(project, clip_id, clip.recording_id, clip.source_in, new_source_out)

    working, track, index, clip = _working_copy(project, clip_id)
    old_end = clip.end_time
    track.clips[index] = _rebuild_clip(
        clip,
        duration=new_duration,
        source_out=new_source_out,
    )
    delta = new_end - old_end

    windows: ShiftWindows = []
    shifted = _reflow_following(track, index, delta, windows)
    moved_effects = shift_effects_for_windows(working.effects, windows)

    return commit_edit(
        working,
        operation_type="trim_end",
        description=(
            f"Trimmed end of clip '{clip_id}' to {new_end:.0f}ms "
            f"({shifted} clip(s) reflowed)"
        ),
        operation_data={
            "clip_id": clip_id,
            "new_end": new_end,
            "delta": delta,
            "reflowed": shifted,
            "moved_effects": moved_effects,
        },
    )


# =============================================================================
# UPDATE / MOVE
# =============================================================================


def _resolve_patch(clip: Clip, patch: ClipPatch) -> dict[str, float]:
    """Fill in the fields a patch leaves implied (duration vs source range)."""
    rate = patch.playback_rate if patch.playback_rate is not None else clip.playback_rate
    source_in = patch.source_in if patch.source_in is not None else clip.source_in

    if patch.duration is not None:
        duration = patch.duration
        if patch.source_out is not None:
            source_out = patch.source_out
        else:
            source_out = source_in + duration * rate
    else:
        source_out = patch.source_out if patch.source_out is not None else clip.source_out
        duration = effective_duration(source_in, source_out, rate)

    return {
        "start_time": patch.start_time if patch.start_time is not None else clip.start_time,
        "duration": duration,
        "source_in": source_in,
        "source_out": source_out,
        "playback_rate": rate,
    }


def update_clip(
    project: Project,
    clip_id: str,
    patch: ClipPatch | dict[str, Any],
) -> EditResult:
    """
    Generic field update with overlap resolution.

    Derived fields are recomputed: a new duration moves source_out, a new
    source range or playback rate changes the duration. If the clip then
    starts inside its predecessor it is moved forward to the predecessor's
    end; if it ends inside the next clip, that clip and all later ones are
    pushed forward by the overlap.
    """
    if isinstance(patch, dict):
        try:
            patch = ClipPatch.model_validate(patch)
        except ValidationError as e:
            raise InvalidRangeError(f"Invalid patch for clip {clip_id}: {e}") from e

    _, _, clip = find_clip(project, clip_id)
    fields = _resolve_patch(clip, patch)

    _check_duration(clip_id, fields["duration"])
    if fields["start_time"] < 0:
        raise InvalidRangeError(f"Clip {clip_id} cannot start before 0")
    _check_source_range(
        project, clip_id, clip.recording_id, fields["source_in"], fields["source_out"]
    )
    candidate = _rebuild_clip(clip, **fields)

    working, track, index, clip = _working_copy(project, clip_id)
    old_start, old_end = clip.start_time, clip.end_time
    track.clips.pop(index)

    windows: ShiftWindows = []
    placed = _place_clip(track, candidate, windows)
    windows.append((old_start, old_end, placed.start_time - old_start))
    moved_effects = shift_effects_for_windows(working.effects, windows)

    changed = sorted(patch.model_dump(exclude_none=True))
    return commit_edit(
        working,
        operation_type="update_clip",
        description=f"Updated clip '{clip_id}' ({', '.join(changed)})",
        operation_data={
            "clip_id": clip_id,
            "patch": patch.model_dump(exclude_none=True),
            "final_start": placed.start_time,
            "pushed": len(windows) - 1,
            "moved_effects": moved_effects,
        },
    )


def move_clip(
    project: Project,
    clip_id: str,
    new_start: float,
    to_track_id: str | None = None,
) -> EditResult:
    """
    Move a clip to a new timeline position, optionally onto another track.

    Uses the same overlap resolution as update_clip. Effects fully inside
    the clip's old window move by the distance the clip actually moved.
    """
    source_track, _, clip = find_clip(project, clip_id)
    if new_start < 0:
        raise InvalidRangeError(f"Clip {clip_id} cannot start before 0")
    if to_track_id is not None:
        get_track(project, to_track_id)

    working, track, index, clip = _working_copy(project, clip_id)
    old_start, old_end = clip.start_time, clip.end_time
    track.clips.pop(index)
    destination = get_track(working, to_track_id) if to_track_id else track

    windows: ShiftWindows = []
    placed = _place_clip(destination, _rebuild_clip(clip, start_time=new_start), windows)
    windows.append((old_start, old_end, placed.start_time - old_start))
    moved_effects = shift_effects_for_windows(working.effects, windows)

    if destination is track:
        desc = f"Moved clip '{clip_id}' to {placed.start_time:.0f}ms"
    else:
        desc = (
            f"Moved clip '{clip_id}' from track '{source_track.name or source_track.id}' "
            f"to track '{destination.name or destination.id}' at {placed.start_time:.0f}ms"
        )

    return commit_edit(
        working,
        operation_type="move_clip",
        description=desc,
        operation_data={
            "clip_id": clip_id,
            "requested_start": new_start,
            "final_start": placed.start_time,
            "from_track": source_track.id,
            "to_track": destination.id,
            "moved_effects": moved_effects,
        },
    )


def change_playback_rate(project: Project, clip_id: str, playback_rate: float) -> EditResult:
    """Change a clip's speed, keeping its source range; later clips reflow."""
    if playback_rate <= 0:
        raise InvalidRangeError(f"Playback rate must be positive, got {playback_rate}")

    _, _, clip = find_clip(project, clip_id)
    new_duration = effective_duration(clip.source_in, clip.source_out, playback_rate)
    _check_duration(clip_id, new_duration)

    working, track, index, clip = _working_copy(project, clip_id)
    old_end = clip.end_time
    track.clips[index] = _rebuild_clip(
        clip, duration=new_duration, playback_rate=playback_rate
    )
    delta = track.clips[index].end_time - old_end

    windows: ShiftWindows = []
    shifted = _reflow_following(track, index, delta, windows)
    moved_effects = shift_effects_for_windows(working.effects, windows)

    return commit_edit(
        working,
        operation_type="change_playback_rate",
        description=f"Set clip '{clip_id}' playback rate to {playback_rate}x ({shifted} clip(s) reflowed)",
        operation_data={
            "clip_id": clip_id,
            "playback_rate": playback_rate,
            "delta": delta,
            "moved_effects": moved_effects,
        },
    )


# =============================================================================
# ADD / DUPLICATE / REMOVE
# =============================================================================


def add_clip(
    project: Project,
    track_id: str,
    recording_id: str,
    start_time: float | None = None,
    source_in: float = 0.0,
    source_out: float | None = None,
    playback_rate: float = 1.0,
    clip_id: str | None = None,
) -> EditResult:
    """Place a new clip of a recording on a track (default: whole recording, at the end)."""
    track = get_track(project, track_id)
    recording = get_recording(project, recording_id)
    if playback_rate <= 0:
        raise InvalidRangeError(f"Playback rate must be positive, got {playback_rate}")

    if source_out is None:
        source_out = recording.duration_ms
    clip_id = clip_id or _new_clip_id()
    duration = effective_duration(source_in, source_out, playback_rate)
    _check_duration(clip_id, duration)
    _check_source_range(project, clip_id, recording_id, source_in, source_out)

    if start_time is None:
        start_time = max((c.end_time for c in track.clips), default=0.0)
    if start_time < 0:
        raise InvalidRangeError(f"Clip {clip_id} cannot start before 0")

    candidate = Clip(
        id=clip_id,
        recording_id=recording_id,
        start_time=start_time,
        duration=duration,
        source_in=source_in,
        source_out=source_out,
        playback_rate=playback_rate,
    )

    working = deepcopy(project)
    track = get_track(working, track_id)
    sort_track(track)
    windows: ShiftWindows = []
    placed = _place_clip(track, candidate, windows)
    moved_effects = shift_effects_for_windows(working.effects, windows)

    return commit_edit(
        working,
        operation_type="add_clip",
        description=(
            f"Added clip '{clip_id}' ({duration:.0f}ms of '{recording_id}') "
            f"to track '{track.name or track.id}' at {placed.start_time:.0f}ms"
        ),
        operation_data={
            "clip_id": clip_id,
            "track_id": track_id,
            "recording_id": recording_id,
            "start_time": placed.start_time,
            "moved_effects": moved_effects,
        },
    )


def duplicate_clip(project: Project, clip_id: str, new_clip_id: str | None = None) -> EditResult:
    """
    Copy a clip to directly after the original.

    If that slot is occupied the copy goes to the end of the track instead.
    Effects are not duplicated.
    """
    source_track, _, clip = find_clip(project, clip_id)
    new_clip_id = new_clip_id or _new_clip_id()
    if any(c.id == new_clip_id for c in project.all_clips()):
        raise InvalidOperationError(f"Clip id already exists: {new_clip_id}")

    start = clip.end_time
    end = start + clip.duration
    occupied = any(
        clips_overlap(start, end, other.start_time, other.end_time)
        for other in source_track.clips
        if other.id != clip_id
    )
    if occupied:
        start = max(other.end_time for other in source_track.clips)

    working, track, _, clip = _working_copy(project, clip_id)
    copy = _rebuild_clip(clip, id=new_clip_id, start_time=start)
    track.clips.append(copy)

    return commit_edit(
        working,
        operation_type="duplicate_clip",
        description=(
            f"Duplicated clip '{clip_id}' as '{new_clip_id}' at {start:.0f}ms"
            + (" (end of track)" if occupied else "")
        ),
        operation_data={
            "clip_id": clip_id,
            "new_clip_id": new_clip_id,
            "start_time": start,
            "placed_at_track_end": occupied,
        },
    )


def remove_clip(project: Project, clip_id: str) -> EditResult:
    """Delete a clip. Neighbours stay where they are; effects are kept."""
    find_clip(project, clip_id)

    working, track, index, clip = _working_copy(project, clip_id)
    track.clips.pop(index)

    return commit_edit(
        working,
        operation_type="remove_clip",
        description=f"Removed clip '{clip_id}' from track '{track.name or track.id}'",
        operation_data={
            "clip_id": clip_id,
            "track_id": track.id,
            "clip": clip.model_dump(by_alias=True),
        },
    )


def restore_clip(project: Project, track_id: str, clip: Clip) -> EditResult:
    """Put a previously removed clip back (e.g. undo of remove_clip)."""
    if any(c.id == clip.id for c in project.all_clips()):
        raise InvalidOperationError(f"Clip id already exists: {clip.id}")
    get_track(project, track_id)
    _check_source_range(project, clip.id, clip.recording_id, clip.source_in, clip.source_out)

    working = deepcopy(project)
    track = get_track(working, track_id)
    sort_track(track)
    windows: ShiftWindows = []
    placed = _place_clip(track, deepcopy(clip), windows)
    moved_effects = shift_effects_for_windows(working.effects, windows)

    return commit_edit(
        working,
        operation_type="restore_clip",
        description=f"Restored clip '{clip.id}' at {placed.start_time:.0f}ms",
        operation_data={
            "clip_id": clip.id,
            "track_id": track_id,
            "start_time": placed.start_time,
            "moved_effects": moved_effects,
        },
    )


# =============================================================================
# REDUCER ENTRY POINT
# =============================================================================


_HANDLERS: dict[type, Callable[[Project, Any], EditResult]] = {
    SplitClipRequest: lambda p, r: split_clip(p, r.clip_id, r.split_time, r.new_clip_id),
    TrimStartRequest: lambda p, r: trim_start(p, r.clip_id, r.new_start),
    TrimEndRequest: lambda p, r: trim_end(p, r.clip_id, r.new_end),
    UpdateClipRequest: lambda p, r: update_clip(p, r.clip_id, r.patch),
    DuplicateClipRequest: lambda p, r: duplicate_clip(p, r.clip_id, r.new_clip_id),
    MoveClipRequest: lambda p, r: move_clip(p, r.clip_id, r.new_start, r.to_track_id),
    RemoveClipRequest: lambda p, r: remove_clip(p, r.clip_id),
    AddClipRequest: lambda p, r: add_clip(
        p,
        r.track_id,
        r.recording_id,
        start_time=r.start_time,
        source_in=r.source_in,
        source_out=r.source_out,
        playback_rate=r.playback_rate,
        clip_id=r.clip_id,
    ),
    ChangePlaybackRateRequest: lambda p, r: change_playback_rate(p, r.clip_id, r.playback_rate),
}


def apply_edit(project: Project, request: EditRequest | dict[str, Any]) -> EditResult:
    """
    Single entry point for clip edits.

    Accepts a request model or its dict form ({"operation": "split_clip", ...}).
    """
    if isinstance(request, dict):
        try:
            request = _edit_request_adapter.validate_python(request)
        except ValidationError as e:
            raise InvalidOperationError(f"Invalid edit request: {e}") from e

    handler = _HANDLERS.get(type(request))
    if handler is None:
        raise InvalidOperationError(f"Unsupported edit request: {type(request).__name__}")
    return handler(project, request)
