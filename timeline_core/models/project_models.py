"""
Pydantic models for the non-destructive editing project.

This module defines the persisted project shape and the request/response
schemas for editing it:
- Recordings (immutable captured sources with pointer telemetry)
- Tracks holding time-remapped Clips
- A flat, timeline-space Effect list (zoom, cursor, background, keystroke)
- Edit requests and results

Python code uses snake_case attribute names; the serialized form uses the
camelCase keys of the project file (startTime, sourceIn, ...).
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


CURRENT_SCHEMA_VERSION = 1

# Relative/absolute tolerance for the clip source/duration invariant (ms)
SOURCE_REL_TOLERANCE = 1e-9
SOURCE_ABS_TOLERANCE = 1e-6


class TimelineBaseModel(BaseModel):
    """Base model for all project records.

    Accepts both snake_case names and camelCase aliases, and keeps infinite
    effect bounds intact when serialized to JSON.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        ser_json_inf_nan="constants",
    )


# =============================================================================
# ENUMS
# =============================================================================


class TrackKind(str, Enum):
    """Type of track content."""
    VIDEO = "video"
    AUDIO = "audio"


class EffectType(str, Enum):
    """Discriminator values for timeline effects."""
    ZOOM = "zoom"
    CURSOR = "cursor"
    BACKGROUND = "background"
    KEYSTROKE = "keystroke"


class BackgroundKind(str, Enum):
    NONE = "none"
    COLOR = "color"
    GRADIENT = "gradient"
    IMAGE = "image"
    WALLPAPER = "wallpaper"


class CursorStyle(str, Enum):
    DEFAULT = "default"
    MACOS = "macOS"
    CUSTOM = "custom"


class KeystrokePosition(str, Enum):
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_RIGHT = "bottom-right"
    TOP_CENTER = "top-center"


# =============================================================================
# RECORDINGS
# =============================================================================


class PointerEvent(TimelineBaseModel):
    """A single pointer sample captured during recording (source-space ms)."""
    timestamp: float = Field(description="Source-space timestamp (ms)")
    x: float = Field(description="Pointer x in recording pixels")
    y: float = Field(description="Pointer y in recording pixels")
    is_click: bool = Field(default=False, description="True for click events")


class Recording(TimelineBaseModel):
    """
    Immutable reference to a captured source.

    `effects` only carries legacy source-space effects from projects saved
    before schema version 1; the migrator moves them onto the timeline.
    """
    id: str
    duration_ms: float = Field(ge=0, description="Length of the footage (ms)")
    width: int = Field(gt=0, description="Pixel width of the footage")
    height: int = Field(gt=0, description="Pixel height of the footage")
    events: list[PointerEvent] = Field(default_factory=list)
    effects: list[EffectRecord] = Field(
        default_factory=list,
        description="Legacy source-space effects (schema version 0)"
    )


# =============================================================================
# CLIPS AND TRACKS
# =============================================================================


class Clip(TimelineBaseModel):
    """
    A window into one Recording placed on the timeline.

    start_time/duration are timeline-space; source_in/source_out are
    source-space. The two are linked by playback_rate:
    source_out - source_in == duration * playback_rate.
    """
    id: str
    recording_id: str
    start_time: float = Field(ge=0, description="Timeline position (ms)")
    duration: float = Field(description="Timeline duration (ms)")
    source_in: float = Field(ge=0, description="In point in the recording (ms)")
    source_out: float = Field(description="Out point in the recording (ms)")
    playback_rate: float = Field(default=1.0, gt=0, description="Speed multiplier")

    @property
    def end_time(self) -> float:
        """Exclusive timeline end (start_time + duration)."""
        return self.start_time + self.duration

    @model_validator(mode="after")
    def _check_source_range(self) -> Clip:
        if self.duration <= 0:
            raise ValueError(f"Clip {self.id} duration must be positive")
        if self.source_out <= self.source_in:
            raise ValueError(f"Clip {self.id} source_out must follow source_in")
        expected = self.duration * self.playback_rate
        if not math.isclose(
            self.source_out - self.source_in,
            expected,
            rel_tol=SOURCE_REL_TOLERANCE,
            abs_tol=SOURCE_ABS_TOLERANCE,
        ):
            raise ValueError(
                f"Clip {self.id} source range {self.source_out - self.source_in} "
                f"does not match duration * playback_rate ({expected})"
            )
        return self


class Track(TimelineBaseModel):
    """Ordered list of pairwise non-overlapping clips."""
    id: str
    name: str = ""
    kind: TrackKind = TrackKind.VIDEO
    clips: list[Clip] = Field(default_factory=list)


# =============================================================================
# EFFECT PAYLOADS
# =============================================================================


class ZoomEffectData(TimelineBaseModel):
    """Camera zoom towards a normalized focus point."""
    target_x: float = Field(default=0.5, ge=0, le=1)
    target_y: float = Field(default=0.5, ge=0, le=1)
    scale: float = Field(default=2.0, gt=1)
    intro_ms: float = Field(default=400, ge=0, description="Ease-in duration")
    outro_ms: float = Field(default=500, ge=0, description="Ease-out duration")


class CursorEffectData(TimelineBaseModel):
    style: CursorStyle = CursorStyle.MACOS
    size: float = Field(default=4.0, gt=0)
    color: str = "#ffffff"
    click_effects: bool = True
    motion_blur: bool = True
    hide_on_idle: bool = True
    idle_timeout: float = Field(default=3000, ge=0)


class BackgroundEffectData(TimelineBaseModel):
    type: BackgroundKind = BackgroundKind.GRADIENT
    color: str | None = None
    gradient_colors: list[str] = Field(
        default_factory=lambda: ["#2D3748", "#1A202C"]
    )
    gradient_angle: float = 135
    padding: float = Field(default=60, ge=0)
    corner_radius: float = Field(default=15, ge=0)
    shadow_intensity: float = Field(default=85, ge=0, le=100)


class KeystrokeEffectData(TimelineBaseModel):
    position: KeystrokePosition = KeystrokePosition.BOTTOM_CENTER
    font_size: float = Field(default=14, gt=0)
    background_color: str = "rgba(0, 0, 0, 0.75)"
    text_color: str = "#ffffff"
    fade_out_duration: float = Field(default=400, ge=0)
    display_duration: float = Field(default=2000, ge=0)


# =============================================================================
# EFFECTS
# =============================================================================


class BaseEffect(TimelineBaseModel):
    """
    Timeline-space interval carrying rendering parameters.

    Effects are not owned by clips; renderers find them by time-range
    intersection. end_time may be +inf for global defaults.
    """
    id: str
    start_time: float = Field(description="Timeline start (ms)")
    end_time: float = Field(description="Timeline end, exclusive (ms)")
    enabled: bool = True

    @property
    def is_global(self) -> bool:
        return math.isinf(self.end_time)

    @model_validator(mode="after")
    def _check_interval(self) -> BaseEffect:
        if math.isnan(self.start_time) or math.isnan(self.end_time):
            raise ValueError(f"Effect {self.id} has NaN bounds")
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Effect {self.id} end_time ({self.end_time}) must be greater "
                f"than start_time ({self.start_time})"
            )
        return self


class ZoomEffect(BaseEffect):
    type: Literal["zoom"] = "zoom"
    data: ZoomEffectData = Field(default_factory=ZoomEffectData)


class CursorEffect(BaseEffect):
    type: Literal["cursor"] = "cursor"
    data: CursorEffectData = Field(default_factory=CursorEffectData)


class BackgroundEffect(BaseEffect):
    type: Literal["background"] = "background"
    data: BackgroundEffectData = Field(default_factory=BackgroundEffectData)


class KeystrokeEffect(BaseEffect):
    type: Literal["keystroke"] = "keystroke"
    data: KeystrokeEffectData = Field(default_factory=KeystrokeEffectData)


# Union type for all effects
EffectRecord = Annotated[
    Union[ZoomEffect, CursorEffect, BackgroundEffect, KeystrokeEffect],
    Field(discriminator="type")
]


# Recording was declared before the effect union existed
Recording.model_rebuild()


# =============================================================================
# PROJECT
# =============================================================================


class Project(TimelineBaseModel):
    """
    Top-level editing state: recordings, tracks and the flat effect list.

    Edit operations never mutate a Project in place; they return a new one
    inside an EditResult.
    """
    id: str
    name: str = ""
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION, ge=0)
    recordings: list[Recording] = Field(default_factory=list)
    tracks: list[Track] = Field(default_factory=list)
    effects: list[EffectRecord] = Field(default_factory=list)
    duration: float = Field(default=0.0, ge=0, description="max(clip end) in ms")

    @property
    def video_tracks(self) -> list[Track]:
        return [t for t in self.tracks if t.kind == TrackKind.VIDEO]

    def all_clips(self) -> list[Clip]:
        """All clips across every track, in track order."""
        return [clip for track in self.tracks for clip in track.clips]


class ZoomState(TimelineBaseModel):
    """Camera transform a renderer applies at one timestamp."""
    x: float = 0.5
    y: float = 0.5
    scale: float = 1.0


# =============================================================================
# REQUEST MODELS
# =============================================================================


class ClipPatch(TimelineBaseModel):
    """Partial clip update; None means "leave unchanged"."""
    start_time: float | None = None
    duration: float | None = None
    source_in: float | None = None
    source_out: float | None = None
    playback_rate: float | None = Field(default=None, gt=0)


class SplitClipRequest(TimelineBaseModel):
    operation: Literal["split_clip"] = "split_clip"
    clip_id: str
    split_time: float = Field(description="Timeline position to split at")
    new_clip_id: str | None = Field(default=None, description="Id for the second half")


class TrimStartRequest(TimelineBaseModel):
    operation: Literal["trim_start"] = "trim_start"
    clip_id: str
    new_start: float


class TrimEndRequest(TimelineBaseModel):
    operation: Literal["trim_end"] = "trim_end"
    clip_id: str
    new_end: float


class UpdateClipRequest(TimelineBaseModel):
    operation: Literal["update_clip"] = "update_clip"
    clip_id: str
    patch: ClipPatch


class DuplicateClipRequest(TimelineBaseModel):
    operation: Literal["duplicate_clip"] = "duplicate_clip"
    clip_id: str
    new_clip_id: str | None = None


class MoveClipRequest(TimelineBaseModel):
    operation: Literal["move_clip"] = "move_clip"
    clip_id: str
    new_start: float
    to_track_id: str | None = Field(
        default=None,
        description="Destination track (None = same track)"
    )


class RemoveClipRequest(TimelineBaseModel):
    operation: Literal["remove_clip"] = "remove_clip"
    clip_id: str


class AddClipRequest(TimelineBaseModel):
    operation: Literal["add_clip"] = "add_clip"
    track_id: str
    recording_id: str
    start_time: float | None = Field(
        default=None,
        description="Timeline position (None = end of track)"
    )
    source_in: float = 0.0
    source_out: float | None = None
    playback_rate: float = Field(default=1.0, gt=0)
    clip_id: str | None = None


class ChangePlaybackRateRequest(TimelineBaseModel):
    operation: Literal["change_playback_rate"] = "change_playback_rate"
    clip_id: str
    playback_rate: float = Field(gt=0)


EditRequest = Annotated[
    Union[
        SplitClipRequest,
        TrimStartRequest,
        TrimEndRequest,
        UpdateClipRequest,
        DuplicateClipRequest,
        MoveClipRequest,
        RemoveClipRequest,
        AddClipRequest,
        ChangePlaybackRateRequest,
    ],
    Field(discriminator="operation")
]


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class EditResult(BaseModel):
    """New project state plus a record of the operation that produced it."""
    project: Project
    operation_type: str
    description: str = ""
    operation_data: dict[str, Any] = Field(default_factory=dict)
