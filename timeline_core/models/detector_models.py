"""
Configuration and intermediate types for the activity-to-zoom detector.

Every heuristic threshold lives on ZoomDetectorConfig with a documented
default. The defaults are tuning values, not contracts.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from timeline_core.config import get_setting


ENV_PREFIX = "ZOOM_"


class ZoomDetectorConfig(BaseModel):
    """Thresholds for session clustering, merging and effect synthesis."""

    # Session detection
    session_inactivity_threshold_ms: float = Field(
        default=1500,
        ge=0,
        description="Max gap since the session's last event before it closes",
    )
    session_radius_px: float = Field(
        default=250,
        ge=0,
        description="Max distance from the running centroid to stay in session",
    )

    # Acceptance filter
    session_min_duration_ms: float = Field(default=1000, ge=0)
    session_min_events: int = Field(default=5, ge=1)
    clicks_bypass_minimums: bool = Field(
        default=True,
        description="Sessions containing a click skip the duration/event minimums",
    )

    # Merging
    merge_gap_ms: float = Field(
        default=1000,
        ge=0,
        description="Adjacent sessions closer than this are merged",
    )

    # Effect synthesis
    lead_padding_ms: float = Field(default=300, ge=0)
    trail_padding_ms: float = Field(default=500, ge=0)
    zoom_scale: float = Field(default=2.0, gt=1)
    intro_ms: float = Field(default=400, ge=0)
    outro_ms: float = Field(default=500, ge=0)

    # Rate limiting
    max_zooms_per_minute: float = Field(default=6, ge=0)

    @classmethod
    def from_env(cls, **overrides) -> ZoomDetectorConfig:
        """
        Build a config from ZOOM_* environment variables.

        ZOOM_SESSION_RADIUS_PX=300 overrides session_radius_px, and so on.
        Explicit keyword overrides win over the environment.
        """
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = get_setting(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


@dataclass
class FocusSession:
    """A temporally and spatially contiguous run of pointer activity."""

    start_time: float
    end_time: float
    centroid_x: float
    centroid_y: float
    event_count: int = 1
    centroid_weight: int = 1
    has_click: bool = False
    click_x: float | None = None
    click_y: float | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def target(self) -> tuple[float, float]:
        """Click position when the session has one, else the centroid."""
        if self.has_click and self.click_x is not None and self.click_y is not None:
            return self.click_x, self.click_y
        return self.centroid_x, self.centroid_y


@dataclass(frozen=True)
class LetterboxContext:
    """Where the recording sits inside the frame it was normalized against."""

    width: float
    height: float
    padding: float = 0.0
    video_scale: float = 1.0

    @property
    def video_rect(self) -> tuple[float, float, float, float]:
        """(x, y, width, height) of the visible video area in pixels."""
        if self.video_scale >= 1.0 and self.padding <= 0:
            return 0.0, 0.0, self.width, self.height
        available_w = self.width - self.padding * 2
        available_h = self.height - self.padding * 2
        scaled_w = available_w * min(self.video_scale, 1.0)
        scaled_h = available_h * min(self.video_scale, 1.0)
        x = self.padding + (available_w - scaled_w) / 2
        y = self.padding + (available_h - scaled_h) / 2
        return x, y, scaled_w, scaled_h


@dataclass
class DetectionStats:
    """Counters gathered during one detector run, for logging."""

    events_in: int = 0
    events_skipped: int = 0
    sessions_closed: int = 0
    sessions_accepted: int = 0
    sessions_after_merge: int = 0
    effects_dropped: int = 0
    effects_capped: int = 0
