"""
Activity-to-Zoom Detector.

Turns one recording's pointer telemetry into a short list of zoom effects:

1. Session detection - walk the events, growing a focus session while events
   stay close in time and space; clicks always join (or seed) a session and
   recentre it on the click
2. Acceptance filter - drop short, sparse sessions unless they hold a click
3. Merge - fold sessions separated by less than merge_gap_ms together
4. Synthesis - one padded zoom effect per session, focus point normalized
   against the visible video area
5. Rate limit - keep at most ceil(minutes * max_zooms_per_minute), earliest first

A ZoomDetector holds only its config; every call starts from scratch and the
output depends on nothing but the arguments.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from timeline_core.models.detector_models import (
    DetectionStats,
    FocusSession,
    LetterboxContext,
    ZoomDetectorConfig,
)
from timeline_core.models.project_models import (
    PointerEvent,
    Recording,
    ZoomEffect,
    ZoomEffectData,
)
from timeline_core.utils.easing import clamp


logger = logging.getLogger(__name__)

_event_adapter: TypeAdapter[PointerEvent] = TypeAdapter(PointerEvent)


class ZoomDetector:
    """Session-clustering zoom detector."""

    def __init__(self, config: ZoomDetectorConfig | None = None):
        self.config = config or ZoomDetectorConfig()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def detect(
        self,
        events: Iterable[PointerEvent | dict[str, Any]],
        width: float,
        height: float,
        duration_ms: float,
        recording_id: str = "recording",
        padding: float = 0.0,
        video_scale: float = 1.0,
    ) -> list[ZoomEffect]:
        """
        Detect zoom effects for one recording.

        Args:
            events: Pointer events (models or camelCase dicts) in source-space ms,
                sorted if not already; malformed records are skipped
            width: Recording width in pixels
            height: Recording height in pixels
            duration_ms: Recording duration
            recording_id: Used to build deterministic effect ids
            padding: Letterbox padding (px) around the video, if any
            video_scale: Scale of the video inside the padded frame

        Returns:
            Zoom effects in source-space time, ordered by start
        """
        stats = DetectionStats()

        if not _is_positive(width) or not _is_positive(height) or not _is_positive(duration_ms):
            logger.warning(
                "Zoom detection skipped for %s: invalid dimensions/duration "
                "(width=%s height=%s duration=%s)",
                recording_id, width, height, duration_ms,
            )
            return []

        sessions = self._sessions(events, stats)
        if not sessions:
            logger.debug("No focus sessions for %s (%d events)", recording_id, stats.events_in)
            return []

        context = LetterboxContext(
            width=width,
            height=height,
            padding=max(0.0, padding) if math.isfinite(padding) else 0.0,
            video_scale=video_scale if _is_positive(video_scale) else 1.0,
        )
        effects = self._synthesize(sessions, context, duration_ms, recording_id, stats)
        effects = self._rate_limit(effects, duration_ms, stats)

        logger.debug(
            "Zoom detection for %s: %d events (%d skipped), %d sessions, "
            "%d accepted, %d after merge, %d effects",
            recording_id,
            stats.events_in,
            stats.events_skipped,
            stats.sessions_closed,
            stats.sessions_accepted,
            stats.sessions_after_merge,
            len(effects),
        )
        return effects

    def detect_for_recording(
        self,
        recording: Recording,
        padding: float = 0.0,
        video_scale: float = 1.0,
    ) -> list[ZoomEffect]:
        return self.detect(
            recording.events,
            recording.width,
            recording.height,
            recording.duration_ms,
            recording_id=recording.id,
            padding=padding,
            video_scale=video_scale,
        )

    def detect_sessions(self, events: Iterable[PointerEvent | dict[str, Any]]) -> list[FocusSession]:
        """Steps 1-3 only: accepted and merged focus sessions."""
        return self._sessions(events, DetectionStats())

    # =========================================================================
    # SESSION DETECTION
    # =========================================================================

    def _sessions(self, events: Iterable[PointerEvent | dict[str, Any]], stats: DetectionStats) -> list[FocusSession]:
        cleaned = self._clean_events(events, stats)
        if not cleaned:
            return []

        closed = self._cluster(cleaned)
        stats.sessions_closed = len(closed)

        accepted = [s for s in closed if self._accept(s)]
        stats.sessions_accepted = len(accepted)

        merged = self._merge(accepted)
        stats.sessions_after_merge = len(merged)
        return merged

    def _clean_events(
        self,
        events: Iterable[PointerEvent | dict[str, Any]],
        stats: DetectionStats,
    ) -> list[PointerEvent]:
        """Coerce records to PointerEvent, drop malformed ones and stable-sort by timestamp."""
        cleaned: list[PointerEvent] = []
        for raw in events or []:
            stats.events_in += 1
            try:
                event = _event_adapter.validate_python(raw)
            except ValidationError:
                stats.events_skipped += 1
                continue
            if not (
                math.isfinite(event.timestamp)
                and math.isfinite(event.x)
                and math.isfinite(event.y)
            ):
                stats.events_skipped += 1
                continue
            cleaned.append(event)

        if stats.events_skipped:
            logger.warning("Skipped %d malformed pointer event(s)", stats.events_skipped)
        return sorted(cleaned, key=lambda e: e.timestamp)

    def _cluster(self, events: list[PointerEvent]) -> list[FocusSession]:
        cfg = self.config
        sessions: list[FocusSession] = []
        current: FocusSession | None = None

        for event in events:
            within_time = (
                current is not None
                and event.timestamp - current.end_time <= cfg.session_inactivity_threshold_ms
            )

            if event.is_click:
                if within_time:
                    current.end_time = event.timestamp
                    current.event_count += 1
                    # Clicks override the running average
                    current.centroid_x = event.x
                    current.centroid_y = event.y
                    current.centroid_weight = 1
                    current.has_click = True
                    current.click_x = event.x
                    current.click_y = event.y
                    continue
                if current is not None:
                    sessions.append(current)
                current = _seed_session(event)
                continue

            if within_time:
                distance = math.hypot(event.x - current.centroid_x, event.y - current.centroid_y)
                if distance <= cfg.session_radius_px:
                    weight = current.centroid_weight + 1
                    current.centroid_x += (event.x - current.centroid_x) / weight
                    current.centroid_y += (event.y - current.centroid_y) / weight
                    current.centroid_weight = weight
                    current.end_time = event.timestamp
                    current.event_count += 1
                    continue

            if current is not None:
                sessions.append(current)
            current = _seed_session(event)

        if current is not None:
            sessions.append(current)
        return sessions

    def _accept(self, session: FocusSession) -> bool:
        cfg = self.config
        if session.has_click and cfg.clicks_bypass_minimums:
            return True
        return (
            session.duration >= cfg.session_min_duration_ms
            and session.event_count >= cfg.session_min_events
        )

    def _merge(self, sessions: list[FocusSession]) -> list[FocusSession]:
        """Fold together consecutive sessions separated by less than merge_gap_ms."""
        if not sessions:
            return []

        merged: list[FocusSession] = []
        current = sessions[0]
        for nxt in sessions[1:]:
            if nxt.start_time - current.end_time < self.config.merge_gap_ms:
                current = _merge_pair(current, nxt)
            else:
                merged.append(current)
                current = nxt
        merged.append(current)
        return merged

    # =========================================================================
    # EFFECT SYNTHESIS
    # =========================================================================

    def _synthesize(
        self,
        sessions: list[FocusSession],
        context: LetterboxContext,
        duration_ms: float,
        recording_id: str,
        stats: DetectionStats,
    ) -> list[ZoomEffect]:
        cfg = self.config
        effects: list[ZoomEffect] = []

        for session in sessions:
            start = max(0.0, session.start_time - cfg.lead_padding_ms)
            end = min(session.end_time + cfg.trail_padding_ms, duration_ms)
            if end <= start:
                stats.effects_dropped += 1
                continue

            target_x, target_y = _normalize(session.target, context)
            effects.append(
                ZoomEffect(
                    id=f"zoom-{recording_id}-{len(effects) + 1}",
                    start_time=start,
                    end_time=end,
                    data=ZoomEffectData(
                        target_x=target_x,
                        target_y=target_y,
                        scale=cfg.zoom_scale,
                        intro_ms=cfg.intro_ms,
                        outro_ms=cfg.outro_ms,
                    ),
                )
            )

        if stats.effects_dropped:
            logger.info(
                "Dropped %d zoom session(s) for %s with no room after clamping",
                stats.effects_dropped, recording_id,
            )
        return effects

    def _rate_limit(
        self,
        effects: list[ZoomEffect],
        duration_ms: float,
        stats: DetectionStats,
    ) -> list[ZoomEffect]:
        cap = max_effects_for_duration(duration_ms, self.config.max_zooms_per_minute)
        if len(effects) <= cap:
            return effects
        stats.effects_capped = len(effects) - cap
        logger.info(
            "Rate limit: keeping %d of %d zoom effects (%.1f/min)",
            cap, len(effects), self.config.max_zooms_per_minute,
        )
        return effects[:cap]


# =============================================================================
# HELPERS
# =============================================================================


def max_effects_for_duration(duration_ms: float, per_minute: float) -> int:
    """Upper bound on zoom effects for a recording: ceil(minutes * per_minute)."""
    return math.ceil(duration_ms / 60000.0 * per_minute)


def _is_positive(value: float) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _seed_session(event: PointerEvent) -> FocusSession:
    session = FocusSession(
        start_time=event.timestamp,
        end_time=event.timestamp,
        centroid_x=event.x,
        centroid_y=event.y,
    )
    if event.is_click:
        session.has_click = True
        session.click_x = event.x
        session.click_y = event.y
    return session


def _merge_pair(first: FocusSession, second: FocusSession) -> FocusSession:
    """Event-count-weighted merge; the later click wins as the focus point."""
    total = first.event_count + second.event_count
    merged = FocusSession(
        start_time=min(first.start_time, second.start_time),
        end_time=max(first.end_time, second.end_time),
        centroid_x=(first.centroid_x * first.event_count + second.centroid_x * second.event_count) / total,
        centroid_y=(first.centroid_y * first.event_count + second.centroid_y * second.event_count) / total,
        event_count=total,
        centroid_weight=first.centroid_weight + second.centroid_weight,
        has_click=first.has_click or second.has_click,
    )
    if second.has_click:
        merged.click_x, merged.click_y = second.click_x, second.click_y
    elif first.has_click:
        merged.click_x, merged.click_y = first.click_x, first.click_y
    return merged


def _normalize(point: tuple[float, float], context: LetterboxContext) -> tuple[float, float]:
    """Pixel position to [0, 1] coordinates within the visible video rect."""
    x, y = point
    rect_x, rect_y, rect_w, rect_h = context.video_rect
    if rect_w <= 0 or rect_h <= 0:
        return 0.5, 0.5
    return clamp((x - rect_x) / rect_w), clamp((y - rect_y) / rect_h)
