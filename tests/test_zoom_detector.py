import math
from dataclasses import asdict

import pytest

from timeline_core.models.detector_models import LetterboxContext, ZoomDetectorConfig
from timeline_core.models.project_models import PointerEvent, Recording
from timeline_core.operators.zoom_detector import ZoomDetector, max_effects_for_duration


def click(t: float, x: float, y: float) -> PointerEvent:
    return PointerEvent(timestamp=t, x=x, y=y, is_click=True)


def move(t: float, x: float, y: float) -> PointerEvent:
    return PointerEvent(timestamp=t, x=x, y=y)


def dwell(start: float, end: float, x: float, y: float, step: float = 100) -> list[PointerEvent]:
    """Moves jittering +-10px around (x, y) every `step` ms."""
    events = []
    t = start
    i = 0
    while t <= end:
        offset = 10 if i % 2 else -10
        events.append(move(t, x + offset, y - offset))
        t += step
        i += 1
    return events


class TestSingleClick:
    def test_click_bypasses_minimums(self):
        detector = ZoomDetector(ZoomDetectorConfig(clicks_bypass_minimums=True))

        effects = detector.detect([click(2000, 960, 540)], 1920, 1080, 10000, recording_id="rec")

        assert len(effects) == 1
        effect = effects[0]
        assert effect.id == "zoom-rec-1"
        assert (effect.start_time, effect.end_time) == (1700, 2500)
        assert (effect.data.target_x, effect.data.target_y) == (0.5, 0.5)
        assert effect.data.scale == 2.0
        assert (effect.data.intro_ms, effect.data.outro_ms) == (400, 500)

    def test_click_without_bypass_is_too_short(self):
        detector = ZoomDetector(ZoomDetectorConfig(clicks_bypass_minimums=False))

        assert detector.detect([click(2000, 960, 540)], 1920, 1080, 10000) == []


class TestSessions:
    def test_empty_input(self):
        assert ZoomDetector().detect([], 1920, 1080, 10000) == []

    def test_dwell_becomes_zoom_on_centroid(self):
        effects = ZoomDetector().detect(dwell(1000, 3000, 480, 270), 1920, 1080, 10000)

        assert len(effects) == 1
        assert (effects[0].start_time, effects[0].end_time) == (700, 3500)
        assert effects[0].data.target_x == pytest.approx(0.25, abs=0.01)
        assert effects[0].data.target_y == pytest.approx(0.25, abs=0.01)

    def test_sparse_moves_rejected(self):
        events = [move(1000, 100, 100), move(1500, 110, 100), move(2500, 120, 100)]

        assert ZoomDetector().detect(events, 1920, 1080, 10000) == []

    def test_far_move_starts_new_session(self):
        events = dwell(1000, 2500, 100, 100) + [move(2600, 1800, 1000)]

        sessions = ZoomDetector().detect_sessions(events)

        assert len(sessions) == 1
        assert sessions[0].end_time == 2500

    def test_click_recentres_session(self):
        events = dwell(1000, 2000, 500, 500) + [click(2100, 900, 500)]

        sessions = ZoomDetector().detect_sessions(events)

        assert len(sessions) == 1
        assert sessions[0].has_click
        assert sessions[0].target == (900, 500)
        assert sessions[0].event_count == 12

    def test_click_after_inactivity_seeds_new_session(self):
        detector = ZoomDetector(ZoomDetectorConfig(merge_gap_ms=0))
        events = dwell(1000, 2000, 500, 500) + [click(5000, 510, 500)]

        sessions = detector.detect_sessions(events)

        assert [s.has_click for s in sessions] == [False, True]

    def test_nearby_sessions_merge(self):
        config = ZoomDetectorConfig(session_inactivity_threshold_ms=500, merge_gap_ms=1000)
        events = [click(1000, 100, 100), click(1800, 300, 300)]

        sessions = ZoomDetector(config).detect_sessions(events)
        effects = ZoomDetector(config).detect(events, 1000, 1000, 10000)

        assert len(sessions) == 1
        assert sessions[0].event_count == 2
        assert sessions[0].target == (300, 300)
        assert sessions[0].centroid_x == pytest.approx(200)
        assert (effects[0].start_time, effects[0].end_time) == (700, 2300)

    def test_distant_sessions_stay_apart(self):
        config = ZoomDetectorConfig(session_inactivity_threshold_ms=500, merge_gap_ms=1000)
        events = [click(1000, 100, 100), click(2800, 300, 300)]

        effects = ZoomDetector(config).detect(events, 1000, 1000, 60000, recording_id="r")

        assert [e.id for e in effects] == ["zoom-r-1", "zoom-r-2"]

    def test_session_record_shape(self):
        (session,) = ZoomDetector().detect_sessions(dwell(1000, 2500, 400, 400))

        assert set(asdict(session)) == {
            "start_time", "end_time", "centroid_x", "centroid_y", "event_count",
            "centroid_weight", "has_click", "click_x", "click_y",
        }
        assert session.event_count == 16
        assert session.target == pytest.approx((400, 400), abs=10)


class TestSynthesis:
    def test_end_clamped_to_recording(self):
        effects = ZoomDetector().detect([click(9900, 10, 10)], 1920, 1080, 10000)

        assert (effects[0].start_time, effects[0].end_time) == (9600, 10000)

    def test_session_past_recording_end_dropped(self):
        effects = ZoomDetector().detect([click(10500, 10, 10)], 1920, 1080, 10000)

        assert effects == []

    def test_start_clamped_at_zero(self):
        effects = ZoomDetector().detect([click(100, 10, 10)], 1920, 1080, 10000)

        assert effects[0].start_time == 0

    @pytest.mark.parametrize(
        "point,expected",
        [
            ((500, 500), (0.5, 0.5)),
            ((300, 300), (0.0, 0.0)),
            ((0, 0), (0.0, 0.0)),
            ((700, 700), (1.0, 1.0)),
            ((900, 900), (1.0, 1.0)),
            ((400, 600), (0.25, 0.75)),
        ],
    )
    def test_letterbox_normalization(self, point, expected):
        effects = ZoomDetector().detect(
            [click(1000, *point)], 1000, 1000, 10000, padding=100, video_scale=0.5
        )

        assert (effects[0].data.target_x, effects[0].data.target_y) == pytest.approx(expected)

    def test_video_rect(self):
        assert LetterboxContext(1920, 1080).video_rect == (0.0, 0.0, 1920, 1080)
        assert LetterboxContext(1000, 1000, padding=100, video_scale=0.5).video_rect == (
            300.0, 300.0, 400.0, 400.0
        )


class TestRateLimit:
    @pytest.mark.parametrize("per_minute", [1, 2, 6, 10])
    @pytest.mark.parametrize("duration_ms", [30000, 60000, 95000])
    def test_cap(self, per_minute, duration_ms):
        # one isolated click every 3s
        events = [click(t, 500, 500) for t in range(1000, duration_ms - 1000, 3000)]
        detector = ZoomDetector(ZoomDetectorConfig(max_zooms_per_minute=per_minute))

        effects = detector.detect(events, 1920, 1080, duration_ms)
        cap = math.ceil(duration_ms / 60000 * per_minute)

        assert len(effects) == min(cap, len(events))
        starts = [e.start_time for e in effects]
        assert starts == sorted(starts)
        assert starts[0] == 700

    def test_max_effects_for_duration(self):
        assert max_effects_for_duration(60000, 6) == 6
        assert max_effects_for_duration(30000, 6) == 3
        assert max_effects_for_duration(90000, 6) == 9


class TestRobustness:
    def test_deterministic(self):
        events = dwell(1000, 3000, 400, 400) + [click(3100, 420, 410)] + dwell(8000, 9500, 1500, 900)
        detector = ZoomDetector()

        first = detector.detect(events, 1920, 1080, 12000, recording_id="r")
        second = ZoomDetector().detect(list(events), 1920, 1080, 12000, recording_id="r")

        assert first == second
        assert [e.model_dump() for e in first] == [e.model_dump() for e in second]

    def test_unsorted_input_is_sorted(self):
        events = dwell(1000, 3000, 400, 400)

        assert ZoomDetector().detect(list(reversed(events)), 1920, 1080, 10000) == ZoomDetector().detect(
            events, 1920, 1080, 10000
        )

    def test_malformed_events_skipped(self):
        events = [move(float("nan"), 1, 1), click(2000, 960, 540), move(2100, float("inf"), 3)]

        effects = ZoomDetector().detect(events, 1920, 1080, 10000)

        assert len(effects) == 1

    def test_plain_records_accepted(self):
        records = [{"timestamp": 2000, "x": 960, "y": 540, "isClick": True}]

        effects = ZoomDetector().detect(records, 1920, 1080, 10000, recording_id="rec")

        assert effects == ZoomDetector().detect([click(2000, 960, 540)], 1920, 1080, 10000, recording_id="rec")
        assert [(e.start_time, e.end_time) for e in effects] == [(1700, 2500)]

    def test_unparseable_records_skipped(self, caplog):
        records = [
            {"timestamp": "soon", "x": 1, "y": 1},
            {"x": 5, "y": 5},
            None,
            {"timestamp": 2000, "x": 960, "y": 540, "is_click": True},
        ]

        with caplog.at_level("WARNING", logger="timeline_core.operators.zoom_detector"):
            effects = ZoomDetector().detect(records, 1920, 1080, 10000)

        assert len(effects) == 1
        assert "Skipped 3 malformed pointer event(s)" in caplog.text

    @pytest.mark.parametrize("width,height,duration", [(0, 1080, 10000), (1920, -1, 10000), (1920, 1080, 0)])
    def test_invalid_dimensions(self, width, height, duration):
        assert ZoomDetector().detect([click(2000, 960, 540)], width, height, duration) == []

    def test_detect_for_recording(self):
        recording = Recording(
            id="rec-9", duration_ms=10000, width=1920, height=1080,
            events=[click(2000, 960, 540)],
        )

        effects = ZoomDetector().detect_for_recording(recording)

        assert [e.id for e in effects] == ["zoom-rec-9-1"]


class TestConfig:
    def test_defaults(self):
        config = ZoomDetectorConfig()

        assert config.session_inactivity_threshold_ms == 1500
        assert config.session_radius_px == 250
        assert config.session_min_events == 5
        assert config.max_zooms_per_minute == 6

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ZOOM_SESSION_RADIUS_PX", "300")
        monkeypatch.setenv("ZOOM_CLICKS_BYPASS_MINIMUMS", "false")

        config = ZoomDetectorConfig.from_env(merge_gap_ms=250)

        assert config.session_radius_px == 300
        assert config.clicks_bypass_minimums is False
        assert config.merge_gap_ms == 250
