import json
import math

import pytest

from timeline_core.models.detector_models import ZoomDetectorConfig
from timeline_core.models.project_models import (
    BackgroundEffect,
    CURRENT_SCHEMA_VERSION,
    CursorEffect,
    PointerEvent,
    Recording,
    ZoomEffect,
)
from timeline_core.operators.project_operator import (
    add_recording,
    create_project,
    dump_project,
    dump_project_json,
    load_project,
)
from timeline_core.operators.timeline_operator import (
    DegenerateDurationError,
    InvalidOperationError,
    TrackNotFoundError,
)
from timeline_core.operators.zoom_detector import ZoomDetector


@pytest.fixture
def clicked_recording() -> Recording:
    return Recording(
        id="rec-1",
        duration_ms=10000,
        width=1920,
        height=1080,
        events=[PointerEvent(timestamp=2000, x=960, y=540, is_click=True)],
    )


class TestCreateProject:
    def test_one_empty_video_track(self):
        project = create_project("Demo")

        assert project.name == "Demo"
        assert len(project.video_tracks) == 1
        assert project.tracks[0].clips == []
        assert project.schema_version == CURRENT_SCHEMA_VERSION
        assert project.duration == 0


class TestAddRecording:
    def test_seeds_clip_zooms_and_globals(self, clicked_recording):
        result = add_recording(create_project(), clicked_recording, detector=ZoomDetector())
        project = result.project

        (clip,) = project.tracks[0].clips
        assert (clip.start_time, clip.duration, clip.source_in, clip.source_out) == (0, 10000, 0, 10000)
        assert project.duration == 10000

        zooms = [e for e in project.effects if isinstance(e, ZoomEffect)]
        assert [(z.start_time, z.end_time) for z in zooms] == [(1700, 2500)]
        assert any(isinstance(e, BackgroundEffect) and e.end_time == math.inf for e in project.effects)
        assert any(isinstance(e, CursorEffect) for e in project.effects)
        assert result.operation_data["zoom_effect_ids"] == ["zoom-rec-1-1"]

    def test_second_recording_follows_first(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording, detector=ZoomDetector()).project
        second = clicked_recording.model_copy(update={"id": "rec-2"})

        project = add_recording(project, second, detector=ZoomDetector()).project

        clips = project.tracks[0].clips
        assert [(c.recording_id, c.start_time) for c in clips] == [("rec-1", 0), ("rec-2", 10000)]
        zoom = next(e for e in project.effects if e.id == "zoom-rec-2-1")
        assert (zoom.start_time, zoom.end_time) == (11700, 12500)
        assert len([e for e in project.effects if isinstance(e, BackgroundEffect)]) == 1

    def test_detector_config_applies(self, clicked_recording):
        detector = ZoomDetector(ZoomDetectorConfig(clicks_bypass_minimums=False))

        project = add_recording(create_project(), clicked_recording, detector=detector).project

        assert not any(isinstance(e, ZoomEffect) for e in project.effects)

    def test_skip_detection(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording, detect_zooms=False).project

        assert not any(isinstance(e, ZoomEffect) for e in project.effects)

    def test_duplicate_recording(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording).project

        with pytest.raises(InvalidOperationError):
            add_recording(project, clicked_recording)

    def test_empty_recording(self):
        with pytest.raises(DegenerateDurationError):
            add_recording(create_project(), Recording(id="r", duration_ms=0, width=10, height=10))

    def test_unknown_track(self, clicked_recording):
        with pytest.raises(TrackNotFoundError):
            add_recording(create_project(), clicked_recording, track_id="nope")


class TestPersistence:
    def test_dump_uses_camel_case(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording).project

        data = dump_project(project)

        assert data["schemaVersion"] == CURRENT_SCHEMA_VERSION
        clip = data["tracks"][0]["clips"][0]
        assert set(clip) == {
            "id", "recordingId", "startTime", "duration", "sourceIn", "sourceOut", "playbackRate"
        }

    def test_json_round_trip_keeps_global_effects(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording).project

        text = dump_project_json(project)
        restored = load_project(text)

        assert "Infinity" in text
        assert restored == project

    def test_dict_round_trip(self, clicked_recording):
        project = add_recording(create_project(), clicked_recording).project

        assert load_project(dump_project(project)) == project

    def test_invalid_json(self):
        with pytest.raises(InvalidOperationError):
            load_project("{not json")

    def test_invalid_shape(self):
        with pytest.raises(InvalidOperationError):
            load_project(json.dumps({"id": "p", "tracks": [{"clips": "nope"}]}))

    def test_non_object(self):
        with pytest.raises(InvalidOperationError):
            load_project("[1, 2, 3]")

    def test_overlapping_clips_logged(self, caplog):
        data = {
            "id": "p",
            "schemaVersion": 1,
            "recordings": [{"id": "r", "durationMs": 5000, "width": 10, "height": 10}],
            "tracks": [
                {
                    "id": "t",
                    "clips": [
                        {"id": "b", "recordingId": "r", "startTime": 500, "duration": 1000,
                         "sourceIn": 0, "sourceOut": 1000},
                        {"id": "a", "recordingId": "r", "startTime": 0, "duration": 1000,
                         "sourceIn": 0, "sourceOut": 1000},
                    ],
                }
            ],
        }

        with caplog.at_level("WARNING", logger="timeline_core.operators.project_operator"):
            project = load_project(data)

        assert [c.id for c in project.tracks[0].clips] == ["a", "b"]
        assert project.duration == 1500
        assert "overlapping clips" in caplog.text
