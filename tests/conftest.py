import math

import pytest

from timeline_core.models.project_models import (
    BackgroundEffect,
    Clip,
    Project,
    Recording,
    Track,
    ZoomEffect,
    ZoomEffectData,
)


def make_clip(
    clip_id: str,
    start: float,
    duration: float,
    source_in: float | None = None,
    playback_rate: float = 1.0,
    recording_id: str = "rec-1",
) -> Clip:
    if source_in is None:
        source_in = start
    return Clip(
        id=clip_id,
        recording_id=recording_id,
        start_time=start,
        duration=duration,
        source_in=source_in,
        source_out=source_in + duration * playback_rate,
        playback_rate=playback_rate,
    )


def make_zoom(effect_id: str, start: float, end: float, **data) -> ZoomEffect:
    return ZoomEffect(
        id=effect_id,
        start_time=start,
        end_time=end,
        data=ZoomEffectData(**data),
    )


@pytest.fixture
def recording() -> Recording:
    return Recording(id="rec-1", duration_ms=10000, width=1920, height=1080)


@pytest.fixture
def three_clip_project(recording) -> Project:
    """Adjacent clips A [0,1000) B [1000,3000) C [3000,4000) plus effects."""
    return Project(
        id="project-1",
        name="Three clips",
        recordings=[recording],
        tracks=[
            Track(
                id="track-1",
                name="Video 1",
                clips=[
                    make_clip("A", 0, 1000),
                    make_clip("B", 1000, 2000),
                    make_clip("C", 3000, 1000),
                ],
            )
        ],
        effects=[
            make_zoom("zoom-a", 200, 800),
            make_zoom("zoom-b", 1200, 2500),
            make_zoom("zoom-c", 3100, 3900),
            make_zoom("zoom-bc", 2800, 3200),
            BackgroundEffect(id="background-global", start_time=0, end_time=math.inf),
        ],
        duration=4000,
    )


@pytest.fixture
def gap_project(recording) -> Project:
    """A [0,1000), gap, B [2000,3000), C [3000,4000)."""
    return Project(
        id="project-2",
        name="Gap",
        recordings=[recording],
        tracks=[
            Track(
                id="track-1",
                name="Video 1",
                clips=[
                    make_clip("A", 0, 1000),
                    make_clip("B", 2000, 1000),
                    make_clip("C", 3000, 1000),
                ],
            ),
            Track(id="track-2", name="Video 2"),
        ],
        effects=[
            make_zoom("zoom-a", 200, 800),
            make_zoom("zoom-b", 2100, 2900),
            make_zoom("zoom-c", 3100, 3900),
        ],
        duration=4000,
    )


def assert_no_overlaps(project: Project) -> None:
    for track in project.tracks:
        ordered = sorted(track.clips, key=lambda c: c.start_time)
        for current, nxt in zip(ordered, ordered[1:]):
            assert current.end_time <= nxt.start_time + 1e-9, (
                f"{current.id} [{current.start_time}, {current.end_time}) overlaps "
                f"{nxt.id} [{nxt.start_time}, {nxt.end_time})"
            )


def clip_by_id(project: Project, clip_id: str) -> Clip:
    for clip in project.all_clips():
        if clip.id == clip_id:
            return clip
    raise AssertionError(f"clip {clip_id} missing")


def effect_by_id(project: Project, effect_id: str):
    for effect in project.effects:
        if effect.id == effect_id:
            return effect
    raise AssertionError(f"effect {effect_id} missing")
