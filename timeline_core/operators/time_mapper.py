"""
Conversions between a clip's source-footage time and its timeline position.

All arithmetic is double-precision milliseconds. The mappings are total
formulas; callers decide whether an out-of-range result is clamped or
rejected.
"""

from __future__ import annotations

from timeline_core.models.project_models import Clip


def source_to_timeline(source_ms: float, clip: Clip) -> float:
    """Timeline position at which `source_ms` of the recording plays."""
    return clip.start_time + (source_ms - clip.source_in) / clip.playback_rate


def timeline_to_source(timeline_ms: float, clip: Clip) -> float:
    """Recording time shown at timeline position `timeline_ms`."""
    return clip.source_in + (timeline_ms - clip.start_time) * clip.playback_rate


def effective_duration(source_in: float, source_out: float, playback_rate: float) -> float:
    """Timeline duration of a source range played at `playback_rate`."""
    return (source_out - source_in) / playback_rate
