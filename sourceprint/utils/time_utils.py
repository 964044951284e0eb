"""
Time Utilities Module

Conversions between integer frame ranges used by the analysis code and
OpenTimelineIO time objects handed to callers that work with OTIO.
"""

import logging
from fractions import Fraction
from typing import Iterable, List, Optional, Tuple, Union

import opentimelineio as otio

logger = logging.getLogger(__name__)

FrameRange = Tuple[int, int]  # Half-open [start, end)


def _otio_rate(rate: Union[Fraction, float, int]) -> float:
    return float(rate)


def frames_to_rational_time(frames: int, rate: Union[Fraction, float, int] = 24) -> otio.opentime.RationalTime:
    """
    Creates a RationalTime from a frame count.

    Args:
        frames: Number of frames
        rate: Frame rate (a Fraction is accepted and converted for OTIO)

    Returns:
        A RationalTime representing the frames at the given rate
    """
    return otio.opentime.RationalTime(frames, _otio_rate(rate))


def duration_to_seconds(duration: otio.opentime.RationalTime) -> float:
    """
    Converts a RationalTime duration to seconds.

    Args:
        duration: A RationalTime duration

    Returns:
        Duration in seconds as a float
    """
    return duration.value / duration.rate


def frame_range_to_time_range(frame_range: FrameRange,
                              rate: Union[Fraction, float, int]) -> otio.opentime.TimeRange:
    """Builds an OTIO TimeRange from a half-open [start, end) frame range."""
    start, end = frame_range
    return otio.opentime.TimeRange(
        start_time=frames_to_rational_time(start, rate),
        duration=frames_to_rational_time(end - start, rate),
    )


def intersect_frame_ranges(a: FrameRange, b: FrameRange) -> Optional[FrameRange]:
    """Returns the overlap of two half-open ranges, or None if they only touch or are apart."""
    start = max(a[0], b[0])
    end = min(a[1], b[1])
    if start >= end:
        return None
    return start, end


def merge_frame_ranges(ranges: Iterable[FrameRange]) -> List[FrameRange]:
    """Sorts ranges and merges any that overlap or touch."""
    merged: List[FrameRange] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def frame_range_length(ranges: Iterable[FrameRange]) -> int:
    """Total number of frames covered by the union of the given ranges."""
    return sum(end - start for start, end in merge_frame_ranges(ranges))
