"""
SourcePrint Utilities Package

Timecode arithmetic, frame-rate handling, OTIO time helpers and executable lookup.
"""

from .executable_finder import find_executable
from .frame_rate import (
    are_frame_rates_compatible,
    frame_rate_description,
    identify_professional_rate,
    is_drop_frame_rate,
    normalize_frame_rate,
    parse_frame_rate,
)
from .time_utils import (
    duration_to_seconds,
    frame_range_to_time_range,
    frames_to_rational_time,
    intersect_frame_ranges,
    merge_frame_ranges,
)
from .timecode import (
    TimecodeError,
    add_frames,
    detect_drop_frame,
    normalize_drop_frame_separator,
    subtract_timecodes,
    to_frames,
    to_timecode,
)

__all__ = [
    'find_executable',
    'are_frame_rates_compatible',
    'frame_rate_description',
    'identify_professional_rate',
    'is_drop_frame_rate',
    'normalize_frame_rate',
    'parse_frame_rate',
    'duration_to_seconds',
    'frame_range_to_time_range',
    'frames_to_rational_time',
    'intersect_frame_ranges',
    'merge_frame_ranges',
    'TimecodeError',
    'add_frames',
    'detect_drop_frame',
    'normalize_drop_frame_separator',
    'subtract_timecodes',
    'to_frames',
    'to_timecode',
]
