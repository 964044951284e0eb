# sourceprint/utils/timecode.py
"""
Timecode Engine

SMPTE timecode parsing and frame arithmetic. Frame rates are exact
rationals. Labels are counted and formatted with OpenTimelineIO; the
integer counter below covers what OTIO will not take (drop-frame labels
at non-drop rates, three-digit frame fields, hours past 23).

Drop-frame counting skips frame labels 0 and 1 (4 labels at 59.94,
8 at 119.88) at the start of every minute except each tenth minute.
"""

import logging
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

import opentimelineio as otio

from .frame_rate import RateLike, is_drop_frame_rate, parse_frame_rate

logger = logging.getLogger(__name__)

_TIMECODE_RE = re.compile(r"^(\d{2,}):(\d{2})[:;](\d{2})([:;])(\d{2,3})$")
_ALL_SEMICOLON_RE = re.compile(r"^(\d{2,});(\d{2});(\d{2});(\d{2,3})$")


class TimecodeError(ValueError):
    """Raised for malformed timecode strings or impossible frame arithmetic."""
    pass


@dataclass(frozen=True)
class TimecodeParts:
    """
    Components of a parsed timecode string.

    Attributes:
        hours, minutes, seconds, frames: Numeric fields as written.
        drop_separator: True if the string used ';' (drop-frame notation).
    """
    hours: int
    minutes: int
    seconds: int
    frames: int
    drop_separator: bool


def parse_timecode(timecode: str) -> TimecodeParts:
    """
    Splits 'HH:MM:SS:FF', 'HH:MM:SS;FF' or 'HH;MM;SS;FF' into its fields.

    Raises:
        TimecodeError: If the string is not a timecode or a field is out of range.
    """
    if not isinstance(timecode, str):
        raise TimecodeError(f"Timecode must be a string, got {type(timecode).__name__}")
    text = timecode.strip()
    match = _TIMECODE_RE.match(text)
    if match:
        hours, minutes, seconds, separator, frames = match.groups()
        drop = separator == ";" or ";" in text
    else:
        match = _ALL_SEMICOLON_RE.match(text)
        if not match:
            raise TimecodeError(
                f"Invalid timecode format: '{timecode}'. Expected HH:MM:SS:FF or HH:MM:SS;FF")
        hours, minutes, seconds, frames = match.groups()
        drop = True
    parts = TimecodeParts(int(hours), int(minutes), int(seconds), int(frames), drop)
    if parts.minutes > 59 or parts.seconds > 59:
        raise TimecodeError(f"Minutes/seconds out of range in timecode '{timecode}'")
    return parts


def _require_rate(frame_rate: Optional[RateLike]) -> Fraction:
    rate = parse_frame_rate(frame_rate)
    if rate is None:
        raise TimecodeError(f"A positive frame rate is required, got {frame_rate!r}")
    return rate


def nominal_fps(frame_rate: RateLike) -> int:
    """Integer counting base for a rate: 24 for 23.976, 30 for 29.97, 25 for 25."""
    rate = _require_rate(frame_rate)
    base = round(rate)
    if base < 1:
        raise TimecodeError(f"Frame rate {rate} is too low for timecode counting")
    return base


def drop_frames_per_minute(frame_rate: RateLike) -> int:
    """Frame labels skipped per minute in drop-frame mode (2 @ 29.97, 4 @ 59.94)."""
    return round(Fraction(nominal_fps(frame_rate), 15))


def _frame_field_width(base: int) -> int:
    return max(2, len(str(base - 1)))


def _otio_counts(frame_rate: Fraction, base: int, drop_frame: bool) -> bool:
    """
    OTIO counts labels with two-digit frame fields, and drop-frame only at
    the 29.97 family rates. Anything else (';' at 25 fps, 120 fps labels)
    is counted directly.
    """
    if base > 100:
        return False
    return not drop_frame or is_drop_frame_rate(frame_rate)


def _otio_rate(frame_rate: Fraction, base: int, drop_frame: bool) -> float:
    # Non-drop labels only depend on the counting base (23.976 counts like 24)
    return float(frame_rate) if drop_frame else float(base)


def _count_label(parts: TimecodeParts, base: int, dropped: int) -> int:
    total_minutes = 60 * parts.hours + parts.minutes
    frame_number = (total_minutes * 60 + parts.seconds) * base + parts.frames
    return frame_number - dropped * (total_minutes - total_minutes // 10)


def _format_label(frame_number: int, base: int, dropped: int) -> str:
    separator = ":"
    if dropped:
        frames_per_minute = base * 60 - dropped
        frames_per_10_minutes = base * 600 - dropped * 9
        tens, remainder = divmod(frame_number, frames_per_10_minutes)
        if remainder > dropped:
            frame_number += dropped * 9 * tens + dropped * ((remainder - dropped) // frames_per_minute)
        else:
            frame_number += dropped * 9 * tens
        separator = ";"

    frames = frame_number % base
    total_seconds = frame_number // base
    seconds = total_seconds % 60
    minutes = (total_seconds // 60) % 60
    hours = total_seconds // 3600

    width = _frame_field_width(base)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{separator}{frames:0{width}d}"


def to_frames(timecode: str, frame_rate: RateLike, drop_frame: bool) -> int:
    """
    Converts a timecode label to an absolute frame count from 00:00:00:00.

    Args:
        timecode: Timecode string; the separator style is not re-checked here.
        frame_rate: Exact frame rate (Fraction or ffprobe-style string).
        drop_frame: Whether to count using drop-frame rules.

    Raises:
        TimecodeError: On malformed input, a frames field beyond the rate, or
                       a drop-frame label that does not exist.
    """
    parts = parse_timecode(timecode)
    rate = _require_rate(frame_rate)
    base = nominal_fps(rate)
    if parts.frames >= base:
        raise TimecodeError(f"Frames field in '{timecode}' exceeds {base} fps counting base")

    dropped = drop_frames_per_minute(rate) if drop_frame else 0
    if dropped and parts.seconds == 0 and parts.frames < dropped and parts.minutes % 10 != 0:
        raise TimecodeError(f"'{timecode}' does not exist in drop-frame counting")

    if _otio_counts(rate, base, drop_frame):
        label = (f"{parts.hours:02d}:{parts.minutes:02d}:{parts.seconds:02d}"
                 f"{';' if drop_frame else ':'}{parts.frames:02d}")
        try:
            return round(otio.opentime.from_timecode(label, _otio_rate(rate, base, drop_frame)).value)
        except ValueError as e:
            logger.debug(f"OTIO could not count '{timecode}' at {float(rate):.3f} fps ({e}), counting directly")
    return _count_label(parts, base, dropped)


def to_timecode(frame_count: int, frame_rate: RateLike, drop_frame: bool) -> str:
    """
    Converts an absolute frame count to a timecode label.

    Drop-frame output uses ';' before the frames field. Hours are not wrapped
    at 24 so that frame arithmetic stays reversible.

    Raises:
        TimecodeError: For negative frame counts or an unusable rate.
    """
    if frame_count < 0:
        raise TimecodeError(f"Cannot express negative frame count {frame_count} as timecode")
    rate = _require_rate(frame_rate)
    base = nominal_fps(rate)
    dropped = drop_frames_per_minute(rate) if drop_frame else 0
    frame_number = int(frame_count)

    # Labels from 24 hours on are formatted here so the hours keep counting
    frames_per_day = 144 * (base * 600 - dropped * 9)
    if _otio_counts(rate, base, drop_frame) and frame_number < frames_per_day:
        otio_rate = _otio_rate(rate, base, drop_frame)
        try:
            return otio.opentime.to_timecode(otio.opentime.RationalTime(frame_number, otio_rate),
                                             otio_rate, drop_frame)
        except ValueError as e:
            logger.debug(f"OTIO could not format frame {frame_number} at {float(rate):.3f} fps ({e})")
    return _format_label(frame_number, base, dropped)


def add_frames(timecode: str, frame_rate: RateLike, drop_frame: bool, delta: int) -> str:
    """Offsets a timecode by `delta` frames (may be negative, result must stay >= 0)."""
    return to_timecode(to_frames(timecode, frame_rate, drop_frame) + delta, frame_rate, drop_frame)


def subtract_timecodes(later: str, earlier: str, frame_rate: RateLike, drop_frame: bool) -> int:
    """Number of frames from `earlier` to `later` (negative if `later` comes first)."""
    return to_frames(later, frame_rate, drop_frame) - to_frames(earlier, frame_rate, drop_frame)


def detect_drop_frame(timecode: str, frame_rate: Optional[RateLike] = None) -> bool:
    """
    Decides drop-frame counting for a timecode.

    The separator is authoritative: ';' means drop-frame, ':' means non-drop.
    When it disagrees with the rate (e.g. ';' at 25 fps, or ':' at 29.97)
    the separator still wins and a warning is logged, since mislabelled
    rates are common in camera metadata.
    """
    has_drop_separator = ";" in timecode
    rate = parse_frame_rate(frame_rate)
    if rate is None:
        return has_drop_separator

    drop_rate = is_drop_frame_rate(rate)
    if has_drop_separator and not drop_rate:
        logger.warning(
            f"Drop-frame separator in '{timecode}' but {float(rate):.3f} fps "
            f"is not a drop-frame rate. Trusting the separator.")
    elif drop_rate and not has_drop_separator:
        logger.warning(
            f"Drop-frame capable rate {float(rate):.3f} fps with non-drop "
            f"separator in '{timecode}'. Trusting the separator.")
    return has_drop_separator


def normalize_drop_frame_separator(timecode: str) -> str:
    """Ensures a drop-frame timecode carries ';' by replacing the last ':' if needed."""
    if ";" in timecode:
        return timecode
    head, sep, tail = timecode.rpartition(":")
    if not sep:
        return timecode
    return f"{head};{tail}"


def is_valid_timecode(timecode: Optional[str]) -> bool:
    """Cheap format check, no rate validation."""
    if not timecode:
        return False
    try:
        parse_timecode(timecode)
    except TimecodeError:
        return False
    return True
