# -*- coding: utf-8 -*-
"""
sourceprint/models.py

Data Models for SourcePrint.

Defines the value objects passed between the pipeline stages: analyzed
media files, linking results, frame-ownership plans, blank rush results
and the encoder configuration consumed by the synthesis backend.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Dict, List, Optional, Tuple

import opentimelineio as otio

from .utils.frame_rate import frame_rate_description, parse_frame_rate
from .utils.time_utils import FrameRange, duration_to_seconds, frame_range_to_time_range, frames_to_rational_time
from .utils.timecode import TimecodeError, add_frames, detect_drop_frame

logger = logging.getLogger(__name__)

Resolution = Tuple[int, int]


class MediaRole(Enum):
    """What a file is in the reconciliation workflow."""
    ORIGINAL_CAMERA_FILE = "originalCameraFile"
    GRADED_SEGMENT = "gradedSegment"


@dataclass
class MediaFileInfo:
    """
    Technical description of one analyzed media file.

    Every metadata field is optional; None means "could not be determined"
    and is never replaced by a default.

    Attributes:
        path: Location of the file on disk.
        file_name: Base name of the file (derived from path).
        media_role: Whether the file is an OCF or a graded/VFX segment.
        resolution: Coded (width, height).
        display_resolution: SAR-corrected (width, height), if it differs or was computed.
        sample_aspect_ratio: SAR as reported by the container, e.g. "4:3".
        frame_rate: Exact rational frame rate.
        source_timecode: Start timecode label.
        duration_in_frames: Length in frames.
        is_drop_frame: Drop-frame counting (None when no timecode is known).
        reel_name: Reel/tape/camera name from container metadata.
        is_interlaced: True/False when conclusive, None otherwise.
        field_order: Field order label ("progressive", "top_field_first", ...).
        codec_name: Video codec reported by the container.
        is_vfx_shot: User override of the VFX flag (None falls back to the filename).
        end_timecode: start + duration, computed when all inputs are present.
    """
    path: str
    media_role: MediaRole = MediaRole.GRADED_SEGMENT
    resolution: Optional[Resolution] = None
    display_resolution: Optional[Resolution] = None
    sample_aspect_ratio: Optional[str] = None
    frame_rate: Optional[Fraction] = None
    source_timecode: Optional[str] = None
    duration_in_frames: Optional[int] = None
    is_drop_frame: Optional[bool] = None
    reel_name: Optional[str] = None
    is_interlaced: Optional[bool] = None
    field_order: Optional[str] = None
    codec_name: Optional[str] = None
    is_vfx_shot: Optional[bool] = None

    file_name: str = field(init=False)
    end_timecode: Optional[str] = field(init=False, default=None)

    def __post_init__(self):
        self.file_name = os.path.basename(self.path)
        if self.frame_rate is not None and not isinstance(self.frame_rate, Fraction):
            self.frame_rate = parse_frame_rate(self.frame_rate)
        if self.duration_in_frames is not None and self.duration_in_frames < 0:
            raise ValueError(f"duration_in_frames must be >= 0 for '{self.file_name}'")
        if self.source_timecode and self.is_drop_frame is None:
            self.is_drop_frame = detect_drop_frame(self.source_timecode, self.frame_rate)
        self.end_timecode = self._compute_end_timecode()

    def __hash__(self):
        return hash(self.path)

    def _compute_end_timecode(self) -> Optional[str]:
        if not self.source_timecode or self.frame_rate is None or not self.duration_in_frames:
            return None
        try:
            return add_frames(self.source_timecode, self.frame_rate, bool(self.is_drop_frame),
                              self.duration_in_frames)
        except TimecodeError as e:
            logger.warning(f"End timecode unavailable for '{self.file_name}': {e}")
            return None

    # --- Derived properties ---

    @property
    def base_name(self) -> str:
        return os.path.splitext(self.file_name)[0]

    @property
    def is_vfx(self) -> bool:
        if self.is_vfx_shot is not None:
            return self.is_vfx_shot
        return "VFX" in self.file_name.upper()

    @property
    def is_ocf(self) -> bool:
        return self.media_role == MediaRole.ORIGINAL_CAMERA_FILE

    @property
    def effective_display_resolution(self) -> Optional[Resolution]:
        return self.display_resolution or self.resolution

    @property
    def has_sensor_cropping(self) -> bool:
        """True when the SAR-corrected display size differs from the coded size."""
        return (self.display_resolution is not None and self.resolution is not None
                and self.display_resolution != self.resolution)

    @property
    def frame_rate_float(self) -> Optional[float]:
        return float(self.frame_rate) if self.frame_rate is not None else None

    @property
    def frame_rate_description(self) -> str:
        return frame_rate_description(self.frame_rate)

    @property
    def scan_type_description(self) -> str:
        if self.is_interlaced is None:
            return "Unknown"
        if not self.is_interlaced:
            return "Progressive"
        if self.field_order and self.field_order != "interlaced":
            return f"Interlaced ({self.field_order.replace('_', ' ')})"
        return "Interlaced"

    @property
    def duration(self) -> Optional[otio.opentime.RationalTime]:
        if self.duration_in_frames is None or self.frame_rate is None:
            return None
        return frames_to_rational_time(self.duration_in_frames, self.frame_rate)

    @property
    def duration_in_seconds(self) -> Optional[float]:
        duration = self.duration
        return duration_to_seconds(duration) if duration is not None else None

    @property
    def technical_summary(self) -> str:
        parts = []
        res = self.effective_display_resolution
        if res:
            parts.append(f"{res[0]}x{res[1]}")
            if self.has_sensor_cropping and self.resolution:
                parts[-1] += f" (coded {self.resolution[0]}x{self.resolution[1]})"
        parts.append(self.frame_rate_description)
        parts.append(self.scan_type_description)
        if self.source_timecode:
            tc = self.source_timecode
            if self.end_timecode:
                tc += f" - {self.end_timecode}"
            parts.append(f"TC {tc}")
        if self.duration_in_frames is not None:
            parts.append(f"{self.duration_in_frames} frames")
        if self.reel_name:
            parts.append(f"Reel {self.reel_name}")
        return " | ".join(parts)


class LinkConfidence(Enum):
    """Trust tier for a segment→OCF match. No match is represented by absence."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]

    def __lt__(self, other):
        if not isinstance(other, LinkConfidence):
            return NotImplemented
        return self.rank < other.rank


@dataclass
class LinkedSegment:
    """
    A segment attached to an OCF parent.

    Attributes:
        segment: The linked segment.
        confidence: Confidence tier of the match.
        method: '+'-joined criteria that matched, e.g. "resolution+fps+timecode_range".
    """
    segment: MediaFileInfo
    confidence: LinkConfidence
    method: str

    @property
    def criteria(self) -> List[str]:
        return self.method.split("+") if self.method else []


@dataclass
class OCFParent:
    """An OCF together with the segments linked to it, in input order."""
    ocf: MediaFileInfo
    children: List[LinkedSegment] = field(default_factory=list)

    @property
    def child_count(self) -> int:
        return len(self.children)

    @property
    def has_children(self) -> bool:
        return bool(self.children)


@dataclass
class LinkingResult:
    """
    Output of a linking run.

    Attributes:
        ocf_parents: Every OCF passed in, in input order, with its children.
        unmatched_segments: Segments that matched no OCF.
        unmatched_ocfs: OCFs that received no segment.
    """
    ocf_parents: List[OCFParent] = field(default_factory=list)
    unmatched_segments: List[MediaFileInfo] = field(default_factory=list)
    unmatched_ocfs: List[MediaFileInfo] = field(default_factory=list)

    @property
    def parents_with_children(self) -> List[OCFParent]:
        return [p for p in self.ocf_parents if p.has_children]

    @property
    def total_linked_segments(self) -> int:
        return sum(p.child_count for p in self.ocf_parents)

    @property
    def total_segments(self) -> int:
        return self.total_linked_segments + len(self.unmatched_segments)

    @property
    def success_rate(self) -> float:
        if self.total_segments == 0:
            return 0.0
        return self.total_linked_segments / self.total_segments

    @property
    def summary(self) -> str:
        return (f"{len(self.parents_with_children)} OCF parents with {self.total_linked_segments} "
                f"child segments ({int(self.success_rate * 100)}% success)")

    @property
    def blank_rush_summary(self) -> str:
        parents = self.parents_with_children
        children = sum(p.child_count for p in parents)
        return f"{len(parents)} OCF parents with {children} total children ready for blank rush creation"


# --- Frame ownership ---

@dataclass
class SegmentPlacement:
    """
    Where a linked segment lands on its OCF's frame timeline.

    Attributes:
        segment: The placed segment.
        start_frame: First OCF frame covered (frame 0 = OCF start timecode).
        end_frame: One past the last OCF frame covered.
        is_vfx: Whether the segment has VFX priority.
        overwritten_ranges: Sub-ranges claimed by higher-priority VFX placements.
        display_color: Stable hex colour for timeline drawing.
    """
    segment: MediaFileInfo
    start_frame: int
    end_frame: int
    is_vfx: bool
    overwritten_ranges: List[FrameRange] = field(default_factory=list)
    display_color: str = "#4DABF7"

    @property
    def frame_count(self) -> int:
        return self.end_frame - self.start_frame

    @property
    def frame_range(self) -> FrameRange:
        return self.start_frame, self.end_frame

    def time_range(self, rate) -> otio.opentime.TimeRange:
        return frame_range_to_time_range(self.frame_range, rate)


@dataclass
class ConflictZone:
    """Overlap between two placements of equal priority, left for manual review."""
    start_frame: int
    end_frame: int
    description: str


@dataclass
class ProcessingRange:
    """A contiguous run of OCF frames owned by a single segment."""
    start_frame: int
    end_frame: int
    segment: MediaFileInfo
    segment_start_offset: int
    description: str = ""

    @property
    def frame_count(self) -> int:
        return self.end_frame - self.start_frame


@dataclass
class AnalysisStatistics:
    total_frames: int = 0
    segment_count: int = 0
    vfx_segment_count: int = 0
    overlap_count: int = 0
    frames_overwritten: int = 0
    vfx_frames: int = 0
    grade_frames: int = 0
    conflict_frames: int = 0


@dataclass
class UnplacedSegment:
    segment: MediaFileInfo
    reason: str


@dataclass
class TimelineVisualization:
    """Everything a timeline chart needs, nothing more."""
    total_frames: int
    placements: List[SegmentPlacement]
    conflict_zones: List[ConflictZone]


@dataclass
class ProcessingPlan:
    """
    Result of frame-ownership analysis for one OCF parent.

    Attributes:
        ocf: The OCF whose timeline was analyzed.
        total_frames: Length of the OCF timeline in frames.
        placements: Segment placements sorted by start frame.
        conflict_zones: Unresolved same-priority overlaps.
        statistics: Aggregate counts.
        processing_ranges: Consolidated ownership runs for a compositor.
        unplaced_segments: Children that could not be placed, with reasons.
    """
    ocf: MediaFileInfo
    total_frames: int
    placements: List[SegmentPlacement] = field(default_factory=list)
    conflict_zones: List[ConflictZone] = field(default_factory=list)
    statistics: AnalysisStatistics = field(default_factory=AnalysisStatistics)
    processing_ranges: List[ProcessingRange] = field(default_factory=list)
    unplaced_segments: List[UnplacedSegment] = field(default_factory=list)

    @property
    def visualization(self) -> TimelineVisualization:
        return TimelineVisualization(self.total_frames, list(self.placements), list(self.conflict_zones))

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflict_zones)


# --- Blank rush ---

@dataclass
class EncoderSettings:
    """
    Encoder configuration handed verbatim to the synthesis backend.

    Attributes:
        codec_name: Encoder name (hardware ProRes by default).
        pixel_format: Pixel format the encoder expects from the filter graph.
        profile: Encoder profile selector ("4" is ProRes 4444 on VideoToolbox).
        allow_software: Whether the encoder may fall back to software internally.
        color_range: "tv" for broadcast-legal range.
        color_primaries / color_trc / colorspace: HD colour metadata.
    """
    codec_name: str = "prores_videotoolbox"
    pixel_format: str = "uyvy422"
    profile: str = "4"
    allow_software: bool = False
    color_range: str = "tv"
    color_primaries: str = "bt709"
    color_trc: str = "bt709"
    colorspace: str = "bt709"

    def to_codec_options(self) -> Dict[str, str]:
        return {
            "profile": str(self.profile),
            "allow_sw": "1" if self.allow_software else "0",
            "color_range": self.color_range,
            "colorspace": self.colorspace,
            "color_primaries": self.color_primaries,
            "color_trc": self.color_trc,
        }


@dataclass
class BlankRushResult:
    """
    Outcome of one blank rush attempt.

    Attributes:
        original_ocf: The OCF the blank rush was made for.
        blank_rush_path: Target output path.
        success: True if the file was fully written and finalized.
        error: Failure reason, if any.
        frames_written: Frames pushed through the encoder.
        skipped: True when the OCF had no linked children and no attempt was made.
    """
    original_ocf: MediaFileInfo
    blank_rush_path: str
    success: bool
    error: Optional[str] = None
    frames_written: int = 0
    skipped: bool = False
