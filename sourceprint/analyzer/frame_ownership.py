# sourceprint/analyzer/frame_ownership.py
"""
Frame Ownership Analyzer

Places every linked child of an OCF on the OCF's frame timeline and works
out which segment supplies each frame. VFX segments win over grades in
overlapping regions; overlaps between equals are reported as conflict zones
and left for a person to decide.
"""

import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from ..models import (
    AnalysisStatistics,
    ConflictZone,
    MediaFileInfo,
    OCFParent,
    ProcessingPlan,
    ProcessingRange,
    SegmentPlacement,
    UnplacedSegment,
)
from ..utils.time_utils import FrameRange, frame_range_length, intersect_frame_ranges, merge_frame_ranges
from ..utils.timecode import TimecodeError, to_frames

logger = logging.getLogger(__name__)

VFX_PALETTE = ["#FF6B6B", "#F783AC", "#FF922B", "#E8590C", "#FA5252"]
GRADE_PALETTE = ["#4DABF7", "#38D9A9", "#748FFC", "#69DB7C", "#3BC9DB", "#9775FA"]


def display_color_for(segment: MediaFileInfo, is_vfx: bool) -> str:
    """Stable colour per file name; md5 so it does not change between runs."""
    palette = VFX_PALETTE if is_vfx else GRADE_PALETTE
    digest = hashlib.md5(segment.file_name.encode("utf-8")).hexdigest()
    return palette[int(digest[:8], 16) % len(palette)]


class FrameOwnershipAnalyzer:
    """Builds a ProcessingPlan for one OCF parent. Pure and deterministic."""

    def analyze(self, parent: OCFParent) -> ProcessingPlan:
        ocf = parent.ocf
        logger.info(f"Analyzing frame ownership for '{ocf.file_name}' ({parent.child_count} segment(s))")

        # --- Step 1: OCF timeline ---
        base_frame = self._ocf_base_frame(ocf)
        total_frames = ocf.duration_in_frames or 0
        plan = ProcessingPlan(ocf=ocf, total_frames=total_frames)
        if base_frame is None or total_frames <= 0:
            reason = "OCF has no usable start timecode, frame rate or duration"
            logger.warning(f"Cannot place segments on '{ocf.file_name}': {reason}")
            plan.unplaced_segments = [UnplacedSegment(child.segment, reason) for child in parent.children]
            plan.statistics = AnalysisStatistics(total_frames=total_frames, segment_count=parent.child_count,
                                                 vfx_segment_count=sum(1 for c in parent.children if c.segment.is_vfx))
            return plan

        # --- Step 2: place each child ---
        for child in parent.children:
            segment = child.segment
            placed = self._place(segment, ocf, base_frame, total_frames)
            if isinstance(placed, str):
                logger.warning(f"  Not placing '{segment.file_name}': {placed}")
                plan.unplaced_segments.append(UnplacedSegment(segment, placed))
                continue
            start, end = placed
            is_vfx = segment.is_vfx
            plan.placements.append(SegmentPlacement(
                segment=segment,
                start_frame=start,
                end_frame=end,
                is_vfx=is_vfx,
                display_color=display_color_for(segment, is_vfx),
            ))
            logger.debug(f"  {segment.file_name}: frames [{start}, {end}){' VFX' if is_vfx else ''}")

        plan.placements.sort(key=lambda p: (p.start_frame, p.end_frame, p.segment.file_name))

        # --- Step 3: sweep for overlaps ---
        overlap_count = self._resolve_overlaps(plan)

        # --- Step 4: consolidated ownership runs ---
        plan.processing_ranges = self._consolidate(plan.placements)

        plan.statistics = self._statistics(plan, parent, overlap_count)
        logger.info(
            f"Ownership for '{ocf.file_name}': {len(plan.placements)} placed, "
            f"{overlap_count} overlap(s), {len(plan.conflict_zones)} conflict zone(s), "
            f"{plan.statistics.frames_overwritten} frame(s) overwritten by VFX")
        return plan

    # --- Placement ---

    @staticmethod
    def _ocf_base_frame(ocf: MediaFileInfo) -> Optional[int]:
        if not ocf.source_timecode or ocf.frame_rate is None:
            return None
        try:
            return to_frames(ocf.source_timecode, ocf.frame_rate, bool(ocf.is_drop_frame))
        except TimecodeError as e:
            logger.warning(f"OCF timecode unusable for '{ocf.file_name}': {e}")
            return None

    @staticmethod
    def _place(segment: MediaFileInfo, ocf: MediaFileInfo, base_frame: int,
               total_frames: int):
        """Returns (start, end) clamped to the OCF, or a reason string."""
        if not segment.source_timecode:
            return "segment has no source timecode"
        if not segment.duration_in_frames:
            return "segment duration unknown or zero"
        try:
            # Both labels are counted the way the OCF counts
            seg_frame = to_frames(segment.source_timecode, ocf.frame_rate, bool(ocf.is_drop_frame))
        except TimecodeError as e:
            return f"segment timecode unusable ({e})"

        start = seg_frame - base_frame
        end = start + segment.duration_in_frames
        clamped_start = max(0, min(start, total_frames))
        clamped_end = max(0, min(end, total_frames))
        if clamped_start >= clamped_end:
            return f"frames [{start}, {end}) fall outside the OCF (0-{total_frames})"
        if (clamped_start, clamped_end) != (start, end):
            logger.warning(f"  '{segment.file_name}' extends past the OCF, clamped "
                           f"[{start}, {end}) -> [{clamped_start}, {clamped_end})")
        return clamped_start, clamped_end

    # --- Overlaps ---

    @staticmethod
    def _resolve_overlaps(plan: ProcessingPlan) -> int:
        placements = plan.placements
        overwritten: Dict[int, List[FrameRange]] = {}
        overlap_count = 0

        for i, first in enumerate(placements):
            for second in placements[i + 1:]:
                if second.start_frame >= first.end_frame:
                    break  # sorted by start, nothing later can overlap `first`
                overlap = intersect_frame_ranges(first.frame_range, second.frame_range)
                if overlap is None:
                    continue
                overlap_count += 1
                if first.is_vfx != second.is_vfx:
                    loser = second if first.is_vfx else first
                    overwritten.setdefault(id(loser), []).append(overlap)
                    logger.debug(f"  VFX overrides '{loser.segment.file_name}' on frames {overlap}")
                else:
                    description = f"{first.segment.file_name} vs {second.segment.file_name}"
                    plan.conflict_zones.append(ConflictZone(overlap[0], overlap[1], description))
                    logger.warning(f"  Unresolved overlap on frames [{overlap[0]}, {overlap[1]}): {description}")

        for placement in placements:
            if id(placement) in overwritten:
                placement.overwritten_ranges = merge_frame_ranges(overwritten[id(placement)])
        return overlap_count

    # --- Ownership runs ---

    @staticmethod
    def _consolidate(placements: List[SegmentPlacement]) -> List[ProcessingRange]:
        """
        Splits the timeline at every placement boundary and picks one owner per
        piece: VFX before grade, then the later placement in sort order.
        """
        if not placements:
            return []
        boundaries = sorted({f for p in placements for f in (p.start_frame, p.end_frame)})
        ranked: List[Tuple[Tuple[bool, int], SegmentPlacement]] = [
            ((p.is_vfx, index), p) for index, p in enumerate(placements)
        ]

        ranges: List[ProcessingRange] = []
        for start, end in zip(boundaries, boundaries[1:]):
            covering = [(rank, p) for rank, p in ranked if p.start_frame <= start and end <= p.end_frame]
            if not covering:
                continue
            owner = max(covering, key=lambda item: item[0])[1]
            last = ranges[-1] if ranges else None
            if last is not None and last.segment is owner.segment and last.end_frame == start:
                last.end_frame = end
                continue
            ranges.append(ProcessingRange(
                start_frame=start,
                end_frame=end,
                segment=owner.segment,
                segment_start_offset=start - owner.start_frame,
            ))

        for item in ranges:
            kind = "VFX" if item.segment.is_vfx else "grade"
            item.description = (f"{item.segment.file_name} ({kind}) frames {item.start_frame}-{item.end_frame - 1} "
                                f"from segment frame {item.segment_start_offset}")
        return ranges

    @staticmethod
    def _statistics(plan: ProcessingPlan, parent: OCFParent, overlap_count: int) -> AnalysisStatistics:
        vfx_ranges = [p.frame_range for p in plan.placements if p.is_vfx]
        grade_ranges = [p.frame_range for p in plan.placements if not p.is_vfx]
        overwritten = [r for p in plan.placements for r in p.overwritten_ranges]
        vfx_frames = frame_range_length(vfx_ranges)
        return AnalysisStatistics(
            total_frames=plan.total_frames,
            segment_count=parent.child_count,
            vfx_segment_count=sum(1 for c in parent.children if c.segment.is_vfx),
            overlap_count=overlap_count,
            frames_overwritten=frame_range_length(overwritten),
            vfx_frames=vfx_frames,
            grade_frames=frame_range_length(grade_ranges + vfx_ranges) - vfx_frames,
            conflict_frames=frame_range_length((z.start_frame, z.end_frame) for z in plan.conflict_zones),
        )
