# -*- coding: utf-8 -*-
"""
sourceprint/linker.py

Matches graded/VFX segments back to the original camera files they came from.

All (segment, OCF) pairs are scored before anything is assigned, then each
segment goes to its best candidate according to `candidate_sort_key`.
"""

import logging
import re
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Sequence, Tuple

from .models import LinkConfidence, LinkedSegment, LinkingResult, MediaFileInfo, OCFParent
from .utils.frame_rate import are_frame_rates_compatible
from .utils.timecode import TimecodeError, nominal_fps, to_frames

logger = logging.getLogger(__name__)

# --- Criteria names (also used as the method string) ---
FILENAME_CONTAINS = "filename_contains"
FILENAME_PARTIAL = "filename_partial"
RESOLUTION = "resolution"
FPS = "fps"
TIMECODE_RANGE = "timecode_range"
REEL = "reel"
VFX_EXEMPTION = "vfx_exemption"
CONSUMER_CAMERA = "consumer_camera"

# Criteria that identify a specific OCF; technical matches alone never do
IDENTIFYING_CRITERIA = {TIMECODE_RANGE, FILENAME_CONTAINS, FILENAME_PARTIAL, REEL}
CORROBORATING_CRITERIA = {RESOLUTION, FPS, FILENAME_CONTAINS, FILENAME_PARTIAL, VFX_EXEMPTION}

RESOLUTION_TOLERANCE_PX = 5

# Suffixes graded exports append to the camera clip name
SEGMENT_SUFFIX_PATTERNS = [
    re.compile(r"_s\d+$"),
    re.compile(r"_S\d+$"),
    re.compile(r" S\d+$"),
    re.compile(r"_seg\d+$"),
    re.compile(r"_segment\d+$"),
    re.compile(r"\s+S\d+\s*$"),
]


@dataclass
class LinkCandidate:
    """
    One scored (segment, OCF) pairing.

    Attributes:
        segment: The segment being placed.
        ocf: The candidate parent.
        criteria: Satisfied criteria in evaluation order.
        confidence: Tier derived from the criteria.
        timecode_conflict: Both sides had usable timecode ranges that did not contain.
    """
    segment: MediaFileInfo
    ocf: MediaFileInfo
    criteria: List[str] = field(default_factory=list)
    confidence: LinkConfidence = LinkConfidence.LOW
    timecode_conflict: bool = False

    @property
    def method(self) -> str:
        return "+".join(self.criteria)

    @property
    def has_timecode_range(self) -> bool:
        return TIMECODE_RANGE in self.criteria


def candidate_sort_key(candidate: LinkCandidate) -> Tuple:
    """
    Deterministic ordering of candidates for one segment, best first.

    Higher confidence, then timecode-range containment, then more satisfied
    criteria, then the lexicographically first OCF file name (path as a last
    resort so identical names in different folders still order stably).
    """
    return (
        -candidate.confidence.rank,
        0 if candidate.has_timecode_range else 1,
        -len(candidate.criteria),
        candidate.ocf.file_name,
        candidate.ocf.path,
    )


def _is_contested(best: LinkCandidate, runner_up: LinkCandidate) -> bool:
    return candidate_sort_key(best)[:3] == candidate_sort_key(runner_up)[:3]


def extract_base_file_name(file_name: str) -> Optional[str]:
    """Strips the extension and common segment suffixes (_s001, _seg02, ' S10')."""
    base = file_name.rsplit('.', 1)[0] if '.' in file_name else file_name
    for pattern in SEGMENT_SUFFIX_PATTERNS:
        base = pattern.sub("", base).strip()
    return base or None


def _resolution_matches(segment: MediaFileInfo, ocf: MediaFileInfo) -> bool:
    pairs = [(segment.resolution, ocf.resolution),
             (segment.effective_display_resolution, ocf.effective_display_resolution)]
    for seg_res, ocf_res in pairs:
        if seg_res and ocf_res:
            if (abs(seg_res[0] - ocf_res[0]) <= RESOLUTION_TOLERANCE_PX
                    and abs(seg_res[1] - ocf_res[1]) <= RESOLUTION_TOLERANCE_PX):
                return True
    return False


def _timecode_interval(media: MediaFileInfo) -> Optional[Tuple[Fraction, Fraction]]:
    """
    [start, end] as label positions in seconds, or None if the file has no
    usable range. Labels are read field by field (HH:MM:SS + FF / base), so a
    drop-frame camera label and a non-drop render label of the same
    HH:MM:SS:FF land on the same position.
    """
    if not media.source_timecode or not media.end_timecode or media.frame_rate is None:
        return None
    try:
        base = nominal_fps(media.frame_rate)
        return (Fraction(to_frames(media.source_timecode, media.frame_rate, False), base),
                Fraction(to_frames(media.end_timecode, media.frame_rate, False), base))
    except TimecodeError as e:
        logger.debug(f"Timecode unavailable for '{media.file_name}': {e}")
        return None


def _same_counting_base(segment: MediaFileInfo, ocf: MediaFileInfo) -> bool:
    if segment.frame_rate is None or ocf.frame_rate is None:
        return False
    return nominal_fps(segment.frame_rate) == nominal_fps(ocf.frame_rate)


class SegmentOCFLinker:
    """Batch matcher assigning segments to OCF parents with a confidence tier."""

    def link(self, segments: Sequence[MediaFileInfo], ocfs: Sequence[MediaFileInfo]) -> LinkingResult:
        """
        Links every segment to at most one OCF.

        Returns:
            LinkingResult with one OCFParent per input OCF (input order),
            unmatched segments and OCFs that received no children.
        """
        logger.info(f"Linking {len(segments)} segment(s) against {len(ocfs)} OCF(s)...")

        # --- Step 1: score every pair before committing anything ---
        ocf_intervals = {id(ocf): _timecode_interval(ocf) for ocf in ocfs}
        candidates_by_segment: List[List[LinkCandidate]] = []
        for segment in segments:
            seg_interval = _timecode_interval(segment)
            candidates = []
            for ocf in ocfs:
                candidate = self.score_pair(segment, ocf, seg_interval, ocf_intervals[id(ocf)])
                if candidate is not None:
                    candidates.append(candidate)
            candidates.sort(key=candidate_sort_key)
            candidates_by_segment.append(candidates)

        # --- Step 2: assign each segment to its best candidate ---
        children: Dict[int, List[LinkedSegment]] = {id(ocf): [] for ocf in ocfs}
        unmatched_segments: List[MediaFileInfo] = []
        for segment, candidates in zip(segments, candidates_by_segment):
            if not candidates:
                logger.debug(f"  No OCF match for {segment.file_name}")
                unmatched_segments.append(segment)
                continue

            best = candidates[0]
            confidence = best.confidence
            if len(candidates) > 1 and _is_contested(best, candidates[1]):
                logger.warning(
                    f"Ambiguous match for '{segment.file_name}': '{best.ocf.file_name}' and "
                    f"'{candidates[1].ocf.file_name}' are equally good. Picked '{best.ocf.file_name}' "
                    f"by file name order, confidence lowered to low.")
                confidence = LinkConfidence.LOW
            elif len(candidates) > 1:
                logger.debug(f"  {segment.file_name}: {len(candidates)} candidates, "
                             f"best '{best.ocf.file_name}' ({best.method})")

            children[id(best.ocf)].append(LinkedSegment(segment, confidence, best.method))
            logger.info(f"  {segment.file_name} -> {best.ocf.file_name} ({confidence.value}, {best.method})")

        # --- Step 3: build the result in input order ---
        parents = [OCFParent(ocf=ocf, children=children[id(ocf)]) for ocf in ocfs]
        result = LinkingResult(
            ocf_parents=parents,
            unmatched_segments=unmatched_segments,
            unmatched_ocfs=[p.ocf for p in parents if not p.has_children],
        )
        logger.info(f"Linking complete: {result.summary}")
        return result

    def score_pair(self, segment: MediaFileInfo, ocf: MediaFileInfo,
                   seg_interval: Optional[Tuple[Fraction, Fraction]] = None,
                   ocf_interval: Optional[Tuple[Fraction, Fraction]] = None) -> Optional[LinkCandidate]:
        """
        Evaluates one pair against all criteria.

        Returns:
            A LinkCandidate, or None if no identifying criterion matched.
        """
        if seg_interval is None:
            seg_interval = _timecode_interval(segment)
        if ocf_interval is None:
            ocf_interval = _timecode_interval(ocf)

        criteria: List[str] = []

        # 1. Filename
        segment_name = segment.file_name.lower()
        ocf_base = ocf.base_name.lower()
        ocf_reel = (ocf.reel_name or "").lower()
        if (ocf_base and ocf_base in segment_name) or (ocf_reel and ocf_reel in segment_name):
            criteria.append(FILENAME_CONTAINS)
        else:
            segment_base = extract_base_file_name(segment.file_name)
            if segment_base and segment_base.lower() in ocf_base:
                criteria.append(FILENAME_PARTIAL)

        # 2. Resolution
        resolution_ok = _resolution_matches(segment, ocf)
        if resolution_ok:
            criteria.append(RESOLUTION)

        # 3. Frame rate
        fps_ok = are_frame_rates_compatible(segment.frame_rate, ocf.frame_rate)
        if fps_ok:
            criteria.append(FPS)

        # 4. Timecode containment. Labels are comparable when both files count
        # on the same base; VFX renders may differ in format and still qualify.
        timecode_usable = seg_interval is not None and ocf_interval is not None
        exempt = segment.is_vfx and not (resolution_ok and fps_ok)
        timecode_conflict = False
        if timecode_usable and (fps_ok or exempt or _same_counting_base(segment, ocf)):
            seg_start, seg_end = seg_interval
            ocf_start, ocf_end = ocf_interval
            if ocf_start <= seg_start <= ocf_end and ocf_start <= seg_end <= ocf_end:
                criteria.append(TIMECODE_RANGE)
            else:
                timecode_conflict = True
        elif timecode_usable:
            timecode_conflict = True

        # 5. Reel
        if segment.reel_name and ocf.reel_name and segment.reel_name.lower() == ocf.reel_name.lower():
            criteria.append(REEL)

        # 6. VFX exemption
        if exempt and TIMECODE_RANGE in criteria:
            criteria.append(VFX_EXEMPTION)

        # 7. Relaxed rule for material without embedded timecode
        has_filename = FILENAME_CONTAINS in criteria or FILENAME_PARTIAL in criteria
        if not timecode_usable and has_filename and resolution_ok and fps_ok:
            criteria.append(CONSUMER_CAMERA)

        if not IDENTIFYING_CRITERIA.intersection(criteria):
            return None

        candidate = LinkCandidate(segment=segment, ocf=ocf, criteria=criteria,
                                  timecode_conflict=timecode_conflict)
        candidate.confidence = self.classify(candidate)
        return candidate

    @staticmethod
    def classify(candidate: LinkCandidate) -> LinkConfidence:
        """
        high: timecode containment plus a corroborating criterion.
        medium: timecode containment alone, or the consumer-camera rule.
        low: everything else, including filename/reel matches whose known
             timecodes disagree.
        """
        criteria = set(candidate.criteria)
        if TIMECODE_RANGE in criteria:
            if CORROBORATING_CRITERIA.intersection(criteria):
                return LinkConfidence.HIGH
            return LinkConfidence.MEDIUM
        if CONSUMER_CAMERA in criteria and not candidate.timecode_conflict:
            return LinkConfidence.MEDIUM
        return LinkConfidence.LOW
