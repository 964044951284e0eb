# tests/test_frame_ownership.py
from fractions import Fraction
import logging

from sourceprint.analyzer.frame_ownership import (
    GRADE_PALETTE,
    VFX_PALETTE,
    FrameOwnershipAnalyzer,
    display_color_for,
)


def _placement(plan, name):
    return next(p for p in plan.placements if p.segment.file_name == name)


def test_vfx_overwrites_grade_without_conflict(make_ocf, make_segment, make_parent):
    grade = make_segment(name="SH010_v1.mov", timecode="10:00:02:00", frames=50)
    vfx = make_segment(name="VFX_SH020.mov", timecode="10:00:03:00", frames=50)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), grade, vfx))

    assert _placement(plan, "SH010_v1.mov").frame_range == (50, 100)
    assert _placement(plan, "VFX_SH020.mov").frame_range == (75, 125)
    assert _placement(plan, "SH010_v1.mov").overwritten_ranges == [(75, 100)]
    assert _placement(plan, "VFX_SH020.mov").overwritten_ranges == []
    assert plan.conflict_zones == []
    assert not plan.has_conflicts

    ranges = [(r.start_frame, r.end_frame, r.segment.file_name, r.segment_start_offset)
              for r in plan.processing_ranges]
    assert ranges == [(50, 75, "SH010_v1.mov", 0), (75, 125, "VFX_SH020.mov", 0)]

    stats = plan.statistics
    assert stats.total_frames == 250
    assert stats.segment_count == 2
    assert stats.vfx_segment_count == 1
    assert stats.overlap_count == 1
    assert stats.frames_overwritten == 25
    assert stats.vfx_frames == 50
    assert stats.grade_frames == 25
    assert stats.conflict_frames == 0


def test_vfx_inside_grade_splits_ownership(make_ocf, make_segment, make_parent):
    grade = make_segment(name="SH010_v1.mov", timecode="10:00:00:00", frames=250)
    vfx = make_segment(name="VFX_SH020.mov", timecode="10:00:03:00", frames=50)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), grade, vfx))

    assert _placement(plan, "SH010_v1.mov").overwritten_ranges == [(75, 125)]
    ranges = [(r.start_frame, r.end_frame, r.segment.file_name, r.segment_start_offset)
              for r in plan.processing_ranges]
    assert ranges == [
        (0, 75, "SH010_v1.mov", 0),
        (75, 125, "VFX_SH020.mov", 0),
        (125, 250, "SH010_v1.mov", 125),
    ]
    assert "from segment frame 125" in plan.processing_ranges[-1].description


def test_same_priority_overlap_is_one_conflict_zone(make_ocf, make_segment, make_parent, caplog):
    first = make_segment(name="SH010_v1.mov", timecode="10:00:02:00", frames=50)
    second = make_segment(name="SH030_v1.mov", timecode="10:00:03:00", frames=50)
    with caplog.at_level(logging.WARNING):
        plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), second, first))

    assert len(plan.conflict_zones) == 1
    zone = plan.conflict_zones[0]
    assert (zone.start_frame, zone.end_frame) == (75, 100)
    assert zone.description == "SH010_v1.mov vs SH030_v1.mov"
    assert plan.has_conflicts
    assert plan.statistics.conflict_frames == 25
    assert _placement(plan, "SH010_v1.mov").overwritten_ranges == []
    assert "Unresolved overlap" in caplog.text

    # the later placement supplies the conflicting frames
    owners = [(r.start_frame, r.end_frame, r.segment.file_name) for r in plan.processing_ranges]
    assert owners == [(50, 75, "SH010_v1.mov"), (75, 125, "SH030_v1.mov")]


def test_overwritten_ranges_are_merged(make_ocf, make_segment, make_parent):
    grade = make_segment(name="SH010_v1.mov", timecode="10:00:00:00", frames=250)
    vfx_a = make_segment(name="VFX_SH020.mov", timecode="10:00:03:00", frames=50)
    vfx_b = make_segment(name="VFX_SH021.mov", timecode="10:00:04:00", frames=50)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), grade, vfx_a, vfx_b))

    assert _placement(plan, "SH010_v1.mov").overwritten_ranges == [(75, 150)]
    assert [(z.start_frame, z.end_frame) for z in plan.conflict_zones] == [(100, 125)]
    assert plan.statistics.frames_overwritten == 75
    assert plan.statistics.overlap_count == 3


def test_segment_past_ocf_end_is_clamped(make_ocf, make_segment, make_parent):
    late = make_segment(name="SH090_v1.mov", timecode="10:00:09:00", frames=50)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), late))
    assert _placement(plan, "SH090_v1.mov").frame_range == (225, 250)
    assert plan.unplaced_segments == []


def test_segments_that_cannot_be_placed(make_ocf, make_segment, make_parent):
    outside = make_segment(name="SH100_v1.mov", timecode="10:00:20:00")
    no_tc = make_segment(name="SH110_v1.mov", timecode=None)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), outside, no_tc))
    assert plan.placements == []
    assert plan.processing_ranges == []
    reasons = {u.segment.file_name: u.reason for u in plan.unplaced_segments}
    assert "outside the OCF" in reasons["SH100_v1.mov"]
    assert reasons["SH110_v1.mov"] == "segment has no source timecode"


def test_ocf_without_timecode_places_nothing(make_ocf, make_segment, make_parent):
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(timecode=None), make_segment()))
    assert plan.placements == []
    assert len(plan.unplaced_segments) == 1
    assert plan.statistics.segment_count == 1


def test_drop_frame_placement(make_ocf, make_segment, make_parent):
    rate = Fraction(30000, 1001)
    ocf = make_ocf(rate=rate, timecode="00:00:59;00", frames=300)
    segment = make_segment(rate=rate, timecode="00:01:00;02", frames=30)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(ocf, segment))
    assert plan.placements[0].frame_range == (30, 60)


def test_visualization_and_colours(make_ocf, make_segment, make_parent):
    grade = make_segment(name="SH010_v1.mov")
    vfx = make_segment(name="VFX_SH020.mov", timecode="10:00:03:00")
    plan = FrameOwnershipAnalyzer().analyze(make_parent(make_ocf(), grade, vfx))

    assert _placement(plan, "SH010_v1.mov").display_color in GRADE_PALETTE
    assert _placement(plan, "VFX_SH020.mov").display_color in VFX_PALETTE
    assert display_color_for(grade, False) == display_color_for(grade, False)

    viz = plan.visualization
    assert viz.total_frames == 250
    assert len(viz.placements) == 2

    time_range = _placement(plan, "SH010_v1.mov").time_range(25)
    assert time_range.start_time.value == 50
    assert time_range.duration.value == 50


def test_non_drop_segment_label_on_drop_frame_ocf(make_ocf, make_segment, make_parent):
    rate = Fraction(30000, 1001)
    ocf = make_ocf(rate=rate, timecode="10:00:00;00", frames=1798)
    segment = make_segment(name="VFX_SH050_comp.mov", rate=rate, timecode="10:00:50:00", frames=60)
    plan = FrameOwnershipAnalyzer().analyze(make_parent(ocf, segment))

    assert plan.unplaced_segments == []
    assert plan.placements[0].frame_range == (1500, 1560)
