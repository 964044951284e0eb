# tests/test_linker.py
from fractions import Fraction
import logging

import pytest

from sourceprint.linker import (
    LinkCandidate,
    SegmentOCFLinker,
    candidate_sort_key,
    extract_base_file_name,
)
from sourceprint.models import LinkConfidence


def _only_link(result):
    linked = [(p.ocf, c) for p in result.ocf_parents for c in p.children]
    assert len(linked) == 1
    return linked[0]


def test_timecode_containment_with_matching_spec_is_high(make_ocf, make_segment):
    ocf = make_ocf()
    result = SegmentOCFLinker().link([make_segment()], [ocf])
    parent_ocf, child = _only_link(result)
    assert parent_ocf is ocf
    assert child.confidence is LinkConfidence.HIGH
    assert child.method == "resolution+fps+timecode_range"
    assert result.unmatched_segments == []


def test_single_qualifying_ocf_is_high_even_with_other_ocfs(make_ocf, make_segment):
    other = make_ocf(name="A001C004_240101_R1AB.mov", timecode="11:00:00:00")
    target = make_ocf()
    result = SegmentOCFLinker().link([make_segment()], [other, target])
    parent_ocf, child = _only_link(result)
    assert parent_ocf is target
    assert child.confidence is LinkConfidence.HIGH
    assert result.unmatched_ocfs == [other]


def test_timecode_alone_is_medium(make_ocf, make_segment):
    ocf = make_ocf(rate=Fraction(24))
    segment = make_segment(rate=Fraction(24000, 1001), resolution=(3840, 2160), timecode="10:00:02:00")
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.MEDIUM
    assert child.criteria == ["timecode_range"]


def test_filename_match_with_conflicting_timecode_is_low(make_ocf, make_segment):
    ocf = make_ocf()
    segment = make_segment(name="A001C003_240101_R1AB_s001.mov", timecode="12:00:00:00")
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.LOW
    assert "filename_contains" in child.criteria
    assert "timecode_range" not in child.criteria


def test_technical_match_alone_does_not_link(make_ocf, make_segment):
    ocf = make_ocf()
    segment = make_segment(timecode="12:00:00:00")
    result = SegmentOCFLinker().link([segment], [ocf])
    assert result.unmatched_segments == [segment]
    assert result.total_linked_segments == 0
    assert result.success_rate == 0.0


def test_consumer_camera_without_timecode_is_medium(make_ocf, make_segment):
    ocf = make_ocf(name="IMG_0042.MOV", timecode=None)
    segment = make_segment(name="IMG_0042_graded.mov", timecode=None)
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.MEDIUM
    assert child.criteria == ["filename_contains", "resolution", "fps", "consumer_camera"]


def test_vfx_exemption_lets_timecode_through_on_different_spec(make_ocf, make_segment):
    ocf = make_ocf()
    segment = make_segment(name="VFX_SH020_comp_v3.mov", rate=Fraction(24), resolution=(4096, 2160),
                           timecode="10:00:03:00", frames=48)
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.HIGH
    assert child.criteria == ["timecode_range", "vfx_exemption"]


def test_drop_frame_containment(make_ocf, make_segment):
    rate = Fraction(30000, 1001)
    ocf = make_ocf(rate=rate, timecode="01:00:00;00", frames=1800)
    segment = make_segment(rate=rate, timecode="01:00:10;00", frames=300)
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.HIGH


def test_best_candidate_wins(make_ocf, make_segment):
    name_only = make_ocf(name="SH010.mov", timecode="12:00:00:00")
    by_timecode = make_ocf()
    segment = make_segment(name="SH010_v1.mov")
    parent_ocf, child = _only_link(SegmentOCFLinker().link([segment], [name_only, by_timecode]))
    assert parent_ocf is by_timecode
    assert child.confidence is LinkConfidence.HIGH


def test_ambiguous_match_is_deterministic_and_downgraded(make_ocf, make_segment, caplog):
    first = make_ocf(name="CAM_B_0001.mov")
    second = make_ocf(name="CAM_A_0001.mov")
    segment = make_segment()
    linker = SegmentOCFLinker()

    with caplog.at_level(logging.WARNING):
        results = [linker.link([segment], ocfs) for ocfs in ([first, second], [second, first], [first, second])]
    assert "Ambiguous match" in caplog.text

    for result in results:
        parent_ocf, child = _only_link(result)
        assert parent_ocf.file_name == "CAM_A_0001.mov"
        assert child.confidence is LinkConfidence.LOW


def test_parents_keep_input_order(make_ocf, make_segment):
    ocfs = [make_ocf(name=f"A00{i}C001.mov", timecode=f"1{i}:00:00:00") for i in (3, 1, 2)]
    segments = [make_segment(name=f"SH0{i}0.mov", timecode=f"1{i}:00:01:00") for i in (1, 2)]
    result = SegmentOCFLinker().link(segments, ocfs)
    assert [p.ocf.file_name for p in result.ocf_parents] == ["A003C001.mov", "A001C001.mov", "A002C001.mov"]
    assert [p.child_count for p in result.ocf_parents] == [0, 1, 1]
    assert result.summary == "2 OCF parents with 2 child segments (100% success)"
    assert result.blank_rush_summary == "2 OCF parents with 2 total children ready for blank rush creation"


def test_candidate_sort_key_ordering(make_ocf, make_segment):
    segment = make_segment()
    high = LinkCandidate(segment, make_ocf(name="Z.mov"), ["fps", "timecode_range"], LinkConfidence.HIGH)
    more_criteria = LinkCandidate(segment, make_ocf(name="Y.mov"), ["resolution", "fps", "timecode_range"],
                                  LinkConfidence.HIGH)
    medium = LinkCandidate(segment, make_ocf(name="A.mov"), ["timecode_range"], LinkConfidence.MEDIUM)
    low_name = LinkCandidate(segment, make_ocf(name="B.mov"), ["filename_contains"], LinkConfidence.LOW)
    low_name_first = LinkCandidate(segment, make_ocf(name="A.mov"), ["filename_contains"], LinkConfidence.LOW)

    ordered = sorted([low_name, medium, high, low_name_first, more_criteria], key=candidate_sort_key)
    assert ordered == [more_criteria, high, medium, low_name_first, low_name]


@pytest.mark.parametrize("criteria, conflict, expected", [
    (["timecode_range", "fps"], False, LinkConfidence.HIGH),
    (["timecode_range", "reel"], False, LinkConfidence.MEDIUM),
    (["filename_contains", "resolution", "fps", "consumer_camera"], False, LinkConfidence.MEDIUM),
    (["filename_contains", "resolution", "fps", "consumer_camera"], True, LinkConfidence.LOW),
    (["reel", "resolution", "fps"], False, LinkConfidence.LOW),
])
def test_classify(make_ocf, make_segment, criteria, conflict, expected):
    candidate = LinkCandidate(make_segment(), make_ocf(), criteria, timecode_conflict=conflict)
    assert SegmentOCFLinker.classify(candidate) is expected


@pytest.mark.parametrize("name, base", [
    ("A001C003_s001.mov", "A001C003"),
    ("A001C003_seg02.mov", "A001C003"),
    ("Interview S10.mov", "Interview"),
    ("plain.mov", "plain"),
])
def test_extract_base_file_name(name, base):
    assert extract_base_file_name(name) == base


def test_vfx_render_label_inside_drop_frame_ocf(make_ocf, make_segment):
    ocf = make_ocf(rate=Fraction(30000, 1001), timecode="10:00:00;00", frames=1798)
    segment = make_segment(name="VFX_SH050_comp_v1.mov", rate=Fraction(24), resolution=(4096, 2160),
                           timecode="10:00:50:00", frames=48)
    candidate = SegmentOCFLinker().score_pair(segment, ocf)
    assert candidate is not None
    assert candidate.criteria == ["timecode_range", "vfx_exemption"]
    assert candidate.confidence is LinkConfidence.HIGH


def test_non_drop_grade_inside_drop_frame_ocf(make_ocf, make_segment):
    rate = Fraction(30000, 1001)
    ocf = make_ocf(rate=rate, timecode="10:00:00;00", frames=1798)
    segment = make_segment(rate=rate, timecode="10:00:50:00", frames=60)
    _, child = _only_link(SegmentOCFLinker().link([segment], [ocf]))
    assert child.confidence is LinkConfidence.HIGH
    assert child.method == "resolution+fps+timecode_range"
