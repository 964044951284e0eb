# tests/conftest.py
from fractions import Fraction
from pathlib import Path
import pytest

from sourceprint.models import LinkConfidence, LinkedSegment, MediaFileInfo, MediaRole, OCFParent


@pytest.fixture
def make_ocf():
    """Factory for analyzed OCFs (no media on disk)."""
    def _make(name="A001C003_240101_R1AB.mov", timecode="10:00:00:00", frames=250,
              rate=Fraction(25), resolution=(1920, 1080), **fields):
        return MediaFileInfo(
            path=f"/media/ocf/{name}",
            media_role=MediaRole.ORIGINAL_CAMERA_FILE,
            resolution=resolution,
            frame_rate=rate,
            source_timecode=timecode,
            duration_in_frames=frames,
            **fields,
        )
    return _make


@pytest.fixture
def make_segment():
    """Factory for analyzed graded/VFX segments."""
    def _make(name="SH010_v1.mov", timecode="10:00:02:00", frames=50,
              rate=Fraction(25), resolution=(1920, 1080), **fields):
        return MediaFileInfo(
            path=f"/media/grade/{name}",
            media_role=MediaRole.GRADED_SEGMENT,
            resolution=resolution,
            frame_rate=rate,
            source_timecode=timecode,
            duration_in_frames=frames,
            **fields,
        )
    return _make


@pytest.fixture
def make_parent():
    """OCFParent with every child linked at high confidence."""
    def _make(ocf, *segments):
        children = [LinkedSegment(s, LinkConfidence.HIGH, "resolution+fps+timecode_range") for s in segments]
        return OCFParent(ocf=ocf, children=children)
    return _make


@pytest.fixture
def out_dir(tmp_path: Path):
    out = tmp_path / "blank_rushes"
    out.mkdir()
    return out


@pytest.fixture
def progress_log():
    calls = []
    def cb(clip_name: str, done: int, total: int, fps: float):
        calls.append((clip_name, done, total, fps))
    return calls, cb
