# sourceprint/ffprobe_analyzer.py

import json
import logging
import os
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import MediaFileInfo, MediaRole, Resolution
from .utils.executable_finder import find_executable
from .utils.frame_rate import parse_frame_rate
from .utils.timecode import TimecodeError, detect_drop_frame, parse_timecode

logger = logging.getLogger(__name__)

# --- Constants ---
FFPROBE_TIMEOUT = 30  # seconds per file
DEFAULT_ANALYSIS_WORKERS = 16

MEDIA_EXTENSIONS = {".mov", ".mp4", ".mxf", ".avi", ".mkv", ".m4v", ".prores"}

# Alternate timecode keys, checked after the plain 'timecode' tag (format level, then stream level)
FALLBACK_TIMECODE_KEYS = ["SMPTE_time_code", "tc", "TimeCode", "start_timecode"]

REEL_KEYS = ["reel", "reel_name", "tape_name", "source_reel", "camera_name"]

# Professional time bases whose duration_ts is already a frame count
FRAME_UNIT_TIME_BASES = {Fraction(1001, 24000), Fraction(1001, 30000), Fraction(1001, 60000)}

# ffprobe field_order values -> (is_interlaced, label)
CODEC_FIELD_ORDERS = {
    "progressive": (False, "progressive"),
    "tt": (True, "top_field_first"),
    "bb": (True, "bottom_field_first"),
    "tb": (True, "top_bottom"),
    "bt": (True, "bottom_top"),
}


class FFProbeAnalyzerError(Exception):
    """Raised when a file cannot be probed at all."""
    pass


@dataclass
class BatchAnalysisResult:
    """
    Result of analyzing a list of files.

    Attributes:
        files: Successfully analyzed files, in input order.
        failures: (path, reason) for every file that could not be analyzed.
    """
    files: List[MediaFileInfo] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.files) + len(self.failures)


class FFProbeAnalyzer:
    """
    Reads container metadata with ffprobe and turns it into MediaFileInfo.

    Every field is populated best-effort. Nothing is defaulted: an unknown
    frame rate stays None rather than becoming 24.
    """

    def __init__(self, ffprobe_path: Optional[str] = None):
        """
        Initializes the analyzer.

        Args:
            ffprobe_path: Full path to the ffprobe executable. If None it is
                          located with `find_executable`.

        Raises:
            FileNotFoundError: If the ffprobe executable is not found.
        """
        resolved = ffprobe_path or find_executable("ffprobe")
        if not resolved or not os.path.exists(resolved):
            raise FileNotFoundError(f"FFProbe executable not found at: {resolved}")
        self.ffprobe_path = resolved
        logger.info(f"FFProbeAnalyzer initialized with ffprobe: {self.ffprobe_path}")

    # --- Single file ---

    def analyze(self, file_path: str, role: MediaRole) -> MediaFileInfo:
        """
        Analyzes one media file.

        Raises:
            FFProbeAnalyzerError: Only if the container cannot be opened/probed.
        """
        if not os.path.exists(file_path):
            raise FFProbeAnalyzerError(f"File not found for analysis: {file_path}")

        logger.info(f"Analyzing file: {os.path.basename(file_path)}")
        data = self._run_ffprobe(file_path)
        info = parse_probe_data(data, file_path, role)
        logger.debug(f"{info.file_name}: {info.technical_summary}")
        return info

    def _run_ffprobe(self, file_path: str) -> Dict[str, Any]:
        """Runs ffprobe and returns its parsed JSON output."""
        command = [
            self.ffprobe_path,
            '-v', 'error',
            '-show_streams',
            '-show_format',
            '-of', 'json',
            file_path,
        ]
        logger.debug(f"Running ffprobe command: {' '.join(command)}")
        name = os.path.basename(file_path)
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                encoding='utf-8',
                errors='ignore',
                timeout=FFPROBE_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise FFProbeAnalyzerError(f"ffprobe timed out after {FFPROBE_TIMEOUT}s for '{name}'") from e
        except OSError as e:
            logger.critical(f"ffprobe could not be started from '{self.ffprobe_path}': {e}")
            raise FFProbeAnalyzerError(f"FFprobe not runnable at {self.ffprobe_path}: {e}") from e

        if result.returncode != 0:
            stderr_snippet = result.stderr.strip()[-500:]
            raise FFProbeAnalyzerError(
                f"ffprobe failed for '{name}'. Code: {result.returncode}. Stderr: {stderr_snippet}")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as json_err:
            logger.debug(f"FFprobe raw output causing parse error:\n{result.stdout[:1000]}...")
            raise FFProbeAnalyzerError(f"Invalid ffprobe JSON for '{name}': {json_err}") from json_err

    # --- Batches ---

    def analyze_batch(self, file_paths: Sequence[str], role: MediaRole,
                      max_workers: int = DEFAULT_ANALYSIS_WORKERS) -> BatchAnalysisResult:
        """
        Analyzes many files concurrently with a bounded pool.

        Results keep the input order regardless of completion order. A file
        that fails is reported in `failures` and never aborts the batch.
        """
        batch = BatchAnalysisResult()
        if not file_paths:
            return batch

        workers = max(1, min(max_workers, len(file_paths)))
        logger.info(f"Analyzing {len(file_paths)} file(s) as {role.value} with {workers} worker(s)...")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.analyze, path, role) for path in file_paths]
            for path, future in zip(file_paths, futures):
                try:
                    batch.files.append(future.result())
                except FFProbeAnalyzerError as e:
                    logger.error(f"Analysis failed for '{os.path.basename(path)}': {e}")
                    batch.failures.append((path, str(e)))
                except Exception as e:
                    logger.error(f"Unexpected error analyzing '{os.path.basename(path)}': {e}", exc_info=True)
                    batch.failures.append((path, f"{type(e).__name__}: {e}"))

        logger.info(f"Analysis complete: {len(batch.files)}/{batch.total} succeeded.")
        return batch


def discover_media_files(directory: str) -> List[str]:
    """
    Recursively lists media files under a directory.

    Hidden files and directories are skipped; results are sorted by file name.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.warning(f"Not a directory, nothing to import: {directory}")
        return []

    found = []
    for path in root.rglob("*"):
        relative_parts = path.relative_to(root).parts
        if any(part.startswith('.') for part in relative_parts):
            continue
        if path.is_file() and path.suffix.lower() in MEDIA_EXTENSIONS:
            found.append(path)
    found.sort(key=lambda p: (p.name, str(p)))
    logger.info(f"Found {len(found)} media file(s) under {directory}")
    return [str(p) for p in found]


# --- Parsing (pure) ---

def parse_probe_data(data: Dict[str, Any], file_path: str, role: MediaRole) -> MediaFileInfo:
    """Builds a MediaFileInfo from raw ffprobe JSON (-show_streams -show_format)."""
    streams = data.get('streams') or []
    format_data = data.get('format') or {}
    format_tags = format_data.get('tags') or {}

    # 1. First stream with a real picture size
    video = next((s for s in streams if _positive_int(s.get('width')) and _positive_int(s.get('height'))), None)
    name = os.path.basename(file_path)
    if video is None:
        logger.warning(f"No stream with width/height found in '{name}'")
        video = {}
    video_tags = video.get('tags') or {}

    # 2. Resolution and SAR
    resolution: Optional[Resolution] = None
    display_resolution: Optional[Resolution] = None
    sar_string = _clean_sar(video.get('sample_aspect_ratio'))
    if video:
        resolution = (int(video['width']), int(video['height']))
        display_resolution = _display_resolution(resolution, sar_string)

    # 3. Frame rate: real rate first, average as fallback
    frame_rate = parse_frame_rate(video.get('r_frame_rate')) or parse_frame_rate(video.get('avg_frame_rate'))

    # 4. Timecode
    timecode = _find_timecode(format_data, streams)

    # 5. Duration in frames
    duration_frames = _duration_in_frames(video, format_data, frame_rate)

    is_drop_frame = None
    if timecode:
        try:
            parse_timecode(timecode)
        except TimecodeError as e:
            logger.warning(f"Malformed timecode in '{name}': {e}. End timecode will be unavailable.")
        is_drop_frame = detect_drop_frame(timecode, frame_rate)

    # 6. Interlace / field order
    is_interlaced, field_order = _scan_type(video, video_tags, format_tags)

    # 7. Reel
    reel_name = _first_tag(format_tags, REEL_KEYS) or _first_tag(video_tags, REEL_KEYS)

    # End timecode is derived by MediaFileInfo from the fields above
    info = MediaFileInfo(
        path=file_path,
        media_role=role,
        resolution=resolution,
        display_resolution=display_resolution,
        sample_aspect_ratio=sar_string,
        frame_rate=frame_rate,
        source_timecode=timecode,
        duration_in_frames=duration_frames,
        is_drop_frame=is_drop_frame,
        reel_name=reel_name,
        is_interlaced=is_interlaced,
        field_order=field_order,
        codec_name=video.get('codec_name'),
    )
    return info


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _clean_sar(value: Any) -> Optional[str]:
    if not isinstance(value, str) or ':' not in value:
        return None
    num, _, den = value.partition(':')
    if _positive_int(num) is None or _positive_int(den) is None:
        return None  # '0:1' and 'N/A' mean unknown
    return value


def _display_resolution(resolution: Resolution, sar: Optional[str]) -> Resolution:
    if sar is None:
        return resolution
    num, _, den = sar.partition(':')
    ratio = Fraction(int(num), int(den))
    if ratio == 1:
        return resolution
    width, height = resolution
    return round(width * ratio), height


def _find_timecode(format_data: Dict[str, Any], streams: List[Dict[str, Any]]) -> Optional[str]:
    format_tags = format_data.get('tags') or {}
    if format_tags.get('timecode'):
        return str(format_tags['timecode']).strip()
    for stream in streams:
        stream_tc = (stream.get('tags') or {}).get('timecode')
        if stream_tc:
            return str(stream_tc).strip()
    found = _first_tag(format_tags, FALLBACK_TIMECODE_KEYS)
    if found:
        return found
    for stream in streams:
        found = _first_tag(stream.get('tags') or {}, FALLBACK_TIMECODE_KEYS)
        if found:
            return found
    return None


def _first_tag(tags: Dict[str, Any], keys: List[str]) -> Optional[str]:
    for key in keys:
        value = tags.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _fraction(value: Any) -> Optional[Fraction]:
    if value is None:
        return None
    try:
        text = str(value).strip()
        if '/' in text:
            num, den = text.split('/', 1)
            if int(den) == 0:
                return None
            return Fraction(int(num), int(den))
        return Fraction(text)
    except (ValueError, ZeroDivisionError):
        return None


def _duration_in_frames(video: Dict[str, Any], format_data: Dict[str, Any],
                        frame_rate: Optional[Fraction]) -> Optional[int]:
    nb_frames = _positive_int(video.get('nb_frames'))
    if nb_frames:
        return nb_frames

    time_base = _fraction(video.get('time_base'))
    duration_ts = _positive_int(video.get('duration_ts'))
    if time_base in FRAME_UNIT_TIME_BASES and duration_ts:
        # Some professional containers report duration_ts already in frames
        return duration_ts

    if frame_rate is None:
        return None

    seconds = _fraction(video.get('duration'))
    if seconds is None and duration_ts and time_base:
        seconds = duration_ts * time_base
    if seconds is None:
        seconds = _fraction(format_data.get('duration'))
    if seconds is None or seconds < 0:
        return None
    return round(seconds * frame_rate)


def _truthy(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    return None


def _scan_type(video: Dict[str, Any], video_tags: Dict[str, Any],
               format_tags: Dict[str, Any]) -> Tuple[Optional[bool], Optional[str]]:
    codec_order = str(video.get('field_order') or '').lower()
    if codec_order in CODEC_FIELD_ORDERS:
        return CODEC_FIELD_ORDERS[codec_order]

    for tags in (video_tags, format_tags):
        for key, raw in tags.items():
            lowered_key = key.lower()
            value = str(raw)
            if lowered_key == 'progressive':
                flag = _truthy(value)
                if flag is not None:
                    return (False, "progressive") if flag else (True, "interlaced")
            elif lowered_key == 'interlaced':
                flag = _truthy(value)
                if flag is not None:
                    return (True, "interlaced") if flag else (False, "progressive")
            elif lowered_key == 'scan_type':
                lowered = value.lower()
                if 'interlac' in lowered:
                    return True, "interlaced"
                if 'prog' in lowered:
                    return False, "progressive"
            elif lowered_key == 'field_order':
                lowered = value.lower()
                if 'prog' in lowered:
                    return False, "progressive"
                if 'top' in lowered:
                    return True, "top_field_first"
                if 'bottom' in lowered:
                    return True, "bottom_field_first"
    return None, None
