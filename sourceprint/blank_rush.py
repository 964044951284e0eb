# -*- coding: utf-8 -*-
"""
sourceprint/blank_rush.py

Creates blank rushes: black, silent carriers spanning an OCF's exact frame
count with the running source timecode burned in, written as
``<base>_blankRush.mov`` for the compositor to overwrite with graded frames.
"""

import logging
import math
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from fractions import Fraction
from typing import Callable, Dict, List, Optional

from .models import BlankRushResult, EncoderSettings, LinkingResult, MediaFileInfo
from .synthesis_backend import (
    BlankRushError,
    BlankRushPreconditionError,
    BurnInSpec,
    EncodedPacket,
    PyAVSynthesisBackend,
    SynthesisBackend,
    SynthesisTimeoutError,
)
from .utils.frame_rate import is_drop_frame_rate
from .utils.timecode import normalize_drop_frame_separator

logger = logging.getLogger(__name__)

# --- Constants ---
BLANK_RUSH_SUFFIX = "_blankRush.mov"
DEFAULT_PROGRESS_INTERVAL = 0.1  # seconds, keeps UI updates at <= 10/s
DEFAULT_ENCODE_TIMEOUT = 3600  # seconds per encode session
NO_CHILDREN_ERROR = "No children segments found"

# (clip_name, frames_done, total_frames, instantaneous_fps)
ProgressCallback = Callable[[str, int, int, float], None]
BackendFactory = Callable[[], SynthesisBackend]


def blank_rush_path_for(ocf: MediaFileInfo, output_directory: str) -> str:
    """'<base>.<ext>' -> '<output_directory>/<base>_blankRush.mov'."""
    return os.path.join(output_directory, f"{ocf.base_name}{BLANK_RUSH_SUFFIX}")


def blank_rush_exists(ocf: MediaFileInfo, output_directory: str) -> bool:
    return os.path.isfile(blank_rush_path_for(ocf, output_directory))


def scan_for_existing_blank_rushes(linking_result: LinkingResult, output_directory: str) -> Dict[str, str]:
    """
    Finds blank rushes already on disk for the OCFs that have linked children.

    Returns:
        OCF file name -> blank rush path, only for files that exist.
    """
    found: Dict[str, str] = {}
    parents = linking_result.parents_with_children
    for parent in parents:
        if blank_rush_exists(parent.ocf, output_directory):
            found[parent.ocf.file_name] = blank_rush_path_for(parent.ocf, output_directory)
            logger.debug(f"  Found existing blank rush for {parent.ocf.file_name}")
    logger.info(f"Blank rush scan complete: found {len(found)}/{len(parents)} in {output_directory}")
    return found


def rescale_timestamp(value: Optional[int], src: Fraction, dst: Fraction) -> Optional[int]:
    """
    Converts a timestamp between time bases, rounding half away from zero.
    None (no timestamp) passes through unchanged.
    """
    if value is None:
        return None
    scaled = Fraction(value) * Fraction(src) / Fraction(dst)
    magnitude = math.floor(abs(scaled) + Fraction(1, 2))
    return magnitude if scaled >= 0 else -magnitude


class _ProgressThrottle:
    """Emits at most once per interval, plus always on the first and last frame."""

    def __init__(self, callback: Optional[ProgressCallback], clip_name: str, total: int, interval: float):
        self.callback = callback
        self.clip_name = clip_name
        self.total = total
        self.interval = interval
        self.start_time = time.monotonic()
        self.last_emit: Optional[float] = None

    def update(self, frame_index: int) -> None:
        if self.callback is None:
            return
        now = time.monotonic()
        is_edge = frame_index == 0 or frame_index == self.total - 1
        if not is_edge and self.last_emit is not None and now - self.last_emit < self.interval:
            return
        elapsed = now - self.start_time
        fps = frame_index / elapsed if frame_index > 0 and elapsed > 0 else 0.0
        self.last_emit = now
        self.callback(self.clip_name, frame_index + 1, self.total, fps)


class BlankRushSynthesizer:
    """
    Drives one SynthesisBackend session per OCF.

    The synthesizer owns frame counting, timestamp stamping and rescaling,
    progress throttling, cancellation and the session timeout; the backend
    only renders, encodes and muxes.
    """

    def __init__(self,
                 backend_factory: BackendFactory = PyAVSynthesisBackend,
                 encoder_settings: Optional[EncoderSettings] = None,
                 font_file: Optional[str] = None,
                 progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
                 encode_timeout: Optional[float] = DEFAULT_ENCODE_TIMEOUT):
        self.backend_factory = backend_factory
        self.encoder_settings = encoder_settings or EncoderSettings()
        self.font_file = font_file
        self.progress_interval = progress_interval
        self.encode_timeout = encode_timeout

    def build_spec(self, ocf: MediaFileInfo) -> BurnInSpec:
        """
        Derives the burn-in/encode parameters from pre-computed OCF metadata.

        Raises:
            BlankRushPreconditionError: If rate, resolution or duration is missing.
        """
        if ocf.frame_rate is None:
            raise BlankRushPreconditionError(f"'{ocf.file_name}' has no frame rate")
        resolution = ocf.effective_display_resolution
        if not resolution:
            raise BlankRushPreconditionError(f"'{ocf.file_name}' has no resolution")
        if not ocf.duration_in_frames:
            raise BlankRushPreconditionError(f"'{ocf.file_name}' has no duration")

        rate = ocf.frame_rate
        duration_seconds = Fraction(ocf.duration_in_frames) / rate
        total_frames = round(duration_seconds * rate)

        timecode = ocf.source_timecode or "00:00:00:00"
        drop_frame = bool(ocf.is_drop_frame)
        if drop_frame and not is_drop_frame_rate(rate):
            # drawtext only counts drop-frame at the 29.97 family rates
            timecode = timecode.replace(";", ":")
            drop_frame = False
            logger.warning(f"'{ocf.file_name}' has a drop-frame label at {float(rate):.3f} fps, "
                           f"burning in non-drop {timecode}")
        elif drop_frame:
            timecode = normalize_drop_frame_separator(timecode)
        if not ocf.source_timecode:
            logger.warning(f"'{ocf.file_name}' has no source timecode, burning in from {timecode}")

        return BurnInSpec(
            width=resolution[0],
            height=resolution[1],
            frame_rate=rate,
            total_frames=total_frames,
            timecode=timecode,
            drop_frame=drop_frame,
            clip_name=ocf.base_name,
            font_file=self.font_file,
        )

    def synthesize(self, ocf: MediaFileInfo, output_path: str,
                   progress_callback: Optional[ProgressCallback] = None,
                   cancel_event: Optional[threading.Event] = None) -> BlankRushResult:
        """
        Writes a blank rush for one OCF.

        Failures never raise; they come back as BlankRushResult(success=False).
        A cancelled session reports error "Cancelled".
        """
        result = BlankRushResult(original_ocf=ocf, blank_rush_path=output_path, success=False)
        logger.info(f"Creating blank rush for {ocf.file_name} -> {os.path.basename(output_path)}")

        try:
            spec = self.build_spec(ocf)
        except BlankRushPreconditionError as e:
            logger.error(f"Blank rush precondition failed: {e}")
            result.error = str(e)
            return result

        backend = self.backend_factory()
        try:
            result.frames_written = self._run_session(backend, spec, output_path, progress_callback, cancel_event)
            result.success = True
            logger.info(f"Blank rush written: {output_path} ({result.frames_written} frames)")
        except InterruptedError:
            logger.info(f"Blank rush for '{ocf.file_name}' cancelled")
            result.error = "Cancelled"
        except BlankRushError as e:
            logger.error(f"Blank rush failed for '{ocf.file_name}': {e}")
            result.error = str(e)
        except Exception as e:
            logger.error(f"Unexpected error creating blank rush for '{ocf.file_name}': {e}", exc_info=True)
            result.error = f"{type(e).__name__}: {e}"
        finally:
            backend.close()

        if not result.success:
            self._remove_partial(output_path)
        return result

    def _run_session(self, backend: SynthesisBackend, spec: BurnInSpec, output_path: str,
                     progress_callback: Optional[ProgressCallback],
                     cancel_event: Optional[threading.Event]) -> int:
        # --- Step 1: open output + encoder, build the burn-in pipeline ---
        metadata = {"timecode": spec.timecode}
        backend.open(output_path, spec, self.encoder_settings, metadata)
        backend.configure(spec, self.encoder_settings)
        codec_tb = backend.codec_time_base
        stream_tb = backend.stream_time_base
        logger.debug(f"Generating {spec.total_frames} frames, codec tb {codec_tb}, stream tb {stream_tb}, "
                     f"timecode {spec.timecode}{' (DF)' if spec.drop_frame else ''}")

        deadline = time.monotonic() + self.encode_timeout if self.encode_timeout else None
        throttle = _ProgressThrottle(progress_callback, spec.clip_name, spec.total_frames, self.progress_interval)
        packets_written = 0

        # --- Step 2: frame loop ---
        for frame_index in range(spec.total_frames):
            if cancel_event is not None and cancel_event.is_set():
                raise InterruptedError("Blank rush synthesis was cancelled")
            if deadline is not None and time.monotonic() > deadline:
                raise SynthesisTimeoutError(
                    f"Encode session exceeded {self.encode_timeout}s at frame {frame_index}/{spec.total_frames}")
            backend.push_frame(frame_index)
            throttle.update(frame_index)
            packets_written += self._drain(backend, codec_tb, stream_tb)

        # --- Step 3: flush and drain, then finalize ---
        backend.flush()
        packets_written += self._drain(backend, codec_tb, stream_tb)
        backend.finalize()
        logger.debug(f"Final stats: {spec.total_frames} frames generated, {packets_written} packets written")
        return spec.total_frames

    @staticmethod
    def _drain(backend: SynthesisBackend, codec_tb: Fraction, stream_tb: Fraction) -> int:
        written = 0
        while True:
            packet = backend.pull_packet()
            if packet is None:
                return written
            backend.write_packet(EncodedPacket(
                pts=rescale_timestamp(packet.pts, codec_tb, stream_tb),
                dts=rescale_timestamp(packet.dts, codec_tb, stream_tb),
                duration=rescale_timestamp(packet.duration, codec_tb, stream_tb),
                payload=packet.payload,
            ))
            written += 1

    @staticmethod
    def _remove_partial(output_path: str) -> None:
        if os.path.exists(output_path):
            try:
                os.remove(output_path)
                logger.debug(f"Removed partial output {output_path}")
            except OSError as e:
                logger.warning(f"Could not remove partial output {output_path}: {e}")


def create_blank_rushes(linking_result: LinkingResult,
                        output_directory: str,
                        synthesizer: Optional[BlankRushSynthesizer] = None,
                        progress_callback: Optional[ProgressCallback] = None,
                        cancel_event: Optional[threading.Event] = None,
                        max_workers: int = 1,
                        pause_between_files: float = 0.0) -> List[BlankRushResult]:
    """
    Creates one blank rush per OCF parent that has linked children.

    OCFs without children are reported as skipped. Each file runs in a
    bounded worker pool so a hung encoder session can be abandoned after
    the synthesizer's timeout; failures are isolated per file.

    Returns:
        One BlankRushResult per OCF parent, in linking order.
    """
    synthesizer = synthesizer or BlankRushSynthesizer()
    os.makedirs(output_directory, exist_ok=True)

    results: List[Optional[BlankRushResult]] = [None] * len(linking_result.ocf_parents)
    jobs = []
    for index, parent in enumerate(linking_result.ocf_parents):
        output_path = blank_rush_path_for(parent.ocf, output_directory)
        if not parent.has_children:
            logger.info(f"Skipping {parent.ocf.file_name}: {NO_CHILDREN_ERROR}")
            results[index] = BlankRushResult(original_ocf=parent.ocf, blank_rush_path=output_path,
                                             success=False, error=NO_CHILDREN_ERROR, skipped=True)
        else:
            jobs.append((index, parent.ocf, output_path))

    logger.info(f"Creating {len(jobs)} blank rush(es) in {output_directory}")
    workers = max(1, min(max_workers, len(jobs) or 1))

    # Joining the pool would wait on a hung encoder; abandoned sessions are told to stop instead
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="blank-rush")
    try:
        for batch_start in range(0, len(jobs), workers):
            batch = jobs[batch_start:batch_start + workers]
            if cancel_event is not None and cancel_event.is_set():
                for index, ocf, output_path in jobs[batch_start:]:
                    results[index] = BlankRushResult(original_ocf=ocf, blank_rush_path=output_path,
                                                     success=False, error="Cancelled")
                break

            running = []
            for index, ocf, output_path in batch:
                session_cancel = threading.Event()
                future = pool.submit(synthesizer.synthesize, ocf, output_path, progress_callback,
                                     _linked_event(cancel_event, session_cancel))
                running.append((index, ocf, output_path, future, session_cancel))

            for index, ocf, output_path, future, session_cancel in running:
                results[index] = _collect(future, ocf, output_path, session_cancel, synthesizer.encode_timeout)

            if pause_between_files > 0 and batch_start + workers < len(jobs):
                time.sleep(pause_between_files)
    finally:
        pool.shutdown(wait=False)

    attempted = [r for r in results if r is not None and not r.skipped]
    succeeded = sum(1 for r in attempted if r.success)
    logger.info(f"Blank rush creation complete: {succeeded}/{len(attempted)} succeeded")
    for r in attempted:
        if not r.success:
            logger.warning(f"  Failed: {r.original_ocf.file_name}: {r.error}")
    return [r for r in results if r is not None]


class _LinkedEvent:
    """Looks like a threading.Event that is set when either source is set."""

    def __init__(self, *events: threading.Event):
        self._events = events

    def is_set(self) -> bool:
        return any(event.is_set() for event in self._events)


def _linked_event(batch_cancel: Optional[threading.Event], session_cancel: threading.Event):
    if batch_cancel is None:
        return session_cancel
    return _LinkedEvent(batch_cancel, session_cancel)


def _collect(future, ocf: MediaFileInfo, output_path: str, session_cancel: threading.Event,
             encode_timeout: Optional[float]) -> BlankRushResult:
    # The synthesizer enforces its own deadline between frames; the extra grace
    # here only catches a session stuck inside a native call.
    wait = encode_timeout + 30 if encode_timeout else None
    try:
        return future.result(timeout=wait)
    except FutureTimeoutError:
        session_cancel.set()
        message = f"Encode session did not finish within {wait}s"
        logger.error(f"Blank rush for '{ocf.file_name}' abandoned: {message}")
        return BlankRushResult(original_ocf=ocf, blank_rush_path=output_path, success=False, error=message)
    except Exception as e:
        logger.error(f"Blank rush worker for '{ocf.file_name}' crashed: {e}", exc_info=True)
        return BlankRushResult(original_ocf=ocf, blank_rush_path=output_path, success=False,
                               error=f"{type(e).__name__}: {e}")
