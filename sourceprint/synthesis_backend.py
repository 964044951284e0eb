# -*- coding: utf-8 -*-
"""
sourceprint/synthesis_backend.py

The boundary between blank rush synthesis and the native media libraries.

`SynthesisBackend` is the small interface the synthesizer drives
(open / configure / push frame / pull packet / write / flush / finalize).
`PyAVSynthesisBackend` implements it with PyAV: an FFmpeg filter graph
renders black frames with burned-in timecode, and a hardware ProRes encoder
turns them into packets muxed into a QuickTime file.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Deque, Dict, List, Optional, Tuple

import av

from .models import EncoderSettings

logger = logging.getLogger(__name__)


# --- Errors ---

class BlankRushError(Exception):
    """Base class for blank rush failures that are fatal for one file only."""
    pass


class BlankRushPreconditionError(BlankRushError):
    """The OCF metadata lacks something synthesis needs (rate, resolution, duration)."""
    pass


class EncoderUnavailableError(BlankRushError):
    """The requested (hardware) encoder does not exist in this FFmpeg build."""
    pass


class SynthesisPipelineError(BlankRushError):
    """Filter graph construction, encoding or muxing failed."""
    pass


class SynthesisTimeoutError(BlankRushError):
    """An encode session ran past its allotted time."""
    pass


# --- Value types ---

@dataclass
class BurnInSpec:
    """
    What the synthetic frames look like.

    Attributes:
        width, height: Output size in pixels.
        frame_rate: Exact output rate.
        total_frames: Number of frames the session will produce.
        timecode: Start timecode, ';'-separated when drop-frame.
        drop_frame: Whether the running timecode counts drop-frame.
        clip_name: OCF name without extension, burned in after the timecode.
        font_file: Optional TTF/OTF used by drawtext.
    """
    width: int
    height: int
    frame_rate: Fraction
    total_frames: int
    timecode: str
    drop_frame: bool
    clip_name: str
    font_file: Optional[str] = None

    @property
    def codec_time_base(self) -> Fraction:
        return Fraction(self.frame_rate.denominator, self.frame_rate.numerator)


@dataclass
class EncodedPacket:
    """
    An encoded packet handed back by a backend.

    Timestamps are in the backend's codec time base until the synthesizer
    rescales them for the output stream. None means "no timestamp".
    """
    pts: Optional[int]
    dts: Optional[int]
    duration: Optional[int]
    payload: Any = None


def escape_drawtext(text: str) -> str:
    """Escapes text for a single-quoted drawtext option value."""
    return (text.replace("\\", "\\\\")
            .replace("'", "'\\''")
            .replace("%", "\\%")
            .replace(":", "\\:"))


def build_filter_chain(spec: BurnInSpec, pixel_format: str) -> List[Tuple[str, str]]:
    """
    Filter (name, args) pairs in link order, ending before the buffersink.

    color -> SRC TC label -> running timecode -> clip name -> NO GRADE -> format
    """
    rate = f"{spec.frame_rate.numerator}/{spec.frame_rate.denominator}"
    # Half a frame of slack so the source never runs dry before the last frame
    duration = (spec.total_frames + Fraction(1, 2)) / spec.frame_rate
    font = f"fontfile='{escape_drawtext(spec.font_file)}':" if spec.font_file else ""
    size = "fontsize=(h*0.025):fontcolor=white"
    y = "y=(h*0.03)"
    box = "box=1:boxcolor=black@0.8:boxborderw=5"

    return [
        ("color", f"color=black:size={spec.width}x{spec.height}:rate={rate}:duration={float(duration):.6f}"),
        ("drawtext", f"{font}text='SRC TC\\: ':{size}:{box}:x=(w*0.04):{y}"),
        ("drawtext", f"{font}timecode='{spec.timecode}':timecode_rate={rate}:{size}:x=(w*0.13):{y}"),
        ("drawtext", f"{font}text=' ---> {escape_drawtext(spec.clip_name)}':{size}:x=(w*0.28):{y}"),
        ("drawtext", f"{font}text='//// NO GRADE ////':{size}:{box}:x=(w-tw-w*0.04):{y}"),
        ("format", f"pix_fmts={pixel_format}"),
    ]


class SynthesisBackend(ABC):
    """
    One encode session. Instances are single use: open, configure, push
    frames and pull packets, flush, finalize, close.
    """

    @abstractmethod
    def open(self, output_path: str, spec: BurnInSpec, settings: EncoderSettings,
             container_metadata: Dict[str, str]) -> None:
        """Creates the output container and opens the encoder."""

    @abstractmethod
    def configure(self, spec: BurnInSpec, settings: EncoderSettings) -> None:
        """Builds the frame source / burn-in pipeline."""

    @property
    @abstractmethod
    def codec_time_base(self) -> Fraction:
        """Time base of packets returned by pull_packet."""

    @property
    @abstractmethod
    def stream_time_base(self) -> Fraction:
        """Time base write_packet expects."""

    @abstractmethod
    def push_frame(self, pts: int) -> None:
        """Renders the next frame, stamps `pts` and sends it to the encoder."""

    @abstractmethod
    def pull_packet(self) -> Optional[EncodedPacket]:
        """Next encoded packet, or None when the encoder needs more input / is drained."""

    @abstractmethod
    def write_packet(self, packet: EncodedPacket) -> None:
        """Muxes a packet whose timestamps are already in stream time base."""

    @abstractmethod
    def flush(self) -> None:
        """Signals end of stream to the encoder."""

    @abstractmethod
    def finalize(self) -> None:
        """Writes the trailer and closes the output."""

    @abstractmethod
    def close(self) -> None:
        """Releases resources; safe to call after finalize or after an error."""


def ensure_encoder_available(codec_name: str) -> None:
    """Raises EncoderUnavailableError if FFmpeg has no encoder by that name."""
    try:
        av.codec.Codec(codec_name, "w")
    except ValueError as e:
        raise EncoderUnavailableError(f"Encoder '{codec_name}' is not available: {e}") from e


class PyAVSynthesisBackend(SynthesisBackend):
    """SynthesisBackend on top of PyAV (FFmpeg filter graph + encoder + mov muxer)."""

    def __init__(self):
        self._container = None
        self._stream = None
        self._graph = None
        self._pending: Deque = deque()
        self._finalized = False

    def open(self, output_path: str, spec: BurnInSpec, settings: EncoderSettings,
             container_metadata: Dict[str, str]) -> None:
        ensure_encoder_available(settings.codec_name)
        try:
            self._container = av.open(output_path, mode="w", format="mov")
            for key, value in container_metadata.items():
                self._container.metadata[key] = value

            self._stream = self._container.add_stream(
                settings.codec_name, rate=spec.frame_rate, options=settings.to_codec_options())
            codec_context = self._stream.codec_context
            codec_context.width = spec.width
            codec_context.height = spec.height
            codec_context.pix_fmt = settings.pixel_format
            codec_context.time_base = spec.codec_time_base
            codec_context.framerate = spec.frame_rate

            # Writes the header; the muxer may pick its own stream time base here
            self._container.start_encoding()
        except av.error.FFmpegError as e:
            raise SynthesisPipelineError(f"Could not open encoder/output for '{output_path}': {e}") from e
        logger.debug(f"Opened {settings.codec_name} {spec.width}x{spec.height} @ {spec.frame_rate}, "
                     f"codec tb {self.codec_time_base}, stream tb {self.stream_time_base}")

    def configure(self, spec: BurnInSpec, settings: EncoderSettings) -> None:
        try:
            self._graph = av.filter.Graph()
            nodes = [self._graph.add(name, args) for name, args in build_filter_chain(spec, settings.pixel_format)]
            nodes.append(self._graph.add("buffersink"))
            for upstream, downstream in zip(nodes, nodes[1:]):
                upstream.link_to(downstream)
            self._graph.configure()
        except (av.error.FFmpegError, ValueError) as e:
            raise SynthesisPipelineError(f"Filter graph construction failed: {e}") from e

    @property
    def codec_time_base(self) -> Fraction:
        return Fraction(self._stream.codec_context.time_base)

    @property
    def stream_time_base(self) -> Fraction:
        return Fraction(self._stream.time_base)

    def push_frame(self, pts: int) -> None:
        try:
            frame = self._graph.pull()
            frame.pts = pts
            frame.time_base = self._stream.codec_context.time_base
            self._pending.extend(self._stream.codec_context.encode(frame))
        except av.error.EOFError as e:
            raise SynthesisPipelineError(f"Frame source ended early at frame {pts}") from e
        except av.error.FFmpegError as e:
            raise SynthesisPipelineError(f"Encoding failed at frame {pts}: {e}") from e

    def pull_packet(self) -> Optional[EncodedPacket]:
        if not self._pending:
            return None
        packet = self._pending.popleft()
        return EncodedPacket(pts=packet.pts, dts=packet.dts, duration=packet.duration, payload=packet)

    def write_packet(self, packet: EncodedPacket) -> None:
        av_packet = packet.payload
        av_packet.pts = packet.pts
        av_packet.dts = packet.dts
        if packet.duration is not None:
            av_packet.duration = packet.duration
        av_packet.stream = self._stream
        av_packet.time_base = self._stream.time_base
        try:
            self._container.mux(av_packet)
        except av.error.FFmpegError as e:
            raise SynthesisPipelineError(f"Muxing failed: {e}") from e

    def flush(self) -> None:
        try:
            self._pending.extend(self._stream.codec_context.encode(None))
        except av.error.FFmpegError as e:
            raise SynthesisPipelineError(f"Encoder flush failed: {e}") from e

    def finalize(self) -> None:
        try:
            self._container.close()
        except av.error.FFmpegError as e:
            raise SynthesisPipelineError(f"Writing trailer failed: {e}") from e
        self._finalized = True

    def close(self) -> None:
        if self._container is not None and not self._finalized:
            try:
                self._container.close()
            except av.error.FFmpegError as e:
                logger.debug(f"Ignoring error while closing an aborted session: {e}")
        self._container = None
        self._graph = None
        self._pending.clear()
