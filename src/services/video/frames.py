"""Still-frame sampling from uploaded videos via ffprobe/ffmpeg.

The decoder tools work on file paths, so each call writes the upload into
its own temporary directory. The directory (source file and every frame
written next to it) is removed when the call returns, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Any

from core.config import Settings
from schemas.assessments import VideoMetadata
from services.assessment.exceptions import (
    AssessmentError,
    FrameExtractionFailed,
    VideoProcessingUnavailable,
)
from services.images.normalize import NormalizedImage, normalize_image


logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%d.jpg"


@dataclass(frozen=True)
class FrameSet:
    """Ordered still frames pulled from one video plus container metadata."""

    frames: tuple[NormalizedImage, ...]
    metadata: VideoMetadata

    def representative_frame(self) -> NormalizedImage:
        """Middle frame of the sequence, the one sent for grading."""
        return self.frames[len(self.frames) // 2]


def parse_frame_rate(value: Any) -> float:
    """Parse an ffprobe rate such as ``"30000/1001"`` or ``"25"``.

    Returns 0.0 for anything that is not a finite, non-negative number.
    """
    if value is None:
        return 0.0
    try:
        rate = Fraction(str(value).strip())
    except (ValueError, ZeroDivisionError):
        return 0.0
    result = float(rate)
    if not math.isfinite(result) or result < 0:
        return 0.0
    return result


def decoder_available(settings: Settings) -> bool:
    """True when both ffmpeg and ffprobe resolve on this host."""
    return (
        shutil.which(settings.FFMPEG_BINARY) is not None
        and shutil.which(settings.FFPROBE_BINARY) is not None
    )


def _dimension(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _metadata_from_probe(payload: dict[str, Any]) -> VideoMetadata:
    streams = payload.get("streams") or []
    video_stream = next(
        (s for s in streams if isinstance(s, dict) and s.get("codec_type") == "video"),
        {},
    )
    fmt = payload.get("format") or {}

    try:
        duration = float(fmt.get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0.0
    if not math.isfinite(duration) or duration < 0:
        duration = 0.0

    return VideoMetadata(
        duration_seconds=duration,
        width_px=_dimension(video_stream.get("width")),
        height_px=_dimension(video_stream.get("height")),
        fps=parse_frame_rate(video_stream.get("r_frame_rate")),
    )


def sampling_interval(duration_seconds: float, frame_count: int) -> int:
    """Seconds between sampled frames: ``max(1, floor(duration / count))``."""
    return max(1, math.floor(duration_seconds / frame_count))


class FrameSampler:
    """Extract a few representative frames from a video byte stream."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def _run(self, *args: str) -> tuple[int, bytes, bytes]:
        """Run a decoder command, returning (exit code, stdout, stderr)."""
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise VideoProcessingUnavailable() from e
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.settings.DECODER_TIMEOUT_SECONDS
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise FrameExtractionFailed(
                f"Video decoder timed out after "
                f"{self.settings.DECODER_TIMEOUT_SECONDS:g} seconds"
            ) from None
        return process.returncode or 0, stdout, stderr

    async def probe_metadata(self, video_path: Path) -> VideoMetadata:
        """Container duration, dimensions and frame rate.

        A failed or unreadable probe yields zeroed metadata; frame extraction
        can still succeed without it.
        """
        returncode, stdout, stderr = await self._run(
            self.settings.FFPROBE_BINARY,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(video_path),
        )
        if returncode != 0:
            logger.warning(
                "ffprobe exited with %d: %s",
                returncode,
                stderr.decode(errors="replace").strip()[:500],
            )
            return VideoMetadata()

        try:
            payload = json.loads(stdout or b"{}")
        except json.JSONDecodeError as e:
            logger.warning("ffprobe returned unreadable output: %s", e)
            return VideoMetadata()
        if not isinstance(payload, dict):
            return VideoMetadata()
        return _metadata_from_probe(payload)

    async def extract_frames(self, video_bytes: bytes, frame_count: int) -> FrameSet:
        """Sample ``frame_count`` evenly spaced frames from ``video_bytes``.

        Raises:
            VideoProcessingUnavailable: ffmpeg/ffprobe missing from the host
            FrameExtractionFailed: decoding failed or produced no usable frames
        """
        if frame_count < 1:
            raise ValueError("frame_count must be at least 1")
        if not decoder_available(self.settings):
            raise VideoProcessingUnavailable()

        with tempfile.TemporaryDirectory(prefix="lapgrade-video-") as workdir:
            work_path = Path(workdir)
            video_path = work_path / f"{uuid.uuid4().hex}.video"
            video_path.write_bytes(video_bytes)

            metadata = await self.probe_metadata(video_path)
            interval = sampling_interval(metadata.duration_seconds, frame_count)

            returncode, _, stderr = await self._run(
                self.settings.FFMPEG_BINARY,
                "-v",
                "error",
                "-i",
                str(video_path),
                "-vf",
                f"fps=1/{interval}",
                "-vframes",
                str(frame_count),
                "-q:v",
                "2",
                "-f",
                "image2",
                str(work_path / FRAME_PATTERN),
            )
            if returncode != 0:
                detail = stderr.decode(errors="replace").strip()[:500]
                raise FrameExtractionFailed(
                    f"Failed to extract frames from video: {detail or 'decoder error'}"
                )

            frames: list[NormalizedImage] = []
            for index in range(1, frame_count + 1):
                frame_path = work_path / (FRAME_PATTERN % index)
                if not frame_path.exists():
                    break
                try:
                    frames.append(
                        normalize_image(
                            frame_path.read_bytes(),
                            max_dimension=self.settings.IMAGE_MAX_DIMENSION,
                            jpeg_quality=self.settings.IMAGE_JPEG_QUALITY,
                            min_bytes=1,
                        )
                    )
                except (OSError, AssessmentError) as e:
                    logger.warning("Skipping unreadable frame %s: %s", frame_path.name, e)

        if not frames:
            raise FrameExtractionFailed("No frames could be extracted from video")

        logger.info(
            "Extracted %d/%d frames (duration=%.1fs, interval=%ds)",
            len(frames),
            frame_count,
            metadata.duration_seconds,
            interval,
        )
        return FrameSet(
            frames=tuple(frames),
            metadata=metadata.model_copy(update={"frames_analyzed": len(frames)}),
        )
