import asyncio
import logging
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from ..models import AudioClip

logger = logging.getLogger(__name__)


class CaptureSurface:
    """The canvas a recording samples frames from"""

    def __init__(self, size: Tuple[int, int]):
        self.size = tuple(size)
        self._frame: Optional[bytes] = None
        self.presented = 0

    @property
    def has_frame(self) -> bool:
        return self._frame is not None

    def present(self, frame: Image.Image) -> None:
        """Make ``frame`` the picture every following capture sees"""
        if frame.size != self.size:
            raise ValueError(f"Frame size {frame.size} does not match surface size {self.size}")
        if frame.mode != "RGB":
            frame = frame.convert("RGB")
        self._frame = frame.tobytes()
        self.presented += 1

    def snapshot(self) -> bytes:
        """Current frame as packed rgb24 bytes"""
        if self._frame is None:
            raise RuntimeError("Nothing has been presented on the capture surface")
        return self._frame


class _Voice:
    __slots__ = ("samples", "position")

    def __init__(self, samples: np.ndarray):
        self.samples = samples
        self.position = 0


class AudioOutput:
    """
    Shared audio output for one run

    Clips started with ``play`` are mixed into the stream the recording
    pulls with ``read``. A clip starts at the next sample read, so
    playback is paced by the capture clock rather than by the caller.
    """

    def __init__(self, sample_rate: int = 24000, release_delay: float = 1.0):
        self.sample_rate = sample_rate
        self.release_delay = release_delay
        self._voices: List[_Voice] = []
        self.samples_read = 0
        self.closed = False
        self.close_count = 0

    async def __aenter__(self) -> "AudioOutput":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _prepare(self, clip: AudioClip) -> np.ndarray:
        samples = np.asarray(clip.samples, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples.mean(axis=1)
        if clip.sample_rate != self.sample_rate and samples.size:
            count = max(1, int(round(samples.size * self.sample_rate / clip.sample_rate)))
            positions = np.linspace(0, samples.size - 1, count)
            samples = np.interp(positions, np.arange(samples.size), samples).astype(np.float32)
        return samples

    def play(self, clip: AudioClip) -> None:
        """Start playing ``clip``; returns immediately"""
        if self.closed:
            raise RuntimeError("Audio output is closed")
        self._voices.append(_Voice(self._prepare(clip)))

    @property
    def active(self) -> int:
        return len(self._voices)

    def read(self, frame_count: int) -> np.ndarray:
        """Mix the next ``frame_count`` samples of everything playing"""
        out = np.zeros(max(0, frame_count), dtype=np.float32)
        if frame_count <= 0:
            return out
        remaining = []
        for voice in self._voices:
            chunk = voice.samples[voice.position:voice.position + frame_count]
            out[: chunk.size] += chunk
            voice.position += chunk.size
            if voice.position < voice.samples.size:
                remaining.append(voice)
        self._voices = remaining
        self.samples_read += frame_count
        np.clip(out, -1.0, 1.0, out=out)
        return out

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.close_count += 1
        self._voices = []
        logger.debug("Audio output closed")

    async def aclose(self) -> None:
        """Close after ``release_delay`` so the last samples reach the recorder"""
        if self.closed:
            return
        if self.release_delay > 0:
            await asyncio.sleep(self.release_delay)
        self.close()
