import asyncio
import logging
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..exceptions import EncoderRuntimeError, EncoderUnsupportedError
from .capture import AudioOutput, CaptureSurface

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_VPX_REALTIME = ("-deadline", "realtime", "-cpu-used", "8")


@dataclass(frozen=True)
class CodecProfile:
    """One container/codec pair the recorder can produce"""

    name: str
    container: str
    video_encoder: str
    audio_encoder: str
    mime_type: str
    extension: str
    video_args: Tuple[str, ...] = ()
    muxer_args: Tuple[str, ...] = ()


DEFAULT_PROFILES: Tuple[CodecProfile, ...] = (
    CodecProfile(
        "vp9-opus", "webm", "libvpx-vp9", "libopus",
        "video/webm;codecs=vp9,opus", "webm",
        video_args=_VPX_REALTIME + ("-row-mt", "1"),
    ),
    CodecProfile(
        "vp8-opus", "webm", "libvpx", "libopus",
        "video/webm;codecs=vp8,opus", "webm",
        video_args=_VPX_REALTIME,
    ),
    CodecProfile(
        "vp8-vorbis", "webm", "libvpx", "libvorbis",
        "video/webm;codecs=vp8,vorbis", "webm",
        video_args=_VPX_REALTIME,
    ),
    CodecProfile(
        "h264-aac", "mp4", "libx264", "aac",
        "video/mp4;codecs=avc1,mp4a", "mp4",
        video_args=("-preset", "veryfast", "-tune", "stillimage"),
        # mp4 needs fragmenting to be written to a pipe
        muxer_args=("-movflags", "frag_keyframe+empty_moov"),
    ),
)


def profiles_by_name(names: Sequence[str]) -> Tuple[CodecProfile, ...]:
    """Pick profiles from DEFAULT_PROFILES keeping the order of ``names``"""
    known = {profile.name: profile for profile in DEFAULT_PROFILES}
    unknown = [name for name in names if name not in known]
    if unknown:
        raise ValueError(f"Unknown codec profiles: {unknown}; known: {sorted(known)}")
    return tuple(known[name] for name in names)


@dataclass
class RecordingConfig:
    fps: int = 30
    # bits per second
    video_bitrate: int = 5_000_000
    audio_bitrate: int = 128_000
    profiles: Tuple[CodecProfile, ...] = DEFAULT_PROFILES


@dataclass(frozen=True)
class EncodedBlob:
    data: bytes = field(repr=False)
    profile: CodecProfile
    duration: float

    @property
    def mime_type(self) -> str:
        return self.profile.mime_type

    @property
    def extension(self) -> str:
        return self.profile.extension


def find_ffmpeg(ffmpeg_path: Optional[str] = None) -> str:
    return ffmpeg_path or shutil.which("ffmpeg") or "ffmpeg"


def probe_encoders(ffmpeg_path: str) -> Set[str]:
    """Names of the encoders the ffmpeg binary was built with"""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            timeout=10,
            check=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Could not list ffmpeg encoders: {e}")
        return set()

    names = set()
    listing = False
    for line in result.stdout.splitlines():
        stripped = line.strip()
        if stripped.startswith("---"):
            listing = True
            continue
        parts = stripped.split()
        if listing and len(parts) >= 2:
            names.add(parts[1])
    return names


class FFmpegEncoder:
    """
    Live encoder backed by ffmpeg

    Raw frames are encoded to an intermediate Matroska file while the
    recording runs. The captured audio track is muxed in when the
    recording finishes and the final container is streamed back from
    ffmpeg's stdout.
    """

    def __init__(
        self,
        ffmpeg_path: str,
        profile: CodecProfile,
        size: Tuple[int, int],
        sample_rate: int,
        config: RecordingConfig,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.profile = profile
        self.size = size
        self.sample_rate = sample_rate
        self.config = config
        self._workdir: Optional[tempfile.TemporaryDirectory] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._mux_process: Optional[asyncio.subprocess.Process] = None
        self._logs = []
        self._audio: List[np.ndarray] = []

    @property
    def workdir(self) -> Path:
        return Path(self._workdir.name)

    def _open_log(self, name: str):
        log = open(self.workdir / name, "wb")
        self._logs.append(log)
        return log

    def _log_tail(self, name: str, limit: int = 800) -> str:
        path = self.workdir / name
        if not path.exists():
            return ""
        return path.read_bytes()[-limit:].decode("utf-8", errors="replace").strip()

    async def start(self) -> None:
        self._workdir = tempfile.TemporaryDirectory(prefix="slidecast_")
        width, height = self.size
        cmd = [
            self.ffmpeg_path, "-hide_banner", "-nostats", "-loglevel", "error", "-y",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{width}x{height}",
            "-r", str(self.config.fps),
            "-i", "pipe:0",
            "-c:v", self.profile.video_encoder,
            "-b:v", str(self.config.video_bitrate),
            *self.profile.video_args,
            "-pix_fmt", "yuv420p",
            "-an",
            "-f", "matroska",
            str(self.workdir / "video.mkv"),
        ]
        logger.debug(f"Running ffmpeg command: {' '.join(cmd)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=self._open_log("video.log"),
            )
        except OSError as e:
            raise EncoderRuntimeError(f"Could not start ffmpeg: {e}") from e

    async def write(self, frames: Sequence[bytes], audio: np.ndarray) -> None:
        if self._process is None or self._process.returncode is not None:
            raise EncoderRuntimeError(f"Video encoder is not running: {self._log_tail('video.log')}")
        for frame in frames:
            self._process.stdin.write(frame)
        await self._process.stdin.drain()
        if audio.size:
            self._audio.append(audio.astype("<f4", copy=False))

    def _write_audio_track(self) -> Path:
        path = self.workdir / "audio.f32"
        if self._audio:
            samples = np.concatenate(self._audio)
        else:
            samples = np.zeros(0, dtype="<f4")
        if samples.size == 0:
            # ffmpeg refuses an empty raw input
            samples = np.zeros(max(1, self.sample_rate // self.config.fps), dtype="<f4")
        samples.astype("<f4").tofile(path)
        return path

    async def finish(self) -> AsyncIterator[bytes]:
        """Flush the video stream, mux the audio and yield the container bytes"""
        self._process.stdin.close()
        try:
            await self._process.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass
        returncode = await self._process.wait()
        if returncode != 0:
            raise EncoderRuntimeError(
                f"Video encoder exited with code {returncode}: {self._log_tail('video.log')}"
            )

        audio_path = self._write_audio_track()
        cmd = [
            self.ffmpeg_path, "-hide_banner", "-nostats", "-loglevel", "error", "-y",
            "-i", str(self.workdir / "video.mkv"),
            "-f", "f32le", "-ar", str(self.sample_rate), "-ac", "1",
            "-i", str(audio_path),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", self.profile.audio_encoder,
            "-b:a", str(self.config.audio_bitrate),
            *self.profile.muxer_args,
            "-f", self.profile.container,
            "pipe:1",
        ]
        logger.debug(f"Running mux command: {' '.join(cmd)}")
        self._mux_process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=self._open_log("mux.log"),
        )
        while True:
            chunk = await self._mux_process.stdout.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
        returncode = await self._mux_process.wait()
        if returncode != 0:
            raise EncoderRuntimeError(
                f"Muxer exited with code {returncode}: {self._log_tail('mux.log')}"
            )

    async def close(self) -> None:
        """Stop any running ffmpeg process and delete temporary files"""
        for process in (self._process, self._mux_process):
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
        for log in self._logs:
            log.close()
        self._logs = []
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None


EncoderFactory = Callable[[CodecProfile, Tuple[int, int], int, RecordingConfig], object]


class RecordingHandle:
    """State of one open recording"""

    def __init__(self, profile, surface, audio, encoder, config, started_at):
        self.profile = profile
        self.surface = surface
        self.audio = audio
        self.encoder = encoder
        self.config = config
        self.started_at = started_at
        self.elapsed = 0.0
        self.frames_written = 0
        self.samples_written = 0
        self.chunks: List[bytes] = []
        self.error: Optional[EncoderRuntimeError] = None
        self.closed = False
        self.task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def wait_stopping(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass


class RecordingSink:
    """Capture a live frame surface and audio output into one encoded blob"""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        probe: Callable[[str], Set[str]] = probe_encoders,
        encoder_factory: Optional[EncoderFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ffmpeg_path = find_ffmpeg(ffmpeg_path)
        self._probe = probe
        self._encoders: Optional[Set[str]] = None
        self.encoder_factory = encoder_factory or self._ffmpeg_encoder
        self.clock = clock

    def _ffmpeg_encoder(self, profile, size, sample_rate, config) -> FFmpegEncoder:
        return FFmpegEncoder(self.ffmpeg_path, profile, size, sample_rate, config)

    def available_encoders(self) -> Set[str]:
        if self._encoders is None:
            self._encoders = set(self._probe(self.ffmpeg_path))
            logger.debug(f"ffmpeg reports {len(self._encoders)} encoders")
        return self._encoders

    def negotiate(self, profiles: Sequence[CodecProfile] = DEFAULT_PROFILES) -> CodecProfile:
        """First profile whose video and audio encoders are both available"""
        available = self.available_encoders()
        for profile in profiles:
            if profile.video_encoder in available and profile.audio_encoder in available:
                logger.info(f"Recording with {profile.name} ({profile.mime_type})")
                return profile
            logger.debug(f"Codec profile {profile.name} not supported")
        raise EncoderUnsupportedError(
            f"None of the codec profiles {[p.name for p in profiles]} is supported by {self.ffmpeg_path}"
        )

    async def open(
        self,
        surface: CaptureSurface,
        audio: AudioOutput,
        config: Optional[RecordingConfig] = None,
    ) -> RecordingHandle:
        config = config or RecordingConfig()
        if not surface.has_frame:
            raise RuntimeError("Capture surface is blank; present the first frame before recording")

        profile = self.negotiate(config.profiles)
        encoder = self.encoder_factory(profile, surface.size, audio.sample_rate, config)
        try:
            await encoder.start()
        except BaseException:
            await encoder.close()
            raise

        handle = RecordingHandle(profile, surface, audio, encoder, config, self.clock())
        handle.task = asyncio.ensure_future(self._pump(handle))
        logger.info(f"Recording started at {surface.size[0]}x{surface.size[1]}, {config.fps} fps")
        return handle

    async def _emit(self, handle: RecordingHandle) -> None:
        handle.elapsed = max(handle.elapsed, self.clock() - handle.started_at)
        frames_due = int(handle.elapsed * handle.config.fps) + 1 - handle.frames_written
        samples_due = int(handle.elapsed * handle.audio.sample_rate) - handle.samples_written

        frame = handle.surface.snapshot()
        frames = [frame] * max(0, frames_due)
        audio = handle.audio.read(max(0, samples_due))
        if frames or audio.size:
            await handle.encoder.write(frames, audio)
        handle.frames_written += len(frames)
        handle.samples_written += int(audio.size)

    async def _pump(self, handle: RecordingHandle) -> None:
        interval = 1.0 / handle.config.fps
        try:
            while not handle.stopping:
                await self._emit(handle)
                await handle.wait_stopping(interval)
            await self._emit(handle)
        except EncoderRuntimeError as e:
            logger.error(f"Encoder failed during recording: {e}")
            handle.error = e
        except OSError as e:
            logger.error(f"Encoder stopped accepting data: {e}")
            handle.error = EncoderRuntimeError(f"Encoder stopped accepting data: {e}")

    async def close(self, handle: RecordingHandle) -> EncodedBlob:
        """
        Stop capturing and return the finished container

        Raises:
            EncoderRuntimeError: If the encoder failed at any point of the recording
        """
        if handle.closed:
            raise RuntimeError("Recording already closed")
        handle.closed = True
        handle.stop()
        try:
            await handle.task
            if handle.error is not None:
                raise handle.error
            try:
                async for chunk in handle.encoder.finish():
                    if chunk:
                        handle.chunks.append(chunk)
            except OSError as e:
                raise EncoderRuntimeError(f"Encoder failed while finishing: {e}") from e
        finally:
            await handle.encoder.close()

        data = b"".join(handle.chunks)
        if not data:
            raise EncoderRuntimeError("Encoder produced no output")
        logger.info(
            f"Recording finished: {handle.elapsed:.2f}s, {handle.frames_written} frames, "
            f"{len(data)} bytes in {len(handle.chunks)} chunks"
        )
        return EncodedBlob(data=data, profile=handle.profile, duration=handle.elapsed)

    async def abort(self, handle: RecordingHandle) -> None:
        """Release the encoder without producing output"""
        if handle.closed and handle.task is not None and handle.task.done():
            await handle.encoder.close()
            return
        handle.closed = True
        handle.stop()
        if handle.task is not None:
            await handle.task
        await handle.encoder.close()
        logger.info("Recording aborted")
