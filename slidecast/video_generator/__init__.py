from .capture import AudioOutput, CaptureSurface
from .frame_renderer import FrameRenderer, fit_text, wrap_text
from .recording_sink import (
    DEFAULT_PROFILES,
    CodecProfile,
    EncodedBlob,
    FFmpegEncoder,
    RecordingConfig,
    RecordingHandle,
    RecordingSink,
    probe_encoders,
)
from .timeline import Timeline

__all__ = [
    "AudioOutput",
    "CaptureSurface",
    "FrameRenderer",
    "fit_text",
    "wrap_text",
    "DEFAULT_PROFILES",
    "CodecProfile",
    "EncodedBlob",
    "FFmpegEncoder",
    "RecordingConfig",
    "RecordingHandle",
    "RecordingSink",
    "probe_encoders",
    "Timeline",
]
