from .exceptions import (
    EncoderRuntimeError,
    EncoderUnsupportedError,
    InvalidTransitionError,
    SlidecastError,
    SynthesisError,
    UnsupportedEncoderError,
    ValidationError,
)
from .models import AudioClip, Presentation, Slide, VideoArtifact
from .pipeline import Phase, PhaseMachine, PipelineJob, SlideshowPipeline
from .ppt_parser import DeckWriter, PdfRasterizer, PptxNotesExtractor
from .retry import RetryPolicy, with_retry
from .speech_generation import GeminiSpeechPlugin, NarrationSynthesizer
from .transcript_generator import DocumentAnalyzer
from .video_generator import FrameRenderer, RecordingSink, Timeline

__all__ = [
    "EncoderRuntimeError",
    "EncoderUnsupportedError",
    "InvalidTransitionError",
    "SlidecastError",
    "SynthesisError",
    "UnsupportedEncoderError",
    "ValidationError",
    "AudioClip",
    "Presentation",
    "Slide",
    "VideoArtifact",
    "Phase",
    "PhaseMachine",
    "PipelineJob",
    "SlideshowPipeline",
    "DeckWriter",
    "PdfRasterizer",
    "PptxNotesExtractor",
    "RetryPolicy",
    "with_retry",
    "GeminiSpeechPlugin",
    "NarrationSynthesizer",
    "DocumentAnalyzer",
    "FrameRenderer",
    "RecordingSink",
    "Timeline",
]
