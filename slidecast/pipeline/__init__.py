from .phases import (
    FORWARD_ORDER,
    JobError,
    Phase,
    PhaseMachine,
    PipelineJob,
    narration_progress,
    recording_progress,
)
from .slideshow_pipeline import SlideshowPipeline

__all__ = [
    "FORWARD_ORDER",
    "JobError",
    "Phase",
    "PhaseMachine",
    "PipelineJob",
    "narration_progress",
    "recording_progress",
    "SlideshowPipeline",
]
