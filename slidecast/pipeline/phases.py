import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from ..exceptions import InvalidTransitionError
from ..models import VideoArtifact

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    AUDIO_GENERATING = "audio_generating"
    VIDEO_RECORDING = "video_recording"
    COMPLETED = "completed"
    ERROR = "error"


FORWARD_ORDER = (
    Phase.IDLE,
    Phase.ANALYZING,
    Phase.REVIEWING,
    Phase.AUDIO_GENERATING,
    Phase.VIDEO_RECORDING,
    Phase.COMPLETED,
)
TERMINAL_PHASES = frozenset({Phase.COMPLETED, Phase.ERROR})


@dataclass(frozen=True)
class JobError:
    kind: str
    message: str


@dataclass(frozen=True)
class PipelineJob:
    """Run state of one document-to-video job"""

    phase: Phase = Phase.IDLE
    progress: int = 0
    status_message: str = ""
    error: Optional[JobError] = None
    output: Optional[VideoArtifact] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def narration_progress(done: int, total: int) -> int:
    """Combined progress while narration is synthesized (0-50)"""
    if total <= 0:
        return 50
    return (done * 50) // total


def recording_progress(done: int, total: int) -> int:
    """Combined progress while slides are recorded (50-100)"""
    if total <= 0:
        return 100
    return 50 + (done * 50) // total


def _clamp(progress: int) -> int:
    return max(0, min(100, int(progress)))


class PhaseMachine:
    """
    Pure transitions over PipelineJob values

    Every method returns a new job and leaves its argument untouched. The
    optional listener sees each new value, which is how callers get
    progress updates.
    """

    def __init__(self, listener: Optional[Callable[[PipelineJob], None]] = None):
        self.listener = listener

    def _emit(self, job: PipelineJob) -> PipelineJob:
        if self.listener:
            self.listener(job)
        return job

    def can_transition(self, job: PipelineJob, phase: Phase) -> bool:
        if job.is_terminal:
            return False
        if phase == Phase.ERROR:
            return True
        current = FORWARD_ORDER.index(job.phase)
        return phase in FORWARD_ORDER and FORWARD_ORDER.index(phase) == current + 1

    def transition(
        self,
        job: PipelineJob,
        phase: Phase,
        progress: int = 0,
        message: str = "",
    ) -> PipelineJob:
        if not self.can_transition(job, phase):
            raise InvalidTransitionError(f"Cannot move from {job.phase.value} to {phase.value}")
        logger.debug(f"Phase {job.phase.value} -> {phase.value}")
        return self._emit(replace(job, phase=phase, progress=_clamp(progress), status_message=message))

    def report(self, job: PipelineJob, progress: int, message: Optional[str] = None) -> PipelineJob:
        """Update progress within the current phase; progress never goes down"""
        if job.is_terminal:
            raise InvalidTransitionError(f"Job is already {job.phase.value}")
        return self._emit(
            replace(
                job,
                progress=max(job.progress, _clamp(progress)),
                status_message=job.status_message if message is None else message,
            )
        )

    def fail(self, job: PipelineJob, error: BaseException) -> PipelineJob:
        if job.is_terminal:
            raise InvalidTransitionError(f"Job is already {job.phase.value}")
        message = str(error) or error.__class__.__name__
        logger.error(f"Job failed during {job.phase.value}: {message}")
        return self._emit(
            replace(
                job,
                phase=Phase.ERROR,
                progress=0,
                status_message=message,
                error=JobError(kind=error.__class__.__name__, message=message),
                output=None,
            )
        )

    def complete(self, job: PipelineJob, artifact: VideoArtifact, message: str = "Complete") -> PipelineJob:
        if not self.can_transition(job, Phase.COMPLETED):
            raise InvalidTransitionError(f"Cannot move from {job.phase.value} to completed")
        return self._emit(
            replace(job, phase=Phase.COMPLETED, progress=100, status_message=message, output=artifact)
        )
