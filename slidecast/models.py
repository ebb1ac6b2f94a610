import re
from dataclasses import dataclass, field, replace
from typing import List, Optional

import numpy as np
from PIL import Image

NARRATION_PLACEHOLDER = "(No narration)"


def sanitize_script(text: Optional[str]) -> str:
    """Collapse whitespace; blank scripts become the narration placeholder"""
    cleaned = " ".join((text or "").split())
    return cleaned if cleaned else NARRATION_PLACEHOLDER


@dataclass
class AudioClip:
    """Decoded narration audio for one slide"""

    samples: np.ndarray
    sample_rate: int = 24000
    channels: int = 1
    text: str = ""

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds"""
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / float(self.sample_rate)


@dataclass
class Slide:
    page_index: int
    title: str
    notes: str
    content: List[str] = field(default_factory=list)
    source_image: Optional[Image.Image] = field(default=None, repr=False)
    audio_clip: Optional[AudioClip] = field(default=None, repr=False)

    @property
    def has_current_audio(self) -> bool:
        """True when the clip was synthesized from the current notes"""
        return (
            self.audio_clip is not None
            and self.audio_clip.text == sanitize_script(self.notes)
        )

    def with_notes(self, notes: str) -> "Slide":
        """Copy with a revised script; any synthesized audio is dropped"""
        return replace(self, notes=notes, audio_clip=None)

    def with_audio(self, clip: AudioClip) -> "Slide":
        return replace(self, audio_clip=clip)


@dataclass
class Presentation:
    title: str
    summary: str
    slides: List[Slide] = field(default_factory=list)

    def with_slides(self, slides: List[Slide]) -> "Presentation":
        return replace(self, slides=list(slides))

    def edit_notes(self, index: int, notes: str) -> "Presentation":
        """Replace one slide's narration script, invalidating its audio"""
        if index < 0 or index >= len(self.slides):
            raise IndexError(f"Slide index {index} out of range (0-{len(self.slides) - 1})")
        slides = list(self.slides)
        slides[index] = slides[index].with_notes(notes)
        return self.with_slides(slides)


@dataclass
class VideoArtifact:
    """Finished video handed back to the caller"""

    data: bytes = field(repr=False)
    mime_type: str
    extension: str
    suggested_filename: str
    duration: float = 0.0

    @property
    def size(self) -> int:
        return len(self.data)


_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>\x00-\x1f]')


def safe_filename(title: str, fallback: str = "presentation_video") -> str:
    """Turn a presentation title into a file name stem"""
    stem = _UNSAFE_FILENAME_CHARS.sub("-", title or "").strip().strip(".")
    return stem or fallback
