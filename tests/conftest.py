import sys
from pathlib import Path
from typing import List, Optional

import fitz
import numpy as np
import pytest
from pptx import Presentation as PptxPresentation
from pptx.util import Inches

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from slidecast.exceptions import EncoderRuntimeError
from slidecast.models import AudioClip, Slide, sanitize_script
from slidecast.speech_generation import BaseSpeechPlugin, SpeechPayload


def make_clip(text: str, seconds: float = 0.1, sample_rate: int = 24000) -> AudioClip:
    samples = np.full(int(seconds * sample_rate), 0.25, dtype=np.float32)
    return AudioClip(samples=samples, sample_rate=sample_rate, text=sanitize_script(text))


def voiced_slide(index: int, notes: str, seconds: float = 0.1, **kwargs) -> Slide:
    slide = Slide(page_index=index, title=f"Slide {index + 1}", notes=notes, **kwargs)
    return slide.with_audio(make_clip(notes, seconds))


class DummySpeechPlugin(BaseSpeechPlugin):
    """Returns a short tone; fails the first ``failures`` calls"""

    def __init__(self, seconds: float = 0.05, failures: int = 0, error: Optional[Exception] = None):
        self.seconds = seconds
        self.failures = failures
        self.error = error or RuntimeError("voice service unavailable")
        self.calls: List[str] = []
        self.closed = False

    async def synthesize_async(self, text: str) -> SpeechPayload:
        self.calls.append(text)
        if len(self.calls) <= self.failures:
            raise self.error
        count = int(self.seconds * 24000)
        pcm = (np.full(count, 1000, dtype="<i2")).tobytes()
        return SpeechPayload(pcm=pcm, sample_rate=24000)

    def get_available_voices(self) -> List[str]:
        return ["dummy"]

    async def aclose(self) -> None:
        self.closed = True


class DummyEncoder:
    """Encoder double that records what the sink feeds it"""

    def __init__(self, chunks=(b"\x1aE\xdf\xa3", b"", b"cluster"), fail_on_write=False, fail_on_start=False):
        self.chunks = list(chunks)
        self.fail_on_write = fail_on_write
        self.fail_on_start = fail_on_start
        self.started = False
        self.closed = False
        self.frames = 0
        self.samples = 0

    async def start(self):
        if self.fail_on_start:
            raise EncoderRuntimeError("ffmpeg could not start")
        self.started = True

    async def write(self, frames, audio):
        if self.fail_on_write:
            raise EncoderRuntimeError("encoder crashed")
        self.frames += len(frames)
        self.samples += int(audio.size)

    async def finish(self):
        for chunk in self.chunks:
            yield chunk

    async def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        import asyncio

        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dummy_plugin() -> DummySpeechPlugin:
    return DummySpeechPlugin()


def write_pdf(path, pages=2):
    document = fitz.open()
    for i in range(pages):
        page = document.new_page(width=320, height=180)
        page.insert_text((40, 60), f"Page {i + 1}")
    document.save(str(path))
    document.close()
    return path


def write_pptx(path):
    prs = PptxPresentation()

    first = prs.slides.add_slide(prs.slide_layouts[1])
    first.shapes.title.text = "Welcome"
    body = first.placeholders[1].text_frame
    body.text = "Point one"
    for line in ["Point two", "Point three", "Point four", "Point five", "Point six", "Point seven"]:
        body.add_paragraph().text = line
    first.notes_slide.notes_text_frame.text = "Hello and welcome.\nLet us begin."

    second = prs.slides.add_slide(prs.slide_layouts[6])
    second.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))

    prs.save(str(path))
    return path
