import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from PIL import Image

from ..models import Slide
from .capture import AudioOutput, CaptureSurface
from .frame_renderer import FrameRenderer
from .recording_sink import EncodedBlob, RecordingConfig, RecordingSink

logger = logging.getLogger(__name__)


class Timeline:
    """
    Present slides one at a time against their narration

    Each frame is held for the clip duration plus ``hold_margin``. The
    hold is a wall-clock timer started together with playback, not a
    playback-completed signal, so audio and video can drift apart by the
    scheduling jitter of a slide; the margin absorbs that drift.
    A hold ends early when the recording's encoder fails.
    """

    def __init__(
        self,
        renderer: FrameRenderer,
        canvas_size: Tuple[int, int] = (1280, 720),
        hold_margin: float = 1.0,
        stabilization_delay: float = 0.8,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.renderer = renderer
        self.canvas_size = tuple(canvas_size)
        self.hold_margin = hold_margin
        self.stabilization_delay = stabilization_delay
        self.sleep = sleep

    def hold_duration(self, slide: Slide) -> float:
        return slide.audio_clip.duration + self.hold_margin

    def expected_duration(self, slides: Sequence[Slide]) -> float:
        """Wall-clock length of a recording of ``slides``"""
        return self.stabilization_delay + sum(self.hold_duration(s) for s in slides)

    async def _render(self, slide: Slide) -> Image.Image:
        return await asyncio.to_thread(self.renderer.render, slide, self.canvas_size)

    async def _hold(self, seconds: float, handle) -> None:
        """
        Wait ``seconds`` unless the recording dies first

        Raises:
            EncoderRuntimeError: If the encoder failed during the wait
        """
        sleeper = asyncio.ensure_future(self.sleep(seconds))
        watched = {sleeper}
        if handle.task is not None:
            watched.add(handle.task)
        try:
            await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
            if handle.error is not None:
                raise handle.error
            await sleeper
        finally:
            if not sleeper.done():
                sleeper.cancel()

    async def run(
        self,
        slides: Sequence[Slide],
        surface: CaptureSurface,
        audio_output: AudioOutput,
        sink: RecordingSink,
        config: Optional[RecordingConfig] = None,
        on_slide: Optional[Callable[[int, int], None]] = None,
    ) -> EncodedBlob:
        """
        Record ``slides`` in order and return the encoded video

        Raises:
            ValueError: If there are no slides or a slide lacks audio for its current notes
        """
        if not slides:
            raise ValueError("Nothing to record: no slides")
        for slide in slides:
            if not slide.has_current_audio:
                raise ValueError(f"Slide {slide.page_index + 1} has no narration for its current notes")

        total = len(slides)
        first_frame = await self._render(slides[0])
        surface.present(first_frame)

        handle = await sink.open(surface, audio_output, config)
        try:
            if self.stabilization_delay > 0:
                await self._hold(self.stabilization_delay, handle)

            for i, slide in enumerate(slides):
                frame = first_frame if i == 0 else await self._render(slide)
                surface.present(frame)
                audio_output.play(slide.audio_clip)

                hold = self.hold_duration(slide)
                logger.info(f"Slide {i + 1}/{total}: holding {hold:.2f}s")
                await self._hold(hold, handle)

                if on_slide:
                    on_slide(i + 1, total)
        except BaseException:
            await sink.abort(handle)
            raise

        return await sink.close(handle)
