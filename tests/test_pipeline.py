import json

import pytest
from pptx import Presentation as PptxPresentation

from conftest import DummyEncoder, DummySpeechPlugin, write_pdf, write_pptx
from configs import PipelineConfig
from slidecast.exceptions import EncoderUnsupportedError, InvalidTransitionError, SynthesisError, ValidationError
from slidecast.models import Presentation
from slidecast.pipeline import Phase, SlideshowPipeline
from slidecast.retry import RetryPolicy
from slidecast.speech_generation import NarrationSynthesizer
from slidecast.transcript_generator import PLACEHOLDER_NOTES, parse_analysis
from slidecast.video_generator import RecordingSink


class FakeAnalyzer:
    def __init__(self, slides, title="Team update"):
        self.answer = json.dumps({"presentationTitle": title, "summary": "s", "slides": slides})
        self.calls = []

    async def analyze(self, page_images, page_count, page_texts=None):
        self.calls.append((len(page_images), page_count, page_texts))
        return parse_analysis(self.answer)


async def no_sleep(seconds):
    pass


def fast_config(tmp_path):
    return PipelineConfig(
        pdf_render_scale=0.5,
        video_resolution=(320, 240),
        video_fps=5,
        hold_margin=0.0,
        stabilization_delay=0.0,
        audio_release_delay=0.0,
        output_dir=str(tmp_path / "out"),
    )


def make_pipeline(tmp_path, analyzer=None, plugin=None, encoders=("libvpx-vp9", "libopus"), encoder=None):
    states = []
    encoder = encoder or DummyEncoder()
    plugin = plugin or DummySpeechPlugin(seconds=0.05)
    pipeline = SlideshowPipeline(
        fast_config(tmp_path),
        synthesizer=NarrationSynthesizer(plugin, RetryPolicy(max_retries=2, sleep=no_sleep)),
        analyzer=analyzer or FakeAnalyzer([{"pageIndex": 1, "title": "Results", "notes": "We grew."}]),
        sink=RecordingSink(
            ffmpeg_path="ffmpeg",
            probe=lambda path: set(encoders),
            encoder_factory=lambda *args: encoder,
        ),
        progress_callback=states.append,
    )
    return pipeline, states, encoder, plugin


@pytest.mark.asyncio
async def test_pdf_to_video_end_to_end(tmp_path):
    pipeline, states, encoder, plugin = make_pipeline(tmp_path)

    output = await pipeline.process(write_pdf(tmp_path / "update.pdf", pages=2))

    assert output == tmp_path / "out" / "Team update.webm"
    assert output.read_bytes() == b"\x1aE\xdf\xa3cluster"
    assert plugin.calls == [PLACEHOLDER_NOTES, "We grew."]
    assert pipeline.job.phase == Phase.COMPLETED
    assert pipeline.job.output.mime_type == "video/webm;codecs=vp9,opus"
    assert encoder.frames > 0
    assert encoder.closed

    phases = [state.phase for state in states]
    assert phases[0] == Phase.ANALYZING
    assert Phase.REVIEWING in phases and Phase.VIDEO_RECORDING in phases
    assert phases[-1] == Phase.COMPLETED
    recording = [s.progress for s in states if s.phase in (Phase.AUDIO_GENERATING, Phase.VIDEO_RECORDING)]
    assert recording == sorted(recording)
    assert max(recording) == 100


@pytest.mark.asyncio
async def test_review_edits_are_narrated(tmp_path):
    pipeline, _, _, plugin = make_pipeline(tmp_path)

    presentation = await pipeline.analyze(write_pdf(tmp_path / "update.pdf", pages=2))
    assert pipeline.job.phase == Phase.REVIEWING
    assert presentation.slides[0].title == "Page 1"
    assert presentation.slides[0].source_image is not None

    edited = pipeline.edit_notes(presentation, 0, "A fresh opening line.")
    artifact = await pipeline.render_video(edited)

    assert plugin.calls[0] == "A fresh opening line."
    assert artifact.suggested_filename == "Team update.webm"


@pytest.mark.asyncio
async def test_edit_outside_review_is_refused(tmp_path):
    pipeline, _, _, _ = make_pipeline(tmp_path)
    presentation = await pipeline.analyze(write_pdf(tmp_path / "update.pdf", pages=1))
    await pipeline.render_video(presentation)

    with pytest.raises(InvalidTransitionError):
        pipeline.edit_notes(presentation, 0, "too late")


@pytest.mark.asyncio
async def test_unsupported_encoder_moves_job_to_error(tmp_path):
    pipeline, states, encoder, _ = make_pipeline(tmp_path, encoders=("libx265",))

    with pytest.raises(EncoderUnsupportedError):
        await pipeline.process(write_pdf(tmp_path / "update.pdf", pages=1))

    assert pipeline.job.phase == Phase.ERROR
    assert pipeline.job.error.kind == "EncoderUnsupportedError"
    assert pipeline.job.output is None
    assert not encoder.started
    assert not (tmp_path / "out").exists()


@pytest.mark.asyncio
async def test_synthesis_failure_names_the_slide(tmp_path):
    plugin = DummySpeechPlugin(failures=100, error=SynthesisError("no audio"))
    pipeline, _, _, _ = make_pipeline(tmp_path, plugin=plugin)

    with pytest.raises(SynthesisError, match="Narration for slide 1 failed: no audio"):
        await pipeline.process(write_pdf(tmp_path / "update.pdf", pages=2))

    assert pipeline.job.phase == Phase.ERROR
    assert len(plugin.calls) == 3


@pytest.mark.asyncio
async def test_pptx_with_existing_notes_skips_analysis(tmp_path):
    analyzer = FakeAnalyzer([])
    pipeline, _, _, plugin = make_pipeline(tmp_path, analyzer=analyzer)

    presentation = await pipeline.analyze(write_pptx(tmp_path / "deck.pptx"), use_existing_notes=True)

    assert analyzer.calls == []
    assert presentation.title == "deck"
    assert presentation.slides[0].notes == "Hello and welcome. Let us begin."
    assert presentation.slides[0].source_image is None


@pytest.mark.asyncio
async def test_pptx_gaps_filled_by_analysis(tmp_path):
    analyzer = FakeAnalyzer([{"pageIndex": 1, "title": "Slide 2", "notes": "Generated script."}])
    pipeline, _, _, _ = make_pipeline(tmp_path, analyzer=analyzer)

    presentation = await pipeline.analyze(write_pptx(tmp_path / "deck.pptx"))

    assert analyzer.calls[0][:2] == (0, 2)
    assert analyzer.calls[0][2][0].startswith("Welcome\nPoint one")
    assert presentation.slides[1].notes == "Generated script."


@pytest.mark.asyncio
async def test_unsupported_format(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    pipeline, _, _, _ = make_pipeline(tmp_path)

    with pytest.raises(ValueError, match="Unsupported"):
        await pipeline.analyze(path)
    assert pipeline.job.phase == Phase.ERROR


@pytest.mark.asyncio
async def test_export_deck(tmp_path):
    pipeline, _, _, _ = make_pipeline(tmp_path)
    presentation = await pipeline.analyze(write_pdf(tmp_path / "update.pdf", pages=2))

    path = pipeline.export_deck(presentation)

    assert path == tmp_path / "out" / "Team update.pptx"
    assert path.exists()


@pytest.mark.asyncio
async def test_empty_pptx_moves_job_to_error(tmp_path):
    path = tmp_path / "empty.pptx"
    PptxPresentation().save(str(path))
    pipeline, states, _, _ = make_pipeline(tmp_path)

    with pytest.raises(ValidationError, match="no slides"):
        await pipeline.analyze(path, use_existing_notes=True)

    assert pipeline.job.phase == Phase.ERROR
    assert pipeline.job.error.kind == "ValidationError"
    assert Phase.REVIEWING not in [state.phase for state in states]


@pytest.mark.asyncio
async def test_pdf_without_pages_moves_job_to_error(tmp_path):
    class NoPages:
        def rasterize(self, path):
            return [], 0

    analyzer = FakeAnalyzer([])
    pipeline, _, _, _ = make_pipeline(tmp_path, analyzer=analyzer)
    pipeline.rasterizer = NoPages()

    with pytest.raises(ValidationError, match="no pages"):
        await pipeline.analyze(write_pdf(tmp_path / "update.pdf", pages=1))

    assert pipeline.job.phase == Phase.ERROR
    assert analyzer.calls == []


@pytest.mark.asyncio
async def test_rendering_empty_presentation_moves_job_to_error(tmp_path):
    pipeline, _, encoder, plugin = make_pipeline(tmp_path)
    await pipeline.analyze(write_pdf(tmp_path / "update.pdf", pages=1))

    with pytest.raises(ValueError, match="no slides"):
        await pipeline.render_video(Presentation(title="Empty", summary="", slides=[]))

    assert pipeline.job.phase == Phase.ERROR
    assert pipeline.job.error.message == "Presentation has no slides"
    assert plugin.calls == []
    assert not encoder.started
