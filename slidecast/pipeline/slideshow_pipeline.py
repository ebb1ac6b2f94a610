import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from ..exceptions import InvalidTransitionError, SynthesisError, ValidationError
from ..models import Presentation, VideoArtifact, safe_filename
from ..ppt_parser import DeckWriter, PdfRasterizer, PptxNotesExtractor
from ..retry import RetryPolicy
from ..speech_generation import GeminiSpeechPlugin, NarrationSynthesizer
from ..transcript_generator import DocumentAnalyzer, build_presentation, build_presentation_from_pptx
from ..video_generator import AudioOutput, CaptureSurface, FrameRenderer, RecordingConfig, RecordingSink, Timeline
from ..video_generator.frame_renderer import BOLD_FONTS, REGULAR_FONTS
from ..video_generator.recording_sink import profiles_by_name
from .phases import Phase, PhaseMachine, PipelineJob, narration_progress, recording_progress

# Import from project root configs
from configs import PipelineConfig

logger = logging.getLogger(__name__)


class SlideshowPipeline:
    """Complete pipeline from a PDF or PPTX document to a narrated video"""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        synthesizer: Optional[NarrationSynthesizer] = None,
        analyzer: Optional[DocumentAnalyzer] = None,
        rasterizer: Optional[PdfRasterizer] = None,
        extractor: Optional[PptxNotesExtractor] = None,
        renderer: Optional[FrameRenderer] = None,
        sink: Optional[RecordingSink] = None,
        deck_writer: Optional[DeckWriter] = None,
        progress_callback: Optional[Callable[[PipelineJob], None]] = None,
    ):
        """
        Initialize the pipeline

        Args:
            config: Pipeline configuration
            progress_callback: Called with every new job state
        """
        self.config = config or PipelineConfig()
        self.output_dir = Path(self.config.output_dir)
        self.progress_callback = progress_callback

        self.phases = PhaseMachine(listener=self._on_job)
        self.job = PipelineJob()

        self.rasterizer = rasterizer or PdfRasterizer(scale=self.config.pdf_render_scale)
        self.extractor = extractor or PptxNotesExtractor()
        self.renderer = renderer or FrameRenderer(
            max_lines=self.config.max_wrapped_lines,
            font_paths=list(self.config.font_paths) + list(REGULAR_FONTS),
            bold_font_paths=list(self.config.font_paths) + list(BOLD_FONTS),
        )
        self.sink = sink or RecordingSink(ffmpeg_path=self.config.ffmpeg_path)
        self.deck_writer = deck_writer or DeckWriter()
        self.timeline = Timeline(
            self.renderer,
            canvas_size=self.config.video_resolution,
            hold_margin=self.config.hold_margin,
            stabilization_delay=self.config.stabilization_delay,
        )
        self._analyzer = analyzer
        self._synthesizer = synthesizer

    @property
    def analyzer(self) -> DocumentAnalyzer:
        if self._analyzer is None:
            self._analyzer = DocumentAnalyzer(
                model=self.config.ai_model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                language=self.config.language,
            )
        return self._analyzer

    @property
    def synthesizer(self) -> NarrationSynthesizer:
        if self._synthesizer is None:
            plugin = GeminiSpeechPlugin(
                model=self.config.tts_model,
                voice_name=self.config.voice_name,
                style_prompt=self.config.speech_prompt,
            )
            self._synthesizer = NarrationSynthesizer(
                plugin,
                RetryPolicy(
                    max_retries=self.config.speech_max_retries,
                    initial_delay=self.config.speech_retry_delay,
                    multiplier=self.config.speech_retry_multiplier,
                ),
            )
        return self._synthesizer

    def _on_job(self, job: PipelineJob) -> None:
        if self.progress_callback:
            self.progress_callback(job)

    def reset(self) -> PipelineJob:
        """Start a fresh job; a failed or completed job cannot be resumed"""
        self.job = PipelineJob()
        return self.job

    def _fail(self, error: BaseException) -> None:
        if not self.job.is_terminal:
            self.job = self.phases.fail(self.job, error)

    async def analyze(
        self,
        document_path: Union[str, Path],
        use_existing_notes: bool = False,
    ) -> Presentation:
        """
        Turn a document into a reviewable presentation

        Args:
            document_path: PDF or PPTX file
            use_existing_notes: For PPTX, use the speaker notes as they are
                instead of asking the analysis service

        Returns:
            Presentation with one slide per page
        """
        document_path = Path(document_path)
        self.job = self.phases.transition(self.job, Phase.ANALYZING, 10, "Reading the document...")
        logger.info(f"Starting analysis: {document_path}")

        try:
            if not document_path.exists():
                raise FileNotFoundError(f"Document not found: {document_path}")

            suffix = document_path.suffix.lower()
            if suffix == ".pdf":
                presentation = await self._analyze_pdf(document_path)
            elif suffix == ".pptx":
                presentation = await self._analyze_pptx(document_path, use_existing_notes)
            else:
                raise ValueError(f"Unsupported file format: {document_path.suffix}")
            if not presentation.slides:
                raise ValidationError(f"Document has no pages: {document_path.name}")
        except Exception as e:
            logger.error(f"Analysis error: {e}")
            self._fail(e)
            raise

        self.job = self.phases.transition(
            self.job, Phase.REVIEWING, 100, f"{len(presentation.slides)} slides ready for review"
        )
        return presentation

    async def _analyze_pdf(self, pdf_path: Path) -> Presentation:
        pages, page_count = await asyncio.to_thread(self.rasterizer.rasterize, pdf_path)
        if page_count == 0:
            raise ValidationError(f"Document has no pages: {pdf_path.name}")
        self.job = self.phases.report(self.job, 40, f"Rendered {page_count} pages, analysing...")

        result = await self.analyzer.analyze(pages, page_count)
        self.job = self.phases.report(self.job, 90, "Building slides...")
        return build_presentation(result, page_count, pages)

    async def _analyze_pptx(self, pptx_path: Path, use_existing_notes: bool) -> Presentation:
        extracted = await asyncio.to_thread(self.extractor.extract, pptx_path)
        if not extracted:
            raise ValidationError(f"Document has no slides: {pptx_path.name}")
        self.job = self.phases.report(self.job, 30, f"Extracted {len(extracted)} slides")

        if use_existing_notes:
            return build_presentation_from_pptx(extracted, title=pptx_path.stem)

        page_texts = ["\n".join([item.title] + item.content) for item in extracted]
        result = await self.analyzer.analyze([], len(extracted), page_texts=page_texts)
        self.job = self.phases.report(self.job, 90, "Merging speaker notes...")
        return build_presentation_from_pptx(extracted, title=pptx_path.stem, analysis=result)

    def edit_notes(self, presentation: Presentation, index: int, notes: str) -> Presentation:
        """Revise one narration script while the job is under review"""
        if self.job.phase != Phase.REVIEWING:
            raise InvalidTransitionError(f"Scripts can only be edited while reviewing, not {self.job.phase.value}")
        return presentation.edit_notes(index, notes)

    async def synthesize_narration(self, presentation: Presentation) -> Presentation:
        """Synthesize audio for every slide, one request at a time"""
        slides = []
        total = len(presentation.slides)
        for i, slide in enumerate(presentation.slides):
            self.job = self.phases.report(self.job, narration_progress(i, total), f"Generating narration ({i + 1}/{total})")
            try:
                clip = await self.synthesizer.synthesize(slide.notes)
            except Exception as e:
                raise SynthesisError(f"Narration for slide {i + 1} failed: {e}") from e
            slides.append(slide.with_audio(clip))
            self.job = self.phases.report(self.job, narration_progress(i + 1, total))
        return presentation.with_slides(slides)

    def _recording_config(self) -> RecordingConfig:
        return RecordingConfig(
            fps=self.config.video_fps,
            video_bitrate=self.config.video_bitrate,
            audio_bitrate=self.config.audio_bitrate,
            profiles=profiles_by_name(self.config.codec_profiles),
        )

    def _on_slide_recorded(self, done: int, total: int) -> None:
        self.job = self.phases.report(self.job, recording_progress(done, total), f"Recording video ({done}/{total})")

    async def _record(self, presentation: Presentation) -> VideoArtifact:
        surface = CaptureSurface(self.config.video_resolution)
        sample_rate = presentation.slides[0].audio_clip.sample_rate
        async with AudioOutput(sample_rate=sample_rate, release_delay=self.config.audio_release_delay) as audio:
            blob = await self.timeline.run(
                presentation.slides,
                surface,
                audio,
                self.sink,
                self._recording_config(),
                on_slide=self._on_slide_recorded,
            )
        return VideoArtifact(
            data=blob.data,
            mime_type=blob.mime_type,
            extension=blob.extension,
            suggested_filename=f"{safe_filename(presentation.title)}.{blob.extension}",
            duration=blob.duration,
        )

    async def render_video(self, presentation: Presentation) -> VideoArtifact:
        """
        Narrate and record a reviewed presentation

        Returns:
            The finished video; also stored on ``job.output``
        """
        if not presentation.slides:
            error = ValueError("Presentation has no slides")
            logger.error(f"Video error: {error}")
            self._fail(error)
            raise error

        self.job = self.phases.transition(self.job, Phase.AUDIO_GENERATING, 0, "Generating narration...")
        try:
            voiced = await self.synthesize_narration(presentation)
            self.job = self.phases.transition(self.job, Phase.VIDEO_RECORDING, 50, "Recording video...")
            artifact = await self._record(voiced)
        except Exception as e:
            logger.error(f"Video error: {e}")
            self._fail(e)
            raise

        self.job = self.phases.complete(self.job, artifact)
        logger.info(f"Video created: {artifact.suggested_filename} ({artifact.size} bytes)")
        return artifact

    def save_artifact(self, artifact: VideoArtifact, output_path: Optional[Union[str, Path]] = None) -> Path:
        output_path = Path(output_path) if output_path else self.output_dir / artifact.suggested_filename
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(artifact.data)
        logger.info(f"Video saved to: {output_path}")
        return output_path

    def export_deck(self, presentation: Presentation, output_path: Optional[Union[str, Path]] = None) -> Path:
        """Write the presentation as a PPTX with the scripts as speaker notes"""
        return self.deck_writer.write(presentation, output_path, output_dir=self.output_dir)

    async def process(
        self,
        document_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        use_existing_notes: bool = False,
    ) -> Path:
        """
        Analyse a document and render it to a video file in one go

        Returns:
            Path to generated video
        """
        if self.job.phase != Phase.IDLE:
            self.reset()
        presentation = await self.analyze(document_path, use_existing_notes)
        artifact = await self.render_video(presentation)
        return self.save_artifact(artifact, output_path)

    def process_sync(
        self,
        document_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        use_existing_notes: bool = False,
    ) -> Path:
        """Synchronous wrapper for process method"""
        return asyncio.run(self.process(document_path, output_path, use_existing_notes))

    async def aclose(self) -> None:
        if self._synthesizer is not None:
            await self._synthesizer.aclose()
