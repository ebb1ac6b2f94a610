from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

KNOWN_PROFILES = ["vp9-opus", "vp8-opus", "vp8-vorbis", "h264-aac"]


@dataclass
class PipelineConfig:
    """Configuration for the document to video pipeline"""

    # Document configuration
    pdf_render_scale: float = 2.0
    """Zoom factor for rendering PDF pages (relative to 72 DPI)"""

    # Analysis configuration
    ai_model: str = "gpt-4o"
    """Vision model used to write slide titles and scripts"""

    max_tokens: int = 4000
    """Maximum tokens for the document analysis"""

    temperature: float = 0.7
    """Temperature for AI model (0-1, higher = more creative)"""

    language: str = "en"
    """Language for titles and narration scripts"""

    # Speech synthesis configuration
    tts_model: str = "gemini-2.5-flash-preview-tts"
    """Text-to-speech model"""

    voice_name: str = "Kore"
    """Prebuilt voice for narration"""

    speech_prompt: str = "Read the following aloud in a calm, polite tone: "
    """Instruction prepended to every narration script"""

    speech_max_retries: int = 3
    """Retries after a failed synthesis call"""

    speech_retry_delay: float = 1.0
    """Wait before the first retry in seconds; doubled for each further retry"""

    speech_retry_multiplier: float = 2.0
    """Backoff growth factor between retries"""

    # Rendering configuration
    video_resolution: Tuple[int, int] = (1280, 720)
    """Output video resolution (width, height)"""

    max_wrapped_lines: int = 5
    """Narration lines drawn on slides without a page image"""

    font_paths: List[str] = field(default_factory=list)
    """Extra TrueType fonts tried before the built-in candidates"""

    # Timing configuration
    hold_margin: float = 1.0
    """Silence held after each slide's narration in seconds"""

    stabilization_delay: float = 0.8
    """Encoder warm-up before the first slide is played"""

    audio_release_delay: float = 1.0
    """Delay before the shared audio output is closed"""

    # Recording configuration
    video_fps: int = 30
    """Frames per second for output video"""

    video_bitrate: int = 5_000_000
    """Target video bitrate in bits per second"""

    audio_bitrate: int = 128_000
    """Target audio bitrate"""

    codec_profiles: List[str] = field(default_factory=lambda: list(KNOWN_PROFILES))
    """Codec profiles in order of preference"""

    ffmpeg_path: Optional[str] = None
    """ffmpeg binary (None = look it up on PATH)"""

    # Output configuration
    output_dir: str = "output"
    """Directory for output files"""

    def save(self, path: str):
        """Save configuration to JSON file"""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(self), f, ensure_ascii=False, indent=2)

    @classmethod
    def load(cls, path: str) -> 'PipelineConfig':
        """Load configuration from JSON file"""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        # Handle tuple conversion for video_resolution
        if 'video_resolution' in data and isinstance(data['video_resolution'], list):
            data['video_resolution'] = tuple(data['video_resolution'])

        return cls(**data)

    def validate(self) -> bool:
        """Validate configuration values"""
        errors = []

        if self.pdf_render_scale <= 0 or self.pdf_render_scale > 8:
            errors.append(f"pdf_render_scale must be between 0 and 8, got {self.pdf_render_scale}")

        if self.max_tokens < 100:
            errors.append(f"max_tokens must be at least 100, got {self.max_tokens}")

        if self.temperature < 0 or self.temperature > 1:
            errors.append(f"temperature must be between 0 and 1, got {self.temperature}")

        if self.speech_max_retries < 0 or self.speech_max_retries > 10:
            errors.append(f"speech_max_retries must be between 0 and 10, got {self.speech_max_retries}")

        if self.speech_retry_delay < 0:
            errors.append(f"speech_retry_delay must not be negative, got {self.speech_retry_delay}")

        if self.speech_retry_multiplier < 1:
            errors.append(f"speech_retry_multiplier must be at least 1, got {self.speech_retry_multiplier}")

        width, height = self.video_resolution
        if width < 320 or height < 240:
            errors.append(f"video_resolution too small: {self.video_resolution}")
        elif width % 2 or height % 2:
            errors.append(f"video_resolution must have even dimensions: {self.video_resolution}")

        if self.max_wrapped_lines < 1:
            errors.append(f"max_wrapped_lines must be at least 1, got {self.max_wrapped_lines}")

        if self.hold_margin < 0:
            errors.append(f"hold_margin must not be negative, got {self.hold_margin}")

        if self.stabilization_delay < 0 or self.audio_release_delay < 0:
            errors.append("stabilization_delay and audio_release_delay must not be negative")

        if self.video_fps < 1 or self.video_fps > 60:
            errors.append(f"video_fps must be between 1 and 60, got {self.video_fps}")

        if self.video_bitrate < 100_000:
            errors.append(f"video_bitrate must be at least 100000, got {self.video_bitrate}")

        unknown = [name for name in self.codec_profiles if name not in KNOWN_PROFILES]
        if unknown or not self.codec_profiles:
            errors.append(f"codec_profiles must be a non-empty subset of {KNOWN_PROFILES}, got {self.codec_profiles}")

        if errors:
            for error in errors:
                logger.error(f"Config validation error: {error}")
            return False

        return True


# Preset configurations
class ConfigPresets:
    """Preset configurations for common use cases"""

    @staticmethod
    def high_quality() -> PipelineConfig:
        """Full HD output for final presentations"""
        return PipelineConfig(
            pdf_render_scale=3.0,
            video_resolution=(1920, 1080),
            video_fps=30,
            hold_margin=1.5,
        )

    @staticmethod
    def fast_preview() -> PipelineConfig:
        """Small, quick render for checking scripts"""
        return PipelineConfig(
            pdf_render_scale=1.0,
            max_tokens=2000,
            video_resolution=(854, 480),
            video_fps=15,
            video_bitrate=1_500_000,
            hold_margin=0.5,
        )

    @staticmethod
    def english_presentation() -> PipelineConfig:
        return PipelineConfig(language="en", voice_name="Kore")

    @staticmethod
    def japanese_presentation() -> PipelineConfig:
        return PipelineConfig(
            language="ja",
            voice_name="Kore",
            speech_prompt="落ち着いたトーンで丁寧に読み上げてください： ",
            font_paths=["/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc"],
        )

    @staticmethod
    def mp4_compatible() -> PipelineConfig:
        """Prefer H.264/AAC in MP4 for players without WebM support"""
        return PipelineConfig(codec_profiles=["h264-aac", "vp9-opus", "vp8-opus"])
