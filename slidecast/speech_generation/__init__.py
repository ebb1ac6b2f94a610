from .base_plugin import BaseSpeechPlugin, SpeechPayload
from .narration import NarrationSynthesizer, decode_pcm16
from .speech_generation import GeminiSpeechPlugin, SpeechSynthesisResponse

__all__ = [
    "BaseSpeechPlugin",
    "SpeechPayload",
    "NarrationSynthesizer",
    "decode_pcm16",
    "GeminiSpeechPlugin",
    "SpeechSynthesisResponse",
]
