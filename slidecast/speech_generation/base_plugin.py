from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


@dataclass
class SpeechPayload:
    """Raw PCM audio as returned by a voice service"""

    pcm: bytes
    sample_rate: int = 24000
    channels: int = 1


class BaseSpeechPlugin(ABC):
    """Base class for speech synthesis plugins"""

    @abstractmethod
    async def synthesize_async(self, text: str) -> SpeechPayload:
        """
        Synthesize speech from text

        Args:
            text: Text to convert to speech, never empty

        Returns:
            16-bit signed little-endian PCM payload

        Raises:
            SynthesisError: If the service returned no audio or rejected the text
        """
        pass

    @abstractmethod
    def get_available_voices(self) -> List[str]:
        """
        Get list of available voice IDs

        Returns:
            List of voice identifiers
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the plugin"""
        return None

    def validate_text(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        return True

    def preprocess_text(self, text: str) -> str:
        """
        Preprocess text before synthesis

        Args:
            text: Original text

        Returns:
            Preprocessed text
        """
        # Remove multiple spaces and trim
        return " ".join(text.split()).strip()
