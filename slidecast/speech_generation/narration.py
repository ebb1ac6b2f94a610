import logging
from typing import Optional

import numpy as np

from ..models import AudioClip, sanitize_script
from ..retry import RetryPolicy
from .base_plugin import BaseSpeechPlugin, SpeechPayload

logger = logging.getLogger(__name__)


def decode_pcm16(pcm: bytes, sample_rate: int = 24000, channels: int = 1, text: str = "") -> AudioClip:
    """
    Decode 16-bit signed little-endian PCM into float samples in [-1.0, 1.0]

    Decoding runs on a private copy of the payload so the array never
    aliases a transport buffer that may not be 2-byte aligned. A trailing
    odd byte is dropped, as are samples that do not fill a whole frame.
    """
    raw = bytes(pcm)
    usable = len(raw) - (len(raw) % (2 * channels))
    ints = np.frombuffer(raw[:usable], dtype="<i2")
    samples = ints.astype(np.float32) / 32768.0
    if channels > 1:
        samples = samples.reshape(-1, channels)
    return AudioClip(samples=samples, sample_rate=sample_rate, channels=channels, text=text)


class NarrationSynthesizer:
    """Turn narration scripts into decoded audio clips, retrying failures"""

    def __init__(self, plugin: BaseSpeechPlugin, retry_policy: Optional[RetryPolicy] = None):
        self.plugin = plugin
        self.retry_policy = retry_policy or RetryPolicy()

    async def synthesize(self, text: Optional[str]) -> AudioClip:
        """
        Synthesize one script

        Args:
            text: Narration script; blank scripts are replaced by a placeholder

        Returns:
            Decoded clip whose ``text`` is the script actually spoken

        Raises:
            SynthesisError: When every attempt failed
        """
        script = sanitize_script(text)

        async def attempt() -> SpeechPayload:
            return await self.plugin.synthesize_async(script)

        payload = await self.retry_policy.call(attempt)
        clip = decode_pcm16(payload.pcm, payload.sample_rate, payload.channels, text=script)
        logger.info(f"Synthesized {clip.duration:.2f}s of narration")
        return clip

    async def aclose(self) -> None:
        await self.plugin.aclose()
