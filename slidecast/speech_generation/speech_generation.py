import base64
import logging
import os
import re
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import SynthesisError
from .base_plugin import BaseSpeechPlugin, SpeechPayload

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
SAFETY_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}
_RATE_PATTERN = re.compile(r"rate=(\d+)")


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InlineData(_ApiModel):
    mime_type: str = Field("", alias="mimeType")
    data: str = ""


class Part(_ApiModel):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(None, alias="inlineData")


class Content(_ApiModel):
    parts: List[Part] = Field(default_factory=list)


class Candidate(_ApiModel):
    content: Optional[Content] = None
    finish_reason: Optional[str] = Field(None, alias="finishReason")


class PromptFeedback(_ApiModel):
    block_reason: Optional[str] = Field(None, alias="blockReason")


class SpeechSynthesisResponse(_ApiModel):
    """Subset of the generateContent response the voice plugin reads"""

    candidates: List[Candidate] = Field(default_factory=list)
    prompt_feedback: Optional[PromptFeedback] = Field(None, alias="promptFeedback")


class GeminiSpeechPlugin(BaseSpeechPlugin):
    """Speech synthesis plugin using the Gemini text-to-speech models"""

    VOICES = ["Kore", "Puck", "Charon", "Fenrir", "Aoede", "Leda", "Orus", "Zephyr"]

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash-preview-tts",
        voice_name: str = "Kore",
        style_prompt: str = "Read the following aloud in a calm, polite tone: ",
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the speech synthesis plugin

        Args:
            api_key: API key (defaults to env var GEMINI_API_KEY)
            model: Text-to-speech model name
            voice_name: Prebuilt voice to speak with
            style_prompt: Instruction prepended to every script
            base_url: API root (defaults to env var GEMINI_API or the public endpoint)
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = model
        self.voice_name = voice_name
        self.style_prompt = style_prompt
        self.base_url = (base_url or os.getenv("GEMINI_API") or DEFAULT_BASE_URL).rstrip("/")

        if not self.api_key:
            logger.warning("No API key provided. Set GEMINI_API_KEY environment variable.")

        logger.info(f"Initializing GeminiSpeechPlugin with model {model}, voice {voice_name}")

        self.headers = {"Content-Type": "application/json"}
        if self.api_key:
            self.headers["x-goog-api-key"] = self.api_key

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this plugin created it"""
        if self._owns_client:
            await self.client.aclose()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _prepare_request(self, text: str) -> dict:
        return {
            "contents": [{"parts": [{"text": f"{self.style_prompt}{text}"}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": self.voice_name},
                    },
                },
            },
        }

    async def synthesize_async(self, text: str) -> SpeechPayload:
        if not self.validate_text(text):
            raise ValueError("Text input is empty")

        logger.info(f"Sending speech synthesis request for text: '{text[:50]}...'")
        response = await self.client.post(
            self.endpoint,
            json=self._prepare_request(self.preprocess_text(text)),
            headers=self.headers,
        )
        return self._process_response(response)

    def _process_response(self, response: httpx.Response) -> SpeechPayload:
        if response.status_code != 200:
            raise SynthesisError(
                f"Voice service call failed with status {response.status_code}: {response.text[:200]}"
            )

        body = SpeechSynthesisResponse.model_validate(response.json())

        if body.prompt_feedback and body.prompt_feedback.block_reason:
            raise SynthesisError(f"Voice service rejected the text: {body.prompt_feedback.block_reason}")

        if not body.candidates:
            raise SynthesisError("No audio data in response (no candidates)")

        candidate = body.candidates[0]
        if candidate.finish_reason in SAFETY_FINISH_REASONS:
            raise SynthesisError(f"Voice service rejected the text: {candidate.finish_reason}")

        inline = None
        if candidate.content:
            for part in candidate.content.parts:
                if part.inline_data and part.inline_data.data:
                    inline = part.inline_data
                    break
        if inline is None:
            logger.error(f"Response parts without audio: {candidate.content}")
            raise SynthesisError("No audio data in response (payload was empty)")

        match = _RATE_PATTERN.search(inline.mime_type)
        sample_rate = int(match.group(1)) if match else 24000
        return SpeechPayload(pcm=base64.b64decode(inline.data), sample_rate=sample_rate, channels=1)

    def get_available_voices(self) -> List[str]:
        return list(self.VOICES)
