import base64
import io
import json
import logging
import os
from typing import Dict, List, Optional, Sequence

import httpx
from openai import AsyncOpenAI
from PIL import Image
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError
from ..models import Presentation, Slide
from ..ppt_parser.ppt_parser import ExtractedSlide

logger = logging.getLogger(__name__)

PLACEHOLDER_NOTES = "Narration could not be generated."
LANGUAGE_NAMES = {"en": "English", "ja": "Japanese", "zh-CN": "Simplified Chinese"}


def placeholder_title(page_index: int) -> str:
    return f"Page {page_index + 1}"


class AnalyzedSlide(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_index: int = Field(..., alias="pageIndex")
    title: str = ""
    notes: str = ""


class AnalysisResult(BaseModel):
    """Document analysis as returned by the language model"""

    model_config = ConfigDict(populate_by_name=True)

    presentation_title: str = Field(..., alias="presentationTitle")
    summary: str = ""
    slides: List[AnalyzedSlide] = Field(default_factory=list)


def parse_analysis(text: Optional[str]) -> AnalysisResult:
    """
    Parse the model's JSON answer

    Raises:
        ValidationError: If the text is empty, not JSON, or does not match the contract
    """
    if not text or not text.strip():
        raise ValidationError("The analysis service returned an empty response")

    cleaned = text.strip()
    if cleaned.startswith("```"):
        # Models sometimes wrap JSON in a markdown fence
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        cleaned = cleaned.rsplit("```", 1)[0]

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Response text: {cleaned[:500]}...")
        raise ValidationError(f"The analysis service returned invalid JSON: {e}") from e

    try:
        result = AnalysisResult.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"The analysis result does not match the expected format: {e}") from e

    result.slides.sort(key=lambda s: s.page_index)
    return result


def build_presentation(
    result: AnalysisResult,
    page_count: int,
    page_images: Optional[Sequence[Image.Image]] = None,
) -> Presentation:
    """
    Join the analysed slides onto the document's pages

    The join is keyed by page index, never by list position. Every page
    in ``0..page_count-1`` gets exactly one slide; pages the model skipped
    or left blank get a placeholder title and script.

    Raises:
        ValidationError: If the model returned no slides for a non-empty document
    """
    if page_count > 0 and not result.slides:
        raise ValidationError("The analysis service returned no slides for the document")

    by_index: Dict[int, AnalyzedSlide] = {}
    for analyzed in result.slides:
        if analyzed.page_index < 0 or analyzed.page_index >= page_count:
            logger.warning(f"Ignoring analysis for page index {analyzed.page_index} (document has {page_count} pages)")
            continue
        if analyzed.page_index in by_index:
            logger.warning(f"Duplicate analysis for page index {analyzed.page_index}, keeping the first")
            continue
        by_index[analyzed.page_index] = analyzed

    slides = []
    for i in range(page_count):
        analyzed = by_index.get(i)
        title = analyzed.title.strip() if analyzed else ""
        notes = analyzed.notes.strip() if analyzed else ""
        if not analyzed:
            logger.warning(f"Analysis skipped page {i + 1}, using placeholder")
        slides.append(
            Slide(
                page_index=i,
                title=title or placeholder_title(i),
                notes=notes or PLACEHOLDER_NOTES,
                source_image=page_images[i] if page_images and i < len(page_images) else None,
            )
        )

    return Presentation(title=result.presentation_title, summary=result.summary, slides=slides)


class DocumentAnalyzer:
    """Generate slide titles and narration scripts for document pages"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        max_tokens: int = 4000,
        temperature: float = 0.7,
        language: str = "en",
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize document analyzer

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            model: Vision-capable chat model
            max_tokens: Maximum tokens for the whole analysis
            temperature: Model temperature
            language: Language code for titles and scripts, e.g. "en" or "ja"
            client: Optional preconfigured client
        """
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.language = language

        if client is None:
            api_key = api_key or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OpenAI API key must be provided or set in OPENAI_API_KEY environment variable")
            proxy = os.environ.get("PROXY_SERVER")
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=os.environ.get("OPENAI_API", "https://api.openai.com/v1"),
                http_client=httpx.AsyncClient(proxy=proxy) if proxy else None,
            )
        self.client = client

    async def analyze(
        self,
        page_images: Sequence[Image.Image],
        page_count: int,
        page_texts: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        """
        Analyse the document pages in one request

        Args:
            page_images: Rendered pages in order
            page_count: Number of pages in the document
            page_texts: Extracted text per page, used when there are no images

        Returns:
            Parsed analysis; may be partial or unordered

        Raises:
            ValidationError: If the response is malformed
        """
        logger.info(f"Analysing {page_count} pages with {self.model}")

        contents = [{"type": "text", "text": self._get_user_prompt(page_count)}]
        for i, image in enumerate(page_images):
            contents.append({"type": "text", "text": f"[Page index {i}]"})
            contents.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{self._image_to_base64(image)}"},
            })
        for i, text in enumerate(page_texts or []):
            contents.append({"type": "text", "text": f"[Page index {i}]\n{text}"})

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self._get_system_prompt()},
                {"role": "user", "content": contents},
            ],
            response_format={"type": "json_object"},
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        if not response.choices:
            raise ValidationError("The analysis service returned no choices")
        return parse_analysis(response.choices[0].message.content)

    def _image_to_base64(self, image: Image.Image) -> str:
        buffered = io.BytesIO()
        image.convert("RGB").save(buffered, format="JPEG", quality=85)
        return base64.b64encode(buffered.getvalue()).decode()

    def _get_system_prompt(self) -> str:
        return (
            "You are a professional presenter. You read each page of a document and write "
            "a slide title and a spoken narration script for it. Answer with JSON only."
        )

    def _get_user_prompt(self, page_count: int) -> str:
        language = LANGUAGE_NAMES.get(self.language, self.language)
        return f"""Analyse this document page by page.
Total pages: {page_count}

1. Treat each of the {page_count} pages as one slide.
2. For every page write a slide title and calm, polite speaker notes for narration, in {language}.
3. Include every page index from 0 to {page_count - 1} without gaps.

Answer in this JSON format:
{{
  "presentationTitle": "title",
  "summary": "summary of the whole document",
  "slides": [
    {{"pageIndex": 0, "title": "title", "notes": "narration script"}}
  ]
}}"""


def build_presentation_from_pptx(
    extracted: Sequence[ExtractedSlide],
    title: str,
    analysis: Optional[AnalysisResult] = None,
    summary: str = "Generated directly from the existing speaker notes.",
) -> Presentation:
    """
    Turn extracted deck slides into a presentation

    Slides without speaker notes take the analysed script for the same
    page index when ``analysis`` is given.
    """
    analysed: Dict[int, AnalyzedSlide] = {}
    if analysis is not None:
        for item in analysis.slides:
            analysed.setdefault(item.page_index, item)
        summary = analysis.summary or summary

    slides = []
    for i, item in enumerate(sorted(extracted, key=lambda s: s.index)):
        notes = item.notes
        if not item.has_notes:
            fallback = analysed.get(i)
            if fallback is not None and fallback.notes.strip():
                notes = fallback.notes.strip()
            elif analysis is not None:
                notes = PLACEHOLDER_NOTES
        slides.append(Slide(page_index=i, title=item.title, notes=notes, content=list(item.content)))

    return Presentation(title=title, summary=summary, slides=slides)
