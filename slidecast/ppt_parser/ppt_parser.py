import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Iterator, List, Tuple, Union

import fitz  # PyMuPDF
from PIL import Image
from pptx import Presentation as PptxPresentation
from pptx.enum.shapes import MSO_SHAPE_TYPE

logger = logging.getLogger(__name__)

NO_NOTES = "(no notes)"
MAX_CONTENT_LINES = 5


class PdfRasterizer:
    """Render PDF pages to images with PyMuPDF"""

    def __init__(self, scale: float = 2.0):
        """
        Args:
            scale: Zoom factor relative to 72 DPI
        """
        self.scale = scale

    def rasterize(self, pdf_path: Union[str, Path]) -> Tuple[List[Image.Image], int]:
        """
        Render every page of a PDF

        Returns:
            Tuple of (page images in order, page count)
        """
        pdf_path = Path(pdf_path)
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")
        if pdf_path.stat().st_size == 0:
            raise ValueError(f"PDF file is empty: {pdf_path}")

        pages = []
        matrix = fitz.Matrix(self.scale, self.scale)
        with fitz.open(str(pdf_path)) as document:
            for page_num in range(document.page_count):
                pix = document[page_num].get_pixmap(matrix=matrix, alpha=False, colorspace=fitz.csRGB)
                img = Image.open(BytesIO(pix.tobytes("png")))
                img.load()
                pages.append(img.convert("RGB"))
                logger.debug(f"Rendered page {page_num + 1} at {img.size[0]}x{img.size[1]}")

        logger.info(f"Rendered {len(pages)} pages from {pdf_path.name}")
        return pages, len(pages)


@dataclass
class ExtractedSlide:
    """Text pulled out of one slide of a deck"""

    index: int
    title: str
    notes: str
    content: List[str] = field(default_factory=list)

    @property
    def has_notes(self) -> bool:
        return self.notes != NO_NOTES


def _shape_texts(shapes) -> Iterator[str]:
    for shape in shapes:
        if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
            yield from _shape_texts(shape.shapes)
            continue
        if not shape.has_text_frame:
            continue
        for paragraph in shape.text_frame.paragraphs:
            text = "".join(run.text for run in paragraph.runs).strip()
            if text:
                yield text


class PptxNotesExtractor:
    """Read slide texts and speaker notes from a PPTX file"""

    def __init__(self, max_content_lines: int = MAX_CONTENT_LINES):
        self.max_content_lines = max_content_lines

    def extract(self, pptx_path: Union[str, Path]) -> List[ExtractedSlide]:
        """
        Extract title, body lines and notes for every slide, in slide order

        The first text on a slide is taken as its title and the next few
        as bullet content.
        """
        pptx_path = Path(pptx_path)
        if not pptx_path.exists():
            raise FileNotFoundError(f"PPTX file not found: {pptx_path}")

        prs = PptxPresentation(str(pptx_path))
        slides = []
        for i, slide in enumerate(prs.slides):
            texts = list(_shape_texts(slide.shapes))
            title = texts[0] if texts else ""
            content = texts[1:1 + self.max_content_lines]

            notes = ""
            if slide.has_notes_slide:
                frame = slide.notes_slide.notes_text_frame
                if frame is not None:
                    notes = " ".join(p.text.strip() for p in frame.paragraphs if p.text.strip())

            slides.append(
                ExtractedSlide(
                    index=i,
                    title=title or f"Slide {i + 1}",
                    notes=notes or NO_NOTES,
                    content=content,
                )
            )

        logger.info(f"Extracted {len(slides)} slides from {pptx_path.name}")
        return slides
