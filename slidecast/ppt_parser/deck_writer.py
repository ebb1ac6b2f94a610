import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from pptx import Presentation as PptxPresentation
from pptx.dml.color import RGBColor
from pptx.enum.text import PP_ALIGN
from pptx.util import Emu, Inches, Pt

from ..models import Presentation, safe_filename

logger = logging.getLogger(__name__)

SLIDE_WIDTH = Inches(10)
SLIDE_HEIGHT = Inches(5.625)


class DeckWriter:
    """Export a presentation as a 16:9 PPTX with the scripts as speaker notes"""

    def __init__(self, subtitle: str = "AI generated speaker notes"):
        self.subtitle = subtitle

    def default_path(self, presentation: Presentation, output_dir: Union[str, Path]) -> Path:
        return Path(output_dir) / f"{safe_filename(presentation.title, 'presentation')}.pptx"

    def write(
        self,
        presentation: Presentation,
        output_path: Optional[Union[str, Path]] = None,
        output_dir: Union[str, Path] = ".",
    ) -> Path:
        output_path = Path(output_path) if output_path else self.default_path(presentation, output_dir)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        prs = PptxPresentation()
        prs.slide_width = SLIDE_WIDTH
        prs.slide_height = SLIDE_HEIGHT
        blank = prs.slide_layouts[6]

        title_slide = prs.slides.add_slide(blank)
        title_slide.background.fill.solid()
        title_slide.background.fill.fore_color.rgb = RGBColor(0x1E, 0x29, 0x3B)
        self._add_text(title_slide, presentation.title, Inches(2.2), Inches(1), 40, RGBColor(0x38, 0xBD, 0xF8), bold=True)
        self._add_text(title_slide, self.subtitle, Inches(3.2), Inches(0.5), 20, RGBColor(0x94, 0xA3, 0xB8))

        for slide in presentation.slides:
            page = prs.slides.add_slide(blank)
            if slide.source_image is not None:
                self._add_contained_image(page, slide.source_image)

            box = page.shapes.add_textbox(Inches(0.2), Inches(0.1), Inches(9.6), Inches(0.4))
            box.fill.solid()
            box.fill.fore_color.rgb = RGBColor(0x0F, 0x17, 0x2A)
            paragraph = box.text_frame.paragraphs[0]
            paragraph.text = slide.title
            paragraph.font.size = Pt(12)
            paragraph.font.bold = True
            paragraph.font.color.rgb = RGBColor(0xFF, 0xFF, 0xFF)

            if slide.content and slide.source_image is None:
                body = page.shapes.add_textbox(Inches(0.6), Inches(0.8), Inches(8.8), Inches(4.2)).text_frame
                body.word_wrap = True
                for i, line in enumerate(slide.content):
                    paragraph = body.paragraphs[0] if i == 0 else body.add_paragraph()
                    paragraph.text = f"• {line}"
                    paragraph.font.size = Pt(20)

            page.notes_slide.notes_text_frame.text = slide.notes

        prs.save(str(output_path))
        logger.info(f"Deck saved to: {output_path}")
        return output_path

    def _add_text(self, slide, text, top, height, size, color, bold=False):
        frame = slide.shapes.add_textbox(0, top, SLIDE_WIDTH, height).text_frame
        paragraph = frame.paragraphs[0]
        paragraph.text = text
        paragraph.alignment = PP_ALIGN.CENTER
        paragraph.font.size = Pt(size)
        paragraph.font.bold = bold
        paragraph.font.color.rgb = color

    def _add_contained_image(self, slide, image):
        img_w, img_h = image.size
        scale = min(SLIDE_WIDTH / img_w, SLIDE_HEIGHT / img_h)
        width, height = Emu(int(img_w * scale)), Emu(int(img_h * scale))
        buffered = BytesIO()
        image.convert("RGB").save(buffered, format="PNG")
        buffered.seek(0)
        slide.shapes.add_picture(
            buffered,
            Emu((SLIDE_WIDTH - width) // 2),
            Emu((SLIDE_HEIGHT - height) // 2),
            width,
            height,
        )
