from .deck_writer import DeckWriter
from .ppt_parser import NO_NOTES, ExtractedSlide, PdfRasterizer, PptxNotesExtractor

__all__ = ["DeckWriter", "NO_NOTES", "ExtractedSlide", "PdfRasterizer", "PptxNotesExtractor"]
