from .transcript_generator import (
    PLACEHOLDER_NOTES,
    AnalysisResult,
    AnalyzedSlide,
    DocumentAnalyzer,
    build_presentation,
    build_presentation_from_pptx,
    parse_analysis,
    placeholder_title,
)

__all__ = [
    "PLACEHOLDER_NOTES",
    "AnalysisResult",
    "AnalyzedSlide",
    "DocumentAnalyzer",
    "build_presentation",
    "build_presentation_from_pptx",
    "parse_analysis",
    "placeholder_title",
]
