"""Text statistics for uploaded files."""

from .analyzer import (
    AnalysisResult,
    analyze_text,
    analyze_file,
    format_summary,
)

__all__ = ["AnalysisResult", "analyze_text", "analyze_file", "format_summary"]
