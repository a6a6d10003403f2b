from .diff_view import DiffReport, build_diff_report, diff_texts
from .keywords import (
    KeywordGap,
    KeywordResult,
    compute_keyword_gap,
    extract_keywords_frequency_based,
    normalize_keyword_response,
    prioritized_missing_keywords,
)
from .obfuscation import FreeReveal, ObfuscationResult, locked_preview, obfuscate_resume, reveal_content
from .relevancy import ResumeMetrics, compute_composite_score, compute_resume_metrics

__all__ = [
    "DiffReport",
    "build_diff_report",
    "diff_texts",
    "KeywordGap",
    "KeywordResult",
    "compute_keyword_gap",
    "extract_keywords_frequency_based",
    "normalize_keyword_response",
    "prioritized_missing_keywords",
    "FreeReveal",
    "ObfuscationResult",
    "locked_preview",
    "obfuscate_resume",
    "reveal_content",
    "ResumeMetrics",
    "compute_composite_score",
    "compute_resume_metrics",
]
