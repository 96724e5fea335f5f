"""Bilingual (English/Chinese) transcript and summary alignment."""

from .config import AlignmentSettings, get_settings
from .full_text import build_full_text_bilingual_payload
from .llm_client import MatchResolver, OpenRouterMatchResolver, extract_json_payload
from .llm_fallback import apply_llm_fallback_to_full_text_payload, apply_llm_fallback_to_summary_payload
from .parsing import (
    normalize_summary_section_key,
    parse_summary_sections,
    parse_timestamped_lines,
    split_bilingual_summary,
)
from .pipeline import AlignmentRecord, BackfillTotals, RecordAlignment, align_record, run_alignment_backfill
from .render import (
    normalize_full_text_bilingual_payload,
    normalize_summary_bilingual_payload,
    render_full_text_bilingual_markdown,
    render_summary_bilingual_markdown,
)
from .schemas import (
    AlignmentStats,
    BilingualPair,
    FullTextBilingualPayload,
    SummaryBilingualPayload,
    SummaryBilingualSection,
)
from .stats import build_alignment_stats, rebuild_full_text_alignment_stats, rebuild_summary_alignment_stats
from .summary import build_summary_bilingual_payload
from .types import (
    BILINGUAL_ALIGNMENT_VERSION,
    BILINGUAL_MISSING_EN_PLACEHOLDER,
    BILINGUAL_MISSING_ZH_PLACEHOLDER,
    AlignmentError,
    LlmFallbackResult,
)

__all__ = [
    "BILINGUAL_ALIGNMENT_VERSION",
    "BILINGUAL_MISSING_EN_PLACEHOLDER",
    "BILINGUAL_MISSING_ZH_PLACEHOLDER",
    "AlignmentError",
    "AlignmentRecord",
    "AlignmentSettings",
    "AlignmentStats",
    "BackfillTotals",
    "BilingualPair",
    "FullTextBilingualPayload",
    "LlmFallbackResult",
    "MatchResolver",
    "OpenRouterMatchResolver",
    "RecordAlignment",
    "SummaryBilingualPayload",
    "SummaryBilingualSection",
    "align_record",
    "apply_llm_fallback_to_full_text_payload",
    "apply_llm_fallback_to_summary_payload",
    "build_alignment_stats",
    "build_full_text_bilingual_payload",
    "build_summary_bilingual_payload",
    "extract_json_payload",
    "get_settings",
    "normalize_full_text_bilingual_payload",
    "normalize_summary_bilingual_payload",
    "normalize_summary_section_key",
    "parse_summary_sections",
    "parse_timestamped_lines",
    "rebuild_full_text_alignment_stats",
    "rebuild_summary_alignment_stats",
    "render_full_text_bilingual_markdown",
    "render_summary_bilingual_markdown",
    "run_alignment_backfill",
    "split_bilingual_summary",
]
