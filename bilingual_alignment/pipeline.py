from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Mapping

from .config import get_settings
from .full_text import build_full_text_bilingual_payload
from .llm_client import MatchResolver
from .llm_fallback import (
    DEFAULT_MAX_MISSING,
    apply_llm_fallback_to_full_text_payload,
    apply_llm_fallback_to_summary_payload,
)
from .schemas import FullTextBilingualPayload, SummaryBilingualPayload
from .summary import build_summary_bilingual_payload
from .types import LlmFallbackResult


logger = logging.getLogger(__name__)

DEFAULT_BACKFILL_LIMIT = 3
MAX_BACKFILL_LIMIT = 20
LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")

SavePayloads = Callable[["AlignmentRecord", FullTextBilingualPayload, SummaryBilingualPayload], Any]


def _safe_text(value: Any) -> str:
    return str(value or "").strip()


def _positive_int(value: Any) -> int:
    # leading integer only: "3.5" -> 3, "12 rows" -> 12
    matched = LEADING_INT_PATTERN.match(str(value))
    if not matched:
        return 0
    parsed = int(matched.group(1))
    return parsed if parsed > 0 else 0


def normalize_limit(value: Any) -> int:
    parsed = _positive_int(value) if value is not None else 0
    if parsed <= 0:
        return DEFAULT_BACKFILL_LIMIT
    return min(MAX_BACKFILL_LIMIT, parsed)


def normalize_max_missing(value: Any) -> int:
    parsed = _positive_int(value) if value is not None else 0
    if parsed <= 0:
        return DEFAULT_MAX_MISSING
    return min(DEFAULT_MAX_MISSING, parsed)


@dataclass
class AlignmentRecord:
    """Source texts of one record: full text pairs translation→highlights, summary pairs en→zh."""

    record_id: str
    translation: str = ""
    highlights: str = ""
    summary_en: str = ""
    summary_zh: str = ""

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "AlignmentRecord":
        return AlignmentRecord(
            record_id=_safe_text(row.get("podcastId") or row.get("record_id")),
            translation=_safe_text(row.get("translation")),
            highlights=_safe_text(row.get("highlights")),
            summary_en=_safe_text(row.get("summaryEn") or row.get("summary_en")),
            summary_zh=_safe_text(row.get("summaryZh") or row.get("summary_zh")),
        )


@dataclass
class RecordAlignment:
    full_text: FullTextBilingualPayload
    summary: SummaryBilingualPayload
    full_text_fallback: LlmFallbackResult[FullTextBilingualPayload]
    summary_fallback: LlmFallbackResult[SummaryBilingualPayload]


@dataclass
class BackfillTotals:
    processed: int = 0
    matched: int = 0
    llm_matched: int = 0
    unmatched: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        payload = asdict(self)
        payload["llmMatched"] = payload.pop("llm_matched")
        return payload


async def align_record(
    record: AlignmentRecord,
    *,
    max_missing: Any = None,
    near_window_sec: Any = None,
    resolver: MatchResolver | None = None,
) -> RecordAlignment:
    settings = get_settings()
    window = near_window_sec if near_window_sec is not None else settings.near_window_sec
    limit = max_missing if max_missing is not None else settings.max_missing

    full_text = build_full_text_bilingual_payload(record.translation, record.highlights, near_window_sec=window)
    summary = build_summary_bilingual_payload(record.summary_en, record.summary_zh)
    full_text_fallback, summary_fallback = await asyncio.gather(
        apply_llm_fallback_to_full_text_payload(
            full_text,
            full_text_zh=record.highlights,
            max_missing=limit,
            resolver=resolver,
        ),
        apply_llm_fallback_to_summary_payload(
            summary,
            summary_zh=record.summary_zh,
            max_missing=limit,
            resolver=resolver,
        ),
    )
    return RecordAlignment(
        full_text=full_text_fallback.payload,
        summary=summary_fallback.payload,
        full_text_fallback=full_text_fallback,
        summary_fallback=summary_fallback,
    )


async def _save(save: SavePayloads, record: AlignmentRecord, aligned: RecordAlignment) -> bool:
    result = save(record, aligned.full_text, aligned.summary)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


async def run_alignment_backfill(
    rows: Iterable[Mapping[str, Any] | AlignmentRecord],
    *,
    save: SavePayloads,
    limit: Any = None,
    max_missing: Any = None,
    near_window_sec: Any = None,
    resolver: MatchResolver | None = None,
) -> BackfillTotals:
    """Align pending records one by one and hand the payloads to ``save``.

    A record that has no id, raises, or is rejected by ``save`` counts as
    failed; the batch always continues.
    """
    settings = get_settings()
    batch_limit = normalize_limit(limit if limit is not None else settings.backfill_limit)
    batch_max_missing = normalize_max_missing(max_missing if max_missing is not None else settings.max_missing)
    totals = BackfillTotals()

    records = [row if isinstance(row, AlignmentRecord) else AlignmentRecord.from_row(row) for row in rows]
    for record in records[:batch_limit]:
        if not record.record_id:
            totals.failed += 1
            continue
        try:
            aligned = await align_record(
                record,
                max_missing=batch_max_missing,
                near_window_sec=near_window_sec,
                resolver=resolver,
            )
            saved = await _save(save, record, aligned)
        except Exception:
            logger.exception("[DEBUG] alignment backfill failed record_id=%s", record.record_id)
            totals.failed += 1
            continue
        if not saved:
            totals.failed += 1
            continue

        totals.processed += 1
        totals.matched += aligned.full_text.stats.matched + aligned.summary.stats.matched
        totals.llm_matched += aligned.full_text.stats.llm_matched + aligned.summary.stats.llm_matched
        totals.unmatched += aligned.full_text.stats.unmatched + aligned.summary.stats.unmatched

    logger.info("[DEBUG] alignment backfill done totals=%s", totals.to_dict())
    return totals
