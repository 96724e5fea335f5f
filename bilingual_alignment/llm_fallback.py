from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Iterable

from pydantic import ValidationError

from .llm_client import MatchResolver, OpenRouterMatchResolver
from .parsing import parse_summary_sections, parse_timestamped_lines
from .schemas import BilingualPair, FullTextBilingualPayload, LlmMatch, SummaryBilingualPayload
from .stats import (
    list_full_text_missing_pair_indexes,
    list_summary_missing_pair_indexes,
    rebuild_full_text_alignment_stats,
    rebuild_summary_alignment_stats,
)
from .types import BILINGUAL_MISSING_ZH_PLACEHOLDER, LlmCandidate, LlmFallbackResult, TaskLabel


logger = logging.getLogger(__name__)

DEFAULT_MAX_MISSING = 20
FULL_TEXT_CONFIDENCE = (0.75, 0.55, 0.98)
SUMMARY_CONFIDENCE = (0.72, 0.55, 0.97)


def _normalize_text(value: Any) -> str:
    return " ".join(str(value or "").split())


def _candidate_signature(text: str, timestamp: str | None = None, section_key: str | None = None) -> str:
    return f"{section_key or ''}|{timestamp or ''}|{_normalize_text(text)}"


def clamp_max_missing(value: Any) -> int:
    if value is None:
        return DEFAULT_MAX_MISSING
    try:
        numeric = int(value)
    except OverflowError:
        return DEFAULT_MAX_MISSING if value > 0 else 0
    except (TypeError, ValueError):
        return DEFAULT_MAX_MISSING
    return max(0, min(numeric, DEFAULT_MAX_MISSING))


def _merge_confidence(raw: float | None, bounds: tuple[float, float, float]) -> float:
    default, lower, upper = bounds
    value = default if raw is None else raw
    if not math.isfinite(value):
        return lower
    return max(lower, min(upper, value))


def build_full_text_candidates(payload: FullTextBilingualPayload, full_text_zh: str | None) -> list[LlmCandidate]:
    """Chinese lines not yet consumed by a non-missing pair.

    Consumption is tracked by (text, timestamp) multiplicity since pairs do
    not keep the parse index of their Chinese line.
    """
    consumed = Counter(
        _candidate_signature(pair.zh, pair.zh_timestamp)
        for pair in payload.pairs
        if pair.match_method != "missing"
    )
    candidates: list[LlmCandidate] = []
    for index, line in enumerate(parse_timestamped_lines(full_text_zh)):
        signature = _candidate_signature(line.text, line.timestamp)
        if consumed[signature] > 0:
            consumed[signature] -= 1
            continue
        candidates.append(LlmCandidate(id=f"zh-{index + 1}", text=line.text, timestamp=line.timestamp))
    return candidates


def build_summary_candidates(payload: SummaryBilingualPayload, summary_zh: str | None) -> list[LlmCandidate]:
    consumed = Counter(
        _candidate_signature(pair.zh, section_key=section.section_key)
        for section in payload.sections
        for pair in section.pairs
        if pair.match_method != "missing"
    )
    candidates: list[LlmCandidate] = []
    for section_index, section in enumerate(parse_summary_sections(summary_zh)):
        for item_index, raw_item in enumerate(section.items):
            item = _normalize_text(raw_item)
            if not item:
                continue
            signature = _candidate_signature(item, section_key=section.section_key)
            if consumed[signature] > 0:
                consumed[signature] -= 1
                continue
            candidates.append(
                LlmCandidate(
                    id=f"s{section_index + 1}-i{item_index + 1}",
                    text=item,
                    section_key=section.section_key,
                )
            )
    return candidates


def normalize_matches(raw_matches: Iterable[Any] | None) -> list[LlmMatch]:
    """Validate reply entries one by one; malformed entries are dropped."""
    if not isinstance(raw_matches, (list, tuple)):
        return []
    matches: list[LlmMatch] = []
    for entry in raw_matches:
        if not isinstance(entry, dict):
            continue
        try:
            matches.append(LlmMatch.model_validate(entry))
        except (ValidationError, TypeError, ValueError, ArithmeticError):
            continue
    return matches


async def _request_matches(
    resolver: MatchResolver | None,
    *,
    missing: list[dict[str, Any]],
    candidates: list[LlmCandidate],
    task_label: TaskLabel,
) -> list[LlmMatch] | None:
    try:
        active = resolver if resolver is not None else OpenRouterMatchResolver()
        raw_matches = await active.resolve(missing, candidates, task_label=task_label)
    except Exception as exc:
        logger.warning("[DEBUG] bilingual LLM %s fallback failed: %s", task_label, exc)
        return None
    return normalize_matches(raw_matches)


def _apply_matches(
    matches: list[LlmMatch],
    *,
    pairs_by_order: dict[int, BilingualPair],
    candidates: list[LlmCandidate],
    bounds: tuple[float, float, float],
    keep_timestamp: bool,
) -> int:
    candidate_by_id = {candidate.id: candidate for candidate in candidates}
    used_candidate_ids: set[str] = set()
    filled = 0
    for match in matches:
        pair = pairs_by_order.get(match.order)
        if pair is None or match.candidate_id in used_candidate_ids:
            continue
        candidate = candidate_by_id.get(match.candidate_id)
        if candidate is None or not _normalize_text(candidate.text):
            continue
        if pair.match_method != "missing" or pair.zh != BILINGUAL_MISSING_ZH_PLACEHOLDER:
            continue

        pair.zh = candidate.text
        pair.zh_timestamp = candidate.timestamp if keep_timestamp else None
        pair.match_method = "llm"
        pair.confidence = _merge_confidence(match.confidence, bounds)
        used_candidate_ids.add(match.candidate_id)
        filled += 1
    return filled


async def apply_llm_fallback_to_full_text_payload(
    payload: FullTextBilingualPayload,
    *,
    full_text_zh: str | None,
    max_missing: Any = DEFAULT_MAX_MISSING,
    resolver: MatchResolver | None = None,
) -> LlmFallbackResult[FullTextBilingualPayload]:
    limit = clamp_max_missing(max_missing)
    if limit == 0:
        return LlmFallbackResult(payload=payload)

    missing_indexes = list_full_text_missing_pair_indexes(payload)
    if not missing_indexes:
        return LlmFallbackResult(payload=payload)

    candidates = build_full_text_candidates(payload, full_text_zh)
    if not candidates:
        return LlmFallbackResult(payload=payload)

    target_indexes = missing_indexes[:limit]
    missing = [
        {
            "order": payload.pairs[index].order,
            "en": payload.pairs[index].en,
            "enTimestamp": payload.pairs[index].en_timestamp or None,
        }
        for index in target_indexes
    ]

    matches = await _request_matches(resolver, missing=missing, candidates=candidates, task_label="full_text")
    if not matches:
        return LlmFallbackResult(payload=payload, attempted=len(missing))

    next_pairs = [pair.model_copy() for pair in payload.pairs]
    pairs_by_order = {next_pairs[index].order: next_pairs[index] for index in target_indexes}
    filled = _apply_matches(
        matches,
        pairs_by_order=pairs_by_order,
        candidates=candidates,
        bounds=FULL_TEXT_CONFIDENCE,
        keep_timestamp=True,
    )
    logger.info("[DEBUG] bilingual LLM full_text attempted=%s filled=%s", len(missing), filled)
    next_payload = rebuild_full_text_alignment_stats(payload.model_copy(update={"pairs": next_pairs}))
    return LlmFallbackResult(payload=next_payload, attempted=len(missing), llm_matched=filled)


async def apply_llm_fallback_to_summary_payload(
    payload: SummaryBilingualPayload,
    *,
    summary_zh: str | None,
    max_missing: Any = DEFAULT_MAX_MISSING,
    resolver: MatchResolver | None = None,
) -> LlmFallbackResult[SummaryBilingualPayload]:
    limit = clamp_max_missing(max_missing)
    if limit == 0:
        return LlmFallbackResult(payload=payload)

    missing_locations = list_summary_missing_pair_indexes(payload)
    if not missing_locations:
        return LlmFallbackResult(payload=payload)

    candidates = build_summary_candidates(payload, summary_zh)
    if not candidates:
        return LlmFallbackResult(payload=payload)

    target_locations = missing_locations[:limit]
    missing: list[dict[str, Any]] = []
    for section_index, pair_index in target_locations:
        section = payload.sections[section_index]
        pair = section.pairs[pair_index]
        missing.append(
            {
                "order": pair.order,
                "en": pair.en,
                "sectionKey": section.section_key,
                "sectionTitle": section.section_title_en or section.section_title_zh,
            }
        )

    matches = await _request_matches(resolver, missing=missing, candidates=candidates, task_label="summary")
    if not matches:
        return LlmFallbackResult(payload=payload, attempted=len(missing))

    next_sections = [
        section.model_copy(update={"pairs": [pair.model_copy() for pair in section.pairs]})
        for section in payload.sections
    ]
    pairs_by_order = {
        next_sections[section_index].pairs[pair_index].order: next_sections[section_index].pairs[pair_index]
        for section_index, pair_index in target_locations
    }
    filled = _apply_matches(
        matches,
        pairs_by_order=pairs_by_order,
        candidates=candidates,
        bounds=SUMMARY_CONFIDENCE,
        keep_timestamp=False,
    )
    logger.info("[DEBUG] bilingual LLM summary attempted=%s filled=%s", len(missing), filled)
    next_payload = rebuild_summary_alignment_stats(payload.model_copy(update={"sections": next_sections}))
    return LlmFallbackResult(payload=next_payload, attempted=len(missing), llm_matched=filled)
