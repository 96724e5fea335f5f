from __future__ import annotations

import logging
import math
from typing import Any, Callable, Optional

from .parsing import parse_time_to_seconds, parse_timestamped_lines
from .schemas import BilingualPair, FullTextBilingualPayload
from .stats import build_alignment_stats
from .types import (
    BILINGUAL_ALIGNMENT_VERSION,
    BILINGUAL_MISSING_ZH_PLACEHOLDER,
    MatchMethod,
    TimestampedLine,
    utc_now_iso,
)


logger = logging.getLogger(__name__)

DEFAULT_NEAR_WINDOW_SEC = 12
TS_EXACT_CONFIDENCE = 0.98
TS_NEAR_MAX_CONFIDENCE = 0.92
TS_NEAR_MIN_CONFIDENCE = 0.70
TS_NEAR_CONFIDENCE_SPAN = 0.22
ORDER_FALLBACK_CONFIDENCE = 0.56

# (zh index, method, confidence)
MatchHit = tuple[int, MatchMethod, float]
MatchFinder = Callable[[TimestampedLine, list[TimestampedLine], set[int], int, int], Optional[MatchHit]]


def clamp(value: float, lower: float, upper: float) -> float:
    if not math.isfinite(value):
        return lower
    return max(lower, min(upper, value))


def normalize_near_window(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return DEFAULT_NEAR_WINDOW_SEC
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return DEFAULT_NEAR_WINDOW_SEC
    if not math.isfinite(numeric):
        return DEFAULT_NEAR_WINDOW_SEC
    return max(1, math.floor(numeric))


def _first_unused_index(
    zh_lines: list[TimestampedLine],
    used: set[int],
    min_index: int,
    predicate: Callable[[TimestampedLine], bool],
) -> int:
    for index in range(min_index, len(zh_lines)):
        if index in used:
            continue
        if predicate(zh_lines[index]):
            return index
    return -1


def find_exact_timestamp_match(
    en_line: TimestampedLine,
    zh_lines: list[TimestampedLine],
    used: set[int],
    min_index: int,
    near_window_sec: int,
) -> MatchHit | None:
    if not en_line.timestamp:
        return None
    index = _first_unused_index(zh_lines, used, min_index, lambda zh_line: zh_line.timestamp == en_line.timestamp)
    if index < 0:
        return None
    return index, "ts_exact", TS_EXACT_CONFIDENCE


def find_near_timestamp_match(
    en_line: TimestampedLine,
    zh_lines: list[TimestampedLine],
    used: set[int],
    min_index: int,
    near_window_sec: int,
) -> MatchHit | None:
    en_seconds = parse_time_to_seconds(en_line.timestamp)
    if en_seconds is None:
        return None

    best_index = -1
    best_diff = math.inf
    for index in range(min_index, len(zh_lines)):
        if index in used:
            continue
        zh_seconds = parse_time_to_seconds(zh_lines[index].timestamp)
        if zh_seconds is None:
            continue
        diff = abs(zh_seconds - en_seconds)
        if diff > near_window_sec:
            continue
        if diff < best_diff:
            best_diff = diff
            best_index = index

    if best_index < 0:
        return None
    confidence = clamp(
        TS_NEAR_MAX_CONFIDENCE - best_diff / max(near_window_sec, 1) * TS_NEAR_CONFIDENCE_SPAN,
        TS_NEAR_MIN_CONFIDENCE,
        TS_NEAR_MAX_CONFIDENCE,
    )
    return best_index, "ts_near", confidence


def find_order_fallback_match(
    en_line: TimestampedLine,
    zh_lines: list[TimestampedLine],
    used: set[int],
    min_index: int,
    near_window_sec: int,
) -> MatchHit | None:
    index = _first_unused_index(zh_lines, used, min_index, lambda _zh_line: True)
    if index < 0:
        return None
    return index, "order_fallback", ORDER_FALLBACK_CONFIDENCE


MATCH_FINDERS: tuple[MatchFinder, ...] = (
    find_exact_timestamp_match,
    find_near_timestamp_match,
    find_order_fallback_match,
)


def build_full_text_bilingual_payload(
    full_text_en: str | None,
    full_text_zh: str | None,
    *,
    near_window_sec: Any = DEFAULT_NEAR_WINDOW_SEC,
    generated_at: str | None = None,
) -> FullTextBilingualPayload:
    window = normalize_near_window(near_window_sec)
    en_lines = parse_timestamped_lines(full_text_en)
    zh_lines = parse_timestamped_lines(full_text_zh)
    used_zh: set[int] = set()
    min_zh_index = 0
    pairs: list[BilingualPair] = []

    for position, en_line in enumerate(en_lines):
        hit: MatchHit | None = None
        for finder in MATCH_FINDERS:
            hit = finder(en_line, zh_lines, used_zh, min_zh_index, window)
            if hit is not None:
                break

        if hit is None:
            pairs.append(
                BilingualPair(
                    order=position + 1,
                    en=en_line.text,
                    zh=BILINGUAL_MISSING_ZH_PLACEHOLDER,
                    en_timestamp=en_line.timestamp,
                    zh_timestamp=None,
                    match_method="missing",
                    confidence=0.0,
                )
            )
            continue

        zh_index, method, confidence = hit
        zh_line = zh_lines[zh_index]
        used_zh.add(zh_index)
        min_zh_index = zh_index + 1
        pairs.append(
            BilingualPair(
                order=position + 1,
                en=en_line.text,
                zh=zh_line.text,
                en_timestamp=en_line.timestamp,
                zh_timestamp=zh_line.timestamp,
                match_method=method,
                confidence=confidence,
            )
        )

    stats = build_alignment_stats(pairs)
    logger.debug(
        "[DEBUG] full-text alignment en_lines=%s zh_lines=%s matched=%s unmatched=%s methods=%s",
        len(en_lines),
        len(zh_lines),
        stats.matched,
        stats.unmatched,
        stats.methods,
    )
    return FullTextBilingualPayload(
        version=BILINGUAL_ALIGNMENT_VERSION,
        pairs=pairs,
        stats=stats,
        generated_at=generated_at or utc_now_iso(),
    )
