from __future__ import annotations

import json
import logging
import math
from typing import Any

from .parsing import clean_line
from .schemas import BilingualPair, FullTextBilingualPayload, SummaryBilingualPayload, SummaryBilingualSection
from .stats import build_alignment_stats
from .types import (
    BILINGUAL_ALIGNMENT_VERSION,
    BILINGUAL_MISSING_EN_PLACEHOLDER,
    BILINGUAL_MISSING_ZH_PLACEHOLDER,
    MATCH_METHODS,
    utc_now_iso,
)


logger = logging.getLogger(__name__)

PAIR_SEPARATOR = ("", "---", "")


def render_full_text_bilingual_markdown(payload: FullTextBilingualPayload) -> str:
    lines: list[str] = []
    for pair in payload.pairs:
        prefix = f"**[{pair.en_timestamp}]** " if pair.en_timestamp else ""
        lines.append(f"{prefix}{pair.en}  ")
        lines.append(pair.zh or BILINGUAL_MISSING_ZH_PLACEHOLDER)
        lines.extend(PAIR_SEPARATOR)
    return "\n".join(lines).strip()


def render_summary_bilingual_markdown(payload: SummaryBilingualPayload) -> str:
    lines: list[str] = []
    for section in payload.sections:
        title = clean_line(section.section_title_en) or clean_line(section.section_title_zh) or "Section"
        lines.append(f"## {title}")
        for pair in section.pairs:
            lines.append(f"{pair.en}  ")
            lines.append(pair.zh or BILINGUAL_MISSING_ZH_PLACEHOLDER)
            lines.extend(PAIR_SEPARATOR)
    return "\n".join(lines).strip()


def _safe_confidence(value: Any) -> float:
    try:
        numeric = float(value if value is not None else 0)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(numeric):
        return 0.0
    return max(0.0, min(1.0, numeric))


def _safe_version(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        return BILINGUAL_ALIGNMENT_VERSION
    return parsed if parsed > 0 else BILINGUAL_ALIGNMENT_VERSION


def _optional_text(value: Any) -> str | None:
    text = clean_line(str(value)) if value else ""
    return text or None


def _normalize_pair(value: Any, order: int) -> BilingualPair | None:
    if not isinstance(value, dict):
        return None
    method = clean_line(str(value.get("matchMethod") or "missing"))
    if method not in MATCH_METHODS:
        return None

    en = clean_line(str(value.get("en") or "")) or BILINGUAL_MISSING_EN_PLACEHOLDER
    zh = clean_line(str(value.get("zh") or "")) or BILINGUAL_MISSING_ZH_PLACEHOLDER
    confidence = _safe_confidence(value.get("confidence"))
    if method == "missing":
        zh = BILINGUAL_MISSING_ZH_PLACEHOLDER
        confidence = 0.0

    return BilingualPair(
        order=order,
        en=en,
        zh=zh,
        en_timestamp=_optional_text(value.get("enTimestamp")),
        zh_timestamp=_optional_text(value.get("zhTimestamp")),
        match_method=method,
        confidence=confidence,
    )


def _load_source(value: Any) -> dict[str, Any] | None:
    if not value:
        return None
    parsed = value
    if isinstance(parsed, (str, bytes)):
        try:
            parsed = json.loads(parsed)
        except ValueError:
            logger.warning("[DEBUG] bilingual payload is not valid JSON; ignoring stored value")
            return None
    return parsed if isinstance(parsed, dict) else None


def normalize_full_text_bilingual_payload(value: Any) -> FullTextBilingualPayload | None:
    """Rehydrate a stored full-text payload (dict or JSON string).

    Unparseable pairs are dropped, ``order`` is renumbered from 1 and the
    stats are rebuilt. Returns ``None`` when nothing usable remains.
    """
    source = _load_source(value)
    if source is None:
        return None

    raw_pairs = source.get("pairs") if isinstance(source.get("pairs"), list) else []
    pairs: list[BilingualPair] = []
    for raw_pair in raw_pairs:
        pair = _normalize_pair(raw_pair, len(pairs) + 1)
        if pair is not None:
            pairs.append(pair)
    if not pairs:
        return None

    return FullTextBilingualPayload(
        version=_safe_version(source.get("version")),
        pairs=pairs,
        stats=build_alignment_stats(pairs),
        generated_at=clean_line(str(source.get("generatedAt") or "")) or utc_now_iso(),
    )


def normalize_summary_bilingual_payload(value: Any) -> SummaryBilingualPayload | None:
    source = _load_source(value)
    if source is None:
        return None

    raw_sections = source.get("sections") if isinstance(source.get("sections"), list) else []
    sections: list[SummaryBilingualSection] = []
    order = 1
    for index, raw_section in enumerate(raw_sections):
        if not isinstance(raw_section, dict):
            continue
        raw_pairs = raw_section.get("pairs") if isinstance(raw_section.get("pairs"), list) else []
        pairs: list[BilingualPair] = []
        for raw_pair in raw_pairs:
            pair = _normalize_pair(raw_pair, order)
            if pair is None:
                continue
            pairs.append(pair)
            order += 1
        if not pairs:
            continue

        sections.append(
            SummaryBilingualSection(
                section_key=clean_line(str(raw_section.get("sectionKey") or "")) or f"section_{index + 1}",
                section_title_en=clean_line(str(raw_section.get("sectionTitleEn") or "")) or "Section",
                section_title_zh=clean_line(str(raw_section.get("sectionTitleZh") or "")) or "分组",
                pairs=pairs,
            )
        )
    if not sections:
        return None

    return SummaryBilingualPayload(
        version=_safe_version(source.get("version")),
        sections=sections,
        stats=build_alignment_stats(pair for section in sections for pair in section.pairs),
        generated_at=clean_line(str(source.get("generatedAt") or "")) or utc_now_iso(),
    )
