from __future__ import annotations

import logging

from .parsing import clean_line, parse_summary_sections
from .schemas import BilingualPair, SummaryBilingualPayload, SummaryBilingualSection
from .stats import build_alignment_stats
from .types import (
    BILINGUAL_ALIGNMENT_VERSION,
    BILINGUAL_MISSING_EN_PLACEHOLDER,
    BILINGUAL_MISSING_ZH_PLACEHOLDER,
    CANONICAL_SECTION_KEYS,
    SECTION_FALLBACK_TITLES,
    SummarySectionItems,
    utc_now_iso,
)


logger = logging.getLogger(__name__)

SECTION_INDEX_CONFIDENCE = 0.9


def format_section_title(section_key: str, title: str, language: str) -> str:
    normalized = clean_line(title)
    if normalized:
        return normalized
    fallback = SECTION_FALLBACK_TITLES.get(section_key)
    if not fallback:
        return "Section" if language == "en" else "分组"
    return fallback[0] if language == "en" else fallback[1]


def _pair_section(
    section_key: str,
    en_section: SummarySectionItems | None,
    zh_section: SummarySectionItems | None,
    order_start: int,
) -> tuple[SummaryBilingualSection, int]:
    en_items = en_section.items if en_section else []
    zh_items = zh_section.items if zh_section else []
    pairs: list[BilingualPair] = []
    order = order_start
    for index in range(max(len(en_items), len(zh_items))):
        en = clean_line(en_items[index] if index < len(en_items) else "") or BILINGUAL_MISSING_EN_PLACEHOLDER
        zh = clean_line(zh_items[index] if index < len(zh_items) else "")
        has_zh = bool(zh)
        pairs.append(
            BilingualPair(
                order=order,
                en=en,
                zh=zh if has_zh else BILINGUAL_MISSING_ZH_PLACEHOLDER,
                en_timestamp=None,
                zh_timestamp=None,
                match_method="section_index" if has_zh else "missing",
                confidence=SECTION_INDEX_CONFIDENCE if has_zh else 0.0,
            )
        )
        order += 1

    section = SummaryBilingualSection(
        section_key=section_key,
        section_title_en=format_section_title(section_key, en_section.title if en_section else "", "en"),
        section_title_zh=format_section_title(section_key, zh_section.title if zh_section else "", "zh"),
        pairs=pairs,
    )
    return section, order


def _pick_canonical_sections(sections: list[SummarySectionItems]) -> tuple[dict[str, SummarySectionItems], set[int]]:
    picked: dict[str, SummarySectionItems] = {}
    used_indexes: set[int] = set()
    for index, section in enumerate(sections):
        if section.section_key in CANONICAL_SECTION_KEYS and section.section_key not in picked:
            picked[section.section_key] = section
            used_indexes.add(index)
    return picked, used_indexes


def build_summary_bilingual_payload(
    summary_en: str | None,
    summary_zh: str | None,
    *,
    generated_at: str | None = None,
) -> SummaryBilingualPayload:
    en_sections = parse_summary_sections(summary_en)
    zh_sections = parse_summary_sections(summary_zh)
    en_canonical, used_en = _pick_canonical_sections(en_sections)
    zh_canonical, used_zh = _pick_canonical_sections(zh_sections)

    sections: list[SummaryBilingualSection] = []
    order = 1
    for key in CANONICAL_SECTION_KEYS:
        en_section = en_canonical.get(key)
        zh_section = zh_canonical.get(key)
        if en_section is None and zh_section is None:
            continue
        section, order = _pair_section(key, en_section, zh_section, order)
        sections.append(section)

    remaining_en = [section for index, section in enumerate(en_sections) if index not in used_en]
    remaining_zh = [section for index, section in enumerate(zh_sections) if index not in used_zh]
    for index in range(max(len(remaining_en), len(remaining_zh))):
        en_section = remaining_en[index] if index < len(remaining_en) else None
        zh_section = remaining_zh[index] if index < len(remaining_zh) else None
        fallback_key = (
            (en_section.section_key if en_section else "")
            or (zh_section.section_key if zh_section else "")
            or f"section_{index + 1}"
        )
        section, order = _pair_section(fallback_key, en_section, zh_section, order)
        sections.append(section)

    pairs = [pair for section in sections for pair in section.pairs]
    stats = build_alignment_stats(pairs)
    logger.debug(
        "[DEBUG] summary alignment en_sections=%s zh_sections=%s sections=%s matched=%s unmatched=%s",
        len(en_sections),
        len(zh_sections),
        len(sections),
        stats.matched,
        stats.unmatched,
    )
    return SummaryBilingualPayload(
        version=BILINGUAL_ALIGNMENT_VERSION,
        sections=sections,
        stats=stats,
        generated_at=generated_at or utc_now_iso(),
    )
