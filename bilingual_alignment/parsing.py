from __future__ import annotations

import re

from .types import SummarySectionItems, TimestampedLine


HEADING_PATTERN = re.compile(r"^#{1,6}\s+(.+)$")
BULLET_PATTERN = re.compile(r"^\s*[-*+]\s+")
ORDERED_BULLET_PATTERN = re.compile(r"^\s*\d+[.)]\s+")
HEADING_MARKER_PATTERN = re.compile(r"^#{1,6}\s+")
BOLD_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
INLINE_CODE_PATTERN = re.compile(r"`([^`]+)`")
TIMESTAMP_PATTERN = re.compile(r"^\*\*\[(\d{2}:\d{2}:\d{2})\]\*\*\s*(.+)$")
TIMESTAMP_PLAIN_PATTERN = re.compile(r"^\[(\d{2}:\d{2}:\d{2})\]\s*(.+)$")
TIME_VALUE_PATTERN = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
SLUG_INVALID_PATTERN = re.compile(r"[^a-z0-9\u4e00-\u9fff]+")

SUMMARY_EN_MARKER = "<<<SUMMARY_EN>>>"
SUMMARY_ZH_MARKER = "<<<SUMMARY_ZH>>>"
_ENGLISH_SUMMARY_HEADER = re.compile(r"#\s*English Summary", re.IGNORECASE)
_CHINESE_SUMMARY_HEADER = re.compile(r"#\s*中文总结")
_DOT_BULLET_PATTERN = re.compile(r"^[ \t]*•[ \t]+", re.MULTILINE)

_SECTION_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("key_takeaways", ("key takeaway", "takeaway", "核心观点", "要点")),
    ("data_numbers", ("data", "number", "data&numbers", "关键数据", "数据")),
    ("decisions_actions", ("decision", "action", "决策", "行动")),
    ("main", ("main", "主要")),
)


def clean_line(line: str | None) -> str:
    return str(line or "").replace("\r", "").strip()


def strip_markdown_markers(line: str) -> str:
    value = BULLET_PATTERN.sub("", line, count=1)
    value = ORDERED_BULLET_PATTERN.sub("", value, count=1)
    value = HEADING_MARKER_PATTERN.sub("", value, count=1)
    value = BOLD_PATTERN.sub(r"\1", value)
    value = INLINE_CODE_PATTERN.sub(r"\1", value)
    return value.strip()


def normalize_section_slug(value: str) -> str:
    slug = SLUG_INVALID_PATTERN.sub("_", str(value or "").lower()).strip("_")[:40]
    return slug or "main"


def normalize_summary_section_key(title: str) -> str:
    """Map a summary heading (English or Chinese) onto a canonical section key.

    Unknown headings become ``custom_<slug>``; an empty heading is ``main``.
    """
    normalized = str(title or "").lower()
    if not normalized.strip():
        return "main"
    for key, keywords in _SECTION_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return key
    return f"custom_{normalize_section_slug(title)}"


def parse_time_to_seconds(timestamp: str | None) -> int | None:
    if not timestamp:
        return None
    matched = TIME_VALUE_PATTERN.match(str(timestamp).strip())
    if not matched:
        return None
    hours, minutes, seconds = (int(part) for part in matched.groups())
    return hours * 3600 + minutes * 60 + seconds


def _split_lines(markdown: str | None) -> list[str]:
    return str(markdown or "").replace("\r\n", "\n").split("\n")


def parse_timestamped_lines(markdown: str | None) -> list[TimestampedLine]:
    result: list[TimestampedLine] = []
    for raw_line in _split_lines(markdown):
        line = raw_line.strip()
        if not line:
            continue

        matched = TIMESTAMP_PATTERN.match(line) or TIMESTAMP_PLAIN_PATTERN.match(line)
        if matched:
            text = strip_markdown_markers(matched.group(2))
            if text:
                result.append(TimestampedLine(timestamp=matched.group(1), text=text, source_index=len(result)))
            continue

        fallback = strip_markdown_markers(line)
        if fallback:
            result.append(TimestampedLine(timestamp=None, text=fallback, source_index=len(result)))
    return result


def parse_summary_sections(markdown: str | None) -> list[SummarySectionItems]:
    sections: list[SummarySectionItems] = []

    def ensure_section(title: str, key: str) -> SummarySectionItems:
        if sections and sections[-1].title == title and sections[-1].section_key == key:
            return sections[-1]
        section = SummarySectionItems(section_key=key, title=title, items=[], source_index=len(sections))
        sections.append(section)
        return section

    current = ensure_section("Main", "main")
    for raw_line in _split_lines(markdown):
        line = clean_line(raw_line)
        if not line:
            continue

        heading = HEADING_PATTERN.match(line)
        if heading:
            title = strip_markdown_markers(heading.group(1)) or "Main"
            current = ensure_section(title, normalize_summary_section_key(title))
            continue

        item = strip_markdown_markers(line)
        if item:
            current.items.append(item)

    return [section for section in sections if section.items]


def _normalize_summary_markdown(value: str) -> str:
    text = str(value or "").replace("\r\n", "\n")
    return _DOT_BULLET_PATTERN.sub("- ", text).strip()


def split_bilingual_summary(raw_summary: str | None) -> tuple[str, str]:
    """Split a combined summary into ``(summary_en, summary_zh)``.

    Explicit ``<<<SUMMARY_EN>>>``/``<<<SUMMARY_ZH>>>`` markers win over the
    ``# English Summary``/``# 中文总结`` headers. Without any Chinese marker the
    whole text is treated as the Chinese summary.
    """
    normalized = _normalize_summary_markdown(raw_summary or "")
    if not normalized:
        return "", ""

    summary_en = ""
    summary_zh = ""
    en_index = normalized.find(SUMMARY_EN_MARKER)
    zh_index = normalized.find(SUMMARY_ZH_MARKER)
    if en_index >= 0 and zh_index > en_index:
        summary_en = _normalize_summary_markdown(normalized[en_index + len(SUMMARY_EN_MARKER) : zh_index])
        summary_zh = _normalize_summary_markdown(normalized[zh_index + len(SUMMARY_ZH_MARKER) :])
    else:
        en_header = _ENGLISH_SUMMARY_HEADER.search(normalized)
        zh_header = _CHINESE_SUMMARY_HEADER.search(normalized)
        if en_header and zh_header and zh_header.start() > en_header.start():
            summary_en = _normalize_summary_markdown(normalized[en_header.start() : zh_header.start()])
            summary_zh = _normalize_summary_markdown(normalized[zh_header.start() :])
        elif zh_header:
            summary_en = _normalize_summary_markdown(normalized[: zh_header.start()])
            summary_zh = _normalize_summary_markdown(normalized[zh_header.start() :])
        else:
            summary_zh = normalized

    return summary_en, summary_zh or normalized
