from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar


BILINGUAL_ALIGNMENT_VERSION = 1
BILINGUAL_MISSING_ZH_PLACEHOLDER = "（未匹配，待校对）"
BILINGUAL_MISSING_EN_PLACEHOLDER = "(Not matched)"

MatchMethod = Literal["ts_exact", "ts_near", "order_fallback", "section_index", "llm", "missing"]
MATCH_METHODS: tuple[str, ...] = ("ts_exact", "ts_near", "order_fallback", "section_index", "llm", "missing")
TaskLabel = Literal["full_text", "summary"]

CANONICAL_SECTION_KEYS: tuple[str, ...] = ("key_takeaways", "data_numbers", "decisions_actions")
SECTION_FALLBACK_TITLES: dict[str, tuple[str, str]] = {
    "key_takeaways": ("Key Takeaways", "核心观点"),
    "data_numbers": ("Data & Numbers", "关键数据"),
    "decisions_actions": ("Decisions & Action Items", "决策与行动项"),
    "main": ("Main", "主要内容"),
}

PayloadT = TypeVar("PayloadT")


class AlignmentError(RuntimeError):
    def __init__(self, stage: str, code: str, message: str, detail: str | None = None):
        super().__init__(message)
        self.stage = stage
        self.code = code
        self.message = message
        self.detail = detail or ""

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


@dataclass
class TimestampedLine:
    timestamp: str | None
    text: str
    source_index: int


@dataclass
class SummarySectionItems:
    section_key: str
    title: str
    items: list[str] = field(default_factory=list)
    source_index: int = 0


@dataclass
class LlmCandidate:
    id: str
    text: str
    timestamp: str | None = None
    section_key: str | None = None

    def to_prompt_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "text": self.text}
        if self.section_key is not None:
            payload["sectionKey"] = self.section_key
        else:
            payload["timestamp"] = self.timestamp
        return payload


@dataclass
class LlmFallbackResult(Generic[PayloadT]):
    payload: PayloadT
    attempted: int = 0
    llm_matched: int = 0


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
