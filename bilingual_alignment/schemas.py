from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .types import BILINGUAL_ALIGNMENT_VERSION, MatchMethod


class BilingualPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order: int = Field(ge=1)
    en: str
    zh: str
    en_timestamp: Optional[str] = Field(default=None, alias="enTimestamp")
    zh_timestamp: Optional[str] = Field(default=None, alias="zhTimestamp")
    match_method: MatchMethod = Field(default="missing", alias="matchMethod")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class AlignmentStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    matched: int = 0
    llm_matched: int = Field(default=0, alias="llmMatched")
    unmatched: int = 0
    methods: dict[str, int] = Field(default_factory=dict)


class FullTextBilingualPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: int = BILINGUAL_ALIGNMENT_VERSION
    pairs: list[BilingualPair] = Field(default_factory=list)
    stats: AlignmentStats = Field(default_factory=AlignmentStats)
    generated_at: str = Field(default="", alias="generatedAt")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SummaryBilingualSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_key: str = Field(alias="sectionKey")
    section_title_en: str = Field(alias="sectionTitleEn")
    section_title_zh: str = Field(alias="sectionTitleZh")
    pairs: list[BilingualPair] = Field(default_factory=list)


class SummaryBilingualPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: int = BILINGUAL_ALIGNMENT_VERSION
    sections: list[SummaryBilingualSection] = Field(default_factory=list)
    stats: AlignmentStats = Field(default_factory=AlignmentStats)
    generated_at: str = Field(default="", alias="generatedAt")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class LlmMatch(BaseModel):
    """One entry of the resolver reply: ``{"order", "candidateId", "confidence"}``."""

    model_config = ConfigDict(populate_by_name=True)

    order: int
    candidate_id: str = Field(alias="candidateId", min_length=1)
    confidence: Optional[float] = None

    @field_validator("order", mode="before")
    @classmethod
    def floor_order(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("order must be numeric")
        try:
            numeric = float(value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError("order must be numeric") from exc
        if not math.isfinite(numeric):
            raise ValueError("order must be finite")
        return math.floor(numeric)

    @field_validator("candidate_id", mode="before")
    @classmethod
    def collapse_candidate_id(cls, value: Any) -> str:
        if value is None:
            return ""
        return " ".join(str(value).split())

    @field_validator("confidence", mode="before")
    @classmethod
    def drop_non_finite_confidence(cls, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            numeric = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return numeric if math.isfinite(numeric) else None
