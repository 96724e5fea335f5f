from __future__ import annotations

from typing import Iterable

from .schemas import AlignmentStats, BilingualPair, FullTextBilingualPayload, SummaryBilingualPayload


def build_alignment_stats(pairs: Iterable[BilingualPair]) -> AlignmentStats:
    """Aggregate match counters from the current pairs; never patched in place."""
    methods: dict[str, int] = {}
    total = 0
    unmatched = 0
    llm_matched = 0
    for pair in pairs:
        total += 1
        methods[pair.match_method] = methods.get(pair.match_method, 0) + 1
        if pair.match_method == "missing":
            unmatched += 1
        elif pair.match_method == "llm":
            llm_matched += 1

    return AlignmentStats(
        total=total,
        matched=total - unmatched,
        llm_matched=llm_matched,
        unmatched=unmatched,
        methods=methods,
    )


def flatten_summary_pairs(payload: SummaryBilingualPayload) -> list[BilingualPair]:
    return [pair for section in payload.sections for pair in section.pairs]


def rebuild_full_text_alignment_stats(payload: FullTextBilingualPayload) -> FullTextBilingualPayload:
    return payload.model_copy(update={"stats": build_alignment_stats(payload.pairs)})


def rebuild_summary_alignment_stats(payload: SummaryBilingualPayload) -> SummaryBilingualPayload:
    return payload.model_copy(update={"stats": build_alignment_stats(flatten_summary_pairs(payload))})


def list_full_text_missing_pair_indexes(payload: FullTextBilingualPayload) -> list[int]:
    return [index for index, pair in enumerate(payload.pairs) if pair.match_method == "missing"]


def list_summary_missing_pair_indexes(payload: SummaryBilingualPayload) -> list[tuple[int, int]]:
    indexes: list[tuple[int, int]] = []
    for section_index, section in enumerate(payload.sections):
        for pair_index, pair in enumerate(section.pairs):
            if pair.match_method == "missing":
                indexes.append((section_index, pair_index))
    return indexes
