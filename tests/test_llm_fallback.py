import asyncio
from types import SimpleNamespace

import pytest

from bilingual_alignment.config import AlignmentSettings
from bilingual_alignment.full_text import build_full_text_bilingual_payload
from bilingual_alignment.llm_client import OpenRouterMatchResolver
from bilingual_alignment.llm_fallback import (
    apply_llm_fallback_to_full_text_payload,
    apply_llm_fallback_to_summary_payload,
    build_full_text_candidates,
    clamp_max_missing,
    normalize_matches,
)
from bilingual_alignment.summary import build_summary_bilingual_payload
from bilingual_alignment.types import AlignmentError, BILINGUAL_MISSING_ZH_PLACEHOLDER


class FakeResolver:
    def __init__(self, matches=None, error=None):
        self.matches = matches or []
        self.error = error
        self.calls = []

    async def resolve(self, missing, candidates, *, task_label='full_text'):
        self.calls.append({'missing': missing, 'candidates': candidates, 'task_label': task_label})
        if self.error is not None:
            raise self.error
        return self.matches


# Line two is skipped by the cursor once line one claims the later Chinese row.
SKIPPED_EN = '[00:00:30] Late\n[00:00:01] Early'
SKIPPED_ZH = '[00:00:01] 早\n[00:00:30] 晚'


def test_llm_fills_missing_full_text_pair():
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)
    assert payload.pairs[1].match_method == 'missing'
    resolver = FakeResolver([{'order': 2, 'candidateId': 'zh-1', 'confidence': 0.81}])

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, resolver=resolver)
    )

    assert result.attempted == 1
    assert result.llm_matched == 1
    filled = result.payload.pairs[1]
    assert filled.zh == '早'
    assert filled.zh_timestamp == '00:00:01'
    assert filled.match_method == 'llm'
    assert filled.confidence == pytest.approx(0.81)
    assert result.payload.pairs[0] == payload.pairs[0]
    assert result.payload.stats.llm_matched == 1
    assert result.payload.stats.unmatched == 0
    assert result.payload.stats.matched == 2

    assert payload.pairs[1].match_method == 'missing'
    assert payload.stats.unmatched == 1

    call = resolver.calls[0]
    assert call['task_label'] == 'full_text'
    assert call['missing'] == [{'order': 2, 'en': 'Early', 'enTimestamp': '00:00:01'}]
    assert [candidate.id for candidate in call['candidates']] == ['zh-1']


def test_candidate_pool_respects_multiplicity():
    zh = '[00:00:05] 一\n[00:00:05] 一\n[00:00:05] 一'
    payload = build_full_text_bilingual_payload('[00:00:05] a', zh)

    candidates = build_full_text_candidates(payload, zh)

    assert [candidate.id for candidate in candidates] == ['zh-2', 'zh-3']
    assert candidates[0].to_prompt_dict() == {'id': 'zh-2', 'text': '一', 'timestamp': '00:00:05'}


def test_missing_batch_is_capped():
    en = '[00:00:50] end\n' + '\n'.join(f'plain line {index}' for index in range(25))
    zh = '[00:00:01] 候选\n[00:00:50] 末'
    payload = build_full_text_bilingual_payload(en, zh)
    assert payload.stats.unmatched == 25
    resolver = FakeResolver([])

    result = asyncio.run(apply_llm_fallback_to_full_text_payload(payload, full_text_zh=zh, resolver=resolver))

    assert len(resolver.calls[0]['missing']) == 20
    assert resolver.calls[0]['missing'][0]['order'] == 2
    assert result.attempted == 20
    assert result.llm_matched == 0
    assert result.payload is payload


def test_zero_max_missing_skips_resolver():
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)
    resolver = FakeResolver([{'order': 2, 'candidateId': 'zh-1'}])

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, max_missing=0, resolver=resolver)
    )

    assert resolver.calls == []
    assert result.payload is payload
    assert result.attempted == 0


def test_nothing_missing_or_no_candidates_skips_resolver():
    resolver = FakeResolver()
    complete = build_full_text_bilingual_payload('[00:00:01] a', '[00:00:01] 甲')
    no_pool = build_full_text_bilingual_payload('a\nb', '甲')

    first = asyncio.run(apply_llm_fallback_to_full_text_payload(complete, full_text_zh='[00:00:01] 甲', resolver=resolver))
    second = asyncio.run(apply_llm_fallback_to_full_text_payload(no_pool, full_text_zh='甲', resolver=resolver))

    assert resolver.calls == []
    assert first.attempted == 0
    assert second.attempted == 0


def test_resolver_failure_returns_original_payload():
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)
    resolver = FakeResolver(error=AlignmentError('llm', 'llm_request_failed', 'down'))

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, resolver=resolver)
    )

    assert result.payload is payload
    assert result.attempted == 1
    assert result.llm_matched == 0


def test_invalid_and_duplicate_matches_are_ignored():
    en = '[00:00:50] end\nplain a\nplain b'
    zh = '[00:00:01] 甲\n[00:00:02] 乙\n[00:00:50] 末'
    payload = build_full_text_bilingual_payload(en, zh)
    resolver = FakeResolver([
        {'order': 'x', 'candidateId': 'zh-1'},
        'junk',
        {'order': 1, 'candidateId': 'zh-1'},
        {'order': 3, 'candidateId': 'zh-99'},
        {'order': 2, 'candidateId': 'zh-1', 'confidence': 0.1},
        {'order': 3, 'candidateId': 'zh-1'},
        {'order': 3.7, 'candidateId': ' zh-2 ', 'confidence': 5},
    ])

    result = asyncio.run(apply_llm_fallback_to_full_text_payload(payload, full_text_zh=zh, resolver=resolver))

    first, second, third = result.payload.pairs
    assert first.match_method == 'ts_exact'
    assert first.zh == '末'
    assert (second.zh, second.confidence) == ('甲', pytest.approx(0.55))
    assert (third.zh, third.confidence) == ('乙', pytest.approx(0.98))
    assert result.llm_matched == 2
    assert result.payload.stats.methods == {'ts_exact': 1, 'llm': 2}


def test_default_confidence_when_model_omits_it():
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)
    resolver = FakeResolver([{'order': 2, 'candidateId': 'zh-1', 'confidence': 'high'}])

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, resolver=resolver)
    )

    assert result.payload.pairs[1].confidence == pytest.approx(0.75)


def test_llm_fills_missing_summary_pair():
    en = '## Key Takeaways\n- EN 1\n- EN 2\n## Risks\n- EN r'
    zh = '## 核心观点\n- 中文 1\n## 风险\n- 中文 r'
    payload = build_summary_bilingual_payload(en, zh)
    assert payload.sections[0].pairs[1].match_method == 'missing'
    resolver = FakeResolver([{'order': 2, 'candidateId': 's2-i1'}])

    result = asyncio.run(apply_llm_fallback_to_summary_payload(payload, summary_zh=zh, resolver=resolver))

    call = resolver.calls[0]
    assert call['task_label'] == 'summary'
    assert call['missing'] == [
        {'order': 2, 'en': 'EN 2', 'sectionKey': 'key_takeaways', 'sectionTitle': 'Key Takeaways'},
    ]
    assert call['candidates'][0].to_prompt_dict() == {'id': 's2-i1', 'text': '中文 r', 'sectionKey': 'custom_风险'}

    filled = result.payload.sections[0].pairs[1]
    assert filled.zh == '中文 r'
    assert filled.zh_timestamp is None
    assert filled.match_method == 'llm'
    assert filled.confidence == pytest.approx(0.72)
    assert result.payload.stats.llm_matched == 1
    assert payload.sections[0].pairs[1].zh == BILINGUAL_MISSING_ZH_PLACEHOLDER


def test_full_text_fallback_end_to_end_with_openrouter_resolver():
    reply = 'Sure.\n```json\n{"matches": [{"order": 2, "candidateId": "zh-1", "confidence": 0.9}]}\n```'

    async def create(**kwargs):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    settings = AlignmentSettings(OPENROUTER_API_KEY='test-key')
    resolver = OpenRouterMatchResolver(settings=settings, client=client)
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, resolver=resolver)
    )

    assert result.llm_matched == 1
    assert result.payload.pairs[1].confidence == pytest.approx(0.9)


def test_clamp_max_missing_and_normalize_matches():
    assert clamp_max_missing(None) == 20
    assert clamp_max_missing(50) == 20
    assert clamp_max_missing(-4) == 0
    assert clamp_max_missing('7') == 7
    assert normalize_matches(None) == []
    assert [match.order for match in normalize_matches([{'order': 2.9, 'candidateId': 'zh-1'}])] == [2]
    assert normalize_matches([{'order': True, 'candidateId': 'zh-1'}, {'order': 1, 'candidateId': '  '}]) == []


def test_oversized_numbers_in_reply_are_dropped_or_defaulted():
    payload = build_full_text_bilingual_payload(SKIPPED_EN, SKIPPED_ZH)
    resolver = FakeResolver([
        {'order': 10**400, 'candidateId': 'zh-1'},
        {'order': 2, 'candidateId': 'zh-1', 'confidence': 10**400},
    ])

    result = asyncio.run(
        apply_llm_fallback_to_full_text_payload(payload, full_text_zh=SKIPPED_ZH, resolver=resolver)
    )

    assert result.llm_matched == 1
    assert result.payload.pairs[1].zh == '早'
    assert result.payload.pairs[1].confidence == pytest.approx(0.75)
    assert normalize_matches([{'order': 10**400, 'candidateId': 'zh-1'}]) == []


def test_infinite_max_missing_is_clamped():
    assert clamp_max_missing(float('inf')) == 20
    assert clamp_max_missing(float('-inf')) == 0
    assert clamp_max_missing(float('nan')) == 20
