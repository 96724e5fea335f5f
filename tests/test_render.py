import json

from bilingual_alignment.full_text import build_full_text_bilingual_payload
from bilingual_alignment.render import (
    normalize_full_text_bilingual_payload,
    normalize_summary_bilingual_payload,
    render_full_text_bilingual_markdown,
    render_summary_bilingual_markdown,
)
from bilingual_alignment.summary import build_summary_bilingual_payload
from bilingual_alignment.types import BILINGUAL_MISSING_ZH_PLACEHOLDER


def test_render_full_text_markdown():
    payload = build_full_text_bilingual_payload('**[00:00:02]** A.\nno time', '**[00:00:02]** 甲。')

    markdown = render_full_text_bilingual_markdown(payload)

    assert markdown == (
        '**[00:00:02]** A.  \n甲。\n\n---\n\n'
        f'no time  \n{BILINGUAL_MISSING_ZH_PLACEHOLDER}\n\n---'
    )


def test_render_summary_markdown():
    payload = build_summary_bilingual_payload('## Key Takeaways\n- EN 1', '## 核心观点\n- 中文 1')

    assert render_summary_bilingual_markdown(payload) == '## Key Takeaways\nEN 1  \n中文 1\n\n---'


def test_render_empty_payloads():
    assert render_full_text_bilingual_markdown(build_full_text_bilingual_payload('', '')) == ''
    assert render_summary_bilingual_markdown(build_summary_bilingual_payload('', '')) == ''


def test_normalize_full_text_round_trip_from_json_string():
    payload = build_full_text_bilingual_payload(
        '**[00:00:02]** A.\n**[00:00:09]** B.',
        '**[00:00:02]** 甲。',
        generated_at='2026-01-01T00:00:00.000Z',
    )

    restored = normalize_full_text_bilingual_payload(json.dumps(payload.to_dict(), ensure_ascii=False))

    assert restored is not None
    assert restored.to_dict() == payload.to_dict()


def test_normalize_full_text_drops_malformed_pairs_and_renumbers():
    stored = {
        'version': 0,
        'pairs': [
            'not a pair',
            {'order': 7, 'en': 'A.', 'zh': '甲。', 'matchMethod': 'ts_exact', 'confidence': 3},
            {'order': 8, 'en': 'B.', 'zh': '乙。', 'matchMethod': 'guess', 'confidence': 0.5},
            {'order': 9, 'en': 'C.', 'zh': '丙。', 'matchMethod': 'missing', 'confidence': 0.9},
        ],
        'stats': {'total': 99},
    }

    restored = normalize_full_text_bilingual_payload(stored)

    assert restored is not None
    assert restored.version == 1
    assert [pair.order for pair in restored.pairs] == [1, 2]
    assert restored.pairs[0].confidence == 1.0
    assert restored.pairs[1].zh == BILINGUAL_MISSING_ZH_PLACEHOLDER
    assert restored.pairs[1].confidence == 0.0
    assert restored.stats.total == 2
    assert restored.stats.unmatched == 1
    assert restored.generated_at


def test_normalize_returns_none_for_unusable_values():
    assert normalize_full_text_bilingual_payload(None) is None
    assert normalize_full_text_bilingual_payload('{not json') is None
    assert normalize_full_text_bilingual_payload('[1, 2]') is None
    assert normalize_full_text_bilingual_payload({'pairs': []}) is None
    assert normalize_summary_bilingual_payload({'sections': [{'pairs': ['x']}]}) is None


def test_normalize_summary_fills_defaults_and_keeps_continuous_order():
    stored = {
        'sections': [
            {
                'pairs': [
                    {'order': 5, 'en': 'EN 1', 'zh': '中文 1', 'matchMethod': 'section_index', 'confidence': 0.9},
                ],
            },
            {
                'sectionKey': 'data_numbers',
                'sectionTitleEn': 'Data & Numbers',
                'sectionTitleZh': '关键数据',
                'pairs': [
                    {'order': 1, 'en': 'EN 2', 'zh': '', 'matchMethod': 'missing'},
                    {'order': 2, 'en': 'EN 3', 'zh': '中文 3', 'matchMethod': 'llm', 'confidence': 0.7},
                ],
            },
        ],
        'generatedAt': '2026-01-01T00:00:00.000Z',
    }

    restored = normalize_summary_bilingual_payload(stored)

    assert restored is not None
    first, second = restored.sections
    assert first.section_key == 'section_1'
    assert first.section_title_en == 'Section'
    assert first.section_title_zh == '分组'
    assert [pair.order for section in restored.sections for pair in section.pairs] == [1, 2, 3]
    assert second.pairs[0].zh == BILINGUAL_MISSING_ZH_PLACEHOLDER
    assert restored.stats.llm_matched == 1
    assert restored.stats.methods == {'section_index': 1, 'missing': 1, 'llm': 1}
    assert restored.generated_at == '2026-01-01T00:00:00.000Z'


def test_normalize_rejects_overflowing_numbers():
    stored = (
        '{"version": Infinity, "pairs": ['
        '{"en": "A.", "zh": "甲。", "matchMethod": "ts_exact", "confidence": 1e999}'
        ']}'
    )

    restored = normalize_full_text_bilingual_payload(stored)

    assert restored is not None
    assert restored.version == 1
    assert restored.pairs[0].confidence == 0.0

    big = normalize_full_text_bilingual_payload(
        {'pairs': [{'en': 'A.', 'zh': '甲。', 'matchMethod': 'llm', 'confidence': 10**400}]}
    )
    assert big is not None
    assert big.pairs[0].confidence == 0.0
