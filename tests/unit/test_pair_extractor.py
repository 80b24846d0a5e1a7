import pytest

from vocabdrill.ocr import (
    CandidatePair,
    clean_token,
    confidence,
    detect_table_format,
    extract,
    is_likely_header,
    parse_line,
)
from tests.fixtures.sample_data import FRENCH_DUTCH_LIST, MIXED_SEPARATORS, NOISY_SCAN


def test_two_clean_pairs():
    res = extract('Hond - Chien\nKat - Chat')
    assert [(p.term, p.definition, p.confidence) for p in res.pairs] == [
        ('Hond', 'Chien', 1.0),
        ('Kat', 'Chat', 1.0),
    ]
    assert res.unparsed_lines == []
    assert res.raw_text == 'Hond - Chien\nKat - Chat'


def test_header_line_is_dropped():
    res = extract('Woord\nHond - Chien')
    assert len(res.pairs) == 1
    assert res.pairs[0].term == 'Hond'
    assert res.unparsed_lines == []


def test_digits_lower_confidence():
    res = extract('asdf1 - asdf2')
    assert len(res.pairs) == 1
    assert res.pairs[0].confidence <= 0.7
    assert res.pairs[0].needs_review is True


def test_unparseable_line_is_reported():
    res = extract('xyzxyzxyzxyzxyz')
    assert res.pairs == []
    assert res.unparsed_lines == ['xyzxyzxyzxyzxyz']


def test_empty_text():
    res = extract('')
    assert res.pairs == [] and res.unparsed_lines == []
    assert extract(None).raw_text == ''


def test_extract_is_idempotent():
    first = extract(NOISY_SCAN).model_dump(mode='json')
    second = extract(NOISY_SCAN).model_dump(mode='json')
    assert first == second


def test_numbered_list_with_language_header():
    res = extract(FRENCH_DUTCH_LIST)
    assert [(p.term, p.definition) for p in res.pairs] == [
        ('le chien', 'de hond'),
        ('le chat', 'de kat'),
        ('la maison', 'het huis'),
        ("l'école", 'de school'),
    ]
    assert all(p.confidence == 1.0 for p in res.pairs)


def test_each_separator_is_recognized():
    res = extract(MIXED_SEPARATORS)
    assert [(p.term, p.definition) for p in res.pairs] == [
        ('hond', 'dog'),
        ('kat', 'cat'),
        ('huis', 'house'),
        ('boom', 'tree'),
        ('well-known', 'bekend'),
    ]


def test_noisy_scan_mixes_pairs_and_unparsed():
    res = extract(NOISY_SCAN)
    assert [p.term for p in res.pairs] == ['rood', 'de fiets 2x']
    assert res.pairs[1].needs_review
    # 'ab' is too short to be reported, 'Vertaling' is a header
    assert res.unparsed_lines == ['xyzxyzxyzxyzxyz']


def test_spaced_dash_wins_over_inner_hyphen():
    pair = parse_line('sister-in-law - schoonzus')
    assert (pair.term, pair.definition) == ('sister-in-law', 'schoonzus')


def test_em_dash_separator():
    pair = parse_line('le pain — het brood')
    assert (pair.term, pair.definition) == ('le pain', 'het brood')


def test_parse_line_without_separator():
    assert parse_line('just some words') is None


@pytest.mark.parametrize('raw,expected', [
    ('  1. Hond ', 'Hond'),
    ('• Kat', 'Kat'),
    ("l'hôpital", "l'hôpital"),
    ('café!', 'café'),
    ('über_', 'über'),
    ('Straße', 'Straße'),
    ('(to) walk', '(to) walk'),
])
def test_clean_token(raw, expected):
    assert clean_token(raw) == expected


def test_confidence_penalties():
    assert confidence('hond', 'dog') == 1.0
    assert confidence('a', 'hond') == 0.5
    assert confidence('Straße', 'street') == 0.8
    assert confidence('a1', 'b') == 0.28


@pytest.mark.parametrize('line,expected', [
    ('Woord', True),
    ('1. Lesson', True),
    ('Frans Nederlands', True),
    ('Engelse woorden en hun vertaling', True),
    ('hond - dog', False),
    ('xyzxyzxyzxyzxyz', False),
    ('a=b', False),
])
def test_is_likely_header(line, expected):
    assert is_likely_header(line) is expected


def test_table_fallback_confidence():
    pair = detect_table_format('de hond      the dog')
    assert (pair.term, pair.definition) == ('de hond', 'the dog')
    assert pair.confidence == 0.7
    assert detect_table_format('no gap here') is None


def test_candidate_pair_needs_review_is_serialized():
    pair = CandidatePair(term='hond', definition='dog', confidence=0.5)
    assert pair.model_dump()['needs_review'] is True
    assert CandidatePair(term='hond', definition='dog', confidence=0.7).needs_review is False
