import random

import pytest

from vocabdrill.flashcards import (
    UserRating,
    build_choices,
    grade_answer,
    normalize_answer,
    rating_from_choice,
    rating_from_similarity,
    similarity,
)
from vocabdrill.flashcards.grading import levenshtein_distance


def test_normalize_strips_case_accents_and_punctuation():
    assert normalize_answer('  Café! ') == 'cafe'
    assert normalize_answer("L'école") == 'lecole'
    assert normalize_answer('Straße') == 'straße'


def test_levenshtein():
    assert levenshtein_distance('kitten', 'sitting') == 3
    assert levenshtein_distance('', 'abc') == 3
    assert levenshtein_distance('hond', 'hond') == 0


def test_similarity():
    assert similarity('', '') == 1.0
    assert similarity('Chien', 'chien!') == 1.0
    assert similarity('chein', 'chien') == pytest.approx(0.6)
    assert similarity('x', '') == 0.0


@pytest.mark.parametrize('score,rating', [
    (1.0, UserRating.EASY),
    (0.95, UserRating.EASY),
    (0.9, UserRating.GOOD),
    (0.85, UserRating.GOOD),
    (0.7, UserRating.HARD),
    (0.6, UserRating.HARD),
    (0.59, UserRating.AGAIN),
    (0.0, UserRating.AGAIN),
])
def test_rating_from_similarity(score, rating):
    assert rating_from_similarity(score) == rating


def test_grade_answer():
    exact = grade_answer('De Hond', 'de hond')
    assert exact.is_correct and exact.rating == UserRating.EASY
    assert exact.expected == 'de hond'

    typo = grade_answer('bibliotheeek', 'bibliotheek')
    assert typo.is_correct and typo.rating == UserRating.GOOD

    close = grade_answer('chiens', 'chien')
    assert not close.is_correct and close.rating == UserRating.HARD

    wrong = grade_answer('kat', 'hond')
    assert not wrong.is_correct and wrong.rating == UserRating.AGAIN


def test_build_choices_from_large_pool():
    opts = build_choices('hond', ['kat', 'huis', 'boom', 'fiets', 'kat', 'hond'], rng=random.Random(7))
    assert len(opts) == 4
    assert len(set(opts)) == 4
    assert 'hond' in opts
    assert set(opts) - {'hond'} <= {'kat', 'huis', 'boom', 'fiets'}


def test_build_choices_pads_small_pool():
    opts = build_choices('hond', ['kat', 'kat', 'hond'], rng=random.Random(7))
    assert sorted(opts) == sorted(['hond', 'kat', 'hond (alt 1)', 'hond (alt 2)'])


def test_build_choices_is_deterministic_with_seeded_rng():
    pool = ['kat', 'huis', 'boom', 'fiets', 'auto']
    assert build_choices('hond', pool, rng=random.Random(3)) == build_choices('hond', pool, rng=random.Random(3))


@pytest.mark.parametrize('is_correct,ms,rating', [
    (False, 500, UserRating.AGAIN),
    (True, 2999, UserRating.EASY),
    (True, 3000, UserRating.GOOD),
    (True, 5999, UserRating.GOOD),
    (True, 6000, UserRating.HARD),
])
def test_rating_from_choice(is_correct, ms, rating):
    assert rating_from_choice(is_correct, ms) == rating
