"""Practice-mode adapters that turn an answer into a UserRating.

These sit in front of the scheduler and never touch scheduling state:
- typed answers are graded by normalized Levenshtein similarity
- multiple-choice picks are graded by correctness and response time
"""
from __future__ import annotations

import random
import re
import unicodedata
from typing import List, Optional, Sequence

from pydantic import BaseModel

from .spaced_repetition import UserRating

CORRECT_SIMILARITY = 0.85
EASY_SIMILARITY = 0.95
HARD_SIMILARITY = 0.6
CHOICE_COUNT = 4
EASY_RESPONSE_MS = 3000
GOOD_RESPONSE_MS = 6000


class AnswerGrade(BaseModel):
    similarity: float
    is_correct: bool
    rating: UserRating
    expected: str


def normalize_answer(text: str) -> str:
    s = unicodedata.normalize('NFD', text.lower().strip())
    s = re.sub('[\u0300-\u036f]', '', s)
    return re.sub(r'[^\w\s]', '', s)


def levenshtein_distance(s1: str, s2: str) -> int:
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)
    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def similarity(given: str, expected: str) -> float:
    """Similarity ratio in [0, 1] between two answers after normalization."""
    s1 = normalize_answer(given)
    s2 = normalize_answer(expected)
    if s1 == s2:
        return 1.0
    max_len = max(len(s1), len(s2))
    return 1.0 - levenshtein_distance(s1, s2) / max_len


def rating_from_similarity(score: float) -> UserRating:
    if score >= EASY_SIMILARITY:
        return UserRating.EASY
    if score >= CORRECT_SIMILARITY:
        return UserRating.GOOD
    if score >= HARD_SIMILARITY:
        return UserRating.HARD
    return UserRating.AGAIN


def grade_answer(given: str, expected: str) -> AnswerGrade:
    score = similarity(given, expected)
    return AnswerGrade(
        similarity=score,
        is_correct=score >= CORRECT_SIMILARITY,
        rating=rating_from_similarity(score),
        expected=expected,
    )


def build_choices(correct: str, distractor_pool: Sequence[str], rng: Optional[random.Random] = None, count: int = CHOICE_COUNT) -> List[str]:
    """One correct option plus ``count - 1`` distinct distractors, shuffled.

    Pads with variants of the correct answer when the pool is too small.
    """
    rng = rng or random.Random()
    pool = []
    for option in distractor_pool:
        if option != correct and option not in pool:
            pool.append(option)
    rng.shuffle(pool)
    distractors = pool[:count - 1]
    pad = 1
    while len(distractors) < count - 1:
        distractors.append(f'{correct} (alt {pad})')
        pad += 1
    options = distractors + [correct]
    rng.shuffle(options)
    return options


def rating_from_choice(is_correct: bool, response_ms: int) -> UserRating:
    if not is_correct:
        return UserRating.AGAIN
    if response_ms < EASY_RESPONSE_MS:
        return UserRating.EASY
    if response_ms < GOOD_RESPONSE_MS:
        return UserRating.GOOD
    return UserRating.HARD
