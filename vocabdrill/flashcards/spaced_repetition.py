"""SM-2 spaced-repetition scheduling.

Pure state transitions over a word's memory state:
- default_state: scheduling fields for a freshly created word (due immediately)
- next_state: the state after one user rating
- estimated_intervals: preview of next_state for every rating, formatted
- mastery_score / mastery_level: derived display metrics, unused by scheduling
- due_text / format_interval: human-readable durations

Ratings map onto the SM-2 quality scale as again=0, hard=2, good=4, easy=5.
Ease never drops below 1.3; any rating below 3 is a lapse that restarts the
learning curve with a 1 day interval.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field

from vocabdrill.utils import get_logger

LOG = get_logger()


class UserRating(str, Enum):
    AGAIN = 'again'
    HARD = 'hard'
    GOOD = 'good'
    EASY = 'easy'


class MasteryLevel(str, Enum):
    NEW = 'new'
    LEARNING = 'learning'
    KNOWN = 'known'
    LEARNED = 'learned'


QUALITY_BY_RATING: Dict[UserRating, int] = {
    UserRating.AGAIN: 0,
    UserRating.HARD: 2,
    UserRating.GOOD: 4,
    UserRating.EASY: 5,
}

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
SECOND_INTERVAL_DAYS = 6
AGAIN_PREVIEW_TEXT = '1 day'
DUE_NOW_TEXT = 'due now'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SM2State(BaseModel):
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    repetitions: int = 0
    next_review_at: datetime = Field(default_factory=_utcnow)
    last_reviewed_at: Optional[datetime] = None
    times_correct: int = 0
    times_incorrect: int = 0


class LearningItem(SM2State):
    term: str
    definition: str


def round_half_up(value: float) -> int:
    # builtin round() is banker's rounding: 32.5 -> 32
    return int(math.floor(value + 0.5))


def rating_to_quality(rating: Union[UserRating, str]) -> int:
    return QUALITY_BY_RATING[UserRating(rating)]


def default_state(now: Optional[datetime] = None) -> SM2State:
    """Scheduling fields for a word that has never been reviewed."""
    now = now or _utcnow()
    return SM2State(
        ease_factor=DEFAULT_EASE_FACTOR,
        interval_days=0,
        repetitions=0,
        next_review_at=now,
        last_reviewed_at=None,
        times_correct=0,
        times_incorrect=0,
    )


def _clamped(item: SM2State) -> SM2State:
    """Repair out-of-range fields read back from storage before doing arithmetic on them."""
    fixed = SM2State(
        ease_factor=max(MIN_EASE_FACTOR, float(item.ease_factor)),
        interval_days=max(0, int(item.interval_days)),
        repetitions=max(0, int(item.repetitions)),
        next_review_at=item.next_review_at,
        last_reviewed_at=item.last_reviewed_at,
        times_correct=max(0, int(item.times_correct)),
        times_incorrect=max(0, int(item.times_incorrect)),
    )
    if fixed.ease_factor != item.ease_factor or fixed.interval_days != item.interval_days or fixed.repetitions != item.repetitions:
        LOG.warning('sm2_state_clamped', extra={
            'ease_factor': item.ease_factor,
            'interval_days': item.interval_days,
            'repetitions': item.repetitions,
        })
    return fixed


def next_state(item: SM2State, rating: Union[UserRating, str], now: Optional[datetime] = None) -> SM2State:
    """Return the scheduling fields after rating ``item``; the caller persists them.

    Args:
        item: current state (any SM2State, e.g. LearningItem or a stored Word)
        rating: one of again/hard/good/easy
        now: review instant, defaults to the current UTC time

    Returns:
        a new SM2State; ``item`` is left untouched
    """
    now = now or _utcnow()
    quality = rating_to_quality(rating)
    state = _clamped(item)

    ease = state.ease_factor
    interval = state.interval_days
    repetitions = state.repetitions

    if quality < PASSING_QUALITY:
        repetitions = 0
        interval = 1
    else:
        if repetitions == 0:
            interval = 1
        elif repetitions == 1:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = round_half_up(interval * ease)
        repetitions += 1

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    ease = ease + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    ease = max(MIN_EASE_FACTOR, ease)

    passed = quality >= PASSING_QUALITY
    return SM2State(
        ease_factor=ease,
        interval_days=interval,
        repetitions=repetitions,
        next_review_at=now + timedelta(days=interval),
        last_reviewed_at=now,
        times_correct=state.times_correct + (1 if passed else 0),
        times_incorrect=state.times_incorrect + (0 if passed else 1),
    )


def _plural(count: int, unit: str) -> str:
    return f'{count} {unit}' if count == 1 else f'{count} {unit}s'


def format_interval(days: float) -> str:
    if days < 1:
        return 'now'
    if days < 30:
        return _plural(int(days), 'day')
    if days < 365:
        return _plural(round_half_up(days / 30), 'month')
    return _plural(round_half_up(days / 365), 'year')


def estimated_intervals(item: SM2State, now: Optional[datetime] = None) -> Dict[UserRating, str]:
    """Preview the interval each rating would produce, without touching ``item``."""
    estimates: Dict[UserRating, str] = {UserRating.AGAIN: AGAIN_PREVIEW_TEXT}
    for rating in (UserRating.HARD, UserRating.GOOD, UserRating.EASY):
        estimates[rating] = format_interval(next_state(item, rating, now=now).interval_days)
    return estimates


def due_text(next_review_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or _utcnow()
    diff = next_review_at - now
    if diff <= timedelta(0):
        return DUE_NOW_TEXT
    seconds = diff.total_seconds()
    days = int(seconds // 86400)
    if days >= 1:
        return format_interval(days)
    hours = int(seconds // 3600)
    if hours >= 1:
        return _plural(hours, 'hour')
    minutes = int(seconds // 60)
    if minutes >= 1:
        return f'{minutes} min'
    return DUE_NOW_TEXT


def mastery_score(item: SM2State) -> int:
    total = item.times_correct + item.times_incorrect
    if total <= 0:
        return 0
    accuracy = item.times_correct / total
    repetition_bonus = min(max(item.repetitions, 0) / 5, 1)
    interval_bonus = min(max(item.interval_days, 0) / 30, 1)
    return round_half_up((accuracy * 0.5 + repetition_bonus * 0.25 + interval_bonus * 0.25) * 100)


def mastery_level(score: int) -> MasteryLevel:
    if score == 0:
        return MasteryLevel.NEW
    if score < 40:
        return MasteryLevel.LEARNING
    if score < 80:
        return MasteryLevel.KNOWN
    return MasteryLevel.LEARNED
