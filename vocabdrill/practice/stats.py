from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from vocabdrill.flashcards import MasteryLevel, mastery_level, mastery_score
from vocabdrill.flashcards.spaced_repetition import round_half_up
from vocabdrill.storage import LISTS, SESSIONS, STATS, STATS_KEY, WORDS, AppStats, Repository, StudySession, Word, WordList

RECENT_ACTIVITY_DAYS = 7


def get_stats(repository: Repository) -> AppStats:
    rec = repository.get(STATS, STATS_KEY)
    if rec is None:
        stats = AppStats()
        repository.put(STATS, stats.model_dump(mode='json'))
        return stats
    return AppStats.model_validate(rec)


def save_stats(repository: Repository, stats: AppStats) -> AppStats:
    repository.put(STATS, stats.model_dump(mode='json'))
    return stats


def update_streak(repository: Repository, today: date) -> AppStats:
    """Count consecutive study days; studying twice on one day changes nothing."""
    stats = get_stats(repository)
    if stats.last_study_date == today:
        return stats

    yesterday = today - timedelta(days=1)
    if stats.last_study_date == yesterday:
        streak = stats.current_streak + 1
    elif stats.last_study_date is None or stats.last_study_date < yesterday:
        streak = 1
    else:
        # last study date in the future: clock went backwards
        streak = stats.current_streak

    updated = stats.model_copy(update={
        'current_streak': streak,
        'longest_streak': max(streak, stats.longest_streak),
        'last_study_date': today,
    })
    return save_stats(repository, updated)


class ListSummary(BaseModel):
    list_id: str
    name: str
    word_count: int
    mastery: int
    due_now: int


class StatsSummary(BaseModel):
    total_words: int
    total_words_learned: int
    total_reviews: int
    current_streak: int
    longest_streak: int
    overall_mastery: int
    mastery_distribution: Dict[MasteryLevel, int] = Field(default_factory=dict)
    due_now: int
    accuracy: int
    words_this_week: int
    lists: List[ListSummary] = Field(default_factory=list)


def _mean_mastery(words: List[Word]) -> int:
    if not words:
        return 0
    return round_half_up(sum(mastery_score(w) for w in words) / len(words))


class StatsService:
    def __init__(self, repository: Repository):
        self._repo = repository

    def summary(self, now: Optional[datetime] = None) -> StatsSummary:
        now = now or datetime.now(timezone.utc)
        stats = get_stats(self._repo)
        words = [Word.model_validate(r) for r in self._repo.all(WORDS)]
        lists = [WordList.model_validate(r) for r in self._repo.all(LISTS)]
        sessions = [StudySession.model_validate(r) for r in self._repo.all(SESSIONS)]

        distribution = {level: 0 for level in MasteryLevel}
        for w in words:
            distribution[mastery_level(mastery_score(w))] += 1

        total_correct = sum(s.correct for s in sessions)
        total_incorrect = sum(s.incorrect for s in sessions)
        answered = total_correct + total_incorrect
        accuracy = round_half_up(total_correct / answered * 100) if answered else 0

        week_ago = now - timedelta(days=RECENT_ACTIVITY_DAYS)
        words_this_week = sum(s.words_studied for s in sessions if s.started_at > week_ago)

        per_list = []
        for wl in lists:
            list_words = [w for w in words if w.list_id == wl.id]
            per_list.append(ListSummary(
                list_id=wl.id,
                name=wl.name,
                word_count=len(list_words),
                mastery=_mean_mastery(list_words),
                due_now=sum(1 for w in list_words if w.next_review_at <= now),
            ))

        return StatsSummary(
            total_words=len(words),
            total_words_learned=stats.total_words_learned,
            total_reviews=stats.total_reviews,
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            overall_mastery=_mean_mastery(words),
            mastery_distribution=distribution,
            due_now=sum(1 for w in words if w.next_review_at <= now),
            accuracy=accuracy,
            words_this_week=words_this_week,
            lists=per_list,
        )
