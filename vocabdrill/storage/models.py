from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from vocabdrill.flashcards import LearningItem


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ALL_LISTS = 'all'
STATS_KEY = 'main'


class PracticeDirection(str, Enum):
    TERM_TO_DEF = 'term-to-def'
    DEF_TO_TERM = 'def-to-term'
    MIXED = 'mixed'


class Word(LearningItem):
    id: str
    list_id: str
    created_at: datetime = Field(default_factory=_utcnow)


class WordList(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    source_language: str = ''
    target_language: str = ''
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class StudySession(BaseModel):
    id: str
    list_id: str = ALL_LISTS
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    words_studied: int = 0
    correct: int = 0
    incorrect: int = 0
    direction: PracticeDirection = PracticeDirection.TERM_TO_DEF
    # drill order and, per card, whether the term is the prompt
    queue: List[str] = Field(default_factory=list)
    show_term: List[bool] = Field(default_factory=list)
    position: int = 0

    @property
    def finished(self) -> bool:
        return self.ended_at is not None


class AppStats(BaseModel):
    id: str = STATS_KEY
    total_words_learned: int = 0
    total_reviews: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: Optional[date] = None
