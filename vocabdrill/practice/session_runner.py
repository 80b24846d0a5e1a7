"""Practice sessions: drill a queue of words and feed every rating to the scheduler.

A session snapshots its queue when it starts (the list's due words, or all
of its words when nothing is due) and walks it card by card. Each rating
runs next_state, persists the merged word, and updates the session counters
and the global stats. Typed answers and multiple-choice picks go through the
rating adapters first.
"""
from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel

from vocabdrill.flashcards import (
    AnswerGrade,
    UserRating,
    build_choices,
    grade_answer,
    next_state,
    rating_from_choice,
)
from vocabdrill.storage import (
    ALL_LISTS,
    SESSIONS,
    WORDS,
    PracticeDirection,
    Repository,
    StudySession,
    Word,
    generate_id,
)
from vocabdrill.utils import get_logger, log_review
from .lists import ListService, PracticeError
from .stats import get_stats, save_stats, update_streak

LOG = get_logger()


class SessionNotFoundError(PracticeError):
    pass


class PracticeSessionError(PracticeError):
    pass


class SessionFinishedError(PracticeSessionError):
    pass


class PracticeCard(BaseModel):
    session_id: str
    word_id: str
    prompt: str
    answer: str
    show_term: bool
    position: int
    total: int


class RatingOutcome(BaseModel):
    word: Word
    rating: UserRating
    session: StudySession
    next_card: Optional[PracticeCard] = None
    grade: Optional[AnswerGrade] = None


class ChoiceQuestion(BaseModel):
    card: PracticeCard
    options: List[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PracticeSessionRunner:
    def __init__(self, repository: Repository, rng: Optional[random.Random] = None):
        self._repo = repository
        self._lists = ListService(repository)
        self._rng = rng or random.Random()

    def _sides(self, direction: PracticeDirection, count: int) -> List[bool]:
        if direction == PracticeDirection.TERM_TO_DEF:
            return [True] * count
        if direction == PracticeDirection.DEF_TO_TERM:
            return [False] * count
        return [self._rng.random() > 0.5 for _ in range(count)]

    def _save(self, session: StudySession) -> StudySession:
        self._repo.put(SESSIONS, session.model_dump(mode='json'))
        return session

    def start(self, list_id: Optional[str] = None, direction: PracticeDirection = PracticeDirection.TERM_TO_DEF, now: Optional[datetime] = None) -> StudySession:
        now = now or _utcnow()
        direction = PracticeDirection(direction)
        if list_id:
            due = self._lists.due_words(list_id, now=now)
            words = due or self._lists.words_in_list(list_id)
        else:
            words = self._lists.due_words(now=now)

        queue = [w.id for w in words]
        self._rng.shuffle(queue)
        session = StudySession(
            id=generate_id(),
            list_id=list_id or ALL_LISTS,
            started_at=now,
            direction=direction,
            queue=queue,
            show_term=self._sides(direction, len(queue)),
        )
        if not queue:
            session.ended_at = now
        self._save(session)
        update_streak(self._repo, now.date())
        LOG.info('practice_session_started', extra={'session_id': session.id, 'list_id': session.list_id, 'word_count': len(queue)})
        return session

    def get_session(self, session_id: str) -> StudySession:
        rec = self._repo.get(SESSIONS, session_id)
        if rec is None:
            raise SessionNotFoundError(f'session not found: {session_id}')
        return StudySession.model_validate(rec)

    def _card(self, session: StudySession) -> Optional[PracticeCard]:
        if session.finished or session.position >= len(session.queue):
            return None
        word = self._lists.get_word(session.queue[session.position])
        show_term = session.show_term[session.position]
        return PracticeCard(
            session_id=session.id,
            word_id=word.id,
            prompt=word.term if show_term else word.definition,
            answer=word.definition if show_term else word.term,
            show_term=show_term,
            position=session.position,
            total=len(session.queue),
        )

    def current_card(self, session_id: str) -> Optional[PracticeCard]:
        return self._card(self.get_session(session_id))

    def _require_card(self, session: StudySession) -> PracticeCard:
        if session.finished:
            raise SessionFinishedError(f'session already finished: {session.id}')
        card = self._card(session)
        if card is None:
            raise SessionFinishedError(f'no cards left in session: {session.id}')
        return card

    def rate(self, session_id: str, word_id: str, rating: UserRating, now: Optional[datetime] = None, grade: Optional[AnswerGrade] = None) -> RatingOutcome:
        now = now or _utcnow()
        rating = UserRating(rating)
        session = self.get_session(session_id)
        card = self._require_card(session)
        if card.word_id != word_id:
            raise PracticeSessionError(f'expected a rating for {card.word_id}, got {word_id}')

        word = self._lists.get_word(word_id)
        was_new = word.repetitions == 0
        state = next_state(word, rating, now=now)
        word = self._lists.update_word(word.model_copy(update=state.model_dump()))
        log_review(word.id, rating.value, word.interval_days, word.ease_factor, word.repetitions)

        correct = rating != UserRating.AGAIN
        if correct:
            session.correct += 1
        else:
            session.incorrect += 1

        stats = get_stats(self._repo)
        save_stats(self._repo, stats.model_copy(update={
            'total_reviews': stats.total_reviews + 1,
            'total_words_learned': stats.total_words_learned + (1 if correct and was_new else 0),
        }))

        session.position += 1
        if session.position >= len(session.queue):
            session.ended_at = now
            session.words_studied = len(session.queue)
            LOG.info('practice_session_finished', extra={'session_id': session.id, 'correct': session.correct, 'incorrect': session.incorrect})
        self._save(session)

        return RatingOutcome(word=word, rating=rating, session=session, next_card=self._card(session), grade=grade)

    def answer(self, session_id: str, answer_text: str, now: Optional[datetime] = None) -> RatingOutcome:
        """Grade a typed answer for the current card and rate it accordingly."""
        card = self._require_card(self.get_session(session_id))
        grade = grade_answer(answer_text, card.answer)
        return self.rate(session_id, card.word_id, grade.rating, now=now, grade=grade)

    def _distractor_words(self, session: StudySession) -> List[Word]:
        if session.list_id != ALL_LISTS:
            return self._lists.words_in_list(session.list_id)
        return [Word.model_validate(r) for r in self._repo.all(WORDS)]

    def choices(self, session_id: str) -> ChoiceQuestion:
        session = self.get_session(session_id)
        card = self._require_card(session)
        others = [w for w in self._distractor_words(session) if w.id != card.word_id]
        pool = [w.definition if card.show_term else w.term for w in others]
        return ChoiceQuestion(card=card, options=build_choices(card.answer, pool, rng=self._rng))

    def pick(self, session_id: str, choice: str, response_ms: int, now: Optional[datetime] = None) -> RatingOutcome:
        card = self._require_card(self.get_session(session_id))
        rating = rating_from_choice(choice == card.answer, response_ms)
        return self.rate(session_id, card.word_id, rating, now=now)

    def restart(self, session_id: str) -> StudySession:
        """Drill the same words again in a fresh order with zeroed counters."""
        session = self.get_session(session_id)
        queue = list(session.queue)
        self._rng.shuffle(queue)
        session = session.model_copy(update={
            'queue': queue,
            'show_term': self._sides(session.direction, len(queue)),
            'position': 0,
            'correct': 0,
            'incorrect': 0,
            'ended_at': None if queue else session.ended_at,
            'words_studied': 0,
        })
        return self._save(session)
