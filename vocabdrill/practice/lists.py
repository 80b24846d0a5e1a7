from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from vocabdrill.flashcards import default_state
from vocabdrill.ocr import CandidatePair
from vocabdrill.storage import LISTS, WORDS, Repository, Word, WordList, generate_id
from vocabdrill.utils import get_logger

LOG = get_logger()


class PracticeError(Exception):
    pass


class ListNotFoundError(PracticeError):
    pass


class WordNotFoundError(PracticeError):
    pass


class InvalidWordError(PracticeError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ListService:
    """Word lists and their words on top of a Repository.

    New words always start from the scheduler's default state, so they are
    due immediately.
    """

    def __init__(self, repository: Repository):
        self._repo = repository

    # lists

    def create_list(self, name: str, source_language: str = '', target_language: str = '', description: Optional[str] = None, now: Optional[datetime] = None) -> WordList:
        if not name or not name.strip():
            raise InvalidWordError('list name must not be empty')
        now = now or _utcnow()
        word_list = WordList(
            id=generate_id(),
            name=name.strip(),
            description=description,
            source_language=source_language,
            target_language=target_language,
            created_at=now,
            updated_at=now,
        )
        self._repo.put(LISTS, word_list.model_dump(mode='json'))
        LOG.info('list_created', extra={'list_id': word_list.id})
        return word_list

    def get_list(self, list_id: str) -> WordList:
        rec = self._repo.get(LISTS, list_id)
        if rec is None:
            raise ListNotFoundError(f'list not found: {list_id}')
        return WordList.model_validate(rec)

    def all_lists(self) -> List[WordList]:
        return [WordList.model_validate(r) for r in self._repo.all(LISTS)]

    def update_list(self, word_list: WordList, now: Optional[datetime] = None) -> WordList:
        self.get_list(word_list.id)
        updated = word_list.model_copy(update={'updated_at': now or _utcnow()})
        self._repo.put(LISTS, updated.model_dump(mode='json'))
        return updated

    def delete_list(self, list_id: str) -> int:
        """Delete a list and every word in it; returns the number of words removed."""
        self.get_list(list_id)
        words = self._repo.query_by_index(WORDS, 'list_id', list_id)
        for rec in words:
            self._repo.delete(WORDS, rec['id'])
        self._repo.delete(LISTS, list_id)
        LOG.info('list_deleted', extra={'list_id': list_id, 'word_count': len(words)})
        return len(words)

    # words

    def _new_word(self, list_id: str, term: str, definition: str, now: datetime) -> Word:
        term = (term or '').strip()
        definition = (definition or '').strip()
        if not term or not definition:
            raise InvalidWordError('term and definition must not be empty')
        return Word(
            id=generate_id(),
            list_id=list_id,
            term=term,
            definition=definition,
            created_at=now,
            **default_state(now).model_dump(),
        )

    def add_word(self, list_id: str, term: str, definition: str, now: Optional[datetime] = None) -> Word:
        return self.add_words(list_id, [(term, definition)], now=now)[0]

    def add_words(self, list_id: str, pairs: Iterable[Tuple[str, str]], now: Optional[datetime] = None) -> List[Word]:
        self.get_list(list_id)
        now = now or _utcnow()
        words = [self._new_word(list_id, term, definition, now) for term, definition in pairs]
        for word in words:
            self._repo.put(WORDS, word.model_dump(mode='json'))
        return words

    def get_word(self, word_id: str) -> Word:
        rec = self._repo.get(WORDS, word_id)
        if rec is None:
            raise WordNotFoundError(f'word not found: {word_id}')
        return Word.model_validate(rec)

    def update_word(self, word: Word) -> Word:
        self.get_word(word.id)
        self._repo.put(WORDS, word.model_dump(mode='json'))
        return word

    def delete_word(self, word_id: str):
        self.get_word(word_id)
        self._repo.delete(WORDS, word_id)

    def words_in_list(self, list_id: str) -> List[Word]:
        self.get_list(list_id)
        return [Word.model_validate(r) for r in self._repo.query_by_index(WORDS, 'list_id', list_id)]

    def due_words(self, list_id: Optional[str] = None, now: Optional[datetime] = None) -> List[Word]:
        now = now or _utcnow()
        words = self.words_in_list(list_id) if list_id else [Word.model_validate(r) for r in self._repo.all(WORDS)]
        return [w for w in words if w.next_review_at <= now]

    def import_pairs(self, list_id: str, pairs: Iterable[Union[CandidatePair, Mapping[str, Any]]], now: Optional[datetime] = None) -> List[Word]:
        """Turn accepted (possibly edited) candidate pairs into new words.

        Pairs left blank by the reviewer are skipped.
        """
        accepted: List[Tuple[str, str]] = []
        skipped = 0
        for pair in pairs:
            if isinstance(pair, CandidatePair):
                term, definition = pair.term, pair.definition
            else:
                term, definition = pair.get('term', ''), pair.get('definition', '')
            if not (term or '').strip() or not (definition or '').strip():
                skipped += 1
                continue
            accepted.append((term, definition))
        words = self.add_words(list_id, accepted, now=now)
        LOG.info('pairs_imported', extra={'list_id': list_id, 'imported': len(words), 'skipped': skipped})
        return words
