"""Key-value storage boundary for words, lists, sessions and stats.

Records are plain JSON-compatible dicts keyed by their ``id``. Each collection
may declare equality indexes that ``query_by_index`` can look up.

Backends:
- InMemoryRepository: process-local dicts, the default for tests and local use
- RedisRepository: one hash per collection plus one set per index value

Environment variables:
- REDIS_URL (unset selects the in-memory backend)
- STORAGE_KEY_PREFIX (default 'vocabdrill')
"""
from __future__ import annotations

import abc
import copy
import json
import os
import random
import string
import time
from typing import Any, Dict, List, Optional, Tuple

try:
    import redis
except Exception:
    redis = None

from vocabdrill.utils import get_logger

LOG = get_logger()

REDIS_URL = os.getenv('REDIS_URL', None)
STORAGE_KEY_PREFIX = os.getenv('STORAGE_KEY_PREFIX', 'vocabdrill')

WORDS = 'words'
LISTS = 'lists'
SESSIONS = 'sessions'
STATS = 'stats'

INDEXES: Dict[str, Tuple[str, ...]] = {
    WORDS: ('list_id',),
    LISTS: (),
    SESSIONS: ('list_id',),
    STATS: (),
}

_ID_ALPHABET = string.digits + string.ascii_lowercase

Record = Dict[str, Any]


class RepositoryError(Exception):
    pass


def generate_id() -> str:
    suffix = ''.join(random.choices(_ID_ALPHABET, k=9))
    return f'{int(time.time() * 1000)}-{suffix}'


def _check_index(collection: str, index: str):
    if collection not in INDEXES:
        raise RepositoryError(f'unknown collection: {collection}')
    if index not in INDEXES[collection]:
        raise RepositoryError(f'no index {index!r} on {collection}')


class Repository(abc.ABC):
    @abc.abstractmethod
    def get(self, collection: str, key: str) -> Optional[Record]:
        ...

    @abc.abstractmethod
    def put(self, collection: str, record: Record) -> None:
        ...

    @abc.abstractmethod
    def delete(self, collection: str, key: str) -> None:
        ...

    @abc.abstractmethod
    def query_by_index(self, collection: str, index: str, value: Any) -> List[Record]:
        ...

    @abc.abstractmethod
    def all(self, collection: str) -> List[Record]:
        ...

    def ping(self) -> bool:
        return True


class InMemoryRepository(Repository):
    def __init__(self):
        self._data: Dict[str, Dict[str, Record]] = {name: {} for name in INDEXES}

    def _collection(self, collection: str) -> Dict[str, Record]:
        if collection not in self._data:
            raise RepositoryError(f'unknown collection: {collection}')
        return self._data[collection]

    def get(self, collection, key):
        rec = self._collection(collection).get(key)
        return copy.deepcopy(rec) if rec is not None else None

    def put(self, collection, record):
        if not record.get('id'):
            raise RepositoryError('record has no id')
        self._collection(collection)[record['id']] = copy.deepcopy(record)

    def delete(self, collection, key):
        self._collection(collection).pop(key, None)

    def query_by_index(self, collection, index, value):
        _check_index(collection, index)
        return [copy.deepcopy(r) for r in self._collection(collection).values() if r.get(index) == value]

    def all(self, collection):
        return [copy.deepcopy(r) for r in self._collection(collection).values()]


class RedisRepository(Repository):
    def __init__(self, client, prefix: str = STORAGE_KEY_PREFIX):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = STORAGE_KEY_PREFIX) -> 'RedisRepository':
        if redis is None:
            raise RepositoryError('redis library not available')
        return cls(redis.from_url(url, decode_responses=True), prefix=prefix)

    def _hash_key(self, collection: str) -> str:
        if collection not in INDEXES:
            raise RepositoryError(f'unknown collection: {collection}')
        return f'{self._prefix}:{collection}'

    def _index_key(self, collection: str, index: str, value: Any) -> str:
        return f'{self._prefix}:{collection}:idx:{index}:{value}'

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception:
            LOG.warning('redis_ping_failed', exc_info=True)
            return False

    def get(self, collection, key):
        try:
            raw = self._client.hget(self._hash_key(collection), key)
        except RepositoryError:
            raise
        except Exception as e:
            LOG.exception('repository_get_failed', extra={'collection': collection, 'key': key})
            raise RepositoryError(str(e))
        return json.loads(raw) if raw else None

    def put(self, collection, record):
        if not record.get('id'):
            raise RepositoryError('record has no id')
        key = record['id']
        previous = self.get(collection, key)
        try:
            pipe = self._client.pipeline()
            pipe.hset(self._hash_key(collection), key, json.dumps(record))
            for index in INDEXES[collection]:
                if previous is not None and previous.get(index) != record.get(index):
                    pipe.srem(self._index_key(collection, index, previous.get(index)), key)
                pipe.sadd(self._index_key(collection, index, record.get(index)), key)
            pipe.execute()
        except Exception as e:
            LOG.exception('repository_put_failed', extra={'collection': collection, 'key': key})
            raise RepositoryError(str(e))

    def delete(self, collection, key):
        previous = self.get(collection, key)
        if previous is None:
            return
        try:
            pipe = self._client.pipeline()
            pipe.hdel(self._hash_key(collection), key)
            for index in INDEXES[collection]:
                pipe.srem(self._index_key(collection, index, previous.get(index)), key)
            pipe.execute()
        except Exception as e:
            LOG.exception('repository_delete_failed', extra={'collection': collection, 'key': key})
            raise RepositoryError(str(e))

    def query_by_index(self, collection, index, value):
        _check_index(collection, index)
        try:
            keys = sorted(self._client.smembers(self._index_key(collection, index, value)))
            if not keys:
                return []
            raws = self._client.hmget(self._hash_key(collection), keys)
        except Exception as e:
            LOG.exception('repository_query_failed', extra={'collection': collection, 'index': index})
            raise RepositoryError(str(e))
        return [json.loads(raw) for raw in raws if raw]

    def all(self, collection):
        try:
            mapping = self._client.hgetall(self._hash_key(collection))
        except RepositoryError:
            raise
        except Exception as e:
            LOG.exception('repository_all_failed', extra={'collection': collection})
            raise RepositoryError(str(e))
        return [json.loads(mapping[k]) for k in sorted(mapping)]


_repository: Optional[Repository] = None


def get_repository() -> Repository:
    """Process-wide repository: Redis when REDIS_URL answers a ping, else in-memory."""
    global _repository
    if _repository is not None:
        return _repository
    if redis is not None and REDIS_URL:
        try:
            repo = RedisRepository.from_url(REDIS_URL)
            if repo.ping():
                LOG.info('repository_using_redis', extra={'redis_url': REDIS_URL})
                _repository = repo
                return _repository
        except Exception as e:
            LOG.warning('Redis not available for storage, using in-memory store', extra={'error': str(e)})
    else:
        LOG.warning('REDIS_URL not configured, using in-memory storage')
    _repository = InMemoryRepository()
    return _repository


def set_repository(repository: Optional[Repository]):
    global _repository
    _repository = repository
