"""Storage subpackage: record models and the key-value repository boundary."""

from .models import (
	Word,
	WordList,
	StudySession,
	AppStats,
	PracticeDirection,
	ALL_LISTS,
	STATS_KEY,
)
from .repository import (
	Repository,
	InMemoryRepository,
	RedisRepository,
	RepositoryError,
	get_repository,
	set_repository,
	generate_id,
	WORDS,
	LISTS,
	SESSIONS,
	STATS,
)

__all__ = [
	'Word',
	'WordList',
	'StudySession',
	'AppStats',
	'PracticeDirection',
	'ALL_LISTS',
	'STATS_KEY',
	'Repository',
	'InMemoryRepository',
	'RedisRepository',
	'RepositoryError',
	'get_repository',
	'set_repository',
	'generate_id',
	'WORDS',
	'LISTS',
	'SESSIONS',
	'STATS',
]
