"""
Practice module: word lists, the import flow for extracted pairs,
practice sessions that feed ratings to the scheduler, and statistics.
"""

from .lists import (
	ListService,
	PracticeError,
	ListNotFoundError,
	WordNotFoundError,
	InvalidWordError,
)
from .session_runner import (
	PracticeSessionRunner,
	PracticeCard,
	RatingOutcome,
	ChoiceQuestion,
	SessionNotFoundError,
	PracticeSessionError,
	SessionFinishedError,
)
from .stats import StatsService, StatsSummary, ListSummary, get_stats, update_streak

__all__ = [
	'ListService',
	'PracticeError',
	'ListNotFoundError',
	'WordNotFoundError',
	'InvalidWordError',
	'PracticeSessionRunner',
	'PracticeCard',
	'RatingOutcome',
	'ChoiceQuestion',
	'SessionNotFoundError',
	'PracticeSessionError',
	'SessionFinishedError',
	'StatsService',
	'StatsSummary',
	'ListSummary',
	'get_stats',
	'update_streak',
]
