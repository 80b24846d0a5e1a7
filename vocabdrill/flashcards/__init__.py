"""
Flashcard scheduling with spaced repetition (SM-2 algorithm).
Rating adapters turn typed answers and multiple-choice picks into ratings.
"""

from .spaced_repetition import (
	UserRating,
	MasteryLevel,
	SM2State,
	LearningItem,
	default_state,
	next_state,
	estimated_intervals,
	mastery_score,
	mastery_level,
	due_text,
	format_interval,
	rating_to_quality,
)
from .grading import (
	AnswerGrade,
	grade_answer,
	similarity,
	normalize_answer,
	rating_from_similarity,
	build_choices,
	rating_from_choice,
)

__all__ = [
	'UserRating',
	'MasteryLevel',
	'SM2State',
	'LearningItem',
	'default_state',
	'next_state',
	'estimated_intervals',
	'mastery_score',
	'mastery_level',
	'due_text',
	'format_interval',
	'rating_to_quality',
	'AnswerGrade',
	'grade_answer',
	'similarity',
	'normalize_answer',
	'rating_from_similarity',
	'build_choices',
	'rating_from_choice',
]
