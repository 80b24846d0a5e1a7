"""Utility subpackage: structured logging and background task tracking."""

from .logger import (
	get_logger,
	log_request,
	log_error,
	log_model_load,
	log_recognition,
	log_extraction,
	log_review,
	log_scan_progress,
	set_request_context,
	get_request_context,
)
from .task_manager import TaskManager, TaskStatus

__all__ = [
	'get_logger',
	'log_request',
	'log_error',
	'log_model_load',
	'log_recognition',
	'log_extraction',
	'log_review',
	'log_scan_progress',
	'set_request_context',
	'get_request_context',
	'TaskManager',
	'TaskStatus',
]
