import os
import json
import time
from enum import Enum
from typing import Optional, Dict, Any

try:
    import redis
except Exception:
    redis = None

from vocabdrill.utils.logger import get_logger

LOG = get_logger()

TASK_TTL_SECONDS = int(os.getenv('TASK_TTL_SECONDS', '86400'))
REDIS_URL = os.getenv('REDIS_URL', None)


class TaskStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


FINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value, TaskStatus.CANCELLED.value)


class TaskManager:
    """Tracks long-running scan tasks: status, progress percentage and status text."""

    _instance = None

    def __init__(self):
        self._use_redis = False
        self._client = None
        self._in_memory: Dict[str, Dict[str, Any]] = {}
        try:
            if redis is not None and REDIS_URL:
                self._client = redis.from_url(REDIS_URL, decode_responses=True)
                self._client.ping()
                self._use_redis = True
                LOG.info('TaskManager using Redis', extra={'redis_url': REDIS_URL})
            else:
                LOG.warning('REDIS_URL not configured, falling back to in-memory TaskManager')
        except Exception as e:
            LOG.warning('Redis not available for TaskManager, using in-memory store', extra={'error': str(e)})
            self._use_redis = False
            self._client = None

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = TaskManager()
        return cls._instance

    def _key(self, task_id: str) -> str:
        return f'scan-task:{task_id}'

    def _save(self, task_id: str, obj: Dict[str, Any]):
        obj['updated_at'] = int(time.time())
        try:
            if self._use_redis and self._client:
                self._client.set(self._key(task_id), json.dumps(obj), ex=TASK_TTL_SECONDS)
            else:
                self._in_memory[task_id] = obj
        except Exception as e:
            LOG.warning('task_save_failed', extra={'task_id': task_id, 'error': str(e)})
            self._in_memory[task_id] = obj

    def create_task(self, task_id: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        now = int(time.time())
        obj = {
            'task_id': task_id,
            'status': TaskStatus.PENDING.value,
            'progress_pct': 0,
            'status_text': '',
            'result': None,
            'error_message': None,
            'metadata': metadata or {},
            'created_at': now,
            'updated_at': now,
        }
        self._save(task_id, obj)
        LOG.info('task_created', extra={'task_id': task_id})
        return obj

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        try:
            if self._use_redis and self._client:
                raw = self._client.get(self._key(task_id))
                if not raw:
                    return None
                return json.loads(raw)
            return self._in_memory.get(task_id)
        except Exception as e:
            LOG.warning('task_get_failed', extra={'task_id': task_id, 'error': str(e)})
            return self._in_memory.get(task_id)

    def update_progress(self, task_id: str, progress_pct: float, status_text: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('update_progress_task_not_found', extra={'task_id': task_id})
            return None
        if task['status'] in FINAL_STATUSES:
            return task
        task['status'] = TaskStatus.PROCESSING.value
        task['progress_pct'] = max(0, min(100, int(round(progress_pct))))
        task['status_text'] = status_text
        self._save(task_id, task)
        return task

    def complete_task(self, task_id: str, final_result: Optional[Dict[str, Any]] = None):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('complete_task_not_found', extra={'task_id': task_id})
            return None
        if task['status'] in FINAL_STATUSES:
            return task
        task['status'] = TaskStatus.COMPLETED.value
        task['progress_pct'] = 100
        if final_result is not None:
            task['result'] = final_result
        self._save(task_id, task)
        LOG.info('task_completed', extra={'task_id': task_id})
        return task

    def fail_task(self, task_id: str, error_msg: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('fail_task_not_found', extra={'task_id': task_id})
            return None
        if task['status'] in FINAL_STATUSES:
            return task
        task['status'] = TaskStatus.FAILED.value
        task['error_message'] = error_msg
        self._save(task_id, task)
        LOG.error('task_failed', extra={'task_id': task_id, 'error': error_msg})
        return task

    def cancel_task(self, task_id: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('cancel_task_not_found', extra={'task_id': task_id})
            return None
        if task['status'] in FINAL_STATUSES:
            return task
        task['status'] = TaskStatus.CANCELLED.value
        self._save(task_id, task)
        LOG.info('task_cancelled', extra={'task_id': task_id})
        return task
