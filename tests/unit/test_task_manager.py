import json
from types import SimpleNamespace

import vocabdrill.utils.task_manager as tm_mod
from vocabdrill.utils.task_manager import TaskManager, TaskStatus


def _fresh_manager(monkeypatch, redis_module=None, url=None):
    monkeypatch.setattr(tm_mod, 'redis', redis_module)
    monkeypatch.setattr(tm_mod, 'REDIS_URL', url)
    TaskManager._instance = None
    return TaskManager.get_instance()


def test_task_manager_in_memory(monkeypatch):
    tm = _fresh_manager(monkeypatch)
    assert TaskManager.get_instance() is tm

    obj = tm.create_task('task1', {'filename': 'list.jpg'})
    assert obj['task_id'] == 'task1'
    assert obj['status'] == TaskStatus.PENDING.value
    assert obj['progress_pct'] == 0

    prog = tm.update_progress('task1', 42.6, 'recognizing text')
    assert prog['status'] == TaskStatus.PROCESSING.value
    assert prog['progress_pct'] == 43
    assert prog['status_text'] == 'recognizing text'

    assert tm.update_progress('task1', 150, 'done')['progress_pct'] == 100

    done = tm.complete_task('task1', {'pairs': []})
    assert done['status'] == TaskStatus.COMPLETED.value
    assert done['result'] == {'pairs': []}

    # late progress from the worker does not reopen a finished task
    late = tm.update_progress('task1', 10, 'starting recognition')
    assert late['status'] == TaskStatus.COMPLETED.value
    assert tm.cancel_task('task1')['status'] == TaskStatus.COMPLETED.value


def test_fail_and_cancel(monkeypatch):
    tm = _fresh_manager(monkeypatch)
    tm.create_task('a')
    failed = tm.fail_task('a', 'model crashed')
    assert failed['status'] == TaskStatus.FAILED.value
    assert failed['error_message'] == 'model crashed'

    tm.create_task('b')
    assert tm.cancel_task('b')['status'] == TaskStatus.CANCELLED.value


def test_unknown_task(monkeypatch):
    tm = _fresh_manager(monkeypatch)
    assert tm.get_task('nope') is None
    assert tm.update_progress('nope', 10, 'x') is None
    assert tm.complete_task('nope') is None
    assert tm.fail_task('nope', 'err') is None
    assert tm.cancel_task('nope') is None


def test_task_manager_redis(monkeypatch, mock_redis_client):
    fake_redis = SimpleNamespace(from_url=lambda url, decode_responses=True: mock_redis_client)
    tm = _fresh_manager(monkeypatch, fake_redis, 'redis://localhost:6379/0')
    tm.create_task('r1')
    tm.update_progress('r1', 50, 'recognizing text')
    raw = mock_redis_client.get('scan-task:r1')
    assert json.loads(raw)['progress_pct'] == 50
    assert mock_redis_client.expirations['scan-task:r1'] == tm_mod.TASK_TTL_SECONDS
    assert tm.get_task('r1')['status'] == TaskStatus.PROCESSING.value


def test_cancelled_task_stays_cancelled(monkeypatch):
    tm = _fresh_manager(monkeypatch)
    tm.create_task('c1')
    tm.update_progress('c1', 50, 'recognizing text')
    tm.cancel_task('c1')

    # the worker finishing extraction after the cancel must not win
    tm.complete_task('c1', {'pairs': [{'term': 'hond', 'definition': 'dog'}]})
    task = tm.get_task('c1')
    assert task['status'] == TaskStatus.CANCELLED.value
    assert task['result'] is None

    tm.fail_task('c1', 'model crashed')
    task = tm.get_task('c1')
    assert task['status'] == TaskStatus.CANCELLED.value
    assert task['error_message'] is None


def test_completed_task_is_not_failed_later(monkeypatch):
    tm = _fresh_manager(monkeypatch)
    tm.create_task('d1')
    tm.complete_task('d1', {'pairs': []})
    assert tm.fail_task('d1', 'late error')['status'] == TaskStatus.COMPLETED.value
    assert tm.get_task('d1')['error_message'] is None
