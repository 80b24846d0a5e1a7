import os
import random
import tempfile
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from pathlib import Path

from dotenv import load_dotenv

# load test env first
env_path = Path(__file__).resolve().parents[1] / '.env.test'
if env_path.exists():
    load_dotenv(env_path)

os.environ.setdefault('TESTING', '1')
os.environ.setdefault('LOG_FILE_PATH', tempfile.mkdtemp(prefix='vocabdrill-logs-'))
# storage and task tracking stay in-process for tests
os.environ['REDIS_URL'] = ''


@pytest.fixture(autouse=True)
def silence_logger(monkeypatch):
    # Patch any project logger acquisition to avoid noisy logs
    import vocabdrill.utils.logger as logger_mod
    monkeypatch.setattr(logger_mod, 'get_logger', lambda *a, **k: MagicMock())
    yield


@pytest.fixture(autouse=True)
def isolated_storage():
    from vocabdrill.storage import InMemoryRepository, set_repository
    from vocabdrill.utils import TaskManager
    repo = InMemoryRepository()
    set_repository(repo)
    TaskManager._instance = None
    yield repo
    set_repository(None)
    TaskManager._instance = None


@pytest.fixture
def repo(isolated_storage):
    return isolated_storage


@pytest.fixture
def now():
    return datetime(2024, 3, 4, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def sample_image():
    from tests.fixtures.sample_data import draw_lines
    return draw_lines()


@pytest.fixture
def sample_image_path(sample_image, tmp_path):
    path = tmp_path / 'list.png'
    sample_image.save(path, format='PNG')
    return str(path)


@pytest.fixture
def sample_image_bytes(sample_image):
    from io import BytesIO
    buf = BytesIO()
    sample_image.save(buf, format='PNG')
    buf.seek(0)
    return buf.getvalue()


@pytest.fixture
def mock_recognizer():
    from tests.fixtures.mock_recognizer import MockRecognizer
    return MockRecognizer()


@pytest.fixture
def mock_redis_client():
    from tests.fixtures.mock_redis import MockRedisClient
    return MockRedisClient()


@pytest.fixture
def list_service(repo):
    from vocabdrill.practice import ListService
    return ListService(repo)


@pytest.fixture
def french_list(list_service, now):
    from tests.fixtures.sample_data import word_pairs
    word_list = list_service.create_list('Frans H1', 'fr', 'nl', now=now)
    words = list_service.add_words(word_list.id, word_pairs(), now=now)
    return word_list, words
