import os
import time
import signal
import asyncio
import tempfile
import threading
import uuid
import random
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from vocabdrill.flashcards import (
    MasteryLevel,
    UserRating,
    due_text,
    estimated_intervals,
    mastery_level,
    mastery_score,
)
from vocabdrill.ocr import (
    ExtractionResult,
    ImagePreprocessingError,
    RecognitionCancelledError,
    RecognizerError,
    TextRecognizer,
    TrOCRRecognizer,
    extract,
    process_image,
)
from vocabdrill.practice import (
    InvalidWordError,
    ListNotFoundError,
    ListService,
    PracticeSessionError,
    PracticeSessionRunner,
    SessionNotFoundError,
    StatsService,
    WordNotFoundError,
)
from vocabdrill.storage import PracticeDirection, RepositoryError, Word, get_repository
from vocabdrill.utils import TaskManager, get_logger, log_error, log_request, log_scan_progress, set_request_context

LOG = get_logger()


class Settings(BaseSettings):
    HOST: str = '0.0.0.0'
    PORT: int = 8000
    ENVIRONMENT: str = 'development'
    LOG_LEVEL: str = 'INFO'
    CORS_ORIGIN: str = '*'
    MAX_UPLOAD_MB: int = 15
    REDIS_REQUIRED_FOR_READY: bool = False
    TROCR_WARMUP: bool = False


settings = Settings()

app = FastAPI(title='Vocab Drill Service', version='1.0.0', description='Spaced-repetition drills and word-pair extraction from photographed lists')

origins = [o.strip() for o in settings.CORS_ORIGIN.split(',') if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# scan task id -> cancellation flag checked between recognized lines
_cancel_events: Dict[str, threading.Event] = {}
_rng = random.Random()


def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', None) or os.urandom(8).hex()


def _error(status_code: int, message: str, request: Request) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'success': False, 'error': {'message': message, 'request_id': _request_id(request)}})


@app.middleware('http')
async def add_request_id_and_logging(request: Request, call_next):
    request_id = request.headers.get('x-request-id') or os.urandom(8).hex()
    request.state.request_id = request_id
    set_request_context(request_id)
    start = time.time()
    LOG.info('http_request_start', extra={'method': request.method, 'path': request.url.path, 'request_id': request_id})
    try:
        response: Response = await call_next(request)
    except Exception:
        LOG.exception('Unhandled exception in request', exc_info=True)
        body = {'success': False, 'error': {'message': 'Internal server error', 'request_id': request_id}}
        return JSONResponse(status_code=500, content=body, headers={'X-Request-ID': request_id})
    duration = int((time.time() - start) * 1000)
    log_request(request_id, request.method, request.url.path, response.status_code, duration, ip=request.client.host if request.client else None)
    response.headers['X-Request-ID'] = request_id
    return response


@app.exception_handler(ListNotFoundError)
@app.exception_handler(WordNotFoundError)
@app.exception_handler(SessionNotFoundError)
async def not_found_handler(request: Request, exc: Exception):
    return _error(404, str(exc), request)


@app.exception_handler(PracticeSessionError)
async def session_conflict_handler(request: Request, exc: PracticeSessionError):
    return _error(409, str(exc), request)


@app.exception_handler(InvalidWordError)
async def invalid_word_handler(request: Request, exc: InvalidWordError):
    return _error(422, str(exc), request)


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError):
    log_error(exc, {'path': request.url.path})
    return _error(503, 'Storage unavailable', request)


def _get_recognizer() -> TextRecognizer:
    return TrOCRRecognizer.get_instance()


def _lists() -> ListService:
    return ListService(get_repository())


def _runner() -> PracticeSessionRunner:
    return PracticeSessionRunner(get_repository(), rng=_rng)


@app.get('/health')
async def health():
    return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat(), 'service': 'vocabdrill'}


@app.get('/ready')
async def ready():
    repo = get_repository()
    storage = 'ok' if repo.ping() else 'error: storage unreachable'
    services = {'storage': storage, 'storage_backend': type(repo).__name__}
    ready_ok = True
    if settings.REDIS_REQUIRED_FOR_READY and (storage.startswith('error') or services['storage_backend'] != 'RedisRepository'):
        ready_ok = False
    status_code = 200 if ready_ok else 503
    return JSONResponse(status_code=status_code, content={'status': 'ready' if ready_ok else 'not ready', 'services': services})


# ---- extraction ----

class ExtractRequest(BaseModel):
    text: str = Field(..., description='Recognized text, one pair per line')


@app.post('/extract', response_model=ExtractionResult)
async def extract_pairs(req: ExtractRequest):
    return extract(req.text)


def _run_scan(task_id: str, image_path: str, cancel_event: threading.Event):
    tm = TaskManager.get_instance()

    def _progress(pct: float, status_text: str):
        tm.update_progress(task_id, pct, status_text)
        log_scan_progress(task_id, int(pct), status_text)

    try:
        # first call loads the model
        recognizer = _get_recognizer()
        result = process_image(image_path, recognizer, on_progress=_progress, cancel_event=cancel_event)
        tm.complete_task(task_id, result.model_dump(mode='json'))
    except RecognitionCancelledError:
        tm.cancel_task(task_id)
    except (ImagePreprocessingError, RecognizerError) as e:
        LOG.warning('scan_failed', extra={'task_id': task_id, 'error': str(e)})
        tm.fail_task(task_id, str(e))
    except Exception as e:
        LOG.exception('scan_unexpected_error', exc_info=True)
        tm.fail_task(task_id, f'unexpected error: {e}')
    finally:
        _cancel_events.pop(task_id, None)
        try:
            os.unlink(image_path)
        except OSError:
            LOG.warning('scan_tempfile_cleanup_failed', extra={'path': image_path})


@app.post('/scan', status_code=202)
async def scan(background_tasks: BackgroundTasks, request: Request, image: UploadFile = File(...)):
    data = await image.read()
    if not data:
        return _error(400, 'Empty upload', request)
    if len(data) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        return _error(413, f'Image larger than {settings.MAX_UPLOAD_MB} MB', request)

    suffix = os.path.splitext(image.filename or '')[1] or '.img'
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as fp:
        fp.write(data)
        image_path = fp.name

    task_id = uuid.uuid4().hex
    tm = TaskManager.get_instance()
    tm.create_task(task_id, metadata={'filename': image.filename, 'size_bytes': len(data)})
    cancel_event = threading.Event()
    _cancel_events[task_id] = cancel_event
    background_tasks.add_task(_run_scan, task_id, image_path, cancel_event)
    return {'success': True, 'task_id': task_id, 'status': 'pending'}


@app.get('/scan/status/{task_id}')
async def scan_status(task_id: str, request: Request):
    task = TaskManager.get_instance().get_task(task_id)
    if not task:
        return _error(404, 'Task not found', request)
    return {
        'success': True,
        'task_id': task_id,
        'status': task.get('status'),
        'progress_pct': task.get('progress_pct'),
        'status_text': task.get('status_text'),
        'result': task.get('result'),
        'error_message': task.get('error_message'),
        'created_at': task.get('created_at'),
        'updated_at': task.get('updated_at'),
    }


@app.post('/scan/{task_id}/cancel')
async def scan_cancel(task_id: str, request: Request):
    tm = TaskManager.get_instance()
    if not tm.get_task(task_id):
        return _error(404, 'Task not found', request)
    event = _cancel_events.get(task_id)
    if event is not None:
        event.set()
    task = tm.cancel_task(task_id)
    return {'success': True, 'task_id': task_id, 'status': task.get('status')}


# ---- lists and words ----

class ListCreateRequest(BaseModel):
    name: str
    source_language: str = ''
    target_language: str = ''
    description: Optional[str] = None


class WordCreateRequest(BaseModel):
    term: str
    definition: str


class ImportPair(BaseModel):
    term: str
    definition: str
    confidence: Optional[float] = None


class ImportRequest(BaseModel):
    pairs: List[ImportPair]


class WordDetail(BaseModel):
    word: Word
    mastery: int
    mastery_level: MasteryLevel
    due_text: str
    estimated_intervals: Dict[UserRating, str]


@app.post('/lists', status_code=201)
async def create_list(req: ListCreateRequest):
    return _lists().create_list(req.name, req.source_language, req.target_language, req.description)


@app.get('/lists')
async def all_lists():
    return _lists().all_lists()


@app.get('/lists/{list_id}')
async def get_list(list_id: str):
    return _lists().get_list(list_id)


@app.delete('/lists/{list_id}')
async def delete_list(list_id: str):
    removed = _lists().delete_list(list_id)
    return {'success': True, 'list_id': list_id, 'words_deleted': removed}


@app.get('/lists/{list_id}/words')
async def list_words(list_id: str):
    return _lists().words_in_list(list_id)


@app.post('/lists/{list_id}/words', status_code=201)
async def add_word(list_id: str, req: WordCreateRequest):
    return _lists().add_word(list_id, req.term, req.definition)


@app.post('/lists/{list_id}/import', status_code=201)
async def import_pairs(list_id: str, req: ImportRequest):
    words = _lists().import_pairs(list_id, [p.model_dump() for p in req.pairs])
    return {'success': True, 'imported': len(words), 'words': words}


@app.get('/words/{word_id}', response_model=WordDetail)
async def word_detail(word_id: str):
    word = _lists().get_word(word_id)
    score = mastery_score(word)
    return WordDetail(
        word=word,
        mastery=score,
        mastery_level=mastery_level(score),
        due_text=due_text(word.next_review_at),
        estimated_intervals=estimated_intervals(word),
    )


@app.delete('/words/{word_id}')
async def delete_word(word_id: str):
    _lists().delete_word(word_id)
    return {'success': True, 'word_id': word_id}


# ---- practice ----

class SessionStartRequest(BaseModel):
    list_id: Optional[str] = None
    direction: PracticeDirection = PracticeDirection.TERM_TO_DEF


class RateRequest(BaseModel):
    word_id: str
    rating: UserRating


class AnswerRequest(BaseModel):
    answer: str


class PickRequest(BaseModel):
    choice: str
    response_ms: int = Field(..., ge=0)


@app.post('/practice/sessions', status_code=201)
async def start_session(req: SessionStartRequest):
    runner = _runner()
    session = runner.start(req.list_id, req.direction)
    return {'session': session, 'card': runner.current_card(session.id)}


@app.get('/practice/sessions/{session_id}/card')
async def session_card(session_id: str):
    runner = _runner()
    return {'session': runner.get_session(session_id), 'card': runner.current_card(session_id)}


@app.post('/practice/sessions/{session_id}/rate')
async def rate_card(session_id: str, req: RateRequest):
    return _runner().rate(session_id, req.word_id, req.rating)


@app.post('/practice/sessions/{session_id}/answer')
async def answer_card(session_id: str, req: AnswerRequest):
    return _runner().answer(session_id, req.answer)


@app.get('/practice/sessions/{session_id}/choices')
async def card_choices(session_id: str):
    return _runner().choices(session_id)


@app.post('/practice/sessions/{session_id}/pick')
async def pick_choice(session_id: str, req: PickRequest):
    return _runner().pick(session_id, req.choice, req.response_ms)


@app.post('/practice/sessions/{session_id}/restart')
async def restart_session(session_id: str):
    runner = _runner()
    session = runner.restart(session_id)
    return {'session': session, 'card': runner.current_card(session.id)}


@app.get('/stats')
async def stats():
    return StatsService(get_repository()).summary()


@app.on_event('startup')
async def on_startup():
    LOG.info('vocabdrill service starting', extra={'env': settings.ENVIRONMENT})
    repo = get_repository()
    LOG.info('storage ready', extra={'backend': type(repo).__name__})
    TaskManager.get_instance()
    if settings.TROCR_WARMUP:
        try:
            await asyncio.to_thread(TrOCRRecognizer.get_instance)
            LOG.info('TrOCR warmup complete')
        except RecognizerError as e:
            LOG.warning('TrOCR warmup failed', extra={'error': str(e)})


@app.on_event('shutdown')
async def on_shutdown():
    LOG.info('vocabdrill service shutting down')
    for event in list(_cancel_events.values()):
        event.set()


def _install_signal_handlers(loop: Optional[asyncio.AbstractEventLoop] = None):
    if loop is None:
        loop = asyncio.get_event_loop()

    def _handler(signum, frame):
        LOG.info('Received shutdown signal', extra={'signal': signum})
        loop.call_soon_threadsafe(loop.stop)

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


if __name__ == '__main__':
    import uvicorn

    _install_signal_handlers()
    workers = int(os.getenv('WORKERS', '1'))
    if settings.ENVIRONMENT == 'development':
        workers = 1
    reload_enabled = (settings.ENVIRONMENT == 'development') and (workers == 1)

    uvicorn.run(
        'main:app',
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=reload_enabled,
        workers=workers,
    )
