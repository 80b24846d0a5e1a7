import os
import sys
import logging
import pathlib
import contextvars
from logging.handlers import RotatingFileHandler
from pythonjsonlogger import jsonlogger

_request_ctx_var = contextvars.ContextVar('request_ctx', default={})


def set_request_context(request_id: str):
    _request_ctx_var.set({'request_id': request_id})


def get_request_context():
    return _request_ctx_var.get()


def _inject_request_context(record):
    ctx = get_request_context()
    if not hasattr(record, 'request_id'):
        record.request_id = ctx.get('request_id')
    return True


def get_logger(name: str = 'vocabdrill'):
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')
    # relative to the working directory unless absolute
    LOG_FILE_PATH = os.getenv('LOG_FILE_PATH', 'logs')
    LOG_MAX_SIZE = int(os.getenv('LOG_MAX_SIZE', str(10 * 1024 * 1024)))
    LOG_MAX_FILES = int(os.getenv('LOG_MAX_FILES', '7'))

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL.upper())
    log_path = pathlib.Path(LOG_FILE_PATH)
    if not log_path.is_absolute():
        log_path = pathlib.Path(os.getcwd()) / log_path
    log_path.mkdir(parents=True, exist_ok=True)

    ch = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == 'json':
        fmt = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s')
    else:
        fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    combined = RotatingFileHandler(log_path / 'combined.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
    combined.setFormatter(fmt)
    logger.addHandler(combined)

    errors = RotatingFileHandler(log_path / 'error.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
    errors.setLevel(logging.ERROR)
    errors.setFormatter(fmt)
    logger.addHandler(errors)

    f = logging.Filter()
    f.filter = _inject_request_context
    logger.addFilter(f)

    logging.captureWarnings(True)

    return logger


def log_request(request_id: str, method: str, path: str, status_code: int, duration_ms: float, ip: str = None):
    logger = get_logger()
    logger.info('http_request', extra={'request_id': request_id, 'method': method, 'path': path, 'status_code': status_code, 'duration_ms': duration_ms, 'ip': ip})


def log_error(error: Exception, context: dict = None):
    logger = get_logger()
    logger.exception('error', exc_info=error, extra=context or {})


def log_model_load(model_name: str, device: str, load_time_ms: float):
    logger = get_logger()
    logger.info('model_load', extra={'model': model_name, 'device': device, 'load_time_ms': load_time_ms})


def log_recognition(model: str, line_count: int, text_length: int, confidence: float, duration_ms: float):
    logger = get_logger()
    logger.info('recognition_result', extra={'model': model, 'line_count': line_count, 'text_length': text_length, 'confidence': confidence, 'duration_ms': duration_ms})


def log_extraction(pair_count: int, unparsed_count: int, low_confidence_count: int, duration_ms: float):
    logger = get_logger()
    logger.info('pair_extraction', extra={
        'pair_count': pair_count,
        'unparsed_count': unparsed_count,
        'low_confidence_count': low_confidence_count,
        'duration_ms': duration_ms,
    })


def log_review(word_id: str, rating: str, interval_days: int, ease_factor: float, repetitions: int):
    logger = get_logger()
    logger.info('word_reviewed', extra={
        'word_id': word_id,
        'rating': rating,
        'interval_days': interval_days,
        'ease_factor': ease_factor,
        'repetitions': repetitions,
    })


def log_scan_progress(task_id: str, progress_pct: int, status_text: str):
    logger = get_logger()
    logger.info('scan_progress', extra={'task_id': task_id, 'progress_pct': progress_pct, 'status_text': status_text})
