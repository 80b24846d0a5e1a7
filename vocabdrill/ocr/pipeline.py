"""Photographed list to candidate word pairs: preprocess, recognize, extract.

Progress is reported as (percentage, status text):
0 preparing image, 10 starting recognition, 10-90 recognition, 95 detecting
word pairs, 100 done.
"""
from __future__ import annotations

import threading
import time
from typing import Optional

from vocabdrill.utils import get_logger
from .pair_extractor import ExtractionResult, extract
from .preprocess import preprocess_image
from .trocr_handler import ProgressCallback, RecognitionCancelledError, TextRecognizer

LOG = get_logger()

RECOGNITION_START_PCT = 10
RECOGNITION_SPAN_PCT = 80
EXTRACTION_PCT = 95


def _report(on_progress: Optional[ProgressCallback], pct: float, status: str):
    if on_progress:
        on_progress(pct, status)


def process_image(image_path: str, recognizer: TextRecognizer, on_progress: Optional[ProgressCallback] = None, cancel_event: Optional[threading.Event] = None) -> ExtractionResult:
    """Run the full scan pipeline on a local image file.

    Preprocessing and recognition errors propagate unchanged; extraction
    itself never fails.
    """
    start = time.time()
    _report(on_progress, 0, 'preparing image')
    prepared = preprocess_image(image_path)

    if cancel_event is not None and cancel_event.is_set():
        raise RecognitionCancelledError('cancelled before recognition')

    _report(on_progress, RECOGNITION_START_PCT, 'starting recognition')

    def _recognition_progress(pct: float, status: str):
        _report(on_progress, RECOGNITION_START_PCT + pct * RECOGNITION_SPAN_PCT / 100, status)

    recognized = recognizer.recognize(prepared['processed'], on_progress=_recognition_progress, cancel_event=cancel_event)

    _report(on_progress, EXTRACTION_PCT, 'detecting word pairs')
    result = extract(recognized.text)

    _report(on_progress, 100, 'done')
    LOG.info('scan_complete', extra={
        'steps': prepared['steps_applied'],
        'recognition_confidence': recognized.confidence,
        'pair_count': len(result.pairs),
        'duration_ms': int((time.time() - start) * 1000),
    })
    return result
