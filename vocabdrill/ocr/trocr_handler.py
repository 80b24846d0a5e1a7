"""Text recognition for photographed word lists.

TrOCR reads one text line at a time, so a page is first cut into line bands
(see preprocess.segment_lines) and each band is recognized separately. This
gives natural progress reporting and a cancellation point between lines.

Provides:
- TextRecognizer protocol: recognize(image, on_progress=None, cancel_event=None)
- TrOCRRecognizer singleton (get_instance(), recognize(), recognize_line(), cleanup())

Custom exceptions: RecognizerError, RecognizerModelError, RecognizerInferenceError,
RecognitionCancelledError
"""
from __future__ import annotations

import os
import threading
import time
from typing import Callable, List, Optional, Protocol, Tuple

import numpy as np
from PIL import Image
from pydantic import BaseModel

from vocabdrill.utils import get_logger, log_model_load, log_recognition
from .preprocess import segment_lines

LOG = get_logger()

try:
    import torch
    from transformers import TrOCRProcessor, VisionEncoderDecoderModel
except Exception:
    # Defer import errors until used; log on load
    torch = None
    TrOCRProcessor = None
    VisionEncoderDecoderModel = None

TROCR_MODEL = os.getenv('TROCR_MODEL', 'microsoft/trocr-base-printed')
TROCR_DEVICE = os.getenv('TROCR_DEVICE', 'auto')
TROCR_MAX_LENGTH = int(os.getenv('TROCR_MAX_LENGTH', '64'))

ProgressCallback = Callable[[float, str], None]


class RecognizerError(Exception):
    pass


class RecognizerModelError(RecognizerError):
    pass


class RecognizerInferenceError(RecognizerError):
    pass


class RecognitionCancelledError(RecognizerError):
    pass


class RecognitionResult(BaseModel):
    text: str
    confidence: float
    line_count: int
    model: str


class TextRecognizer(Protocol):
    def recognize(self, image: Image.Image, on_progress: Optional[ProgressCallback] = None, cancel_event: Optional[threading.Event] = None) -> RecognitionResult:
        ...


class TrOCRRecognizer:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        raise RuntimeError('Use get_instance() to obtain TrOCRRecognizer')

    @classmethod
    def _load_model(cls):
        start = time.time()
        cache_dir = os.getenv('TRANSFORMERS_CACHE') or None
        try:
            if torch is None:
                raise RecognizerModelError('torch or transformers not installed')
            use_cuda = TROCR_DEVICE != 'cpu' and torch.cuda.is_available()
            device = 'cuda' if use_cuda else 'cpu'
            LOG.info('trocr_load_start', extra={'model': TROCR_MODEL, 'device': device})
            proc = TrOCRProcessor.from_pretrained(TROCR_MODEL, cache_dir=cache_dir)
            model = VisionEncoderDecoderModel.from_pretrained(TROCR_MODEL, cache_dir=cache_dir)
            model.to(torch.device(device))
            model.eval()
            log_model_load(TROCR_MODEL, device, int((time.time() - start) * 1000))
            return {'model': model, 'processor': proc, 'device': device, 'model_name': TROCR_MODEL}
        except RecognizerModelError:
            LOG.exception('trocr_model_load_failed', exc_info=True)
            raise
        except Exception as e:
            LOG.exception('trocr_model_load_failed', exc_info=True)
            raise RecognizerModelError(str(e))

    @classmethod
    def get_instance(cls) -> 'TrOCRRecognizer':
        if cls._instance is not None:
            return cls._instance
        with cls._lock:
            if cls._instance is None:
                data = cls._load_model()
                inst = object.__new__(cls)
                inst._model = data['model']
                inst._processor = data['processor']
                inst._device = data['device']
                inst._model_name = data['model_name']
                cls._instance = inst
        return cls._instance

    @property
    def model_name(self) -> str:
        return self._model_name

    def recognize_line(self, image: Image.Image) -> Tuple[str, float]:
        """Recognize a single text line; returns (text, mean max-token probability)."""
        if image.mode != 'RGB':
            image = image.convert('RGB')
        pixel_values = self._processor(images=image, return_tensors='pt').pixel_values
        if self._device == 'cuda':
            pixel_values = pixel_values.to('cuda')
        with torch.no_grad():
            outputs = self._model.generate(pixel_values, max_length=TROCR_MAX_LENGTH, output_scores=True, return_dict_in_generate=True)
        decoded = self._processor.batch_decode(outputs.sequences, skip_special_tokens=True)
        text = decoded[0] if decoded else ''
        scores = getattr(outputs, 'scores', None)
        if not scores:
            return text, 1.0
        max_probs = [torch.nn.functional.softmax(step, dim=-1)[0].max().item() for step in scores]
        return text, float(sum(max_probs) / len(max_probs))

    def recognize(self, image: Image.Image, on_progress: Optional[ProgressCallback] = None, cancel_event: Optional[threading.Event] = None) -> RecognitionResult:
        start = time.time()
        if image is None:
            raise RecognizerInferenceError('No image provided')
        gray = np.array(image.convert('L'))
        bands = segment_lines(gray)
        width = image.size[0]

        lines: List[str] = []
        confidences: List[float] = []
        for i, (top, bottom) in enumerate(bands):
            if cancel_event is not None and cancel_event.is_set():
                LOG.info('recognition_cancelled', extra={'lines_done': i, 'line_count': len(bands)})
                raise RecognitionCancelledError(f'cancelled after {i} of {len(bands)} lines')
            try:
                text, conf = self.recognize_line(image.crop((0, top, width, bottom)))
            except Exception as e:
                LOG.exception('trocr_inference_failed', exc_info=True)
                raise RecognizerInferenceError(str(e))
            if text.strip():
                lines.append(text.strip())
                confidences.append(conf)
            if on_progress:
                on_progress((i + 1) / len(bands) * 100, 'recognizing text')

        if not bands and on_progress:
            on_progress(100, 'recognizing text')

        full_text = '\n'.join(lines)
        mean_conf = float(sum(confidences) / len(confidences)) if confidences else 0.0
        duration_ms = int((time.time() - start) * 1000)
        log_recognition(self._model_name, len(bands), len(full_text), mean_conf, duration_ms)
        return RecognitionResult(text=full_text, confidence=mean_conf, line_count=len(lines), model=self._model_name)

    def cleanup(self):
        if hasattr(self, '_model'):
            del self._model
        if hasattr(self, '_processor'):
            del self._processor
        if torch is not None and torch.cuda.is_available():
            torch.cuda.empty_cache()
        TrOCRRecognizer._instance = None
        LOG.info('trocr_cleanup')
