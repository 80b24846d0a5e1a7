import threading

import pytest

import vocabdrill.ocr.trocr_handler as handler_mod
from vocabdrill.ocr.trocr_handler import (
    RecognitionCancelledError,
    RecognizerInferenceError,
    RecognizerModelError,
    TrOCRRecognizer,
)
from tests.fixtures.sample_data import draw_lines


@pytest.fixture
def recognizer(monkeypatch):
    monkeypatch.setattr(TrOCRRecognizer, '_instance', None)
    monkeypatch.setattr(TrOCRRecognizer, '_load_model', classmethod(lambda cls: {
        'model': object(),
        'processor': object(),
        'device': 'cpu',
        'model_name': 'microsoft/trocr-base-printed',
    }))
    inst = TrOCRRecognizer.get_instance()
    yield inst
    TrOCRRecognizer._instance = None


def _script(monkeypatch, inst, outputs):
    it = iter(outputs)
    seen = []

    def fake_line(image):
        seen.append(image.size)
        return next(it)

    monkeypatch.setattr(inst, 'recognize_line', fake_line)
    return seen


def test_direct_construction_is_refused():
    with pytest.raises(RuntimeError):
        TrOCRRecognizer()


def test_get_instance_is_a_singleton(recognizer):
    assert TrOCRRecognizer.get_instance() is recognizer
    assert recognizer.model_name == 'microsoft/trocr-base-printed'


def test_recognize_reads_each_line(monkeypatch, recognizer):
    seen = _script(monkeypatch, recognizer, [('Hond - Chien', 0.9), ('Kat - Chat', 0.7)])
    progress = []
    res = recognizer.recognize(draw_lines(), on_progress=lambda pct, text: progress.append((pct, text)))
    assert res.text == 'Hond - Chien\nKat - Chat'
    assert res.line_count == 2
    assert res.confidence == pytest.approx(0.8)
    assert res.model == 'microsoft/trocr-base-printed'
    assert progress == [(50.0, 'recognizing text'), (100.0, 'recognizing text')]
    # each crop spans the full page width
    assert all(w == 200 for w, _ in seen)


def test_blank_lines_are_skipped(monkeypatch, recognizer):
    _script(monkeypatch, recognizer, [('  ', 0.2), ('Kat - Chat', 0.9)])
    res = recognizer.recognize(draw_lines())
    assert res.text == 'Kat - Chat'
    assert res.line_count == 1
    assert res.confidence == pytest.approx(0.9)


def test_blank_page(monkeypatch, recognizer):
    _script(monkeypatch, recognizer, [])
    progress = []
    res = recognizer.recognize(draw_lines(bands=()), on_progress=lambda pct, text: progress.append(pct))
    assert res.text == ''
    assert res.confidence == 0.0
    assert progress == [100]


def test_cancel_between_lines(monkeypatch, recognizer):
    cancel = threading.Event()
    it = iter([('Hond - Chien', 0.9), ('Kat - Chat', 0.9)])

    def fake_line(image):
        cancel.set()
        return next(it)

    monkeypatch.setattr(recognizer, 'recognize_line', fake_line)
    with pytest.raises(RecognitionCancelledError):
        recognizer.recognize(draw_lines(), cancel_event=cancel)


def test_inference_errors_are_wrapped(monkeypatch, recognizer):
    def broken(image):
        raise ValueError('CUDA out of memory')

    monkeypatch.setattr(recognizer, 'recognize_line', broken)
    with pytest.raises(RecognizerInferenceError):
        recognizer.recognize(draw_lines())


def test_missing_image(recognizer):
    with pytest.raises(RecognizerInferenceError):
        recognizer.recognize(None)


def test_load_without_torch(monkeypatch):
    monkeypatch.setattr(handler_mod, 'torch', None)
    with pytest.raises(RecognizerModelError):
        TrOCRRecognizer._load_model()


def test_cleanup_resets_singleton(monkeypatch, recognizer):
    monkeypatch.setattr(handler_mod, 'torch', None)
    recognizer.cleanup()
    assert TrOCRRecognizer._instance is None
