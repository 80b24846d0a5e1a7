import threading

import pytest

import vocabdrill.ocr.pipeline as pipeline_mod
from vocabdrill.ocr import (
    ImagePreprocessingError,
    RecognitionCancelledError,
    RecognizerInferenceError,
    process_image,
)
from tests.fixtures.mock_recognizer import MockRecognizer


def test_full_scan_reports_progress(sample_image_path, mock_recognizer):
    progress = []
    res = process_image(sample_image_path, mock_recognizer, on_progress=lambda pct, text: progress.append((pct, text)))
    assert [p.term for p in res.pairs] == ['Hond', 'Kat']
    assert res.raw_text == 'Hond - Chien\nKat - Chat'
    assert progress == [
        (0, 'preparing image'),
        (10, 'starting recognition'),
        (50.0, 'recognizing text'),
        (90.0, 'recognizing text'),
        (95, 'detecting word pairs'),
        (100, 'done'),
    ]
    pcts = [p for p, _ in progress]
    assert pcts == sorted(pcts)


def test_recognizer_gets_the_processed_image(sample_image_path, mock_recognizer):
    process_image(sample_image_path, mock_recognizer)
    assert mock_recognizer.calls == 1
    image = mock_recognizer.images[0]
    assert image.mode == 'L'
    assert max(image.size) == 2000


def test_progress_callback_is_optional(sample_image_path, mock_recognizer):
    res = process_image(sample_image_path, mock_recognizer)
    assert len(res.pairs) == 2


def test_cancel_before_recognition(sample_image_path, mock_recognizer):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RecognitionCancelledError):
        process_image(sample_image_path, mock_recognizer, cancel_event=cancel)
    assert mock_recognizer.calls == 0


def test_recognizer_failure_skips_extraction(monkeypatch, sample_image_path):
    def no_extract(text):
        raise AssertionError('extract must not run after a recognition failure')

    monkeypatch.setattr(pipeline_mod, 'extract', no_extract)
    recognizer = MockRecognizer(error=RecognizerInferenceError('model crashed'))
    with pytest.raises(RecognizerInferenceError):
        process_image(sample_image_path, recognizer)


def test_bad_image_fails_before_recognition(tmp_path, mock_recognizer):
    p = tmp_path / 'broken.jpg'
    p.write_bytes(b'\x00\x01')
    with pytest.raises(ImagePreprocessingError):
        process_image(str(p), mock_recognizer)
    assert mock_recognizer.calls == 0
