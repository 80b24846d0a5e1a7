from vocabdrill.ocr import RecognitionCancelledError, RecognitionResult


class MockRecognizer:
    """Stands in for TrOCRRecognizer: returns canned text and reports two progress steps."""

    def __init__(self, text='Hond - Chien\nKat - Chat', error=None):
        self.text = text
        self.error = error
        self.calls = 0
        self.images = []

    def recognize(self, image, on_progress=None, cancel_event=None):
        self.calls += 1
        self.images.append(image)
        if self.error is not None:
            raise self.error
        lines = [l for l in self.text.split('\n') if l.strip()]
        for step in (50, 100):
            if cancel_event is not None and cancel_event.is_set():
                raise RecognitionCancelledError('cancelled')
            if on_progress:
                on_progress(step, 'recognizing text')
        return RecognitionResult(text=self.text, confidence=0.9, line_count=len(lines), model='mock-trocr')
