"""
OCR module for photographed vocabulary lists.
Image preprocessing, TrOCR line recognition and word-pair extraction from recognized text.
"""
from .pair_extractor import (
	CandidatePair,
	ExtractionResult,
	SeparatorRule,
	SEPARATOR_RULES,
	LOW_CONFIDENCE_THRESHOLD,
	extract,
	parse_line,
	is_likely_header,
	clean_token,
	confidence,
	detect_table_format,
)
from .preprocess import preprocess_image, segment_lines, ImagePreprocessingError
from .trocr_handler import (
	TextRecognizer,
	TrOCRRecognizer,
	RecognitionResult,
	RecognizerError,
	RecognizerModelError,
	RecognizerInferenceError,
	RecognitionCancelledError,
)
from .pipeline import process_image

__all__ = [
	'CandidatePair',
	'ExtractionResult',
	'SeparatorRule',
	'SEPARATOR_RULES',
	'LOW_CONFIDENCE_THRESHOLD',
	'extract',
	'parse_line',
	'is_likely_header',
	'clean_token',
	'confidence',
	'detect_table_format',
	'preprocess_image',
	'segment_lines',
	'ImagePreprocessingError',
	'TextRecognizer',
	'TrOCRRecognizer',
	'RecognitionResult',
	'RecognizerError',
	'RecognizerModelError',
	'RecognizerInferenceError',
	'RecognitionCancelledError',
	'process_image',
]
