"""Image preprocessing for text recognition of photographed word lists.

Functions:
- upscale_image: enlarge small photos so the longest side reaches a minimum
- to_grayscale / boost_contrast: luminance conversion and a mild contrast boost
- threshold_image: optional adaptive or Otsu binarization
- segment_lines: split a page into horizontal text-line bands
- preprocess_image: orchestrates the steps and returns original/processed PIL images and metadata

Binarization is off by default: it tends to destroy thin strokes and accents.

Exceptions:
- ImagePreprocessingError

Environment variables:
- PREPROCESSING_THRESHOLD (default false)
- PREPROCESS_MIN_DIMENSION (default 2000)
- PREPROCESS_CONTRAST (default 1.2)
- MIN_IMAGE_DIMENSION (default 50)
- MAX_IMAGE_DIMENSION (default 10000)
"""
from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from vocabdrill.utils import get_logger

LOG = get_logger()

PREPROCESSING_THRESHOLD = os.getenv('PREPROCESSING_THRESHOLD', 'false').lower() in ('1', 'true', 'yes')
PREPROCESS_MIN_DIMENSION = int(os.getenv('PREPROCESS_MIN_DIMENSION', '2000'))
PREPROCESS_CONTRAST = float(os.getenv('PREPROCESS_CONTRAST', '1.2'))
MIN_IMAGE_DIMENSION = int(os.getenv('MIN_IMAGE_DIMENSION', '50'))
MAX_IMAGE_DIMENSION = int(os.getenv('MAX_IMAGE_DIMENSION', '10000'))

# segment_lines tuning
INK_LEVEL = 160
MIN_LINE_HEIGHT = 8
LINE_PADDING = 4


class ImagePreprocessingError(Exception):
    """Raised when preprocessing fails due to invalid/corrupt images or internal errors."""
    pass


def _validate_dimensions(w: int, h: int):
    if w < MIN_IMAGE_DIMENSION or h < MIN_IMAGE_DIMENSION:
        raise ImagePreprocessingError(f'image_too_small: {w}x{h}')
    if w > MAX_IMAGE_DIMENSION or h > MAX_IMAGE_DIMENSION:
        raise ImagePreprocessingError(f'image_too_large: {w}x{h}')


def flatten_on_white(image: Image.Image) -> Image.Image:
    """Composite transparent images onto a white page; always returns RGB."""
    if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
        rgba = image.convert('RGBA')
        page = Image.new('RGBA', rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(page, rgba).convert('RGB')
    return image.convert('RGB')


def upscale_image(image: np.ndarray, min_dimension: int = PREPROCESS_MIN_DIMENSION) -> Tuple[np.ndarray, float]:
    """Scale up so the longest side is at least ``min_dimension``; never scales down.

    Returns:
        (image, scale_factor)
    """
    h, w = image.shape[:2]
    scale = max(1.0, min_dimension / float(max(w, h)))
    if scale == 1.0:
        return image, scale
    resized = cv2.resize(image, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_CUBIC)
    return resized, scale


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    rgb = image[..., :3].astype(np.float32)
    gray = rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114
    return np.clip(gray, 0, 255).astype(np.uint8)


def boost_contrast(gray: np.ndarray, contrast: float = PREPROCESS_CONTRAST) -> np.ndarray:
    level = contrast * 100
    factor = (259 * (level + 255)) / (255 * (259 - level))
    boosted = factor * (gray.astype(np.float32) - 128) + 128
    return np.clip(boosted, 0, 255).astype(np.uint8)


def threshold_image(gray: np.ndarray, method: str = 'adaptive') -> np.ndarray:
    """Binarize a grayscale image with adaptive thresholding or Otsu."""
    if method == 'adaptive':
        return cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 10)
    if method == 'otsu':
        _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return thresh
    raise ImagePreprocessingError(f'Unknown threshold method: {method}')


def segment_lines(gray: np.ndarray, ink_level: int = INK_LEVEL, min_height: int = MIN_LINE_HEIGHT, padding: int = LINE_PADDING) -> List[Tuple[int, int]]:
    """Find horizontal bands that contain text, top to bottom.

    Args:
        gray: grayscale page, dark text on a light background
        ink_level: pixels darker than this count as ink
        min_height: bands thinner than this are treated as noise
        padding: rows added above and below each band

    Returns:
        list of (top, bottom) row ranges, bottom exclusive
    """
    if gray.ndim != 2:
        gray = to_grayscale(gray)
    rows_with_ink = (gray < ink_level).sum(axis=1) > 0
    bands: List[Tuple[int, int]] = []
    top: Optional[int] = None
    for y, has_ink in enumerate(rows_with_ink):
        if has_ink and top is None:
            top = y
        elif not has_ink and top is not None:
            bands.append((top, y))
            top = None
    if top is not None:
        bands.append((top, len(rows_with_ink)))

    height = gray.shape[0]
    return [
        (max(0, t - padding), min(height, b + padding))
        for t, b in bands
        if b - t >= min_height
    ]


def preprocess_image(image_path: str, enable_threshold: Optional[bool] = None, threshold_method: str = 'adaptive') -> Dict[str, Any]:
    """Load a photographed list and prepare it for text recognition.

    Args:
        image_path: path to the local image file
        enable_threshold: binarize after the contrast boost (defaults to PREPROCESSING_THRESHOLD)
        threshold_method: 'adaptive' or 'otsu'

    Returns:
        dict with keys: 'original' (PIL Image), 'processed' (PIL Image, mode L), 'steps_applied' (list), 'metadata' (dict)
    """
    start_total = time.time()
    steps: List[str] = []
    if enable_threshold is None:
        enable_threshold = PREPROCESSING_THRESHOLD
    try:
        pil_img = flatten_on_white(Image.open(image_path))
        w, h = pil_img.size
        _validate_dimensions(w, h)
        metadata: Dict[str, Any] = {'original_width': w, 'original_height': h}

        processed, scale = upscale_image(np.array(pil_img))
        if scale > 1.0:
            steps.append('upscale')
        metadata['scale'] = scale

        processed = to_grayscale(processed)
        steps.append('grayscale')

        processed = boost_contrast(processed)
        steps.append('contrast')

        if enable_threshold:
            processed = threshold_image(processed, method=threshold_method)
            steps.append('threshold')

        processed_pil = Image.fromarray(processed)
        total_ms = int((time.time() - start_total) * 1000)
        metadata.update({
            'processed_width': processed_pil.size[0],
            'processed_height': processed_pil.size[1],
            'processing_time_ms': total_ms,
            'steps_applied': steps,
        })
        LOG.info('preprocess_complete', extra={'steps': steps, 'processing_time_ms': total_ms})
        return {'original': pil_img, 'processed': processed_pil, 'steps_applied': steps, 'metadata': metadata}
    except ImagePreprocessingError:
        raise
    except Exception as e:
        LOG.exception('preprocess_failed', exc_info=True)
        raise ImagePreprocessingError(str(e))
