"""Vocabulary drill service: spaced-repetition scheduling and word-pair extraction."""

__version__ = '1.0.0'
