"""Word-pair extraction from recognized text.

Turns the noisy multi-line output of text recognition into candidate
term/definition pairs with a confidence score, plus the content lines that
no strategy could parse. Parsing is best effort, never an error:

- header lines (short label lines, column titles) are dropped
- separator rules are tried in a fixed order and the first usable split wins
- a fixed-width two-column layout is the fallback, at lower confidence
- confidence is a product of independent penalties, so low-scoring pairs can
  be triaged by a human before they become words
"""
from __future__ import annotations

import re
import time
from typing import Callable, List, NamedTuple, Optional, Pattern, Tuple

from pydantic import BaseModel, Field, computed_field

from vocabdrill.utils import log_extraction

LOW_CONFIDENCE_THRESHOLD = 0.7
TABLE_CONFIDENCE = 0.7
HEADER_MAX_LEN = 15
MIN_UNPARSED_LEN = 3


class SeparatorRule(NamedTuple):
    name: str
    pattern: Pattern[str]


# Order matters: more specific separators first.
SEPARATOR_RULES: Tuple[SeparatorRule, ...] = (
    SeparatorRule('spaced_dash', re.compile(r'\s+[-–—]\s+')),
    SeparatorRule('dash', re.compile(r'\s*[-–—]\s*')),
    SeparatorRule('equals', re.compile(r'\s*=\s*')),
    SeparatorRule('colon', re.compile(r'\s*:\s*')),
    SeparatorRule('pipe', re.compile(r'\s*\|\s*')),
    SeparatorRule('tab', re.compile(r'\t+')),
    SeparatorRule('wide_gap', re.compile(r'\s{4,}')),
)

HEADER_WORDS: Tuple[str, ...] = (
    'frans', 'nederlands', 'engels', 'duits', 'spaans', 'woord', 'betekenis', 'vertaling',
    'french', 'dutch', 'english', 'german', 'spanish', 'word', 'term', 'meaning', 'translation', 'definition',
)

_ORDINAL_RE = re.compile(r'^\d+\.\s*')
_BULLET_RE = re.compile(r'^[•·∙○●◦▪▫■□\-*]+\s*')
# letters and digits in any script, whitespace and a small punctuation allow-list
_DISALLOWED_RE = re.compile(r"[^\w\s\-'.,()]|_")
_TABLE_RE = re.compile(r'^(.{2,30})\s{4,}(.{2,})$')
_DIGIT_RE = re.compile(r'\d')
_UNUSUAL_CHAR_RE = re.compile(r"[^a-zA-ZàâäéèêëïîôùûüÿçœæÀÂÄÉÈÊËÏÎÔÙÛÜŸÇŒÆ\s\-']")


class CandidatePair(BaseModel):
    term: str
    definition: str
    confidence: float = Field(ge=0.0, le=1.0)

    @computed_field
    @property
    def needs_review(self) -> bool:
        return self.confidence < LOW_CONFIDENCE_THRESHOLD


class ExtractionResult(BaseModel):
    raw_text: str
    pairs: List[CandidatePair] = Field(default_factory=list)
    unparsed_lines: List[str] = Field(default_factory=list)


def clean_token(raw: str) -> str:
    s = _ORDINAL_RE.sub('', raw.strip(), count=1)
    s = _BULLET_RE.sub('', s, count=1)
    s = _DISALLOWED_RE.sub('', s)
    return s.strip()


# (penalty applies?, multiplier); all multiplicative, so order is irrelevant
ConfidenceCheck = Tuple[Callable[[str, str], bool], float]

CONFIDENCE_CHECKS: Tuple[ConfidenceCheck, ...] = (
    (lambda t, d: len(t) < 2 or len(d) < 2, 0.5),
    (lambda t, d: bool(_DIGIT_RE.search(t) or _DIGIT_RE.search(d)), 0.7),
    (lambda t, d: bool(_UNUSUAL_CHAR_RE.search(t + d)), 0.8),
)


def confidence(term: str, definition: str) -> float:
    score = 1.0
    for applies, multiplier in CONFIDENCE_CHECKS:
        if applies(term, definition):
            score *= multiplier
    return round(score, 2)


def _split_with(rule: SeparatorRule, line: str) -> Optional[CandidatePair]:
    parts = rule.pattern.split(line)
    if len(parts) < 2:
        return None
    term = clean_token(parts[0])
    definition = clean_token(' '.join(parts[1:]))
    if not term or not definition:
        return None
    return CandidatePair(term=term, definition=definition, confidence=confidence(term, definition))


def detect_table_format(line: str) -> Optional[CandidatePair]:
    """Two fixed-width columns separated by a wide gap."""
    m = _TABLE_RE.match(line)
    if not m:
        return None
    term = clean_token(m.group(1))
    definition = clean_token(m.group(2))
    if term and definition:
        return CandidatePair(term=term, definition=definition, confidence=TABLE_CONFIDENCE)
    return None


def parse_line(line: str) -> Optional[CandidatePair]:
    for rule in SEPARATOR_RULES:
        pair = _split_with(rule, line)
        if pair is not None:
            return pair
    return detect_table_format(line)


def is_likely_header(line: str) -> bool:
    clean = _ORDINAL_RE.sub('', line, count=1).strip()

    if len(clean) < HEADER_MAX_LEN and not any(rule.pattern.search(clean) for rule in SEPARATOR_RULES):
        if '-' not in clean and '=' not in clean:
            return True

    lower = clean.lower()
    return any(lower == w or lower.startswith(w + ' ') or lower.endswith(' ' + w) for w in HEADER_WORDS)


def extract(raw_text: str) -> ExtractionResult:
    """Parse every content line of ``raw_text`` into candidate pairs.

    Lines are trimmed and empty ones skipped; headers are dropped silently.
    Lines that fail every strategy are reported in ``unparsed_lines`` when
    they carry more than two characters.
    """
    start = time.time()
    lines = [line.strip() for line in (raw_text or '').split('\n')]

    pairs: List[CandidatePair] = []
    unparsed: List[str] = []
    for line in lines:
        if not line or is_likely_header(line):
            continue
        pair = parse_line(line)
        if pair is not None:
            pairs.append(pair)
        elif len(line) >= MIN_UNPARSED_LEN:
            unparsed.append(line)

    duration_ms = int((time.time() - start) * 1000)
    log_extraction(len(pairs), len(unparsed), sum(1 for p in pairs if p.needs_review), duration_ms)
    return ExtractionResult(raw_text=raw_text or '', pairs=pairs, unparsed_lines=unparsed)
