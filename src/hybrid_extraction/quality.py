"""
Text Layer Quality Scorer
=========================

Scores the embedded text of a single page and decides whether it is
reliable enough to skip OCR.

The score starts at 1.0 and is adjusted by many weak, independent signals
(character-class ratios, line shape, lexical diversity, structure). Each
triggered signal records a ``ReasonCode``. The magnitudes are tuning
constants, not a trained model.

Decision bands:
    | Score          | Decision             |
    |----------------|----------------------|
    | < 0.50         | needs OCR            |
    | 0.50 - < 0.70  | maybe OCR            |
    | >= 0.70        | text layer is fine   |

Usage:
    from hybrid_extraction.quality import score

    evaluation = score(page_text, min_words_threshold=20, page_number=3)
    if evaluation.needs_ocr:
        ...
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable

from hybrid_extraction.models import PageEvaluation, ReasonCode

NEEDS_OCR_BELOW = 0.50
MAYBE_OCR_BELOW = 0.70

SHORT_LINE_CHARS = 20

_INLINE_WHITESPACE = re.compile(r"[ \t]+")
_EXCESS_BLANK_LINES = re.compile(r"\n{4,}")
_BULLET_LINE = re.compile(r"^(?:[-*•·▪◦‣–]|\(?\d{1,3}[.)]|\(?[a-z][.)])\s+")
_REPEATED_RUN = re.compile(r"(\S)\1{4,}")
_MATH_SYMBOL = re.compile(r"[∑∫√∞≈≠≤≥±×÷∂∇∆πθλμσΩ]")
_EQUATION = re.compile(r"\w\s*[=<>^]\s*[\w(]")


@dataclass(frozen=True)
class TextFeatures:
    """Measurements taken from normalized page text."""

    word_count: int
    char_count: int
    alpha_ratio: float
    digit_ratio: float
    punct_ratio: float
    space_ratio: float
    garbage_ratio: float
    line_count: int
    avg_line_length: float
    short_line_ratio: float
    unique_word_ratio: float
    bullet_line_ratio: float
    math_clusters: int
    repeated_runs: int
    single_char_word_ratio: float


@dataclass(frozen=True)
class Adjustment:
    """One guarded score adjustment. Negative delta is a penalty."""

    reason: ReasonCode
    delta: float
    applies: Callable[[TextFeatures, int], bool]


# Penalties first, then bonuses. Order is part of the contract: it fixes the
# order of ``PageEvaluation.reasons``.
ADJUSTMENTS: tuple[Adjustment, ...] = (
    Adjustment(
        ReasonCode.LOW_WORD_COUNT, -0.45,
        lambda f, min_words: f.word_count < min_words,
    ),
    Adjustment(
        ReasonCode.VERY_LOW_WORD_COUNT, -0.15,
        lambda f, min_words: f.word_count < min_words / 2,
    ),
    Adjustment(
        ReasonCode.LOW_ALPHA_RATIO, -0.35,
        lambda f, _: f.alpha_ratio < 0.35,
    ),
    Adjustment(
        ReasonCode.GARBAGE_CHARS, -0.40,
        lambda f, _: f.garbage_ratio > 0.01,
    ),
    Adjustment(
        ReasonCode.FRAGMENTED_LINES, -0.25,
        lambda f, _: (
            f.line_count > 0
            and f.short_line_ratio > 0.55
            and f.avg_line_length < 25
        ),
    ),
    Adjustment(
        ReasonCode.LOW_UNIQUE_WORDS, -0.15,
        lambda f, _: f.word_count > 30 and f.unique_word_ratio < 0.25,
    ),
    Adjustment(
        ReasonCode.REPEATED_CHARS, -0.15,
        lambda f, _: f.repeated_runs >= 3,
    ),
    Adjustment(
        ReasonCode.EXCESS_PUNCTUATION, -0.20,
        lambda f, _: f.punct_ratio > 0.30,
    ),
    Adjustment(
        ReasonCode.ABNORMAL_SPACING, -0.15,
        lambda f, _: (
            f.space_ratio > 0.50
            or (f.char_count >= 200 and f.space_ratio < 0.05)
        ),
    ),
    Adjustment(
        ReasonCode.SCRAMBLED_WORDS, -0.30,
        lambda f, _: f.word_count >= 10 and f.single_char_word_ratio > 0.40,
    ),
    # Digit-only tables can still be meaningful.
    Adjustment(
        ReasonCode.NUMERIC_HEAVY, 0.10,
        lambda f, min_words: (
            f.digit_ratio > 0.25
            and f.alpha_ratio < 0.20
            and f.word_count >= min_words
        ),
    ),
    Adjustment(
        ReasonCode.PROSE_LIKE, 0.05,
        lambda f, min_words: (
            f.word_count >= min_words
            and f.alpha_ratio >= 0.60
            and f.avg_line_length >= 40
            and f.unique_word_ratio >= 0.40
        ),
    ),
    Adjustment(
        ReasonCode.STRUCTURED_CONTENT, 0.10,
        lambda f, min_words: (
            f.word_count >= min_words
            and f.line_count >= 3
            and f.bullet_line_ratio >= 0.30
        ),
    ),
    Adjustment(
        ReasonCode.MIXED_CONTENT, 0.05,
        lambda f, min_words: (
            f.word_count >= min_words
            and f.math_clusters >= 2
            and f.alpha_ratio >= 0.35
        ),
    ),
)


def normalize(text: str) -> str:
    """Unify line endings, collapse inline whitespace, cap blank lines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = _EXCESS_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def count_words(text: str) -> int:
    """Whitespace-delimited word count."""
    return len(text.split())


def _is_garbage(ch: str) -> bool:
    # Replacement char, or control chars other than the newlines kept by normalize
    return ch == "\ufffd" or (unicodedata.category(ch) == "Cc" and ch != "\n")


def _ratio(part: float, whole: float) -> float:
    return part / whole if whole > 0 else 0.0


def extract_features(clean: str) -> TextFeatures:
    """
    Measure normalized text.

    Args:
        clean: Output of ``normalize``

    Returns:
        TextFeatures for the adjustment rules
    """
    words = clean.split()
    total = len(clean)

    alpha = digits = punct = spaces = garbage = 0
    for ch in clean:
        if ch.isalpha():
            alpha += 1
        elif ch.isdigit():
            digits += 1
        elif ch.isspace():
            spaces += 1
        elif unicodedata.category(ch).startswith("P"):
            punct += 1
        if _is_garbage(ch):
            garbage += 1

    lines = [line.strip() for line in clean.split("\n") if line.strip()]
    if lines:
        avg_line_length = sum(len(line) for line in lines) / len(lines)
        short_lines = sum(1 for line in lines if len(line) < SHORT_LINE_CHARS)
        short_line_ratio = short_lines / len(lines)
        bullet_lines = sum(1 for line in lines if _BULLET_LINE.match(line))
        bullet_line_ratio = bullet_lines / len(lines)
    else:
        avg_line_length = short_line_ratio = bullet_line_ratio = 0.0

    lowered = [w.lower() for w in words]
    math_clusters = len(_MATH_SYMBOL.findall(clean)) + len(_EQUATION.findall(clean))

    return TextFeatures(
        word_count=len(words),
        char_count=total,
        alpha_ratio=_ratio(alpha, total),
        digit_ratio=_ratio(digits, total),
        punct_ratio=_ratio(punct, total),
        space_ratio=_ratio(spaces, total),
        garbage_ratio=_ratio(garbage, total),
        line_count=len(lines),
        avg_line_length=avg_line_length,
        short_line_ratio=short_line_ratio,
        unique_word_ratio=_ratio(len(set(lowered)), len(lowered)),
        bullet_line_ratio=bullet_line_ratio,
        math_clusters=math_clusters,
        repeated_runs=sum(1 for _ in _REPEATED_RUN.finditer(clean)),
        single_char_word_ratio=_ratio(
            sum(1 for w in words if len(w) == 1), len(words)
        ),
    )


def score(
    text: str,
    min_words_threshold: int,
    page_number: int = 0,
) -> PageEvaluation:
    """
    Score a page's text layer.

    Pure and deterministic: identical arguments give identical results.

    Args:
        text: Extracted text layer of one page
        min_words_threshold: Word count below which the page is penalized
        page_number: 1-indexed page number recorded on the evaluation

    Returns:
        PageEvaluation with score, reasons and OCR decision
    """
    clean = normalize(text)
    word_count = count_words(clean)

    if word_count == 0:
        return PageEvaluation(
            page_number=page_number,
            raw_text=text,
            word_count=0,
            quality_score=0.0,
            reasons=(ReasonCode.EMPTY_TEXT,),
            needs_ocr=True,
            maybe_ocr=False,
        )

    features = extract_features(clean)

    value = 1.0
    reasons: list[ReasonCode] = []
    for adjustment in ADJUSTMENTS:
        if adjustment.applies(features, min_words_threshold):
            value += adjustment.delta
            reasons.append(adjustment.reason)

    value = max(0.0, min(1.0, value))
    needs_ocr = value < NEEDS_OCR_BELOW

    return PageEvaluation(
        page_number=page_number,
        raw_text=text,
        word_count=word_count,
        quality_score=value,
        reasons=tuple(reasons),
        needs_ocr=needs_ocr,
        maybe_ocr=not needs_ocr and value < MAYBE_OCR_BELOW,
    )
