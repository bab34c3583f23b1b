"""Cleanup and lightweight analysis of extracted text."""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

SOURCE_TYPES = ("pdf", "ocr", "docx", "txt")

_ENGLISH_WORDS = ("the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by")
_SPANISH_WORDS = ("el", "la", "y", "o", "pero", "en", "de", "con", "por", "para", "que", "es")
_FRENCH_WORDS = ("le", "la", "et", "ou", "mais", "dans", "de", "avec", "par", "pour", "que", "est")

_PII_PATTERNS = (
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    re.compile(r"\(?\b\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b"),
)

_STOP_WORDS = frozenset(
    {
        "this", "that", "with", "have", "will", "from", "they", "know", "want",
        "been", "good", "much", "some", "time", "very", "when", "come", "here",
        "just", "like", "long", "make", "many", "over", "such", "take", "than",
        "them", "well", "were", "what", "your", "about", "after", "again",
        "before", "being", "between", "could", "during", "each", "every",
        "first", "might", "never", "other", "right", "should", "these",
        "those", "through", "under", "until", "where", "which", "while",
    }
)

# Digits commonly misread inside words by OCR engines.
_OCR_DIGIT_FIXES = {"0": "O", "5": "S", "1": "l"}
_OCR_WORD_WITH_DIGITS = re.compile(r"\b(?=\w*[A-Za-z])(?=\w*[015])[A-Za-z015]+\b")


@dataclass
class TextAnalysis:
    word_count: int
    character_count: int
    sentence_count: int
    paragraph_count: int
    language: str | None = None
    readability_score: float | None = None
    contains_pii: bool | None = None
    topics: list[str] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def preprocess_text(
    text: str,
    *,
    remove_extra_whitespace: bool = True,
    normalize_unicode: bool = False,
    max_length: int | None = None,
) -> str:
    processed = text
    if remove_extra_whitespace:
        processed = processed.replace("\r\n", "\n").replace("\r", "\n")
        processed = re.sub(r"\t+", " ", processed)
        processed = re.sub(r" {2,}", " ", processed)
        processed = re.sub(r"\n{3,}", "\n\n", processed)

    if normalize_unicode:
        processed = unicodedata.normalize("NFKC", processed)

    if max_length and len(processed) > max_length:
        processed = processed[:max_length] + "..."

    return processed.strip()


def _fix_ocr_word(match: re.Match[str]) -> str:
    word = match.group(0)
    if word.isdigit():
        return word
    return "".join(_OCR_DIGIT_FIXES.get(char, char) for char in word)


def clean_extracted_text(text: str, source_type: str, *, max_length: int = 100_000) -> str:
    """Apply source-specific fixes, then general whitespace/unicode normalization."""

    cleaned = text
    if source_type == "pdf":
        # Lines broken mid-sentence by the PDF layout.
        cleaned = re.sub(r"([a-z])\n([a-z])", r"\1 \2", cleaned)
        cleaned = re.sub(r"\n{2,}", "\n\n", cleaned)
    elif source_type == "ocr":
        cleaned = re.sub(r"[|\\]", "l", cleaned)
        cleaned = _OCR_WORD_WITH_DIGITS.sub(_fix_ocr_word, cleaned)
        cleaned = cleaned.replace("rn", "m")
        cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    elif source_type == "docx":
        cleaned = cleaned.replace("\u00a0", " ")
        cleaned = re.sub("[\u2013\u2014]", "-", cleaned)
        cleaned = re.sub("[\u201c\u201d]", '"', cleaned)
        cleaned = re.sub("[\u2018\u2019]", "'", cleaned)
    elif source_type == "txt":
        cleaned = cleaned.replace("\ufffd", "?")
        cleaned = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", cleaned)

    return preprocess_text(
        cleaned,
        remove_extra_whitespace=True,
        normalize_unicode=True,
        max_length=max_length,
    )


def count_words(text: str) -> int:
    return len(text.split())


def _count_matches(sample: str, words: tuple[str, ...]) -> int:
    return sum(len(re.findall(rf"\b{word}\b", sample)) for word in words)


def detect_language(text: str) -> str:
    """Guess between English, Spanish and French from common function words."""

    sample = text.lower()[:1000]
    english = _count_matches(sample, _ENGLISH_WORDS)
    spanish = _count_matches(sample, _SPANISH_WORDS)
    french = _count_matches(sample, _FRENCH_WORDS)
    if english >= spanish and english >= french:
        return "en"
    if spanish >= french:
        return "es"
    return "fr"


def detect_pii(text: str) -> bool:
    return any(pattern.search(text) for pattern in _PII_PATTERNS)


def extract_topics(text: str, limit: int = 10) -> list[str]:
    words = re.sub(r"[^a-z\s]", " ", text.lower()).split()
    counts = Counter(word for word in words if len(word) > 3 and word not in _STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def analyze_text(
    text: str,
    *,
    with_language: bool = False,
    with_pii: bool = False,
    with_topics: bool = False,
) -> TextAnalysis:
    words = text.split()
    sentences = [part for part in re.split(r"[.!?]+", text) if part.strip()]
    paragraphs = [part for part in re.split(r"\n\s*\n", text) if part.strip()]

    analysis = TextAnalysis(
        word_count=len(words),
        character_count=len(text),
        sentence_count=len(sentences),
        paragraph_count=len(paragraphs),
    )

    if with_language:
        analysis.language = detect_language(text)

    if analysis.word_count and analysis.sentence_count:
        words_per_sentence = analysis.word_count / analysis.sentence_count
        chars_per_word = len(re.sub(r"\s+", "", text)) / analysis.word_count
        # Simplified Flesch reading ease.
        score = 206.835 - 1.015 * words_per_sentence - 84.6 * (chars_per_word / 4.7)
        analysis.readability_score = max(0.0, min(100.0, score))

    if with_pii:
        analysis.contains_pii = detect_pii(text)

    if with_topics:
        analysis.topics = extract_topics(text)

    return analysis


__all__ = [
    "SOURCE_TYPES",
    "TextAnalysis",
    "analyze_text",
    "clean_extracted_text",
    "count_words",
    "detect_language",
    "detect_pii",
    "extract_topics",
    "preprocess_text",
]
