"""Normalize bank descriptions into stable merchant keys.

Bank exports append dates, card numbers and payment references to the
merchant name, so the same shop shows up under dozens of spellings. The key
produced here is what the recurrence detector groups on.
"""

import re
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

SIMILARITY_THRESHOLD = 0.85
# shorter tokens are usually names or initials and must match exactly
MIN_FUZZY_TOKEN_LENGTH = 5
DISPLAY_NAME_LIMIT = 50
FALLBACK_NAME = "Unknown"

_MONTHS = (
    "jan|feb|mar|mrt|apr|may|mei|jun|jul|aug|sep|oct|okt|nov|dec|"
    "januari|februari|maart|april|juni|juli|augustus|september|oktober|november|december|"
    "january|february|march|june|july|august|october"
)

_DATE_PATTERNS = [
    re.compile(r"\b\d{4}[-/.]\d{1,2}[-/.]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}\b"),
    re.compile(rf"\b\d{{1,2}}\s+({_MONTHS})\b(\s+\d{{2,4}})?", re.IGNORECASE),
    re.compile(rf"\b({_MONTHS})\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}(:\d{2})?\b"),
]

_REFERENCE_PATTERNS = [
    re.compile(r"\b[A-Z]{2}\d{2}[A-Z0-9]{4}\d{7,}[A-Z0-9]*\b", re.IGNORECASE),
    re.compile(r"\b(?:ref|kenmerk)\b[.:#]?\s*\S+", re.IGNORECASE),
    re.compile(r"\b(?:nr|no)[.:#]\s*\S+", re.IGNORECASE),
    re.compile(r"\b(order|factuur|invoice|inv)\s*[#:]?\s*\S*\d\S*", re.IGNORECASE),
    re.compile(r"\b[A-Z]{1,4}\d{6,12}\b", re.IGNORECASE),
    re.compile(r"\b\d{10,16}\b"),
    re.compile(r"[*x]{2,}\s?\d{2,4}\b", re.IGNORECASE),
]

_TRAILING_NUMBERS = re.compile(r"(\s+[#]?\d+)+$")
_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = " \t-_.,;:/|*#'\""
_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def normalize_description(text: Optional[str]) -> str:
    value = text or ""
    for pattern in _DATE_PATTERNS:
        value = pattern.sub(" ", value)
    for pattern in _REFERENCE_PATTERNS:
        value = pattern.sub(" ", value)
    value = _WHITESPACE.sub(" ", value.lower()).strip(_EDGE_PUNCTUATION)
    value = _TRAILING_NUMBERS.sub("", value)
    return value.strip(_EDGE_PUNCTUATION)


def merchant_key(transaction) -> str:
    return normalize_description(transaction.description)


def display_name(description: Optional[str]) -> str:
    normalized = normalize_description(description)
    if not normalized:
        return FALLBACK_NAME
    first = re.split(r"\s[-/|,]\s|,", normalized)[0].strip(_EDGE_PUNCTUATION)
    name = (first or normalized).title()
    if len(name) > DISPLAY_NAME_LIMIT:
        name = name[: DISPLAY_NAME_LIMIT - 3].rstrip() + "..."
    return name


def similarity(a: str, b: str) -> float:
    return Levenshtein.normalized_similarity(a, b)


def _same_token(a: str, b: str, threshold: float) -> bool:
    if a == b:
        return True
    if min(len(a), len(b)) < MIN_FUZZY_TOKEN_LENGTH:
        return False
    return similarity(a, b) >= threshold


def is_same_merchant(a: str, b: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """Keys name the same merchant when they differ only by typos.

    Keys are compared token by token, so "tikkie rob" and "tikkie bob" stay
    apart while "albert heijn amsterdam" and "albert heijn amsterdm" do not.
    Punctuation and spacing are ignored.
    """
    if not a or not b:
        return False
    if a == b:
        return True
    compact = _NON_ALNUM.sub("", a)
    if compact and compact == _NON_ALNUM.sub("", b):
        return True
    tokens_a, tokens_b = a.split(), b.split()
    if len(tokens_a) != len(tokens_b):
        return False
    return all(_same_token(x, y, threshold) for x, y in zip(tokens_a, tokens_b))


def canonical_keys(keys: Iterable[str]) -> dict[str, str]:
    """Map each key to the first earlier key it is a near-duplicate of.

    Keys are visited in sorted order so the mapping is deterministic.
    """
    canonical: list[str] = []
    mapping: dict[str, str] = {}
    for key in sorted(set(keys)):
        target = next((c for c in canonical if is_same_merchant(key, c)), None)
        if target is None:
            canonical.append(key)
            target = key
        mapping[key] = target
    return mapping
