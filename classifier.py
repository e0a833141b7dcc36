"""Keyword and pattern scoring of job text for H1B sponsorship likelihood."""

import re
from dataclasses import dataclass

from models import ClassificationResult

EXPLICIT = "explicit"
IMPLICIT = "implicit"
NEGATIVE = "negative"


@dataclass(frozen=True)
class KeywordEntry:
    phrase: str
    weight: float
    category: str


KEYWORDS = (
    KeywordEntry("h1b sponsorship", 1.0, EXPLICIT),
    KeywordEntry("visa sponsorship", 0.9, EXPLICIT),
    KeywordEntry("will sponsor h1b", 1.0, EXPLICIT),
    KeywordEntry("h1b visa", 0.8, EXPLICIT),
    KeywordEntry("work authorization", 0.6, IMPLICIT),
    KeywordEntry("sponsor visa", 0.8, EXPLICIT),
    KeywordEntry("immigration sponsorship", 0.9, EXPLICIT),
    KeywordEntry("will sponsor work visa", 0.9, EXPLICIT),
    KeywordEntry("h1b friendly", 1.0, EXPLICIT),
    KeywordEntry("open to visa sponsorship", 0.8, EXPLICIT),
    KeywordEntry("no sponsorship", -1.0, NEGATIVE),
    KeywordEntry("us citizens only", -1.0, NEGATIVE),
    KeywordEntry("no visa sponsorship", -1.0, NEGATIVE),
    KeywordEntry("must be authorized to work", -0.3, NEGATIVE),
    KeywordEntry("work visa support", 0.7, EXPLICIT),
    KeywordEntry("visa assistance", 0.7, EXPLICIT),
    KeywordEntry("sponsorship available", 0.6, IMPLICIT),
    KeywordEntry("international candidates", 0.5, IMPLICIT),
)

# Loose phrasings the keyword table misses; each hit adds PATTERN_BONUS.
# Patterns match within a single line.
PATTERNS = (
    re.compile(r"sponsor.*h[-\s]?1[-\s]?b", re.IGNORECASE),
    re.compile(r"h[-\s]?1[-\s]?b.*sponsor", re.IGNORECASE),
    re.compile(r"visa.*support", re.IGNORECASE),
    re.compile(r"work.*visa", re.IGNORECASE),
    re.compile(r"employment.*authorization", re.IGNORECASE),
)
PATTERN_BONUS = 0.3

KNOWN_SPONSORS = (
    "google", "microsoft", "amazon", "meta", "apple", "netflix",
    "uber", "tesla", "salesforce", "adobe", "oracle", "ibm",
)
EMPLOYER_BONUS = 0.2

NEGATIVE_PENALTY = 0.3


def classify(
    text: str,
    job_title: str | None = None,
    employer_name: str | None = None,
) -> ClassificationResult:
    """Score job text for sponsorship likelihood. Pure and deterministic.

    The raw score sums keyword weights, pattern bonuses and the known-sponsor
    bonus, then maps onto [0, 1] via (score + 1) / 2. Listings with negative
    phrases and no explicit positive phrase are penalised further.
    """
    if not text:
        raise ValueError("Text content is required for analysis")

    combined = f"{text.lower()} {(job_title or '').lower()}"

    total_score = 0.0
    explicit = implicit = negative = 0
    matched: list[str] = []
    negatives: list[str] = []

    for entry in KEYWORDS:
        if entry.phrase not in combined:
            continue
        total_score += entry.weight
        if entry.category == EXPLICIT:
            explicit += 1
            matched.append(entry.phrase)
        elif entry.category == IMPLICIT:
            implicit += 1
            matched.append(entry.phrase)
        else:
            negative += 1
            negatives.append(entry.phrase)

    for pattern in PATTERNS:
        if pattern.search(combined):
            total_score += PATTERN_BONUS
            implicit += 1

    if employer_name:
        company = employer_name.lower()
        if any(known in company for known in KNOWN_SPONSORS):
            total_score += EMPLOYER_BONUS

    confidence = max(0.0, min(1.0, (total_score + 1) / 2))
    if negative > 0 and explicit == 0:
        confidence = max(0.0, confidence - negative * NEGATIVE_PENALTY)

    return ClassificationResult(
        confidence=round(confidence, 2),
        matched_keywords=matched,
        negative_indicators=negatives,
        explicit_matches=explicit,
        implicit_matches=implicit,
        negative_matches=negative,
        total_score=round(total_score, 2),
    )
