"""Statistical helpers for TF-IDF relevance scoring.

Kept independent of the index structures so they can be unit tested on
their own.
"""

from __future__ import annotations

import math


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Return a smoothed inverse document frequency.

    ``log((N + 1) / (df + 1)) + 1`` keeps the weight positive even when a
    term appears in every document of a small collection, so a match always
    scores above a non-match.
    """

    if total_docs <= 0 or doc_freq <= 0:
        return 0.0
    df = min(doc_freq, total_docs)
    return max(math.log((total_docs + 1) / (df + 1)) + 1.0, floor)


def tf_idf(term_frequency: int, idf: float) -> float:
    """Weight of one term in one document."""

    if term_frequency <= 0:
        return 0.0
    return term_frequency * idf
