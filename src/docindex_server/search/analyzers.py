"""Text analysis for the text index.

Indexed field values and ``$text`` queries run through the same analyzer, so
a query term matches an indexed term whenever both normalize to the same
string. Matching is case- and diacritic-insensitive (``Café`` == ``cafe``).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
import re
from typing import NamedTuple
import unicodedata


_WORD = re.compile(r"[\w']+", re.UNICODE)

ENGLISH_STOPWORDS = frozenset(
    """
    a an and are as at be but by for from has have i if in into is it its me my
    no not of on or our so such that the their then there these they this to was
    we were will with you your
    """.split()
)

# Longest suffix first; the first rule that leaves three characters wins.
_DERIVATIONAL = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("ousness", "ous"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
)
_INFLECTIONAL = ("ingly", "edly", "ing", "ies", "ed", "ly", "es", "s")
_MIN_STEM = 3


class Token(NamedTuple):
    term: str
    position: int


def tokenize(text: str) -> Iterator[str]:
    """Yield word-like runs of ``text`` with surrounding apostrophes removed."""

    for match in _WORD.finditer(text):
        word = match.group(0).strip("'")
        if word:
            yield word


def fold_diacritics(term: str) -> str:
    if term.isascii():
        return term
    decomposed = unicodedata.normalize("NFKD", term)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def light_stem(word: str) -> str:
    """Strip one common English suffix, never leaving fewer than three characters."""

    for suffix, replacement in _DERIVATIONAL:
        if word.endswith(suffix) and len(word) - len(suffix) >= _MIN_STEM:
            return word[: -len(suffix)] + replacement
    for suffix in _INFLECTIONAL:
        if not word.endswith(suffix) or len(word) - len(suffix) < _MIN_STEM:
            continue
        if suffix == "ies":
            return word[:-3] + "y"
        if suffix == "s" and word.endswith("ss"):
            return word
        return word[: -len(suffix)]
    return word


class TextAnalyzer:
    """Tokenize, lowercase, fold diacritics, drop stopwords and optionally stem.

    Positions count the terms that survive, so they stay dense after stopword
    removal.
    """

    def __init__(
        self,
        name: str,
        *,
        stopwords: Iterable[str] = (),
        stem: Callable[[str], str] | None = None,
    ) -> None:
        self.name = name
        self.stopwords = frozenset(fold_diacritics(word.lower()) for word in stopwords)
        self.stem = stem

    def normalize(self, word: str) -> str | None:
        """Return the indexed form of ``word``; ``None`` for a stopword."""

        term = fold_diacritics(word.lower())
        if term in self.stopwords:
            return None
        return self.stem(term) if self.stem is not None else term

    def __call__(self, text: str) -> list[Token]:
        tokens: list[Token] = []
        for word in tokenize(text):
            term = self.normalize(word)
            if term:
                tokens.append(Token(term, len(tokens)))
        return tokens

    def __repr__(self) -> str:
        return f"TextAnalyzer({self.name!r})"


ANALYZERS: dict[str, Callable[[], TextAnalyzer]] = {
    "english": lambda: TextAnalyzer("english", stopwords=ENGLISH_STOPWORDS, stem=light_stem),
    "english-nostem": lambda: TextAnalyzer("english-nostem", stopwords=ENGLISH_STOPWORDS),
    "simple": lambda: TextAnalyzer("simple"),
    "none": lambda: TextAnalyzer("none"),
}


def get_analyzer(name: str | None) -> TextAnalyzer:
    """Return a fresh analyzer by name; ``None`` selects ``english``."""

    key = (name or "english").lower()
    try:
        return ANALYZERS[key]()
    except KeyError:
        raise ValueError(f"Unknown analyzer '{name}'. Available: {sorted(ANALYZERS)}") from None


def analyze_terms(analyzer: TextAnalyzer, text: str) -> list[str]:
    """Return the normalized terms of ``text`` in order, duplicates kept."""

    return [token.term for token in analyzer(text)]
