"""
Ranking and text analysis.

- analyzers: tokenizing, case and diacritic folding, stopwords, stemming
- stats: TF-IDF weighting
- geo: great-circle distance and bounding boxes
- executor: runs query plans and orders results
"""
