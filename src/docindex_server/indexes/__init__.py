"""
Secondary index structures kept in step with the document store.

- ordered: single-field, compound and multikey indexes over sorted keys
- text: inverted index for full-text search
- geo: grid-partitioned 2dsphere index
- partial: wrapper restricting any index to documents matching a predicate
- manager: all-or-nothing application of writes across every index
"""
