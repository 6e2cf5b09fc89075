"""
In-process document engine.

- engine: ``DocumentEngine`` lifecycle and collection registry
- collection: per-collection facade (writes, finds, explain)
- store: canonical documents and write-time constraint checks
- planner: access-path selection and query deadlines
- locking: per-collection readers-writer lock
- errors: typed failures with HTTP status classes
"""
