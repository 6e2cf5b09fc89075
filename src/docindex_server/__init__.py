"""docindex-server: in-process document indexing and query engine with an HTTP front end."""

__version__ = "0.1.0"
