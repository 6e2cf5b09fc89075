"""Domain layer - documents, collection schemas and filter expressions.

No engine or HTTP dependencies live here:
- model: the immutable ``Document`` aggregate and value objects
- schema: field declarations, validation and index definitions
- filters: validated clause types accepted by the query planner
"""

from docindex_server.domain.filters import Equals, Filter, GeoNear, In, TextSearch
from docindex_server.domain.model import Document, DocumentStatus, GeoPoint, ObjectIdGenerator
from docindex_server.domain.schema import CollectionSchema, IndexDefinition, IndexKind, create_index_demo_schema


__all__ = [
    "CollectionSchema",
    "Document",
    "DocumentStatus",
    "Equals",
    "Filter",
    "GeoNear",
    "GeoPoint",
    "In",
    "IndexDefinition",
    "IndexKind",
    "ObjectIdGenerator",
    "TextSearch",
    "create_index_demo_schema",
]
