"""
Adapters layer - Record store clients and the service duration lookup.
"""

from .memory_store import InMemoryRecordStore
from .rest_store import RestRecordStore
from .service_catalog import RecordStoreServiceCatalog

__all__ = ["InMemoryRecordStore", "RestRecordStore", "RecordStoreServiceCatalog"]
