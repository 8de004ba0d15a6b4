"""Versioned persistence of mappings."""

from canvasmap.store.backend import BackendError, Filter, MappingBackend, Order
from canvasmap.store.memory import InMemoryBackend
from canvasmap.store.records import SavedMapping, next_version, version_sort_key
from canvasmap.store.service import MappingStore, load_graph
from canvasmap.store.supabase_backend import SupabaseBackend

__all__ = [
    "BackendError",
    "Filter",
    "InMemoryBackend",
    "MappingBackend",
    "MappingStore",
    "Order",
    "SavedMapping",
    "SupabaseBackend",
    "load_graph",
    "next_version",
    "version_sort_key",
]
