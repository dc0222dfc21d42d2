from docsummary.store.base import DocumentRecord, StatusStore
from docsummary.store.factory import get_status_store

__all__ = ["StatusStore", "DocumentRecord", "get_status_store"]
