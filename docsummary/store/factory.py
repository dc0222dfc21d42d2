"""
Status Store Factory

Selects the persistence backend (sql | memory) based on config.
The rest of the app only imports get_status_store() and never touches
the concrete classes directly.
"""

from __future__ import annotations

from docsummary.core.config import Settings, settings as default_settings
from docsummary.store.base import StatusStore


def get_status_store(settings: Settings | None = None) -> StatusStore:
    """Return a StatusStore for the configured backend."""
    cfg = settings or default_settings
    backend = cfg.status_store_backend.lower()

    if backend == "sql":
        from docsummary.store.sql_store import SqlStatusStore
        return SqlStatusStore()

    if backend == "memory":
        from docsummary.store.memory_store import InMemoryStatusStore
        return InMemoryStatusStore()

    raise ValueError(
        f"Unknown status store backend: '{backend}'. "
        f"Valid options: 'sql', 'memory'"
    )
