"""Persistence: repository interfaces plus PostgreSQL and in-memory backends."""

from __future__ import annotations

from orderhub.storage.base import Store


def create_store(database_url: str = "") -> Store:
    """Return a PostgreSQL store when a DSN is configured, else an in-memory one.

    The PostgreSQL tables, including the unique external order id and the
    non-negative stock check, are created before the store is handed out.
    """
    if database_url:
        from orderhub.storage.postgres import PostgresStore

        store = PostgresStore(database_url)
        store.init_schema()
        return store
    from orderhub.storage.memory import MemoryStore

    return MemoryStore()
