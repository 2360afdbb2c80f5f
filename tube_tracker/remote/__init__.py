"""
Remote module for tube-tracker.

The authoritative store for user-scoped data, the shared generation cache
and credit balances. Two backends implement RemoteStore:
    - sqlite_store: self-hosted relational file (default, used in tests)
    - rest_store: PostgREST/Supabase project over HTTP

Usage:
    from tube_tracker.remote import create_remote_store
    remote = create_remote_store(config)
"""

from tube_tracker.remote.base import (
    CACHE_TABLES,
    CacheEntry,
    CacheTable,
    RemoteStore,
    cache_table,
    create_remote_store,
)
from tube_tracker.remote.rest_store import RestRemoteStore
from tube_tracker.remote.sqlite_store import SqliteRemoteStore

__all__ = [
    "RemoteStore",
    "CacheEntry",
    "CacheTable",
    "CACHE_TABLES",
    "cache_table",
    "create_remote_store",
    "SqliteRemoteStore",
    "RestRemoteStore",
]
