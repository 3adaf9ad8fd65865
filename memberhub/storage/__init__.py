"""
Storage abstractions.

Integration Points:
- AuthorityStore → data platform REST interface (PostgREST)
- MetadataStorage → in-memory documents for development
"""

from memberhub.storage.base import (
    AuthorityStore,
    MetadataStorage,
    StorageProvider,
    Collections,
)
from memberhub.storage.local import (
    InMemoryMetadataStorage,
    MetadataAuthorityStore,
    create_local_storage,
)
from memberhub.storage.postgrest import PostgrestAuthorityStore

__all__ = [
    "AuthorityStore",
    "MetadataStorage",
    "StorageProvider",
    "Collections",
    "InMemoryMetadataStorage",
    "MetadataAuthorityStore",
    "PostgrestAuthorityStore",
    "create_local_storage",
]
