"""Entity store backends and the mutation gateway."""

from hooked.storage.base import TABLE_INDEXES, TABLE_MODELS, BaseStore
from hooked.storage.defaults import DEFAULT_CATEGORIES, seed_default_categories
from hooked.storage.dict_store import DictStore
from hooked.storage.gateway import MutationGateway
from hooked.storage.sqlite_store import SQLiteStore

__all__ = [
    "BaseStore",
    "DEFAULT_CATEGORIES",
    "DictStore",
    "MutationGateway",
    "SQLiteStore",
    "TABLE_INDEXES",
    "TABLE_MODELS",
    "seed_default_categories",
]
