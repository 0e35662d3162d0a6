
from .base import HelpDeskStore
from .sqlite_store import SQLiteStore

__all__ = [
    "HelpDeskStore",
    "SQLiteStore",
]
