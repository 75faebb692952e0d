"""Record store collaborator."""

from .sqlite import DatabaseUnavailableError, PoolStats, SQLiteDatabase
