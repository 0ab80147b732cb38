# Infrastructure Package
from .memory_repository import InMemoryRepository
from .sqlite_repository import SqliteRepository

__all__ = ["InMemoryRepository", "SqliteRepository"]
