from app.database.repository import (
    Filter,
    InMemoryRepository,
    Repository,
    SupabaseRepository,
)

__all__ = ["Filter", "InMemoryRepository", "Repository", "SupabaseRepository"]
