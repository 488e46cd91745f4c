from .base_repository import BaseRepository
from .content_store import ContentStore

__all__ = [
    "BaseRepository",
    "ContentStore"
]
