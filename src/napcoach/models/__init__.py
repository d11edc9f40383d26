"""Database models."""

from napcoach.models.base import Base
from napcoach.models.blob import StoredBlob

__all__ = [
    "Base",
    "StoredBlob",
]
