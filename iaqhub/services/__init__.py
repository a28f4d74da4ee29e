"""IAQHub application services."""

from .profile_repository import ProfileRepository
from .reading_store import NewReading, ReadingStore

__all__ = [
    "NewReading",
    "ProfileRepository",
    "ReadingStore",
]
