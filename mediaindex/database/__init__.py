"""Database module for mediaindex."""

from .connection import Database
from .models import (
    AudioDetails,
    Chapter,
    Collection,
    EntryStamp,
    ImageDetails,
    MediaEntry,
    MediaKind,
    SavedSearch,
    Tag,
    VideoDetails,
)
from .schema import SCHEMA_VERSION, create_schema
from .store import Store

__all__ = [
    "Database",
    "Store",
    "create_schema",
    "SCHEMA_VERSION",
    "MediaKind",
    "MediaEntry",
    "VideoDetails",
    "AudioDetails",
    "ImageDetails",
    "Chapter",
    "Collection",
    "EntryStamp",
    "Tag",
    "SavedSearch",
]
