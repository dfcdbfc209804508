"""Media Index - A catalog of local video, audio and image files."""

__version__ = "0.1.0"

from mediaindex.config import Config
from mediaindex.database import Database, Store
from mediaindex.library import MediaLibrary
from mediaindex.scanner import Scanner

__all__ = ["Config", "Database", "MediaLibrary", "Scanner", "Store"]
