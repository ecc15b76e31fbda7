# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Common utilities and shared components for the video catalog platform."""

__version__ = "1.0.0"

from .config import Settings, get_settings
from .database import Base, DatabaseManager, SavedSearch, SearchHistory, Tag, Video

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "Base",
    "DatabaseManager",
    "SavedSearch",
    "SearchHistory",
    "Tag",
    "Video",
]
