# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Exceptions raised by the search subsystem."""


class SearchError(Exception):
    """Base class for search subsystem errors"""


class IndexUnavailableError(SearchError):
    """The search index could not answer (connection, timeout, engine error, bad response).

    The orchestrator recovers from this by querying the database directly.
    """


class SearchServiceError(SearchError):
    """Neither the index nor the database could serve the request"""


class VideoNotFoundError(SearchError):
    """The requested video does not exist"""

    def __init__(self, video_id: int):
        super().__init__(f"Video {video_id} not found")
        self.video_id = video_id
