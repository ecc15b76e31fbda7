# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Response envelope and error mapping shared by the API routes."""

import logging
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from libs.search.errors import SearchError, SearchServiceError, VideoNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Most specific class first
ERROR_STATUS = (
    (VideoNotFoundError, 404, "VIDEO_NOT_FOUND"),
    (SearchServiceError, 503, "SEARCH_UNAVAILABLE"),
    (SearchError, 500, "SEARCH_ERROR"),
)


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for saved-search and error responses"""
    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: T = None, message: str = "Success") -> "ApiResponse[T]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        message: str,
        error_code: str = "ERROR",
        details: Optional[Dict[str, Any]] = None
    ) -> "ApiResponse[None]":
        return cls(success=False, message=message, error_code=error_code, details=details)


def error_status(error: SearchError) -> Tuple[int, str]:
    """HTTP status and error code for a search error"""
    for error_class, status_code, error_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code, error_code
    return 500, "SEARCH_ERROR"


async def search_error_handler(request: Request, error: SearchError) -> JSONResponse:
    status_code, error_code = error_status(error)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {error}")

    details = {"video_id": error.video_id} if isinstance(error, VideoNotFoundError) else None
    body = ApiResponse.fail(str(error), error_code=error_code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SearchError, search_error_handler)
