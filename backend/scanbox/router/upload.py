# backend/scanbox/router/upload.py
from __future__ import annotations

import logging
import sys
import traceback
from typing import AsyncIterator

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect as TransportDisconnect

from scanbox.core.errors import ClientDisconnect
from scanbox.models.schemas import UploadErrorInfo, UploadResponse

logger = logging.getLogger("scanbox.upload")

router = APIRouter(tags=["upload"])


async def _body_stream(request: Request) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.stream():
            if chunk:
                yield chunk
    except TransportDisconnect as e:
        raise ClientDisconnect("Client disconnected before the upload completed") from e


@router.post("/", response_model=UploadResponse)
@router.post("/upload", response_model=UploadResponse)
async def upload(request: Request):
    handler = request.app.state.container.upload_handler
    logger.info("Request from %s", request.client.host if request.client else "unknown")

    try:
        status_code, body = await handler.handle(
            request.method,
            request.headers.get("content-type"),
            _body_stream(request),
        )
    except Exception as e:
        exc_type, exc_obj, tb = sys.exc_info()
        tb_frame = traceback.extract_tb(tb)[-1] if tb else None
        func_name = tb_frame.name if tb_frame else "?"
        line_no = tb_frame.lineno if tb_frame else "?"
        error_type = exc_type.__name__ if exc_type else "UnknownError"

        logger.error(
            f"Unhandled Exception [{error_type}] in {func_name}() line {line_no}\n"
            f"Message: {e}\n"
            f"Traceback:\n{''.join(traceback.format_exception(exc_type, exc_obj, tb))}"
        )
        # files are only reported once complete, so nothing stored can be claimed here
        body = UploadResponse(
            status="error",
            stored=0,
            error=UploadErrorInfo(kind="internal_error", message=f"Upload failed: {error_type}"),
        )
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(status_code=status_code, content=body.model_dump())
