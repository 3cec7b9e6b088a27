from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Request, UploadFile
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from schemas.session import (
    ChunkUploadResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    ErrorResponse,
    FinalizeResponse,
)
from services.session_service import SESSIONS_PREFIX, SessionLifecycleManager
from services.streaming import file_iterator, guess_mime, parse_range

HLS_MEDIA_TYPE = "application/vnd.apple.mpegurl"

router = APIRouter(
    prefix=SESSIONS_PREFIX,
    tags=["sessions"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def get_manager(request: Request) -> SessionLifecycleManager:
    return request.app.state.session_manager


@router.post("", response_model=CreateSessionResponse)
async def create_session(
    body: Optional[CreateSessionRequest] = None,
    manager: SessionLifecycleManager = Depends(get_manager),
):
    body = body or CreateSessionRequest()
    duration = body.segmentDuration
    if duration is None:
        duration = manager.registry.default_segment_duration
    return manager.create_session(duration, session_id=body.sessionId)


@router.post(
    "/{session_id}/chunks/{chunk_id}",
    response_model=ChunkUploadResponse,
    response_model_exclude_none=True,
)
async def upload_chunk(
    session_id: str,
    chunk_id: str,
    chunk: UploadFile = File(...),
    isFirst: str = Form("false"),
    filename: Optional[str] = Form(None),
    manager: SessionLifecycleManager = Depends(get_manager),
):
    try:
        data = await chunk.read(manager.max_chunk_bytes + 1)
    finally:
        await chunk.close()

    client_filename = filename or chunk.filename or None
    return await manager.accept_chunk(
        session_id,
        chunk_id,
        data,
        is_first=isFirst.strip().lower() == "true",
        filename=client_filename,
    )


@router.post("/{session_id}/finalize", response_model=FinalizeResponse)
async def finalize_session(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
):
    return await manager.finalize(session_id)


@router.get("/{session_id}/playlist.m3u8", response_class=PlainTextResponse)
async def get_playlist(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
):
    playlist = await manager.read_playlist(session_id)
    return PlainTextResponse(
        playlist,
        media_type=HLS_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache"},
    )


@router.head("/{session_id}/playlist.m3u8")
async def head_playlist(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
):
    playlist = await manager.read_playlist(session_id)
    return Response(
        status_code=200,
        headers={
            "Cache-Control": "no-cache",
            "Content-Length": str(len(playlist.encode("utf-8"))),
            "Content-Type": HLS_MEDIA_TYPE,
        },
    )


@router.head("/{session_id}/{filename}")
async def head_chunk(
    session_id: str,
    filename: str,
    manager: SessionLifecycleManager = Depends(get_manager),
):
    path, file_size = await manager.resolve_chunk(session_id, filename)
    return Response(
        status_code=200,
        headers={
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
            "Content-Type": guess_mime(str(path)),
        },
    )


@router.get("/{session_id}/{filename}")
async def get_chunk(
    session_id: str,
    filename: str,
    range: Optional[str] = Header(None),
    manager: SessionLifecycleManager = Depends(get_manager),
):
    path, file_size = await manager.resolve_chunk(session_id, filename)
    content_type = guess_mime(str(path))

    if range is None or file_size == 0:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
        }
        return StreamingResponse(
            file_iterator(path, 0, file_size - 1),
            headers=headers,
            media_type=content_type,
        )

    start, end = parse_range(range, file_size)
    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(end - start + 1),
    }
    return StreamingResponse(
        file_iterator(path, start, end),
        status_code=206,
        headers=headers,
        media_type=content_type,
    )
