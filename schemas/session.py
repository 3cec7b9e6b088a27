from typing import Any, Optional
from pydantic import BaseModel


class CreateSessionRequest(BaseModel):
    sessionId: Optional[str] = None
    # validated by the registry so bad values get the same 400 body as other errors
    segmentDuration: Optional[Any] = None


class CreateSessionResponse(BaseModel):
    sessionId: str
    uploadUrl: str
    playlistUrl: str
    segmentDuration: float


class ChunkInfo(BaseModel):
    id: str
    filename: str
    size: int


class ChunkUploadResponse(BaseModel):
    success: bool
    chunk: Optional[ChunkInfo] = None
    init: Optional[str] = None


class FinalizeResponse(BaseModel):
    success: bool
    sessionId: str
    playlistUrl: str


class ErrorResponse(BaseModel):
    error: str
