import asyncio
import logging
import weakref
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from core.config import MAX_CHUNK_BYTES, PLAYLIST_FILENAME
from core.exceptions import NotFoundError, ValidationError
from services.chunk_store import (
    DEFAULT_INIT_FILENAME,
    ChunkStore,
    default_chunk_filename,
    has_media_extension,
    sanitize_filename,
)
from services.playlist import ENDLIST_TAG, PlaylistGenerator
from services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

SESSIONS_PREFIX = "/video/sessions"


def parse_chunk_id(chunk_id: Any) -> int:
    try:
        index = int(str(chunk_id).strip())
    except (TypeError, ValueError):
        index = -1
    if index < 0:
        raise ValidationError(
            "chunkId must be a non-negative integer",
            invalid_fields={"chunkId": chunk_id},
        )
    return index


class SessionLifecycleManager:
    """
    Create / accept chunk / finalize orchestration.

    Accept and finalize for one session id run one at a time, so the
    list-directory-then-write-playlist step never interleaves with another
    upload to the same session. Different sessions proceed in parallel.
    """

    def __init__(
        self,
        store: ChunkStore,
        registry: SessionRegistry,
        generator: PlaylistGenerator,
        base_path: str = SESSIONS_PREFIX,
        max_chunk_bytes: int = MAX_CHUNK_BYTES,
    ) -> None:
        self.store = store
        self.registry = registry
        self.generator = generator
        self.base_path = base_path.rstrip("/")
        self.max_chunk_bytes = max_chunk_bytes
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        # Entries go away once no task holds or waits on the lock.
        self.store.session_dir(session_id)
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def upload_url(self, session_id: str) -> str:
        return f"{self.base_path}/{session_id}/chunks"

    def playlist_url(self, session_id: str) -> str:
        return f"{self.base_path}/{session_id}/{PLAYLIST_FILENAME}"

    def startup(self) -> int:
        return self.registry.reconcile_from_store()

    def create_session(
        self,
        segment_duration: Any,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        meta = self.registry.create_session(segment_duration, requested_id=session_id)
        return {
            "sessionId": meta.session_id,
            "uploadUrl": self.upload_url(meta.session_id),
            "playlistUrl": self.playlist_url(meta.session_id),
            "segmentDuration": meta.segment_duration,
        }

    async def persist_playlist(
        self,
        session_id: str,
        sequence_number: int = 0,
        finalize: bool = False,
    ) -> str:
        playlist = await self.generator.generate(session_id, sequence_number, finalize)
        await self.store.replace_file(session_id, PLAYLIST_FILENAME, playlist)
        return playlist

    async def accept_chunk(
        self,
        session_id: str,
        chunk_id: Any,
        data: bytes,
        is_first: bool,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        index = parse_chunk_id(chunk_id)
        if not data:
            raise ValidationError('Form data must include a non-empty binary "chunk" field.')
        if len(data) > self.max_chunk_bytes:
            raise ValidationError(
                f"Chunk exceeds the maximum size of {self.max_chunk_bytes} bytes"
            )

        async with self._lock_for(session_id):
            await self.store.require_session(session_id)

            if is_first:
                init_name = sanitize_filename(filename) if filename else DEFAULT_INIT_FILENAME
                if not has_media_extension(init_name):
                    raise ValidationError(
                        "Init must be uploaded as .mp4 or .m4s (fragmented MP4 init)",
                        invalid_fields={"filename": init_name},
                    )
                await self.store.write_file(session_id, init_name, data)
                logger.info("Stored init fragment %s for session %s", init_name, session_id)
                return {"success": True, "init": init_name}

            name = sanitize_filename(filename) if filename else default_chunk_filename(index)
            if not has_media_extension(name):
                raise ValidationError(
                    "Only .mp4 or .m4s fragments are accepted",
                    invalid_fields={"filename": name},
                )
            await self.store.write_file(session_id, name, data)

            if not await self.store.session_exists(session_id):
                raise NotFoundError("Session not found", session_id)

            # A finalized playlist stays closed; late fragments are still listed.
            closed = await self.is_finalized(session_id)
            await self.persist_playlist(session_id, sequence_number=index, finalize=closed)
            logger.debug(
                "Stored chunk %s (%d bytes) for session %s", name, len(data), session_id
            )
            return {
                "success": True,
                "chunk": {"id": str(chunk_id).strip(), "filename": name, "size": len(data)},
            }

    async def is_finalized(self, session_id: str) -> bool:
        text = await self.store.read_text(session_id, PLAYLIST_FILENAME)
        if text is None:
            return False
        return ENDLIST_TAG in text.splitlines()

    async def finalize(self, session_id: str) -> Dict[str, Any]:
        async with self._lock_for(session_id):
            await self.store.require_session(session_id)
            await self.persist_playlist(session_id, sequence_number=0, finalize=True)
            self.registry.remove(session_id)

        logger.info(
            "Finalized HLS playlist for session %s. Active sessions: %d",
            session_id,
            len(self.registry),
        )
        return {
            "success": True,
            "sessionId": session_id,
            "playlistUrl": self.playlist_url(session_id),
        }

    async def read_playlist(self, session_id: str) -> str:
        text = await self.store.read_text(session_id, PLAYLIST_FILENAME)
        if text is None:
            raise NotFoundError("Playlist not found", session_id)
        return text

    async def resolve_chunk(self, session_id: str, filename: str) -> Tuple[Path, int]:
        return await self.store.resolve_file(session_id, filename)
