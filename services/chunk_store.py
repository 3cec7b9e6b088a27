"""
Filesystem chunk store: one directory per session under the store root.

The directory contents are the ground truth for which fragments exist.
This module also owns the naming rules shared by the playlist generator
and the upload path.
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os

from core.config import PLAYLIST_FILENAME
from core.exceptions import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = (".mp4", ".m4s")
DEFAULT_INIT_FILENAME = "init.mp4"

_CHUNK_RE = re.compile(r"^chunk(\d+)\.(mp4|m4s)$", re.IGNORECASE)
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def has_media_extension(name: str) -> bool:
    return name.lower().endswith(MEDIA_EXTENSIONS)


def is_init_candidate(name: str) -> bool:
    return "init" in name.lower() and has_media_extension(name)


def is_numbered_chunk(name: str) -> bool:
    return _CHUNK_RE.match(name) is not None


def chunk_index(name: str) -> int:
    """
    Integer index embedded in a numbered fragment name.
    Anything that does not parse sorts as 0.
    """
    m = _CHUNK_RE.match(name)
    if not m:
        return 0
    try:
        return int(m.group(1))
    except ValueError:
        return 0


def default_chunk_filename(index: int) -> str:
    return f"chunk{index:05d}.mp4"


def is_safe_session_id(session_id: str) -> bool:
    return (
        isinstance(session_id, str)
        and _SESSION_ID_RE.match(session_id) is not None
        and session_id not in (".", "..")
    )


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client-declared filename to a bare name inside the session dir.
    """
    name = os.path.basename(filename.replace("\\", "/")).strip()
    if not name or name in (".", "..") or name == PLAYLIST_FILENAME:
        raise ValidationError(
            f"Invalid filename: {filename!r}", invalid_fields={"filename": filename}
        )
    return name


class ChunkStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def session_dir(self, session_id: str) -> Path:
        if not is_safe_session_id(session_id):
            raise ValidationError(
                "sessionId must be 1-128 characters of letters, digits, '.', '_' or '-'",
                invalid_fields={"sessionId": session_id},
            )
        return self.root / session_id

    def playlist_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / PLAYLIST_FILENAME

    def create_session_dir(self, session_id: str) -> Path:
        path = self.session_dir(session_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                "mkdir", f"Failed to create session directory: {e}", session_id
            ) from e
        return path

    async def session_exists(self, session_id: str) -> bool:
        return await aiofiles.os.path.isdir(self.session_dir(session_id))

    async def require_session(self, session_id: str) -> Path:
        path = self.session_dir(session_id)
        if not await aiofiles.os.path.isdir(path):
            raise NotFoundError("Session not found", session_id)
        return path

    async def list_files(self, session_id: str) -> List[str]:
        """
        Entry names of a session directory in sorted order.
        """
        path = self.session_dir(session_id)
        try:
            names = await aiofiles.os.listdir(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError("Session not found", session_id) from e
        except OSError as e:
            raise StorageError(
                "listdir", f"Failed to list session directory: {e}", session_id
            ) from e
        return sorted(names)

    async def write_file(self, session_id: str, filename: str, data: bytes) -> Path:
        path = self.session_dir(session_id) / filename
        try:
            async with aiofiles.open(path, "wb") as out:
                await out.write(data)
        except FileNotFoundError as e:
            raise NotFoundError("Session not found", session_id) from e
        except OSError as e:
            raise StorageError(
                "write", f"Failed to write {filename}: {e}", session_id
            ) from e
        return path

    async def replace_file(self, session_id: str, filename: str, text: str) -> Path:
        """
        Write text to a temporary sibling and swap it into place, so readers
        see either the old or the new file, never a partial one.
        """
        directory = self.session_dir(session_id)
        target = directory / filename
        tmp = directory / f".{filename}.{uuid.uuid4().hex}.tmp"
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as out:
                await out.write(text)
            await aiofiles.os.replace(tmp, target)
        except FileNotFoundError as e:
            raise NotFoundError("Session not found", session_id) from e
        except OSError as e:
            if await aiofiles.os.path.exists(tmp):
                await aiofiles.os.remove(tmp)
            raise StorageError(
                "replace", f"Failed to write {filename}: {e}", session_id
            ) from e
        return target

    async def read_text(self, session_id: str, filename: str) -> Optional[str]:
        path = self.session_dir(session_id) / filename
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                "read", f"Failed to read {filename}: {e}", session_id
            ) from e

    async def resolve_file(self, session_id: str, filename: str) -> Tuple[Path, int]:
        """
        Path and size of a stored fragment.
        """
        directory = self.session_dir(session_id)
        path = directory / sanitize_filename(filename)
        if not await aiofiles.os.path.isfile(path):
            raise NotFoundError("Chunk not found", session_id)
        try:
            size = (await aiofiles.os.stat(path)).st_size
        except FileNotFoundError as e:
            raise NotFoundError("Chunk not found", session_id) from e
        return path, size

    def iter_session_dirs(self) -> List[Path]:
        if not self.root.exists():
            return []
        return sorted(p for p in self.root.iterdir() if p.is_dir())
