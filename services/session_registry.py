"""
In-memory registry of active upload sessions.

The registry is a cache over the chunk store: every entry can be rebuilt
from a session directory and the playlist persisted inside it.
"""

import logging
import math
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.config import PLAYLIST_FILENAME
from core.exceptions import StorageError, ValidationError
from services.chunk_store import ChunkStore, is_safe_session_id

logger = logging.getLogger(__name__)

_EXTINF_RE = re.compile(r"^#EXTINF:([0-9]*\.?[0-9]+)", re.MULTILINE)
_TARGET_DURATION_RE = re.compile(r"^#EXT-X-TARGETDURATION:([0-9]*\.?[0-9]+)", re.MULTILINE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionMetadata:
    session_id: str
    segment_duration: float
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "segmentDuration": self.segment_duration,
            "createdAt": self.created_at.isoformat(),
        }


def validate_segment_duration(value: Any) -> float:
    """
    Accepts ints, floats and numeric strings; anything else, or a value
    that is not a finite positive number, is a ValidationError.
    """
    if isinstance(value, bool):
        value = None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        duration = math.nan
    if not math.isfinite(duration) or duration <= 0:
        raise ValidationError(
            "segmentDuration must be a positive number",
            invalid_fields={"segmentDuration": value},
        )
    return duration


def parse_segment_duration(playlist_text: str) -> Optional[float]:
    """
    Segment duration declared by a playlist this service wrote.

    The first EXTINF value is exact; TARGETDURATION is rounded up, so it is
    only used when the playlist lists no fragments yet.
    """
    for pattern in (_EXTINF_RE, _TARGET_DURATION_RE):
        m = pattern.search(playlist_text)
        if not m:
            continue
        try:
            value = float(m.group(1))
        except ValueError:
            continue
        if math.isfinite(value) and value > 0:
            return value
    return None


class SessionRegistry:
    def __init__(self, store: ChunkStore, default_segment_duration: float) -> None:
        self.store = store
        self.default_segment_duration = default_segment_duration
        self._sessions: Dict[str, SessionMetadata] = {}
        self._lock = threading.Lock()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def session_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)

    def create_session(
        self,
        segment_duration: Any,
        requested_id: Optional[str] = None,
    ) -> SessionMetadata:
        duration = validate_segment_duration(segment_duration)
        session_id = requested_id if requested_id else str(uuid.uuid4())
        self.store.create_session_dir(session_id)

        meta = SessionMetadata(session_id=session_id, segment_duration=duration)
        with self._lock:
            if session_id in self._sessions:
                logger.warning("Session %s already registered; overwriting metadata", session_id)
            self._sessions[session_id] = meta
            total = len(self._sessions)

        logger.info(
            "Created session %s with segment duration %ss. Total active sessions: %d",
            session_id,
            duration,
            total,
        )
        return meta

    def get(self, session_id: str) -> Optional[SessionMetadata]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[SessionMetadata]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    async def recover_duration(self, session_id: str) -> Optional[float]:
        """
        Duration declared by the playlist already persisted for a session.
        """
        try:
            text = await self.store.read_text(session_id, PLAYLIST_FILENAME)
        except (StorageError, UnicodeDecodeError) as e:
            logger.warning("Could not read playlist for session %s: %s", session_id, e)
            return None
        if text is None:
            return None
        return parse_segment_duration(text)

    def _read_duration(self, session_dir: Path) -> Optional[float]:
        try:
            text = (session_dir / PLAYLIST_FILENAME).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read playlist in %s: %s", session_dir, e)
            return None
        return parse_segment_duration(text)

    def reconcile_from_store(self) -> int:
        """
        Rebuild entries for every session directory under the store root.
        Directories that cannot be reconciled are logged and skipped.
        """
        try:
            self.store.ensure_root()
            session_dirs = self.store.iter_session_dirs()
        except OSError as e:
            logger.error("Could not scan chunk store %s: %s", self.store.root, e)
            return 0

        restored = 0
        for session_dir in session_dirs:
            try:
                meta = self._reconcile_one(session_dir)
            except Exception:
                logger.exception("Skipping session directory %s", session_dir)
                continue
            if meta is None:
                continue
            with self._lock:
                self._sessions[meta.session_id] = meta
            restored += 1

        logger.info("Reconciled %d session(s) from %s", restored, self.store.root)
        return restored

    def _reconcile_one(self, session_dir: Path) -> Optional[SessionMetadata]:
        session_id = session_dir.name
        if not is_safe_session_id(session_id):
            logger.warning("Ignoring directory with unsafe session id: %s", session_dir)
            return None

        duration = self._read_duration(session_dir)
        if duration is None:
            logger.debug(
                "No usable playlist in %s, using default segment duration %s",
                session_dir,
                self.default_segment_duration,
            )
            duration = self.default_segment_duration

        try:
            created_at = datetime.fromtimestamp(session_dir.stat().st_ctime, tz=timezone.utc)
        except OSError:
            created_at = _utcnow()

        return SessionMetadata(
            session_id=session_id,
            segment_duration=duration,
            created_at=created_at,
        )
