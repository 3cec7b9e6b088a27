"""
HLS media playlist generation from the contents of a session directory.
"""

import logging
import math
from typing import List, Optional, Tuple

from services.chunk_store import ChunkStore, chunk_index, is_init_candidate, is_numbered_chunk
from services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

HLS_VERSION = 7
ENDLIST_TAG = "#EXT-X-ENDLIST"


def partition_entries(names: List[str]) -> Tuple[Optional[str], List[str]]:
    """
    Split directory entries into (init fragment, numbered fragments).

    Numbered fragments come back ordered by their integer index, so
    chunk2 sorts before chunk10.
    """
    init_file = next((n for n in names if is_init_candidate(n)), None)
    segments = sorted(
        (n for n in names if is_numbered_chunk(n)),
        key=lambda n: (chunk_index(n), n),
    )
    return init_file, segments


def render_playlist(
    segment_duration: float,
    sequence_number: int,
    init_file: Optional[str],
    segments: List[str],
    finalize: bool = False,
) -> str:
    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{HLS_VERSION}",
        "#EXT-X-PLAYLIST-TYPE:EVENT",
        f"#EXT-X-TARGETDURATION:{math.ceil(segment_duration)}",
        f"#EXT-X-MEDIA-SEQUENCE:{sequence_number}",
    ]
    if init_file:
        lines.append(f'#EXT-X-MAP:URI="{init_file}"')
    lines.append("")

    for segment in segments:
        lines.append(f"#EXTINF:{segment_duration:.3f},")
        lines.append(segment)

    if finalize:
        lines.append(ENDLIST_TAG)

    return "\n".join(lines) + "\n"


class PlaylistGenerator:
    def __init__(self, store: ChunkStore, registry: SessionRegistry) -> None:
        self.store = store
        self.registry = registry

    async def resolve_segment_duration(self, session_id: str) -> float:
        meta = self.registry.get(session_id)
        if meta is not None:
            return meta.segment_duration

        recovered = await self.registry.recover_duration(session_id)
        if recovered is not None:
            logger.info(
                "No session metadata for %s, using duration %s from existing playlist",
                session_id,
                recovered,
            )
            return recovered

        default = self.registry.default_segment_duration
        logger.warning(
            "No session metadata found for %s, using default segment duration: %s",
            session_id,
            default,
        )
        return default

    async def generate(
        self,
        session_id: str,
        sequence_number: int = 0,
        finalize: bool = False,
    ) -> str:
        names = await self.store.list_files(session_id)
        init_file, segments = partition_entries(names)
        duration = await self.resolve_segment_duration(session_id)

        logger.debug(
            "Generating playlist for %s: init=%s segments=%d sequence=%s final=%s",
            session_id,
            init_file,
            len(segments),
            sequence_number,
            finalize,
        )
        return render_playlist(duration, sequence_number, init_file, segments, finalize)
