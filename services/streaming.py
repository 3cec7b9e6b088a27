import mimetypes
from pathlib import Path
from typing import AsyncIterator, Tuple

import aiofiles
from fastapi import HTTPException

from core.config import CHUNK_SIZE

mimetypes.add_type("video/iso.segment", ".m4s")
mimetypes.add_type("application/vnd.apple.mpegurl", ".m3u8")


def guess_mime(path: str, fallback: str = "video/mp4") -> str:
    m, _ = mimetypes.guess_type(path)
    return m or fallback


def parse_range(range_header: str, file_size: int) -> Tuple[int, int]:
    """
    Parse a header like: Range: bytes=start-end
    Return (start, end) inclusive. An end past the file is clamped.
    """
    try:
        units, _, rng = range_header.partition("=")
        if units.strip().lower() != "bytes" or not rng:
            raise ValueError
        start_str, _, end_str = rng.strip().partition("-")

        if start_str == "" and end_str == "":
            raise ValueError

        if start_str == "":
            # suffix range: last N bytes
            length = int(end_str)
            if length <= 0:
                raise ValueError
            start = max(file_size - length, 0)
            end = file_size - 1
        else:
            start = int(start_str)
            end = min(int(end_str), file_size - 1) if end_str else file_size - 1

        if start < 0 or end < start or start >= file_size:
            raise ValueError

        return start, end
    except ValueError:
        raise HTTPException(
            status_code=416,
            detail="Invalid Range header",
            headers={"Content-Range": f"bytes */{file_size}"},
        )


async def file_iterator(path: Path, start: int, end: int) -> AsyncIterator[bytes]:
    read_bytes = 0
    to_read = end - start + 1
    async with aiofiles.open(path, "rb") as f:
        await f.seek(start)
        while read_bytes < to_read:
            chunk_size = min(CHUNK_SIZE, to_read - read_bytes)
            data = await f.read(chunk_size)
            if not data:
                break
            read_bytes += len(data)
            yield data
