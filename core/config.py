import os
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent
STORAGE_DIR = Path(os.getenv("STORAGE_PATH", str(BASE_DIR / "storage")))
VIDEO_DIR = STORAGE_DIR / "videos"

PLAYLIST_FILENAME = "playlist.m3u8"
DEFAULT_SEGMENT_DURATION = float(os.getenv("DEFAULT_SEGMENT_DURATION", "5"))

MAX_CHUNK_BYTES = int(os.getenv("MAX_CHUNK_BYTES", str(50 * 1024 * 1024)))
CHUNK_SIZE = 1024 * 1024  # 1 MiB for streaming

CORS_ORIGINS: List[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
