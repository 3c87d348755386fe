"""
Recording paths.

Recordings live under ``<base_dir>/uploads/recordings/<session_id>/`` and are
named ``<session_id>_q<position>_<chunk_type>_<epoch_ms>.webm`` so the
question position can be recovered from the name alone.
"""
import os
import re
from typing import Optional, Tuple

from ..core.config import settings

RECORDING_NAME_RE = re.compile(
    r"^(?P<session_id>[A-Za-z0-9-]+)_q(?P<position>\d+)_(?P<chunk_type>[A-Za-z0-9-]+)_(?P<stamp>\d+)\.webm$"
)
SAFE_SEGMENT_RE = re.compile(r"^[A-Za-z0-9-]+$")


class FileTypes:
    RECORDINGS = "recordings"


def get_upload_paths(base_dir: Optional[str] = None) -> Tuple[str, str]:
    """(absolute base dir, relative uploads dir stored in links and ids)"""
    return base_dir or settings.upload_base_dir, "uploads"


def get_relative_upload_path(file_type: str, session_id: str, filename: str) -> str:
    _, uploads_dir = get_upload_paths()
    return os.path.join(uploads_dir, file_type, session_id, filename)


def get_full_upload_path(relative_path: str, base_dir: Optional[str] = None) -> str:
    base, _ = get_upload_paths(base_dir)
    return os.path.join(base, relative_path)


def ensure_upload_directory(file_type: str, session_id: str, base_dir: Optional[str] = None) -> str:
    base, uploads_dir = get_upload_paths(base_dir)
    full_dir = os.path.join(base, uploads_dir, file_type, session_id)
    os.makedirs(full_dir, exist_ok=True)
    return full_dir


def recording_filename(session_id: str, position: int, chunk_type: str, epoch_ms: int) -> str:
    if not SAFE_SEGMENT_RE.match(session_id) or not SAFE_SEGMENT_RE.match(chunk_type):
        raise ValueError("session_id and chunk_type may only contain letters, digits and '-'")
    return f"{session_id}_q{position}_{chunk_type}_{epoch_ms}.webm"


def parse_recording_filename(name: str) -> Optional[dict]:
    match = RECORDING_NAME_RE.match(name)
    if not match:
        return None
    return {
        "session_id": match.group("session_id"),
        "position": int(match.group("position")),
        "chunk_type": match.group("chunk_type"),
        "epoch_ms": int(match.group("stamp")),
    }
