import logging
import os
import shutil
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import aiofiles
import aiofiles.os

from ..core.config import settings
from ..core.exceptions import ProviderError
from .file_paths import (
    FileTypes,
    ensure_upload_directory,
    get_full_upload_path,
    get_relative_upload_path,
    get_upload_paths,
    parse_recording_filename,
    recording_filename,
)
from .timezone import utc_now

logger = logging.getLogger(__name__)


class LocalRecordingStorage:
    """Recorded answers on the local filesystem, one folder per session."""

    def __init__(self, base_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.base_dir = base_dir or settings.upload_base_dir
        self.base_url = (base_url or settings.storage_base_url).rstrip("/")

    def _recordings_root(self) -> str:
        base, uploads_dir = get_upload_paths(self.base_dir)
        return os.path.join(base, uploads_dir, FileTypes.RECORDINGS)

    def link_for(self, session_id: str, name: str) -> str:
        return f"{self.base_url}/{session_id}/{name}"

    def folder_link(self, session_id: str) -> str:
        return f"{self.base_url}/{session_id}"

    async def upload(self, session_id: str, position: int, chunk_type: str, data: bytes) -> Dict:
        """Store one answer recording. Returns ``{file_id, name, link, size}``."""
        try:
            name = recording_filename(session_id, position, chunk_type, int(time.time() * 1000))
        except ValueError as e:
            raise ProviderError(str(e)) from e

        relative_path = get_relative_upload_path(FileTypes.RECORDINGS, session_id, name)
        try:
            ensure_upload_directory(FileTypes.RECORDINGS, session_id, self.base_dir)
            async with aiofiles.open(get_full_upload_path(relative_path, self.base_dir), "wb") as f:
                await f.write(data)
        except OSError as e:
            raise ProviderError(f"Failed to store {name}: {e}") from e

        logger.info(f"Stored {name} ({len(data)} bytes)")
        return {
            "file_id": relative_path,
            "name": name,
            "link": self.link_for(session_id, name),
            "size": len(data),
        }

    async def download(self, file_id: str) -> bytes:
        try:
            async with aiofiles.open(get_full_upload_path(file_id, self.base_dir), "rb") as f:
                return await f.read()
        except OSError as e:
            raise ProviderError(f"Failed to read {file_id}: {e}") from e

    async def delete(self, file_id: str) -> bool:
        try:
            await aiofiles.os.remove(get_full_upload_path(file_id, self.base_dir))
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ProviderError(f"Failed to delete {file_id}: {e}") from e
        return True

    async def list_session_files(self, session_id: str) -> List[Dict]:
        """Recordings of one session, oldest first, each with its question ``position``."""
        folder = os.path.join(self._recordings_root(), session_id)
        if not os.path.isdir(folder):
            return []
        try:
            names = await aiofiles.os.listdir(folder)
        except OSError as e:
            raise ProviderError(f"Failed to list recordings of {session_id}: {e}") from e

        files = []
        for name in names:
            parsed = parse_recording_filename(name)
            if parsed is None or parsed["session_id"] != session_id:
                continue
            files.append({
                "file_id": get_relative_upload_path(FileTypes.RECORDINGS, session_id, name),
                "name": name,
                "position": parsed["position"],
                "epoch_ms": parsed["epoch_ms"],
            })
        return sorted(files, key=lambda f: f["epoch_ms"])

    async def list_old_files(self, days: int, now: Optional[datetime] = None) -> List[Dict]:
        """Recordings created more than ``days`` ago, with the owning session id."""
        root = self._recordings_root()
        if not os.path.isdir(root):
            return []
        cutoff = (now or utc_now()) - timedelta(days=days)
        cutoff_ms = int((cutoff - datetime(1970, 1, 1)).total_seconds() * 1000)

        old = []
        for session_id in sorted(os.listdir(root)):
            folder = os.path.join(root, session_id)
            if not os.path.isdir(folder):
                continue
            for name in sorted(os.listdir(folder)):
                parsed = parse_recording_filename(name)
                if parsed is None or parsed["epoch_ms"] >= cutoff_ms:
                    continue
                old.append({
                    "file_id": get_relative_upload_path(FileTypes.RECORDINGS, session_id, name),
                    "name": name,
                    "session_id": session_id,
                })
        return old

    def remove_empty_folder(self, session_id: str) -> None:
        folder = os.path.join(self._recordings_root(), session_id)
        if os.path.isdir(folder) and not os.listdir(folder):
            shutil.rmtree(folder)


recording_storage = LocalRecordingStorage()
