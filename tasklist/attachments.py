"""Attachment files stored on disk under ``<root>/<owner id>/<filename>``."""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol
from uuid import uuid4

from .exceptions import AttachmentRejected
from .utils import sanitize_filename

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"
CHUNK_SIZE = 64 * 1024


class Upload(Protocol):
    """What the storage needs from an uploaded file (FastAPI's UploadFile fits)."""

    filename: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...


def _is_single_component(name) -> bool:
    if not isinstance(name, str) or not name:
        return False
    return name not in (".", "..") and Path(name).name == name and "\\" not in name


class AttachmentStorage:
    def __init__(
        self,
        root: Path,
        max_files: int = 5,
        max_bytes: int = 5 * 1024 * 1024,
        url_prefix: str = "/api/uploads",
    ):
        self.root = Path(root)
        self.max_files = max_files
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")

    def _owner_key(self, owner_id: Optional[str]) -> str:
        return owner_id or ANONYMOUS_OWNER

    def path_for(self, owner_id: Optional[str], filename: str) -> Optional[Path]:
        """Path of a stored file, or None if either component is not a plain name."""
        owner_key = self._owner_key(owner_id)
        if not (_is_single_component(owner_key) and _is_single_component(filename)):
            return None
        return self.root / owner_key / filename

    def locate(self, owner_id: Optional[str], filename: str) -> Optional[Path]:
        path = self.path_for(owner_id, filename)
        if path is None or not path.is_file():
            return None
        return path

    async def save(self, owner_id: Optional[str], uploads: Iterable[Upload]) -> List[dict]:
        """Persist uploads and return their attachment descriptors.

        Either every file is stored or none is: on a rejected or failed
        upload, files already written by this call are removed again.
        """
        # Browsers send an empty part when no file was picked
        uploads = [u for u in uploads if u.filename]
        if len(uploads) > self.max_files:
            raise AttachmentRejected(f"At most {self.max_files} files can be attached at once")

        saved: List[dict] = []
        try:
            for upload in uploads:
                saved.append(await self._save_one(owner_id, upload))
        except BaseException:
            await self.delete_all(owner_id, saved)
            raise
        return saved

    async def _save_one(self, owner_id: Optional[str], upload: Upload) -> dict:
        original_name = upload.filename or ""
        content = bytearray()
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            content.extend(chunk)
            if len(content) > self.max_bytes:
                raise AttachmentRejected(
                    f"{original_name} exceeds the {self.max_bytes // (1024 * 1024)} MB limit"
                )

        owner_key = self._owner_key(owner_id)
        filename = f"{uuid4().hex}-{sanitize_filename(original_name)}"
        target = self.root / owner_key / filename

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(bytes(content))

        await asyncio.to_thread(write)
        logger.info("Stored attachment %s (%d bytes)", target, len(content))

        return {
            "filename": filename,
            "originalName": original_name,
            "path": f"{self.url_prefix}/{owner_key}/{filename}",
        }

    async def delete(self, owner_id: Optional[str], filename: str) -> bool:
        """Remove a stored file. Failures are logged, never raised."""
        path = self.path_for(owner_id, filename)
        if path is None:
            logger.warning("Ignoring attachment with unsafe name %r", filename)
            return False

        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.warning("Could not delete file %s: already missing", path)
            return False
        except OSError as e:
            logger.warning("Could not delete file %s: %s", path, e)
            return False
        return True

    async def delete_all(self, owner_id: Optional[str], attachments: Iterable[dict]) -> None:
        for attachment in attachments:
            filename = attachment.get("filename")
            if filename:
                await self.delete(owner_id, filename)
