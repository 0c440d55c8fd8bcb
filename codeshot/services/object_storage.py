"""
本地对象存储 - rendered images on the local filesystem, served under a URL prefix
"""
import asyncio
import hashlib
import time
from pathlib import Path
from typing import Optional

from codeshot.core.config import Settings, get_settings
from codeshot.core.errors import RenderOrStorageError
from codeshot.core.logging import get_logger

logger = get_logger(__name__)


class LocalObjectStorage:
    """``ObjectStorage`` writing ``{user}/{repository}/{timestamp}_{hash}.png``."""

    def __init__(self, settings: Optional[Settings] = None, root: Optional[Path] = None, base_url: Optional[str] = None):
        self.settings = settings or get_settings()
        self.root = Path(root or self.settings.storage_path)
        self.base_url = (base_url or self.settings.storage_base_url).rstrip("/")

    def _relative_path(self, image: bytes, user_id: str, repository_id: str) -> str:
        digest = hashlib.sha256(image).hexdigest()[:16]
        return f"{user_id}/{repository_id}/{int(time.time() * 1000)}_{digest}.png"

    async def upload(self, image: bytes, user_id: str, repository_id: str) -> str:
        relative = self._relative_path(image, user_id, repository_id)
        target = self.root / relative

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(image)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise RenderOrStorageError(str(e), "upload")

        logger.debug("image_stored", path=str(target), size=len(image))
        return f"{self.base_url}/{relative}"

    async def delete(self, url: str) -> None:
        if not url.startswith(self.base_url + "/"):
            logger.warning("image_delete_foreign_url", url=url)
            return
        target = self.root / url[len(self.base_url) + 1:]
        await asyncio.to_thread(target.unlink, missing_ok=True)
        logger.debug("image_deleted", path=str(target))
