"""Local filesystem storage for generated images."""

import asyncio
import base64
import binascii
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog

from sakuga.services.exceptions import VendorError

logger = structlog.get_logger()

URL_PREFIX = "/api/images/"

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ImageStorage:
    """Writes base64 images to ``<images_path>/<id>.<ext>``.

    Files are served by the app under ``/api/images``; the returned URL is what
    history entries store.
    """

    def __init__(self, images_path: str | Path):
        self.root = Path(images_path)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, image_url: str) -> Path | None:
        """Map a stored URL back to its file, or None for foreign URLs."""
        if not image_url.startswith(URL_PREFIX):
            return None
        name = Path(image_url[len(URL_PREFIX) :]).name
        return self.root / name if name else None

    async def save(self, image_data: str, mime_type: str, image_id: str) -> str:
        """Decode and persist one image.

        Args:
            image_data: Base64 image payload
            mime_type: Image mime type (decides the file extension)
            image_id: File stem, normally the history entry id

        Returns:
            URL path the image is served at

        Raises:
            VendorError: Payload is not valid base64
        """
        try:
            raw = base64.b64decode(image_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise VendorError(f"Invalid image data: {e}") from e

        filename = f"{image_id}.{EXTENSIONS.get(mime_type, 'png')}"
        path = self.root / filename

        def _write() -> None:
            self.ensure_root()
            path.write_bytes(raw)

        await asyncio.to_thread(_write)
        logger.debug("image.saved", filename=filename, size_bytes=len(raw))
        return f"{URL_PREFIX}{filename}"

    async def delete(self, image_url: str) -> bool:
        """Remove the file behind a stored URL. Missing files are not an error."""
        path = self.path_for(image_url)
        if path is None:
            return False

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        removed = await asyncio.to_thread(_unlink)
        if removed:
            logger.debug("image.deleted", filename=path.name)
        return removed

    @asynccontextmanager
    async def staged(self) -> AsyncIterator[list[str]]:
        """Track URLs saved inside the block and remove their files if the block fails.

        Wrap the unit of work that records the images, so a failed insert or
        commit leaves no files behind:

            async with storage.staged() as saved:
                async with await uow_factory() as uow:
                    await record_generation(uow, storage, result, ..., staged=saved)
        """
        saved: list[str] = []
        try:
            yield saved
        except BaseException:
            for image_url in saved:
                await self.delete(image_url)
            if saved:
                logger.warning("image.staged.discarded", count=len(saved))
            raise
