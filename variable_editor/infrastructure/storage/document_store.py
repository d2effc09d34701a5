# variable_editor/infrastructure/storage/document_store.py
import asyncio
import base64
import binascii
import io
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from urllib.parse import unquote_to_bytes

import aiofiles
import aiohttp
from PIL import Image, UnidentifiedImageError

from variable_editor.config.settings import settings
from variable_editor.domain.exceptions import DocumentLoadError, UploadError
from variable_editor.infrastructure.cloudinary import upload_file

logger = logging.getLogger(__name__)


def _decode_data_url(src: str) -> bytes:
    header, _, payload = src.partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload, validate=False)
    return unquote_to_bytes(payload)


class DocumentStore:
    """
    Fetches SVG documents and stores rendered images.

    References may be http(s) URLs, data URLs, files under DOCUMENT_ROOT, or
    storage paths (``images/foo.svg``) that resolve against DOCUMENT_BASE_URL,
    or through Cloudinary when no base URL is configured. Without a document
    root nothing is read from the local filesystem.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        backend: Optional[str] = None,
        output_dir: Optional[str] = None,
        output_format: Optional[str] = None,
        document_root: Optional[str] = None,
    ):
        self.session = session
        self.executor = executor
        self.backend = backend or settings.STORAGE_BACKEND
        self.output_dir = output_dir or settings.OUTPUT_DIR
        self.output_format = (output_format or settings.OUTPUT_FORMAT).lower()
        root = document_root or settings.DOCUMENT_ROOT
        self.document_root = os.path.realpath(root) if root else None

    def resolve_url(self, reference: str) -> str:
        if settings.DOCUMENT_BASE_URL:
            return f"{settings.DOCUMENT_BASE_URL.rstrip('/')}/{reference.lstrip('/')}"
        return upload_file.resolve_storage_url(reference)

    def _local_path(self, reference: str) -> Optional[str]:
        """File under DOCUMENT_ROOT named by reference; local reads are off without a root."""
        if self.document_root is None:
            return None
        path = os.path.realpath(os.path.join(self.document_root, reference))
        if os.path.commonpath([self.document_root, path]) != self.document_root:
            raise DocumentLoadError(reference, "path is outside the document root")
        return path if os.path.isfile(path) else None

    async def _fetch(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=settings.REQUEST_TIMEOUT)
        if self.session is None:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=timeout) as response:
                    response.raise_for_status()
                    return await response.read()
        async with self.session.get(url, timeout=timeout) as response:
            response.raise_for_status()
            return await response.read()

    async def get(self, reference: str) -> bytes:
        if not reference:
            raise DocumentLoadError("", "empty reference")
        try:
            if reference.startswith(("http://", "https://")):
                return await self._fetch(reference)
            if reference.startswith("data:"):
                return _decode_data_url(reference)
            local_path = self._local_path(reference)
            if local_path is not None:
                async with aiofiles.open(local_path, "rb") as f:
                    return await f.read()
            return await self._fetch(self.resolve_url(reference))
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, binascii.Error, ValueError) as e:
            logger.warning(f"Failed to load document '{reference[:70]}': {type(e).__name__}")
            raise DocumentLoadError(reference, f"{type(e).__name__}: {e}") from e

    def _encode(self, data: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                if self.output_format == "png" and img.format == "PNG":
                    return data
                return upload_file.encode_image(img, fmt=self.output_format, quality=settings.JPEG_QUALITY)
        except (UnidentifiedImageError, OSError) as e:
            raise UploadError(f"Output is not a decodable image: {e}") from e

    def _put_sync(self, name: str, data: bytes) -> str:
        encoded = self._encode(data)
        if self.backend == "local":
            return self._write_local(name, encoded)
        try:
            return upload_file.upload_image_bytes(
                encoded, public_id=name, folder=settings.STORAGE_FOLDER, fmt=self.output_format
            )
        except Exception as e:
            raise UploadError(f"Cloudinary upload of '{name}' failed: {e}") from e

    def _write_local(self, name: str, data: bytes) -> str:
        extension = "jpg" if self.output_format in ("jpg", "jpeg") else self.output_format
        path = os.path.join(self.output_dir, f"{name}.{extension}")
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise UploadError(f"Could not write '{path}': {e}") from e
        logger.info(f"Saved image to {path}")
        return path

    async def put(self, name: str, data: bytes) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self._put_sync, name, data)
