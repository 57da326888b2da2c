"""
Image Resolvers: confirm that a reference actually loads.

A resolver takes an image reference (URL) and either returns the usable
reference or raises ResolutionError. The cache treats every outcome as
"resolved"; resolvers only decide which value is returned and what gets
logged.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional, Protocol, runtime_checkable

import requests
from PIL import Image, UnidentifiedImageError

from clientstate.core.errors import ResolutionError
from clientstate.core.config import ImageCacheConfig

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 64 * 1024


@runtime_checkable
class ImageResolver(Protocol):
    """Realizes a single image reference."""

    async def realize(self, reference: str) -> str:
        """
        Returns:
            The usable reference (the input reference on success)

        Raises:
            ResolutionError: reference does not load
        """
        ...


class HttpImageResolver:
    """
    Downloads the reference over HTTP(S) and verifies it decodes as an image.

    ``requests`` is blocking, so each download runs in a worker thread via
    asyncio.to_thread. The cache's timeout stops waiting on a slow download
    but does not interrupt the thread; ``read_timeout`` bounds how long the
    thread itself can linger.
    """

    __slots__ = ("_session", "_max_bytes", "_connect_timeout", "_read_timeout", "_user_agent")

    def __init__(
        self,
        config: Optional[ImageCacheConfig] = None,
        session: Optional[requests.Session] = None,
        connect_timeout: float = 3.05,
        read_timeout: float = 10.0,
    ) -> None:
        config = config or ImageCacheConfig()
        self._session = session or requests.Session()
        self._max_bytes = config.max_image_bytes
        self._user_agent = config.user_agent
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout

    async def realize(self, reference: str) -> str:
        data = await asyncio.to_thread(self._download, reference)
        self._verify(reference, data)
        return reference

    def close(self) -> None:
        self._session.close()

    def _download(self, reference: str) -> bytes:
        try:
            response = self._session.get(
                reference,
                stream=True,
                timeout=(self._connect_timeout, self._read_timeout),
                headers={"User-Agent": self._user_agent, "Accept": "image/*"},
            )
        except requests.RequestException as e:
            raise ResolutionError.load_failed(reference, cause=e) from e

        with response:
            if response.status_code >= 400:
                raise ResolutionError.load_failed(reference, status_code=response.status_code)

            buffer = io.BytesIO()
            try:
                for chunk in response.iter_content(chunk_size=_CHUNK_BYTES):
                    buffer.write(chunk)
                    if buffer.tell() > self._max_bytes:
                        raise ResolutionError.invalid_image(
                            reference, f"larger than {self._max_bytes} bytes"
                        )
            except requests.RequestException as e:
                raise ResolutionError.load_failed(reference, cause=e) from e

        return buffer.getvalue()

    @staticmethod
    def _verify(reference: str, data: bytes) -> None:
        if not data:
            raise ResolutionError.invalid_image(reference, "empty body")
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise ResolutionError.invalid_image(reference, str(e), cause=e) from e
        logger.debug("Image verified", extra={"reference": reference, "bytes": len(data)})
