"""
Media storage strategies using Strategy Pattern.

Allows switching between object storage backends for uploaded media:
- Cloudinary: Production (public CDN URLs, server-side transformations)
- In-Memory: Development/testing (counts bytes, keeps nothing)

Both consume the upload as an async stream of chunks; neither holds the
whole file in memory nor writes it to local disk.
"""

import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

import cloudinary.utils
import httpx

logger = logging.getLogger(__name__)


class MediaStorageError(Exception):
    """The storage backend rejected or failed the transfer."""


@dataclass(frozen=True)
class MediaTarget:
    """Where and how an upload is stored."""
    folder: str
    resource_type: str  # "image" or "video" (audio lives under video)
    filename: str
    content_type: str
    transformation: Optional[str] = None


@dataclass(frozen=True)
class StoredMedia:
    """Public locator of a stored object."""
    url: str
    public_id: str
    size: int


class MediaStorageStrategy(ABC):
    """
    Abstract base class for media storage strategies.

    All methods are async because storing media is network I/O.
    """

    @abstractmethod
    async def store(self, chunks: AsyncIterator[bytes], target: MediaTarget) -> StoredMedia:
        """
        Stream an upload into storage.

        Chunks are forwarded as they arrive. Any exception raised while
        iterating ``chunks`` aborts the transfer and propagates unchanged.

        Args:
            chunks: File content
            target: Folder, resource type and transformation

        Returns:
            Locator of the stored object

        Raises:
            MediaStorageError: backend failure
        """
        pass

    async def close(self) -> None:
        """Release network resources (application shutdown)."""
        return None


class CloudinaryMediaStorage(MediaStorageStrategy):
    """
    Cloudinary upload API over a streamed multipart request.

    The request is signed with the Cloudinary SDK and sent with httpx,
    whose request body is an async generator: the file part is written
    chunk by chunk straight from the incoming upload.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            cloud_name: Cloudinary cloud name
            api_key: API key
            api_secret: API secret (signing only, never sent)
            timeout: Per read/write timeout on the upstream connection
            http_client: Preconfigured client (tests)
        """
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0)
        )

    async def store(self, chunks: AsyncIterator[bytes], target: MediaTarget) -> StoredMedia:
        params = {"folder": target.folder, "timestamp": int(time.time())}
        if target.transformation:
            params["transformation"] = target.transformation
        params["signature"] = cloudinary.utils.api_sign_request(params, self.api_secret)
        params["api_key"] = self.api_key

        url = cloudinary.utils.cloudinary_api_url(
            "upload",
            resource_type=target.resource_type,
            cloud_name=self.cloud_name,
        )
        boundary = uuid.uuid4().hex

        try:
            response = await self.http.post(
                url,
                content=self._multipart_body(boundary, params, chunks, target),
                headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            )
        except httpx.HTTPError as e:
            raise MediaStorageError(f"Cloudinary transfer failed: {e}") from e

        payload = self._parse(response)
        if response.status_code >= 400 or "secure_url" not in payload:
            message = (payload.get("error") or {}).get("message") or f"HTTP {response.status_code}"
            raise MediaStorageError(f"Cloudinary rejected upload: {message}")

        logger.info("Stored %s (%s bytes)", payload.get("public_id"), payload.get("bytes"))
        return StoredMedia(
            url=payload["secure_url"],
            public_id=payload.get("public_id", ""),
            size=payload.get("bytes", 0),
        )

    async def close(self) -> None:
        await self.http.aclose()

    @staticmethod
    async def _multipart_body(
        boundary: str,
        params: Dict[str, object],
        chunks: AsyncIterator[bytes],
        target: MediaTarget,
    ) -> AsyncIterator[bytes]:
        for name, value in params.items():
            yield (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode()

        filename = target.filename.replace('"', "").replace("\r", "").replace("\n", "")
        yield (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            f"Content-Type: {target.content_type}\r\n\r\n"
        ).encode()

        async for chunk in chunks:
            yield chunk

        yield f"\r\n--{boundary}--\r\n".encode()

    @staticmethod
    def _parse(response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            return {}
        return payload if isinstance(payload, dict) else {}


class InMemoryMediaStorage(MediaStorageStrategy):
    """
    In-memory media storage.

    Pros:
    - No external service or credentials
    - Good for development and testing

    Cons:
    - Nothing is actually kept: only sizes are recorded, URLs don't resolve
    - Lost on restart
    """

    def __init__(self, base_url: str = "memory://media"):
        self.base_url = base_url
        self.objects: Dict[str, int] = {}  # public_id -> size

    async def store(self, chunks: AsyncIterator[bytes], target: MediaTarget) -> StoredMedia:
        size = 0
        async for chunk in chunks:
            size += len(chunk)

        public_id = f"{target.folder}/{uuid.uuid4().hex}"
        self.objects[public_id] = size
        return StoredMedia(
            url=f"{self.base_url}/{target.resource_type}/{public_id}",
            public_id=public_id,
            size=size,
        )
