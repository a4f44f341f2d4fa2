import logging
import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, Optional

from biolink_app.config import settings
from biolink_app.exceptions import (
    InvalidFileTypeError,
    PayloadTooLargeError,
    UploadFailedError,
)
from biolink_app.media.strategies import MediaStorageError, MediaStorageStrategy, MediaTarget

logger = logging.getLogger(__name__)

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
AUDIO_TYPES = frozenset({
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/x-wav", "audio/ogg",
    "audio/aac", "audio/flac", "audio/mp4", "audio/x-m4a", "audio/webm",
    # Cloudinary files audio under the video resource type
    "video/mp4",
})

AVATAR_TRANSFORMATION = "c_fill,g_face,h_400,w_400"


class UploadPurpose(str, Enum):
    AVATAR = "avatar"
    BACKGROUND = "background"
    AUDIO = "audio"


@dataclass(frozen=True)
class UploadPolicy:
    """What a purpose accepts and where it goes."""
    folder: str
    resource_type: str
    allowed_types: FrozenSet[str]
    max_bytes: int
    transformation: Optional[str] = None


@dataclass(frozen=True)
class UploadResult:
    url: str
    name: Optional[str] = None


def default_policies() -> Dict[UploadPurpose, UploadPolicy]:
    root = settings.media_root_folder
    return {
        UploadPurpose.AVATAR: UploadPolicy(
            folder=f"{root}/avatars",
            resource_type="image",
            allowed_types=IMAGE_TYPES,
            max_bytes=settings.max_avatar_bytes,
            transformation=AVATAR_TRANSFORMATION,
        ),
        UploadPurpose.BACKGROUND: UploadPolicy(
            folder=f"{root}/backgrounds",
            resource_type="image",
            allowed_types=IMAGE_TYPES,
            max_bytes=settings.max_background_bytes,
        ),
        UploadPurpose.AUDIO: UploadPolicy(
            folder=f"{root}/music",
            resource_type="video",
            allowed_types=AUDIO_TYPES,
            max_bytes=settings.max_audio_bytes,
        ),
    }


class _ByteLimit:
    """Passes chunks through, failing once more than ``max_bytes`` went by."""

    def __init__(self, chunks: AsyncIterator[bytes], purpose: UploadPurpose, max_bytes: int):
        self.chunks = chunks
        self.purpose = purpose
        self.max_bytes = max_bytes
        self.received = 0
        self.exceeded = False

    async def iter_chunks(self):
        async for chunk in self.chunks:
            self.received += len(chunk)
            if self.received > self.max_bytes:
                self.exceeded = True
                raise PayloadTooLargeError(self.purpose.value, self.max_bytes)
            yield chunk


class UploadService:
    """
    Relays uploaded files to media storage.

    The declared type is checked before anything goes upstream. The file
    is then forwarded chunk by chunk; success is only reported once the
    backend has acknowledged the whole stream. The caller persists the
    returned URL (as a profile field), never this service.
    """

    def __init__(
        self,
        storage: MediaStorageStrategy,
        policies: Optional[Dict[UploadPurpose, UploadPolicy]] = None,
    ):
        self.storage = storage
        self.policies = policies or default_policies()

    async def relay(
        self,
        purpose: UploadPurpose,
        stream: AsyncIterator[bytes],
        declared_mime_type: Optional[str],
        original_filename: Optional[str],
    ) -> UploadResult:
        """
        Stream one file to storage.

        Raises:
            InvalidFileTypeError: type not allowed for purpose (nothing sent)
            PayloadTooLargeError: stream exceeded the purpose's limit
            UploadFailedError: backend failure or aborted client stream
        """
        policy = self.policies[purpose]
        mime_type = (declared_mime_type or "").split(";")[0].strip().lower()
        if mime_type not in policy.allowed_types:
            raise InvalidFileTypeError(purpose.value, declared_mime_type)

        filename = posixpath.basename((original_filename or "").replace("\\", "/")) or purpose.value
        limited = _ByteLimit(stream, purpose, policy.max_bytes)
        target = MediaTarget(
            folder=policy.folder,
            resource_type=policy.resource_type,
            filename=filename,
            content_type=mime_type,
            transformation=policy.transformation,
        )

        try:
            stored = await self.storage.store(limited.iter_chunks(), target)
        except MediaStorageError as e:
            if limited.exceeded:
                raise PayloadTooLargeError(purpose.value, policy.max_bytes) from e
            logger.error("%s upload: %s", purpose.value.capitalize(), e)
            raise UploadFailedError(diagnostic=str(e)) from e

        logger.info("%s upload stored: %s (%d bytes)", purpose.value.capitalize(), stored.public_id, limited.received)

        name = None
        if purpose == UploadPurpose.AUDIO:
            name = posixpath.splitext(filename)[0]
        return UploadResult(url=stored.url, name=name)
