from enum import Enum

from fastapi import APIRouter, Depends, Request

from biolink_app.api.multipart import MultipartFileReader
from biolink_app.dependencies import get_upload_service
from biolink_app.schemas.profile import UploadResponse
from biolink_app.services.upload_service import UploadPurpose, UploadService

router = APIRouter(prefix="/upload", tags=["uploads"])


class UploadTarget(str, Enum):
    """Upload endpoints exposed to the page editor"""
    AVATAR = "avatar"
    BACKGROUND = "background"
    MUSIC = "music"


TARGET_PURPOSES = {
    UploadTarget.AVATAR: UploadPurpose.AVATAR,
    UploadTarget.BACKGROUND: UploadPurpose.BACKGROUND,
    UploadTarget.MUSIC: UploadPurpose.AUDIO,
}


@router.post("/{target}", response_model=UploadResponse, response_model_exclude_none=True)
async def upload_media(
    target: UploadTarget,
    request: Request,
    upload_service: UploadService = Depends(get_upload_service)
):
    """
    Relay the multipart ``file`` field to media storage.

    The body is read as it arrives and forwarded upstream chunk by chunk;
    nothing is spooled to disk. The client stores the returned URL in its
    profile with POST /api/profile.
    """
    reader = MultipartFileReader(request)
    part = await reader.open()

    result = await upload_service.relay(
        TARGET_PURPOSES[target],
        reader.chunks(),
        part.content_type,
        part.filename,
    )
    return UploadResponse(url=result.url, name=result.name)
