from fastapi import APIRouter, Depends

from biolink_app.dependencies import get_profile_service
from biolink_app.schemas.profile import ProfileSave, ProfileSaved
from biolink_app.services.profile_service import ProfileService

router = APIRouter(prefix="/profile", tags=["profiles"])


@router.post("", response_model=ProfileSaved)
async def save_profile(
    body: ProfileSave,
    profile_service: ProfileService = Depends(get_profile_service)
):
    """Create or replace a profile; returns its public page path"""
    handle = await profile_service.save(body.username, body.data)
    return ProfileSaved(url=f"/{handle}")


@router.get("/{handle}")
async def get_profile(
    handle: str,
    profile_service: ProfileService = Depends(get_profile_service)
):
    """Full profile record, system fields included (handle lookup is case-insensitive)"""
    return await profile_service.get(handle)
