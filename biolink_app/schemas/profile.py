from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileSave(BaseModel):
    """Body of POST /api/profile.

    Both fields are left untyped so the service reports bad values with
    its own error kinds (InvalidHandle / InvalidPayload).
    """
    username: Any = Field(None, description="Profile handle (2-30 chars, letters/numbers/._-)")
    data: Any = Field(None, description="Profile fields (JSON object)")

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "username": "Alice_01",
                "data": {"bio": "hi", "avatar": "https://res.cloudinary.com/demo/image/upload/a.png"},
            }
        },
    )


class ProfileSaved(BaseModel):
    ok: bool = True
    url: str


class ViewCount(BaseModel):
    views: int


class Ack(BaseModel):
    ok: bool = True


class UploadResponse(BaseModel):
    url: str
    name: Optional[str] = None
