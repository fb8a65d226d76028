from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

from ..models.attachment import AttachmentState


class UploadUrlIn(BaseModel):
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    file_size: int = Field(gt=0)

    @field_validator("file_name", "content_type")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class UploadUrlOut(BaseModel):
    attachment_id: int
    upload_url: str
    expires_at: datetime


class DownloadUrlOut(BaseModel):
    attachment_id: int
    download_url: str
    expires_at: datetime


class AttachmentOut(BaseModel):
    id: int
    ticket_id: int
    comment_id: Optional[int] = None
    file_name: str
    content_type: str
    file_size: int
    state: AttachmentState
    uploaded_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
