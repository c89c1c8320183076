"""Pydantic schemas for the Graph drive endpoints used by the uploader."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemReference(BaseModel):
    """Reference to the parent of a drive item."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    drive_id: Optional[str] = Field(default=None, alias='driveId')
    id: Optional[str] = None
    path: Optional[str] = None


class RemoteItem(BaseModel):
    """Item that lives in another drive and is surfaced through this one."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str
    name: Optional[str] = None
    parent_reference: Optional[ItemReference] = Field(default=None, alias='parentReference')


class DriveItem(BaseModel):
    """Subset of the driveItem resource returned by lookups."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str
    name: str
    parent_reference: Optional[ItemReference] = Field(default=None, alias='parentReference')
    remote_item: Optional[RemoteItem] = Field(default=None, alias='remoteItem')


class DriveItemCollection(BaseModel):
    """Response model for item listings."""
    value: List[DriveItem] = Field(default_factory=list)


class UploadSessionResponse(BaseModel):
    """Response model for createUploadSession and session status."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    upload_url: Optional[str] = Field(default=None, alias='uploadUrl')
    expiration_date_time: Optional[datetime] = Field(default=None, alias='expirationDateTime')
    next_expected_ranges: Optional[List[str]] = Field(default=None, alias='nextExpectedRanges')


class FileSystemInfo(BaseModel):
    """Timestamps carried as metadata on upload session creation."""
    model_config = ConfigDict(populate_by_name=True)

    created_date_time: datetime = Field(alias='createdDateTime')
    last_modified_date_time: datetime = Field(alias='lastModifiedDateTime')
    last_accessed_date_time: datetime = Field(alias='lastAccessedDateTime')


class ServiceErrorBody(BaseModel):
    """Inner error object of a Graph error response."""
    code: str = 'UNKNOWN'
    message: str = ''


class ServiceErrorResponse(BaseModel):
    """Graph error envelope."""
    error: ServiceErrorBody = Field(default_factory=ServiceErrorBody)
