from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    role: str
    plan: str
    plan_expires_at: Optional[datetime] = None
    blocked: bool = False
    created_at: datetime


class AdminUserUpdate(BaseModel):
    role: Optional[str] = Field(None, pattern="^(user|admin)$")
    plan: Optional[str] = Field(None, pattern="^(free|plus|pro)$")
    plan_expires_at: Optional[datetime] = None
    clear_plan_expiry: bool = False
    blocked: Optional[bool] = None
    blocked_message: Optional[str] = None


# -------------------------
# Files
# -------------------------
class FileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    original_name: str
    size: int
    content_type: str
    created_at: datetime
    expires_at: datetime
    is_protected: bool = False
    custom_link: Optional[str] = None
    folder_id: Optional[int] = None
    tags: List[str] = []
    downloads: int = 0
    views: int = 0
    max_downloads: Optional[int] = None
    blocked: bool = False
    blocked_message: Optional[str] = None


class AdminFileRead(FileRead):
    owner_id: Optional[int] = None
    owner_email: Optional[str] = None
    file_key: str


class PublicFileRead(BaseModel):
    id: int
    original_name: str
    size: int
    content_type: str
    expires_at: datetime
    is_protected: bool
    blocked: bool
    blocked_message: Optional[str] = None
    downloads: int


class UploadRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: Optional[str] = None
    size: int = Field(ge=0)
    expires_in_hours: Optional[float] = None
    custom_expires_at: Optional[datetime] = None
    password: Optional[str] = None
    custom_link: Optional[str] = None
    max_downloads: Optional[int] = Field(None, ge=1)
    tags: Optional[List[str]] = None
    folder_id: Optional[int] = None


class UploadTicket(BaseModel):
    upload: dict
    token: str
    key: str
    expires_at: datetime


class UploadComplete(BaseModel):
    token: str


class UploadCompleted(BaseModel):
    id: int
    link: str


class FileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    password: Optional[str] = None
    remove_password: bool = False
    expires_at: Optional[datetime] = None
    custom_link: Optional[str] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[int] = None
    remove_from_folder: bool = False
    max_downloads: Optional[int] = Field(None, ge=0)


class AdminFileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    password: Optional[str] = None
    remove_password: bool = False
    expires_at: Optional[datetime] = None
    custom_link: Optional[str] = None
    max_downloads: Optional[int] = Field(None, ge=0)


class BlockRequest(BaseModel):
    blocked: bool
    blocked_message: Optional[str] = None


class UnlockRequest(BaseModel):
    password: str


class ApiUploadRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: Optional[str] = None
    size: int = Field(gt=0)
    expires_in_hours: Optional[float] = None
    custom_link: Optional[str] = None


# -------------------------
# Folders
# -------------------------
class FolderCreate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = Field(None, max_length=200)


class FolderUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = Field(None, max_length=200)


class FolderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: str
    icon: str
    description: str
    created_at: datetime
    file_count: int = 0


class MoveFiles(BaseModel):
    file_ids: List[int]


# -------------------------
# History / account
# -------------------------
class HistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_id: int
    original_name: str
    size: int
    content_type: str
    was_protected: bool
    custom_link: Optional[str] = None
    expires_at: datetime
    downloads: int
    created_at: datetime


class CheckoutCapture(BaseModel):
    order_id: str
    plan: str = Field(pattern="^(plus|pro)$")
    annual: bool = False
    months: int = Field(1, ge=1, le=12)
