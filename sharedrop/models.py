from typing import List, Optional
from sqlmodel import SQLModel, Field, Column, JSON
from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTimeType(TypeDecorator):
    """Timestamps go in and come out as aware UTC on every backend.

    sqlite keeps no offset, so values are normalised to UTC before binding
    and tagged with UTC again when loaded.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return as_utc(value)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: Optional[str] = None
    role: str = Field(default="user")  # 'user' or 'admin'
    plan: str = Field(default="free")
    plan_expires_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTimeType)
    blocked: bool = Field(default=False)
    blocked_message: Optional[str] = None

    api_key: Optional[str] = Field(default=None, index=True, unique=True)
    api_requests_count: int = Field(default=0)
    api_requests_window_start: Optional[datetime] = Field(default=None, sa_type=UTCDateTimeType)
    api_uploads_count: int = Field(default=0)
    api_uploads_window_start: Optional[datetime] = Field(default=None, sa_type=UTCDateTimeType)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)


class SharedFile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    owner_email: Optional[str] = None
    file_key: str = Field(unique=True)
    original_name: str
    size: int = 0
    content_type: str = "application/octet-stream"
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTimeType)
    password_hash: Optional[str] = None
    custom_link: Optional[str] = Field(default=None, index=True, unique=True)
    folder_id: Optional[int] = Field(default=None, foreign_key="folder.id", index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    downloads: int = 0
    views: int = 0
    max_downloads: Optional[int] = None
    blocked: bool = Field(default=False)
    blocked_message: Optional[str] = None

    @property
    def is_protected(self) -> bool:
        return bool(self.password_hash)


class FileHistory(SQLModel, table=True):
    """Snapshot of a file taken when the upload completes.

    Copied once and never synced: a later rename or password change on the
    live file is not reflected here, and the row outlives the file.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    file_id: int = Field(index=True)
    owner_id: Optional[int] = Field(default=None, index=True)
    owner_email: Optional[str] = None
    file_key: str = Field(index=True)
    original_name: str
    size: int = 0
    content_type: str = "application/octet-stream"
    was_protected: bool = Field(default=False)
    custom_link: Optional[str] = None
    expires_at: datetime = Field(sa_type=UTCDateTimeType)
    downloads: int = 0
    hidden: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)


class Folder(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("owner_id", "name", name="uq_folder_owner_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    name: str
    color: str = "#3B82F6"
    icon: str = "Folder"
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)


class Transaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    order_id: str = Field(index=True, unique=True)
    plan: str
    amount: float
    currency: str = "EUR"
    status: str
    duration: str  # 'monthly' or 'annual'
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)


class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    action: str
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTimeType)
