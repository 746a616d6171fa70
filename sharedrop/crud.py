from typing import Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.models import (
    ActivityLog,
    FileHistory,
    Folder,
    SharedFile,
    User,
)
from sharedrop.utils.storage import delete_object_quietly


# -------------------------
# User helpers
# -------------------------
async def create_user(
    session: AsyncSession, *, email: str, name: str | None = None, role: str = "user", plan: str = "free"
) -> User:
    user = User(email=email, name=name, role=role, plan=plan)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    res = await session.exec(select(User).where(User.email == email))
    return res.first()


async def get_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def get_user_by_api_key(session: AsyncSession, api_key: str) -> User | None:
    res = await session.exec(select(User).where(User.api_key == api_key))
    return res.first()


# -------------------------
# File helpers
# -------------------------
async def create_file(session: AsyncSession, **fields) -> SharedFile:
    """Insert a file together with its history snapshot."""
    f = SharedFile(**fields)
    session.add(f)
    await session.flush()

    session.add(FileHistory(
        file_id=f.id,
        owner_id=f.owner_id,
        owner_email=f.owner_email,
        file_key=f.file_key,
        original_name=f.original_name,
        size=f.size,
        content_type=f.content_type,
        was_protected=f.is_protected,
        custom_link=f.custom_link,
        expires_at=f.expires_at,
    ))
    await session.commit()
    await session.refresh(f)
    return f


async def upload_completed(session: AsyncSession, file_key: str) -> bool:
    """A storage key is registered at most once, even after the file is gone."""
    res = await session.exec(select(FileHistory.id).where(FileHistory.file_key == file_key))
    return res.first() is not None


async def get_file_by_id_or_slug(session: AsyncSession, ident: str) -> SharedFile | None:
    if ident.isdigit():
        f = await session.get(SharedFile, int(ident))
        if f:
            return f
    res = await session.exec(select(SharedFile).where(SharedFile.custom_link == ident))
    return res.first()


async def get_owned_file(session: AsyncSession, file_id: int, owner_id: int) -> SharedFile | None:
    res = await session.exec(
        select(SharedFile).where(SharedFile.id == file_id, SharedFile.owner_id == owner_id)
    )
    return res.first()


async def delete_file(session: AsyncSession, f: SharedFile) -> bool:
    """Remove the stored object (best effort) and then the metadata row.

    Returns whether the storage delete succeeded; the row is removed either
    way.
    """
    stored = await delete_object_quietly(f.file_key)
    await session.delete(f)
    await session.commit()
    return stored


# -------------------------
# Folder helpers
# -------------------------
async def get_owned_folder(session: AsyncSession, folder_id: int, owner_id: int) -> Optional[Folder]:
    folder = await session.get(Folder, folder_id)
    if not folder or folder.owner_id != owner_id:
        return None
    return folder


async def detach_folder_files(session: AsyncSession, folder_id: int) -> None:
    await session.exec(
        update(SharedFile).where(SharedFile.folder_id == folder_id).values(folder_id=None)
    )


# -------------------------
# Activity
# -------------------------
async def log_activity(session: AsyncSession, user_id: int | None, action: str, details: str | None = None):
    a = ActivityLog(user_id=user_id, action=action, details=details)
    session.add(a)
    await session.commit()
