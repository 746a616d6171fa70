"""Quota accounting.

Every quantity is recomputed from the stored records at call time. There
are no running totals and no locks: two concurrent requests can read the
same count and both pass a check.
"""
from dataclasses import dataclass, asdict
from typing import Iterable

from sqlalchemy import and_, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.models import SharedFile, Folder


@dataclass
class Usage:
    active_files: int = 0
    protected_files: int = 0
    custom_links: int = 0
    storage_bytes: int = 0
    folders: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _protected():
    return and_(SharedFile.password_hash.is_not(None), SharedFile.password_hash != "")


def _with_link():
    return and_(SharedFile.custom_link.is_not(None), SharedFile.custom_link != "")


async def count_active_files(db: AsyncSession, owner_id: int) -> int:
    q = select(func.count(SharedFile.id)).where(SharedFile.owner_id == owner_id)
    return (await db.exec(q)).one()


async def count_protected_files(db: AsyncSession, owner_id: int) -> int:
    q = select(func.count(SharedFile.id)).where(SharedFile.owner_id == owner_id, _protected())
    return (await db.exec(q)).one()


async def count_custom_links(db: AsyncSession, owner_id: int) -> int:
    q = select(func.count(SharedFile.id)).where(SharedFile.owner_id == owner_id, _with_link())
    return (await db.exec(q)).one()


async def total_storage_bytes(db: AsyncSession, owner_id: int) -> int:
    q = select(func.coalesce(func.sum(SharedFile.size), 0)).where(SharedFile.owner_id == owner_id)
    return int((await db.exec(q)).one() or 0)


async def count_folders(db: AsyncSession, owner_id: int) -> int:
    q = select(func.count(Folder.id)).where(Folder.owner_id == owner_id)
    return (await db.exec(q)).one()


async def usage_for(db: AsyncSession, owner_id: int) -> Usage:
    return Usage(
        active_files=await count_active_files(db, owner_id),
        protected_files=await count_protected_files(db, owner_id),
        custom_links=await count_custom_links(db, owner_id),
        storage_bytes=await total_storage_bytes(db, owner_id),
        folders=await count_folders(db, owner_id),
    )


def usage_from_files(files: Iterable) -> Usage:
    """Same quantities as the queries above, from an in-memory snapshot.

    Accepts model instances or plain dicts (``password_hash``/``size``/
    ``custom_link`` keys, camelCase tolerated for client payloads).
    """
    usage = Usage()
    for f in files:
        get = f.get if isinstance(f, dict) else lambda k, d=None, _f=f: getattr(_f, k, d)
        usage.active_files += 1
        if get("password_hash") or get("passwordHash") or get("is_protected"):
            usage.protected_files += 1
        if get("custom_link") or get("customLink"):
            usage.custom_links += 1
        usage.storage_bytes += int(get("size") or 0)
    return usage
