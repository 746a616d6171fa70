from fastapi import APIRouter, Depends
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.errors import NotFound
from sharedrop.deps import get_current_user, get_db
from sharedrop.models import FileHistory, User
from sharedrop.schemas import HistoryRead

router = APIRouter()


@router.get("", response_model=list[HistoryRead])
async def list_history(
    limit: int = 100,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = (
        select(FileHistory)
        .where(FileHistory.owner_id == user.id, FileHistory.hidden == False)  # noqa: E712
        .order_by(FileHistory.created_at.desc())
        .limit(min(max(limit, 1), 500))
    )
    res = await db.exec(q)
    return res.all()


@router.delete("/{history_id}")
async def hide_history(
    history_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the snapshot stays for the admin audit trail."""
    entry = await db.get(FileHistory, history_id)
    if not entry or entry.owner_id != user.id:
        raise NotFound("Record not found")
    entry.hidden = True
    db.add(entry)
    await db.commit()
    return {"message": "Record hidden successfully"}
