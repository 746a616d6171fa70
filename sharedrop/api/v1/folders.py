from fastapi import APIRouter, Depends, status
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import limits as gate
from sharedrop.core.errors import NotFound, UniquenessConflict, ValidationFailed
from sharedrop.crud import detach_folder_files, get_owned_folder, log_activity
from sharedrop.deps import Account, get_current_account, get_db
from sharedrop.models import Folder, SharedFile
from sharedrop.schemas import FileRead, FolderCreate, FolderRead, FolderUpdate, MoveFiles
from sharedrop.utils.paginator import page_window, paginate_meta

router = APIRouter()


async def _file_counts(db: AsyncSession, owner_id: int) -> dict[int, int]:
    res = await db.exec(
        select(SharedFile.folder_id, func.count(SharedFile.id))
        .where(SharedFile.owner_id == owner_id, SharedFile.folder_id.is_not(None))
        .group_by(SharedFile.folder_id)
    )
    return {folder_id: count for folder_id, count in res.all()}


def _folder_out(folder: Folder, count: int = 0) -> FolderRead:
    out = FolderRead.model_validate(folder)
    out.file_count = count
    return out


@router.get("")
async def list_folders(
    include_empty: bool = True,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    user = account.user
    res = await db.exec(select(Folder).where(Folder.owner_id == user.id).order_by(Folder.created_at.desc()))
    counts = await _file_counts(db, user.id)
    folders = [_folder_out(f, counts.get(f.id, 0)) for f in res.all()]
    if not include_empty:
        folders = [f for f in folders if f.file_count > 0]
    return {"folders": folders, "max_folders": account.limits.max_folders}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_folder(
    req: FolderCreate,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    user = account.user
    name = await gate.check_folder_creation(db, user.id, req.name, account.limits, account.plan.value)

    folder = Folder(
        owner_id=user.id,
        name=name,
        color=req.color or "#3B82F6",
        icon=req.icon or "Folder",
        description=(req.description or "").strip(),
    )
    db.add(folder)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent create of the same name
        await db.rollback()
        raise UniquenessConflict("A folder with this name already exists")
    await db.refresh(folder)
    await log_activity(db, user.id, "folder_create", f"Created folder {folder.name}")
    return {"folder": _folder_out(folder)}


@router.get("/{folder_id}")
async def get_folder(
    folder_id: int,
    page: int = 1,
    limit: int = 20,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    user = account.user
    folder = await get_owned_folder(db, folder_id, user.id)
    if not folder:
        raise NotFound("Folder not found")

    page, limit, offset = page_window(page, limit)
    conds = (SharedFile.owner_id == user.id, SharedFile.folder_id == folder_id)
    total = (await db.exec(select(func.count(SharedFile.id)).where(*conds))).one()
    res = await db.exec(
        select(SharedFile).where(*conds).order_by(SharedFile.created_at.desc()).offset(offset).limit(limit)
    )
    return {
        "folder": _folder_out(folder, total),
        "files": [FileRead.model_validate(f) for f in res.all()],
        "pagination": paginate_meta(total, page, limit),
    }


@router.put("/{folder_id}")
async def update_folder(
    folder_id: int,
    req: FolderUpdate,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    user = account.user
    folder = await get_owned_folder(db, folder_id, user.id)
    if not folder:
        raise NotFound("Folder not found")

    if req.name is not None:
        name = gate.normalize_folder_name(req.name)
        if await gate.folder_name_taken(db, user.id, name, exclude_folder_id=folder.id):
            raise UniquenessConflict("A folder with this name already exists")
        folder.name = name
    if req.color is not None:
        folder.color = req.color
    if req.icon is not None:
        folder.icon = req.icon
    if req.description is not None:
        folder.description = req.description.strip()

    db.add(folder)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UniquenessConflict("A folder with this name already exists")
    await db.refresh(folder)
    return {"folder": _folder_out(folder)}


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: int,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Deleting a folder keeps its files; they move back to the root."""
    user = account.user
    folder = await get_owned_folder(db, folder_id, user.id)
    if not folder:
        raise NotFound("Folder not found")

    await detach_folder_files(db, folder.id)
    await db.delete(folder)
    await db.commit()
    await log_activity(db, user.id, "folder_delete", f"Deleted folder {folder.name}")
    return {"message": "Folder deleted successfully"}


@router.post("/{folder_id}/move")
async def move_files(
    folder_id: str,
    req: MoveFiles,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Move files into a folder, or out of any folder when ``folder_id`` is ``none``."""
    user = account.user
    if not req.file_ids:
        raise ValidationFailed("file_ids must be a non-empty array")

    if folder_id == "none":
        target = None
    elif folder_id.isdigit():
        folder = await get_owned_folder(db, int(folder_id), user.id)
        if not folder:
            raise NotFound("Folder not found")
        target = folder.id
    else:
        raise ValidationFailed("Invalid folder id")

    ids = set(req.file_ids)
    owned = await db.exec(
        select(func.count(SharedFile.id)).where(SharedFile.id.in_(ids), SharedFile.owner_id == user.id)
    )
    if owned.one() != len(ids):
        raise NotFound("Some files not found or do not belong to you")

    await db.exec(
        update(SharedFile).where(SharedFile.id.in_(ids)).values(folder_id=target)
    )
    await db.commit()
    return {"message": f"{len(ids)} file(s) moved successfully", "moved_count": len(ids)}
