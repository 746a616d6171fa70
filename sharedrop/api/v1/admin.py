import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import limits as gate
from sharedrop.core.email import notify_file_block, send_local_email
from sharedrop.core.errors import NotFound, UniquenessConflict, ValidationFailed
from sharedrop.core.security import get_password_hash
from sharedrop.crud import delete_file, log_activity
from sharedrop.deps import get_db, require_admin
from sharedrop.models import (
    ActivityLog,
    FileHistory,
    Folder,
    SharedFile,
    Transaction,
    User,
    as_utc,
)
from sharedrop.plans import limits_for
from sharedrop.schemas import AdminFileRead, AdminFileUpdate, AdminUserUpdate, BlockRequest, UserRead
from sharedrop.utils.paginator import page_window, paginate_meta
from sharedrop.utils.storage import delete_object_quietly

logger = logging.getLogger("sharedrop.admin")

router = APIRouter()


@router.get("/activity")
async def activity_log(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin)
):
    q = select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(limit)
    result = await db.exec(q)
    return result.all()


# --- Files ---


@router.get("/files")
async def list_files(
    search: Optional[str] = None,
    status: str = "all",
    page: int = 1,
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    conds = []
    if search:
        pattern = f"%{search}%"
        conds.append(or_(
            SharedFile.original_name.ilike(pattern),
            SharedFile.file_key.ilike(pattern),
            SharedFile.owner_email.ilike(pattern),
        ))
    if status == "blocked":
        conds.append(SharedFile.blocked == True)  # noqa: E712
    elif status == "active":
        conds.append(SharedFile.blocked == False)  # noqa: E712
    elif status != "all":
        raise ValidationFailed("status must be one of all, active, blocked")

    page, limit, offset = page_window(page, limit)
    total = (await db.exec(select(func.count(SharedFile.id)).where(*conds))).one()
    res = await db.exec(
        select(SharedFile).where(*conds).order_by(SharedFile.created_at.desc()).offset(offset).limit(limit)
    )
    return {
        "files": [AdminFileRead.model_validate(f) for f in res.all()],
        "pagination": paginate_meta(total, page, limit),
    }


@router.put("/files/{file_id}", response_model=AdminFileRead)
async def update_file(
    file_id: int,
    req: AdminFileUpdate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    """
    Administrative edit. Plan quotas do not apply, but a custom link still
    has to be well formed, not reserved and unique. Any expiry date is taken.
    """
    f = await db.get(SharedFile, file_id)
    if not f:
        raise NotFound("File not found")

    if req.name:
        f.original_name = req.name.strip()

    if "custom_link" in req.model_fields_set:
        f.custom_link = await gate.check_custom_link(
            db,
            req.custom_link,
            owner_id=f.owner_id,
            limits=limits_for(None),
            plan=None,
            file_id=f.id,
            enforce_quota=False,
        )

    if req.expires_at is not None:
        f.expires_at = as_utc(req.expires_at)

    if req.remove_password:
        f.password_hash = None
    elif req.password:
        f.password_hash = get_password_hash(req.password)

    if "max_downloads" in req.model_fields_set:
        f.max_downloads = req.max_downloads or None

    db.add(f)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UniquenessConflict("Este enlace ya está en uso.")
    await db.refresh(f)
    await log_activity(db, admin.id, "admin_file_update", f"Updated file {f.id}")
    return f


@router.post("/files/{file_id}/block", response_model=AdminFileRead)
async def block_file(
    file_id: int,
    req: BlockRequest,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    f = await db.get(SharedFile, file_id)
    if not f:
        raise NotFound("File not found")

    f.blocked = req.blocked
    f.blocked_message = req.blocked_message if req.blocked else None
    db.add(f)
    await db.commit()
    await db.refresh(f)

    action = "block" if req.blocked else "unblock"
    logger.info("admin %s %sed file %s", admin.id, action, f.id)
    await log_activity(db, admin.id, f"admin_{action}", f"{action} file {f.id}: {req.blocked_message or ''}".strip())
    if f.owner_email:
        notify_file_block(f.owner_email, f.original_name, req.blocked, req.blocked_message)
    return f


@router.delete("/files/{file_id}")
async def remove_file(file_id: int, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    f = await db.get(SharedFile, file_id)
    if not f:
        raise NotFound("File not found")
    name = f.original_name
    await delete_file(db, f)
    await log_activity(db, admin.id, "admin_delete", f"Deleted file {name}")
    return {"message": "File deleted successfully"}


# --- Admin user management ---


@router.get("/users", response_model=List[UserRead])
async def list_users(db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    q = select(User).order_by(User.created_at.desc()).limit(200)
    res = await db.exec(q)
    return res.all()


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@router.put("/users/{user_id}", response_model=UserRead)
async def admin_update_user(
    user_id: int,
    payload: AdminUserUpdate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    was_blocked = user.blocked
    if payload.role:
        user.role = payload.role
    if payload.plan:
        user.plan = payload.plan
    if payload.clear_plan_expiry:
        user.plan_expires_at = None
    elif payload.plan_expires_at is not None:
        user.plan_expires_at = as_utc(payload.plan_expires_at)
    if payload.blocked is not None:
        user.blocked = payload.blocked
    if payload.blocked_message is not None:
        user.blocked_message = payload.blocked_message

    db.add(user)
    await db.commit()
    await db.refresh(user)
    await log_activity(db, admin.id, "admin_user_update", f"Updated user {user.id} (plan={user.plan})")

    if payload.blocked is not None and payload.blocked != was_blocked:
        action = "blocked" if user.blocked else "unblocked"
        send_local_email(
            user.email,
            f"Your account has been {action}",
            f"Reason: {user.blocked_message or 'No reason provided'}",
        )
    return user


@router.delete("/users/{user_id}")
async def admin_delete_user(user_id: int, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    res = await db.exec(select(SharedFile.file_key).where(SharedFile.owner_id == user_id))
    for key in res.all():
        await delete_object_quietly(key)

    await db.exec(delete(ActivityLog).where(ActivityLog.user_id == user_id))
    await db.exec(delete(FileHistory).where(FileHistory.owner_id == user_id))
    await db.exec(delete(SharedFile).where(SharedFile.owner_id == user_id))
    await db.exec(delete(Folder).where(Folder.owner_id == user_id))
    await db.exec(delete(Transaction).where(Transaction.user_id == user_id))
    await db.delete(user)
    await db.commit()
    logger.info("admin %s deleted user %s", admin.id, user_id)
    return {"ok": True}
