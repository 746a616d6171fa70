import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from jose import JWTError
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import limits as gate
from sharedrop.core.config import settings
from sharedrop.core.errors import (
    AccessDenied,
    NotFound,
    ServerMisconfigured,
    Unauthorized,
    UniquenessConflict,
    ValidationFailed,
)
from sharedrop.core.security import (
    create_upload_token,
    decode_upload_token,
    get_password_hash,
    verify_password,
)
from sharedrop.crud import (
    create_file,
    delete_file,
    get_file_by_id_or_slug,
    get_owned_file,
    get_owned_folder,
    log_activity,
    upload_completed,
)
from sharedrop.deps import Account, get_current_account, get_db, get_optional_account
from sharedrop.models import FileHistory, SharedFile, as_utc, utcnow
from sharedrop.plans import PlanId, limits_for
from sharedrop.schemas import (
    FileRead,
    FileUpdate,
    PublicFileRead,
    UnlockRequest,
    UploadComplete,
    UploadCompleted,
    UploadRequest,
    UploadTicket,
)
from sharedrop.utils.paginator import page_window, paginate_meta
from sharedrop.utils.storage import build_file_key, presign_upload, signed_download_url

logger = logging.getLogger("sharedrop.files")

router = APIRouter()

SORT_COLUMNS = {
    "date": SharedFile.created_at,
    "size": SharedFile.size,
    "downloads": SharedFile.downloads,
    "name": SharedFile.original_name,
}


def share_link(f: SharedFile) -> str:
    return f"{settings.app_url.rstrip('/')}/d/{f.custom_link or f.id}"


def _parse_dt(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


# -------------------------
# Upload: reserve, then complete
# -------------------------
@router.post("/upload", response_model=UploadTicket)
async def reserve_upload(
    req: UploadRequest,
    account: Optional[Account] = Depends(get_optional_account),
    db: AsyncSession = Depends(get_db),
):
    """
    Check every plan limit up front and hand back signed storage upload
    parameters plus a signed completion token carrying the metadata.
    Unverified sessions upload like guests: no owner, 30 minute expiry.
    """
    verified = bool(account and account.email_verified)
    owner = account.user if verified else None
    owner_id = owner.id if owner else None
    plan = account.plan.value if verified else PlanId.GUEST.value
    limits = account.upload_limits if account else limits_for(PlanId.GUEST)

    await gate.check_upload_admission(db, owner_id, limits, plan, req.size)

    password_hash = None
    if req.password:
        if owner_id is None:
            raise AccessDenied("Regístrate para usar contraseñas.")
        await gate.check_password_addition(db, owner_id, limits, plan)
        password_hash = get_password_hash(req.password)

    custom_link = await gate.check_custom_link(
        db, req.custom_link, owner_id=owner_id, limits=limits, plan=plan
    )
    tags = gate.check_tags(req.tags, limits, plan)

    if req.folder_id is not None:
        if owner_id is None or not await get_owned_folder(db, req.folder_id, owner_id):
            raise NotFound("Folder not found")

    now = utcnow()
    expires_at = gate.resolve_upload_expiration(
        limits,
        verified=verified,
        now=now,
        custom_expires_at=as_utc(req.custom_expires_at) if req.custom_expires_at else None,
        expires_in_hours=req.expires_in_hours,
    )

    content_type = req.type or "application/octet-stream"
    file_key = build_file_key(req.name, owner_id)
    try:
        upload = presign_upload(file_key, content_type)
    except RuntimeError:
        raise ServerMisconfigured("Server Configuration Error: storage not set")

    token = create_upload_token({
        "file_key": file_key,
        "original_name": req.name,
        "size": req.size,
        "content_type": content_type,
        "owner_id": owner_id,
        "owner_email": owner.email if owner else None,
        "expires_at": expires_at.isoformat(),
        "password_hash": password_hash,
        "custom_link": custom_link,
        "max_downloads": req.max_downloads,
        "tags": tags,
        "folder_id": req.folder_id,
    })
    logger.info("reserved upload %s (%s bytes) for %s", file_key, req.size, owner_id or "guest")
    return {"upload": upload, "token": token, "key": file_key, "expires_at": expires_at}


@router.post("/upload/complete", response_model=UploadCompleted)
async def complete_upload(
    req: UploadComplete,
    account: Optional[Account] = Depends(get_optional_account),
    db: AsyncSession = Depends(get_db),
):
    try:
        data = decode_upload_token(req.token)
    except (JWTError, ValueError):
        raise AccessDenied("Invalid token signature")

    owner_id = data.get("owner_id")
    if owner_id is not None and (account is None or account.user.id != owner_id):
        raise AccessDenied("Session mismatch")

    if await upload_completed(db, data["file_key"]):
        raise UniquenessConflict("Upload already completed")

    # the slug may have been taken since it was reserved
    custom_link = data.get("custom_link")
    if custom_link and await gate.slug_taken(db, custom_link):
        logger.warning("custom link %s taken during upload of %s", custom_link, data["file_key"])
        raise UniquenessConflict("El enlace personalizado ya está en uso (fue tomado durante la subida).")

    try:
        f = await create_file(
            db,
            file_key=data["file_key"],
            original_name=data["original_name"],
            size=data["size"],
            content_type=data["content_type"],
            owner_id=owner_id,
            owner_email=data.get("owner_email"),
            expires_at=_parse_dt(data["expires_at"]),
            password_hash=data.get("password_hash"),
            custom_link=custom_link or None,
            max_downloads=data.get("max_downloads"),
            tags=data.get("tags") or [],
            folder_id=data.get("folder_id"),
        )
    except IntegrityError:
        await db.rollback()
        if await upload_completed(db, data["file_key"]):
            raise UniquenessConflict("Upload already completed")
        raise UniquenessConflict("El enlace personalizado ya está en uso (fue tomado durante la subida).")

    await log_activity(db, owner_id, "upload", f"Uploaded file {f.original_name} ({f.size} bytes)")
    return {"id": f.id, "link": share_link(f)}


# -------------------------
# Owner file management
# -------------------------
@router.get("")
async def list_files(
    q: Optional[str] = None,
    folder_id: Optional[str] = None,
    tags: Optional[str] = None,
    mime_type: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort_by: str = "date",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    conds = [SharedFile.owner_id == account.user.id]
    if q:
        conds.append(SharedFile.original_name.ilike(f"%{q}%"))
    if folder_id:
        if folder_id == "none":
            conds.append(SharedFile.folder_id.is_(None))
        elif folder_id.isdigit():
            conds.append(SharedFile.folder_id == int(folder_id))
        else:
            raise ValidationFailed("Invalid folder id")
    if mime_type:
        conds.append(SharedFile.content_type.ilike(f"{mime_type}%"))
    if min_size is not None:
        conds.append(SharedFile.size >= min_size)
    if max_size is not None:
        conds.append(SharedFile.size <= max_size)
    try:
        if start_date:
            conds.append(SharedFile.created_at >= _parse_dt(start_date))
        if end_date:
            conds.append(SharedFile.created_at <= _parse_dt(end_date))
    except ValueError:
        raise ValidationFailed("Invalid date filter")

    column = SORT_COLUMNS.get(sort_by, SharedFile.created_at)
    order = column.asc() if sort_order == "asc" else column.desc()

    res = await db.exec(select(SharedFile).where(*conds).order_by(order))
    files = res.all()

    # tags live in a JSON column, filter them here
    wanted = [t.strip().lower() for t in (tags or "").split(",") if t.strip()]
    if wanted:
        files = [f for f in files if set(wanted) & set(f.tags or [])]

    page, limit, offset = page_window(page, limit)
    items = files[offset:offset + limit]
    return {
        "files": [FileRead.model_validate(f) for f in items],
        "pagination": paginate_meta(len(files), page, limit),
    }


@router.get("/tags")
async def list_tags(account: Account = Depends(get_current_account), db: AsyncSession = Depends(get_db)):
    res = await db.exec(select(SharedFile.tags).where(SharedFile.owner_id == account.user.id))
    counts: dict[str, int] = {}
    for file_tags in res.all():
        for tag in file_tags or []:
            counts[tag] = counts.get(tag, 0) + 1
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return {"tags": [{"tag": tag, "count": count} for tag, count in ordered]}


@router.put("/{file_id}", response_model=FileRead)
async def update_file(
    file_id: int,
    req: FileUpdate,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    user = account.user
    f = await get_owned_file(db, file_id, user.id)
    if not f:
        raise NotFound("File not found")

    plan = account.plan.value
    limits = account.limits
    fields = req.model_fields_set

    if req.name:
        f.original_name = req.name.strip()

    if req.remove_from_folder:
        f.folder_id = None
    elif req.folder_id is not None:
        if not await get_owned_folder(db, req.folder_id, user.id):
            raise NotFound("Folder not found")
        f.folder_id = req.folder_id

    if "tags" in fields:
        f.tags = gate.check_tags(req.tags, limits, plan)

    if "custom_link" in fields:
        f.custom_link = await gate.check_custom_link(
            db,
            req.custom_link,
            owner_id=user.id,
            limits=limits,
            plan=plan,
            file_id=f.id,
            had_link=bool(f.custom_link),
        )

    if req.remove_password:
        f.password_hash = None
    elif req.password:
        await gate.check_password_addition(db, user.id, limits, plan, already_protected=f.is_protected)
        f.password_hash = get_password_hash(req.password)

    if req.expires_at is not None:
        f.expires_at = gate.resolve_expiration_change(f.expires_at, as_utc(req.expires_at), utcnow())

    if "max_downloads" in fields:
        f.max_downloads = req.max_downloads or None

    db.add(f)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UniquenessConflict("Este enlace ya está en uso.")
    await db.refresh(f)
    return f


@router.delete("/{file_id}")
async def remove_file(
    file_id: int,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    f = await get_owned_file(db, file_id, account.user.id)
    if not f:
        raise NotFound("File not found")
    name = f.original_name
    await delete_file(db, f)
    await log_activity(db, account.user.id, "delete", f"Deleted file {name}")
    return {"message": "File deleted successfully"}


# -------------------------
# Public access
# -------------------------
async def _live_file(db: AsyncSession, ident: str) -> SharedFile:
    f = await get_file_by_id_or_slug(db, ident)
    if not f or f.expires_at <= utcnow():
        raise NotFound("File not found or expired")
    return f


async def _count_download(db: AsyncSession, f: SharedFile):
    f.downloads += 1
    db.add(f)
    res = await db.exec(select(FileHistory).where(FileHistory.file_id == f.id))
    snapshot = res.first()
    if snapshot:
        snapshot.downloads += 1
        db.add(snapshot)
    await db.commit()


def _check_downloadable(f: SharedFile):
    if f.blocked:
        raise AccessDenied(f.blocked_message or "This file has been blocked")
    if f.max_downloads is not None and f.downloads >= f.max_downloads:
        raise NotFound("Download limit reached")


@router.get("/public/{ident}", response_model=PublicFileRead)
async def public_file(ident: str, db: AsyncSession = Depends(get_db)):
    f = await _live_file(db, ident)
    f.views += 1
    db.add(f)
    await db.commit()
    await db.refresh(f)
    return PublicFileRead(
        id=f.id,
        original_name=f.original_name,
        size=f.size,
        content_type=f.content_type,
        expires_at=f.expires_at,
        is_protected=f.is_protected,
        blocked=f.blocked,
        blocked_message=f.blocked_message,
        downloads=f.downloads,
    )


@router.post("/{ident}/download")
async def download_file(ident: str, db: AsyncSession = Depends(get_db)):
    f = await _live_file(db, ident)
    _check_downloadable(f)
    if f.is_protected:
        raise Unauthorized("Password required")
    url = signed_download_url(f.file_key)
    await _count_download(db, f)
    return {"url": url}


@router.post("/{ident}/unlock")
async def unlock_file(ident: str, req: UnlockRequest, db: AsyncSession = Depends(get_db)):
    f = await _live_file(db, ident)
    if not f.is_protected:
        raise NotFound("Not found or not protected")
    _check_downloadable(f)
    if not verify_password(req.password, f.password_hash):
        raise Unauthorized("Invalid password")
    url = signed_download_url(f.file_key)
    await _count_download(db, f)
    return {"success": True, "url": url}

