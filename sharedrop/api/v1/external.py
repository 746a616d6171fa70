"""Programmatic access authenticated by the ``x-api-key`` header.

Every call spends one request from the hourly budget; an admitted upload
also spends one from the daily upload budget.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import limits as gate
from sharedrop.api.v1.files import share_link
from sharedrop.core.errors import NotFound, ServerMisconfigured, SharedropError, UniquenessConflict
from sharedrop.crud import create_file, delete_file, get_owned_file, log_activity
from sharedrop.deps import get_api_uploader, get_api_user, get_db
from sharedrop.models import SharedFile, User, utcnow
from sharedrop.plans import limits_for, resolve_plan
from sharedrop.ratelimit import consume_api_call
from sharedrop.schemas import ApiUploadRequest, FileRead
from sharedrop.utils.paginator import page_window, paginate_meta
from sharedrop.utils.storage import build_file_key, presign_upload

logger = logging.getLogger("sharedrop.external")

router = APIRouter()


@router.post("/upload")
async def api_upload(
    req: ApiUploadRequest,
    user: User = Depends(get_api_uploader),
    db: AsyncSession = Depends(get_db),
):
    """Admit an upload and register the file right away.

    The caller PUTs the bytes to the returned storage URL afterwards; the
    record exists whether or not that upload ever happens.
    """
    plan = resolve_plan(user.plan).value
    limits = limits_for(user.plan)

    try:
        await gate.check_upload_admission(db, user.id, limits, plan, req.size)
        custom_link = await gate.check_custom_link(
            db, req.custom_link, owner_id=user.id, limits=limits, plan=plan
        )
        expires_at = gate.resolve_upload_expiration(
            limits, verified=True, now=utcnow(), expires_in_hours=req.expires_in_hours
        )
    except SharedropError:
        # a refused upload still costs a request but never an upload
        await consume_api_call(db, user, limits)
        raise
    user = await consume_api_call(db, user, limits, upload=True)

    content_type = req.type or "application/octet-stream"
    file_key = build_file_key(req.name, user.id)
    try:
        upload = presign_upload(file_key, content_type)
    except RuntimeError:
        raise ServerMisconfigured("Server Configuration Error: storage not set")

    try:
        f = await create_file(
            db,
            file_key=file_key,
            original_name=req.name,
            size=req.size,
            content_type=content_type,
            owner_id=user.id,
            owner_email=user.email,
            expires_at=expires_at,
            custom_link=custom_link,
        )
    except IntegrityError:
        await db.rollback()
        raise UniquenessConflict("Este enlace ya está en uso.")

    logger.info("api upload %s (%s bytes) for user %s", file_key, req.size, user.id)
    await log_activity(db, user.id, "api_upload", f"Uploaded file {f.original_name} via API")
    return {
        "id": f.id,
        "upload": upload,
        "file_url": share_link(f),
        "key": file_key,
        "expires_at": f.expires_at,
    }


@router.get("/files")
async def api_list_files(
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_api_user),
    db: AsyncSession = Depends(get_db),
):
    page, limit, offset = page_window(page, limit)
    total = (await db.exec(select(func.count(SharedFile.id)).where(SharedFile.owner_id == user.id))).one()
    res = await db.exec(
        select(SharedFile)
        .where(SharedFile.owner_id == user.id)
        .order_by(SharedFile.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return {
        "data": [FileRead.model_validate(f) for f in res.all()],
        "pagination": paginate_meta(total, page, limit),
    }


@router.get("/files/{file_id}", response_model=FileRead)
async def api_get_file(file_id: int, user: User = Depends(get_api_user), db: AsyncSession = Depends(get_db)):
    f = await get_owned_file(db, file_id, user.id)
    if not f:
        raise NotFound("File not found")
    return f


@router.delete("/files/{file_id}")
async def api_delete_file(file_id: int, user: User = Depends(get_api_user), db: AsyncSession = Depends(get_db)):
    f = await get_owned_file(db, file_id, user.id)
    if not f:
        raise NotFound("File not found")
    name = f.original_name
    await delete_file(db, f)
    await log_activity(db, user.id, "api_delete", f"Deleted file {name} via API")
    return {"message": "File deleted successfully"}
