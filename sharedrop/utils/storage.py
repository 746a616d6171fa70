"""Object storage collaborator (Cloudinary).

Bytes never pass through this service: uploads go straight from the client
to Cloudinary with signed parameters, downloads use signed private URLs.
"""
import asyncio
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import cloudinary
import cloudinary.uploader
import cloudinary.utils

from sharedrop.core.config import settings

logger = logging.getLogger("sharedrop.storage")

RESOURCE_TYPE = "raw"
SIGNED_URL_TTL_SECONDS = 3600

_executor = ThreadPoolExecutor(max_workers=6)


def _configure_cloudinary() -> bool:
    if not settings.cloudinary_api_key or not settings.cloudinary_api_secret or not settings.cloudinary_cloud_name:
        return False
    cloudinary.config(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        secure=True,
    )
    return True


def build_file_key(filename: str, owner_id: int | None = None) -> str:
    """Storage public id: <folder>/<owner|guest>/<uuid>-<name>."""
    safe_name = re.sub(r"\s+", "-", filename.strip()) or "upload"
    owner = str(owner_id) if owner_id is not None else "guest"
    return f"{settings.cloudinary_upload_folder.rstrip('/')}/{owner}/{uuid4().hex}-{safe_name}"


def presign_upload(file_key: str, content_type: str | None = None) -> dict:
    """Signed direct-upload parameters, valid for about an hour."""
    if not _configure_cloudinary():
        raise RuntimeError("Cloudinary not configured")

    params = {
        "public_id": file_key,
        "timestamp": int(time.time()),
        "overwrite": "false",
    }
    signature = cloudinary.utils.api_sign_request(params, settings.cloudinary_api_secret)
    url = f"https://api.cloudinary.com/v1_1/{settings.cloudinary_cloud_name}/{RESOURCE_TYPE}/upload"
    fields = {**params, "api_key": settings.cloudinary_api_key, "signature": signature}
    if content_type:
        fields["context"] = f"content_type={content_type}"
    return {"url": url, "fields": fields}


def signed_download_url(file_key: str) -> str:
    if not _configure_cloudinary():
        raise RuntimeError("Cloudinary not configured")
    return cloudinary.utils.private_download_url(
        file_key,
        "",
        resource_type=RESOURCE_TYPE,
        attachment=True,
        expires_at=int(time.time()) + SIGNED_URL_TTL_SECONDS,
    )


async def delete_object(file_key: str):
    """Remove a stored object. Runs the blocking SDK call in a threadpool."""
    if not _configure_cloudinary():
        raise RuntimeError("Cloudinary not configured")

    def _sync_destroy():
        return cloudinary.uploader.destroy(file_key, resource_type=RESOURCE_TYPE, invalidate=True)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, _sync_destroy)


async def delete_object_quietly(file_key: str) -> bool:
    """Best-effort delete: failures are logged, never raised.

    A failed delete leaves an orphaned blob behind while the metadata row is
    still removed by the caller.
    """
    try:
        await delete_object(file_key)
        return True
    except Exception as exc:
        logger.exception("storage delete failed for %s: %s", file_key, exc)
        return False
