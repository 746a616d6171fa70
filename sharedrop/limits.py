"""Limit gate: plan checks run inline by each mutating operation.

Each check re-counts from the database through :mod:`sharedrop.quota` and
raises one of the typed errors in :mod:`sharedrop.core.errors`. Checks are
not transactional with the write that follows them.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop import quota
from sharedrop.core.errors import (
    AccessDenied,
    QuotaExceeded,
    UniquenessConflict,
    ValidationFailed,
)
from sharedrop.models import Folder, SharedFile
from sharedrop.plans import PlanLimits, format_bytes

logger = logging.getLogger("sharedrop.limits")

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
SLUG_MAX_LENGTH = 64
RESERVED_SLUGS = frozenset({
    "dashboard", "api", "login", "register", "admin", "privacy", "terms",
    "features", "pricing", "d", "docs", "help", "security", "cookies",
    "gdpr", "user",
})

FOLDER_NAME_MAX = 50
TAG_MAX_LENGTH = 30
GUEST_WINDOW = timedelta(minutes=30)
DEFAULT_WINDOW = timedelta(days=7)


def _plan_label(plan: Optional[str]) -> str:
    return (plan or "free").upper()


# -------------------------
# Uploads
# -------------------------
async def check_upload_admission(
    db: AsyncSession,
    owner_id: Optional[int],
    limits: PlanLimits,
    plan: Optional[str],
    size: int,
) -> None:
    """Per-file size, active-file ceiling, then total storage.

    Guests (``owner_id is None``) only get the size check.
    """
    if size < 0:
        raise ValidationFailed("File size must be a positive number")

    if size > limits.max_bytes:
        raise QuotaExceeded(
            f"Tu plan {_plan_label(plan)} limita archivos a {format_bytes(limits.max_bytes)}. Mejora tu plan.",
            limit=limits.max_bytes,
            plan=plan,
        )

    if owner_id is None:
        return

    active = await quota.count_active_files(db, owner_id)
    if active >= limits.max_files:
        logger.warning("user %s at active files ceiling (%s/%s)", owner_id, active, limits.max_files)
        raise QuotaExceeded(
            f"Active files limit reached ({limits.max_files})",
            limit=limits.max_files,
            plan=plan,
        )

    if limits.max_total_storage:
        used = await quota.total_storage_bytes(db, owner_id)
        if used + size > limits.max_total_storage:
            raise QuotaExceeded(
                f"Storage limit exceeded: {format_bytes(limits.max_total_storage)} "
                f"(currently using {format_bytes(used)})",
                limit=limits.max_total_storage,
                plan=plan,
            )


def resolve_upload_expiration(
    limits: PlanLimits,
    *,
    verified: bool,
    now: datetime,
    custom_expires_at: Optional[datetime] = None,
    expires_in_hours: Optional[float] = None,
) -> datetime:
    if not verified:
        return now + GUEST_WINDOW

    latest = now + timedelta(days=limits.max_days)
    if custom_expires_at is not None:
        if now < custom_expires_at <= latest:
            return custom_expires_at
        raise ValidationFailed(
            f"La fecha de expiración excede el máximo de {limits.max_days:g} días de tu plan."
        )

    if expires_in_hours:
        if expires_in_hours <= 0:
            raise ValidationFailed("expires_in_hours must be positive")
        return now + timedelta(hours=min(expires_in_hours, limits.max_days * 24))

    return min(now + DEFAULT_WINDOW, latest)


# -------------------------
# Passwords
# -------------------------
async def check_password_addition(
    db: AsyncSession,
    owner_id: int,
    limits: PlanLimits,
    plan: Optional[str],
    already_protected: bool = False,
) -> None:
    """Only a transition from unprotected to protected consumes quota."""
    if already_protected:
        return
    protected = await quota.count_protected_files(db, owner_id)
    if protected >= limits.max_pwd:
        logger.warning("user %s at protected files ceiling (%s/%s)", owner_id, protected, limits.max_pwd)
        raise QuotaExceeded(
            f"Tu plan {_plan_label(plan)} solo permite {limits.max_pwd} archivo protegido.",
            limit=limits.max_pwd,
            plan=plan,
        )


# -------------------------
# Custom links
# -------------------------
def validate_slug_format(slug: str) -> str:
    if len(slug) > SLUG_MAX_LENGTH or not SLUG_PATTERN.match(slug):
        raise ValidationFailed("Slug inválido. Solo letras minúsculas, números y guiones.")
    if slug in RESERVED_SLUGS:
        raise ValidationFailed("Este enlace está reservado.")
    return slug


async def slug_taken(db: AsyncSession, slug: str, exclude_file_id: Optional[int] = None) -> bool:
    q = select(SharedFile.id).where(SharedFile.custom_link == slug)
    if exclude_file_id is not None:
        q = q.where(SharedFile.id != exclude_file_id)
    return (await db.exec(q)).first() is not None


async def check_custom_link(
    db: AsyncSession,
    slug: Optional[str],
    *,
    owner_id: Optional[int],
    limits: PlanLimits,
    plan: Optional[str],
    file_id: Optional[int] = None,
    had_link: bool = False,
    enforce_quota: bool = True,
) -> Optional[str]:
    """Validate a requested custom link and return the value to store.

    An empty value clears the link and always succeeds. Order of checks:
    format, reserved names, global uniqueness, then the plan quota (only
    when the file had no link before).
    """
    if slug is None:
        return None
    slug = slug.strip()
    if not slug:
        return None

    validate_slug_format(slug)

    if await slug_taken(db, slug, exclude_file_id=file_id):
        raise UniquenessConflict("Este enlace ya está en uso.")

    if enforce_quota and not had_link:
        if owner_id is None:
            raise AccessDenied("Regístrate para usar enlaces personalizados.")
        links = await quota.count_custom_links(db, owner_id)
        if links >= limits.max_custom_links:
            raise QuotaExceeded(
                f"Tu plan {_plan_label(plan)} permite {limits.max_custom_links} enlaces personalizados.",
                limit=limits.max_custom_links,
                plan=plan,
            )
    return slug


# -------------------------
# Expiration edits
# -------------------------
def resolve_expiration_change(current: datetime, requested: Optional[datetime], now: datetime) -> datetime:
    """Owners may only shorten a file's life, never extend or backdate it.

    Anything outside ``now < requested < current`` is ignored without error.
    """
    if requested is None:
        return current
    if now < requested < current:
        return requested
    return current


# -------------------------
# Folders
# -------------------------
def normalize_folder_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise ValidationFailed("Folder name is required")
    name = name.strip()
    if len(name) > FOLDER_NAME_MAX:
        raise ValidationFailed(f"Folder name must be {FOLDER_NAME_MAX} characters or less")
    return name


async def folder_name_taken(
    db: AsyncSession, owner_id: int, name: str, exclude_folder_id: Optional[int] = None
) -> bool:
    q = select(Folder.id).where(Folder.owner_id == owner_id, Folder.name == name)
    if exclude_folder_id is not None:
        q = q.where(Folder.id != exclude_folder_id)
    return (await db.exec(q)).first() is not None


async def check_folder_creation(
    db: AsyncSession,
    owner_id: int,
    name: Optional[str],
    limits: PlanLimits,
    plan: Optional[str],
) -> str:
    name = normalize_folder_name(name)

    existing = await quota.count_folders(db, owner_id)
    if existing >= limits.max_folders:
        raise QuotaExceeded(
            f"You've reached the maximum number of folders ({limits.max_folders}) for your {limits.name} plan",
            limit=limits.max_folders,
            plan=plan,
        )

    if await folder_name_taken(db, owner_id, name):
        raise UniquenessConflict("A folder with this name already exists")
    return name


# -------------------------
# Tags
# -------------------------
def check_tags(tags: Optional[Iterable[str]], limits: PlanLimits, plan: Optional[str]) -> List[str]:
    cleaned: List[str] = []
    for tag in tags or []:
        tag = (tag or "").strip().lower()
        if not tag or tag in cleaned:
            continue
        if len(tag) > TAG_MAX_LENGTH:
            raise ValidationFailed(f"Tags must be {TAG_MAX_LENGTH} characters or less")
        cleaned.append(tag)

    if len(cleaned) > limits.max_tags:
        raise QuotaExceeded(
            f"Máximo {limits.max_tags} etiquetas permitidas",
            limit=limits.max_tags,
            plan=plan,
        )
    return cleaned
