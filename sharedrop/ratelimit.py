"""Per-user API rate limiting with counters persisted on the user row.

Two rolling windows: requests per hour and uploads per day. The counters are
read, advanced and written back without a compare-and-swap, so concurrent
calls with the same key can overrun the limit slightly (last write wins).
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.errors import NoApiAccess, RateLimited
from sharedrop.models import User, utcnow
from sharedrop.plans import PlanLimits

logger = logging.getLogger("sharedrop.ratelimit")

REQUEST_WINDOW = timedelta(hours=1)
UPLOAD_WINDOW = timedelta(hours=24)


def advance_window(
    count: int, window_start: Optional[datetime], now: datetime, window: timedelta
) -> Tuple[int, datetime]:
    """Reset the counter once the window has fully elapsed."""
    if window_start is None or now - window_start > window:
        return 0, now
    return count or 0, window_start


async def consume_api_call(
    db: AsyncSession,
    user: User,
    limits: PlanLimits,
    *,
    upload: bool = False,
    now: Optional[datetime] = None,
) -> User:
    """Account one API call (and one upload when ``upload``) for ``user``.

    Rejections never write: a plan without API access fails before any
    counter is looked at, and a full window fails before incrementing.
    Accepted calls always persist both counter pairs in a single commit.
    """
    if not limits.has_api_access:
        raise NoApiAccess("Tu plan actual no incluye acceso a la API. Actualiza a Plus o Pro.")

    now = now or utcnow()
    requests, requests_start = advance_window(
        user.api_requests_count, user.api_requests_window_start, now, REQUEST_WINDOW
    )
    uploads, uploads_start = advance_window(
        user.api_uploads_count, user.api_uploads_window_start, now, UPLOAD_WINDOW
    )

    if requests >= limits.api_requests_per_hour:
        logger.warning("user %s hit hourly request limit (%s)", user.id, limits.api_requests_per_hour)
        raise RateLimited("Rate limit exceeded", limit=limits.api_requests_per_hour)

    if upload and uploads >= limits.api_uploads_per_day:
        logger.warning("user %s hit daily upload limit (%s)", user.id, limits.api_uploads_per_day)
        raise RateLimited("Daily upload limit exceeded", limit=limits.api_uploads_per_day)

    user.api_requests_count = requests + 1
    user.api_requests_window_start = requests_start
    user.api_uploads_count = uploads + (1 if upload else 0)
    user.api_uploads_window_start = uploads_start
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user
