import logging

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.security import generate_api_key
from sharedrop.crud import log_activity
from sharedrop.deps import get_current_user, get_db
from sharedrop.models import User

logger = logging.getLogger("sharedrop.keys")

router = APIRouter()


@router.get("")
async def read_key(user: User = Depends(get_current_user)):
    return {"api_key": user.api_key}


@router.post("")
async def rotate_key(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Issue a new key, invalidating the previous one.

    Any plan may hold a key; API access itself is checked on every call.
    """
    user.api_key = generate_api_key()
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("issued api key for user %s", user.id)
    await log_activity(db, user.id, "api_key", "Generated a new API key")
    return {"api_key": user.api_key}
