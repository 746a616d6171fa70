from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.security import decode_token
from sharedrop.db.session import get_session
from sharedrop.crud import create_user, get_user_by_api_key, get_user_by_email
from sharedrop.models import User
from sharedrop.plans import PlanLimits, PlanId, limits_for, resolve_plan
from sharedrop.ratelimit import consume_api_call

# Sessions are issued by the identity provider as signed bearer tokens.
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Account:
    """The caller's user row plus what the session says about them."""

    user: User
    email_verified: bool

    @property
    def plan(self) -> PlanId:
        return resolve_plan(self.user.plan)

    @property
    def limits(self) -> PlanLimits:
        return limits_for(self.user.plan)

    @property
    def upload_limits(self) -> PlanLimits:
        # unverified sessions upload like guests
        return self.limits if self.email_verified else limits_for(PlanId.GUEST)


async def get_db():
    async for s in get_session():
        yield s


async def _account_from_token(token: str, db: AsyncSession) -> Account:
    try:
        payload = decode_token(token)
        email = payload.get("sub")
        if not email:
            raise ValueError("invalid token payload")
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    role = payload.get("role") or "user"
    user = await get_user_by_email(db, email=email)
    if not user:
        # first sign-in through the identity provider
        user = await create_user(db, email=email, name=payload.get("name"), role=role)
    elif user.role != role:
        user.role = role
        db.add(user)
        await db.commit()
        await db.refresh(user)

    if user.blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=user.blocked_message or "Account blocked",
        )
    return Account(user=user, email_verified=bool(payload.get("email_verified", False)))


async def get_current_account(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Account:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return await _account_from_token(creds.credentials, db)


async def get_optional_account(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[Account]:
    if creds is None:
        return None
    return await _account_from_token(creds.credentials, db)


async def get_current_user(account: Account = Depends(get_current_account)) -> User:
    return account.user


async def require_admin(user: User = Depends(get_current_user)):
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return user


async def _api_user(x_api_key: Optional[str], db: AsyncSession) -> User:
    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API Key")
    user = await get_user_by_api_key(db, x_api_key)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API Key")
    return user


async def get_api_user(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """API key auth plus the hourly request budget."""
    user = await _api_user(x_api_key, db)
    return await consume_api_call(db, user, limits_for(user.plan))


async def get_api_uploader(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """API key auth only.

    The upload route spends the request and upload budgets itself, once the
    upload has been admitted or refused.
    """
    return await _api_user(x_api_key, db)
