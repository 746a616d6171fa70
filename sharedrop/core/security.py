from jose import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from sharedrop.core.config import settings
import secrets
import uuid

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
UPLOAD_TOKEN_TYPE = "upload"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(
    subject: str,
    *,
    name: str | None = None,
    role: str = "user",
    email_verified: bool = True,
    expires_minutes: int | None = None,
) -> str:
    """Mint a session token the way the identity provider does.

    Used by the operator tooling and the tests; in production sessions are
    issued by the OAuth provider with the same secret.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=(expires_minutes or settings.access_token_expire_minutes)
    )
    payload = {
        "sub": subject,
        "name": name,
        "role": role,
        "email_verified": email_verified,
        "exp": expire,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.session_algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.session_algorithm])


def create_upload_token(data: dict) -> str:
    """Sign the metadata reserved at upload time so completion can trust it."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.upload_token_expire_minutes)
    payload = {**data, "typ": UPLOAD_TOKEN_TYPE, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.session_algorithm)


def decode_upload_token(token: str) -> dict:
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.session_algorithm])
    if payload.get("typ") != UPLOAD_TOKEN_TYPE:
        raise ValueError("not an upload token")
    return payload


def generate_api_key() -> str:
    return f"{settings.api_key_prefix}{secrets.token_hex(24)}"
