import asyncio
from datetime import datetime

from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.security import create_access_token
from sharedrop.db import session as db_session
from sharedrop.db.session import dispose_engine, get_engine, init_db
from sharedrop.models import User


def auth(email: str, *, role: str = "user", verified: bool = True) -> dict:
    token = create_access_token(email, name=email.split("@")[0], role=role, email_verified=verified)
    return {"Authorization": f"Bearer {token}"}


ADMIN = "admin@example.com"
MB = 1000 * 1000


def parse_dt(value: str) -> datetime:
    """Parse an API timestamp, including the trailing ``Z`` form."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def run_db(fn):
    """Run ``fn(session)`` against a freshly initialised database on its own loop."""

    async def _main():
        await init_db()
        try:
            async with AsyncSession(get_engine(), expire_on_commit=False) as session:
                return await fn(session)
        finally:
            await dispose_engine()

    return asyncio.run(_main())


async def make_user(session, email: str, plan: str = "free", **fields) -> User:
    user = User(email=email, plan=plan, **fields)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def reset_engine():
    db_session._engine = None


def reserve(client, headers, name="report.pdf", size=MB, **fields):
    return client.post(
        "/api/v1/files/upload",
        json={"name": name, "size": size, "type": "application/pdf", **fields},
        headers=headers,
    )


def upload(client, headers, name="report.pdf", size=MB, **fields) -> dict:
    """Reserve and complete an upload, returning the completion body."""
    ticket = reserve(client, headers, name=name, size=size, **fields)
    assert ticket.status_code == 200, ticket.text
    done = client.post("/api/v1/files/upload/complete", json={"token": ticket.json()["token"]}, headers=headers)
    assert done.status_code == 200, done.text
    return done.json()
