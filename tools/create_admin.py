import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is importable when running this script directly
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.security import create_access_token
from sharedrop.crud import create_user, get_user_by_email
from sharedrop.db.session import dispose_engine, get_engine, init_db


async def create_or_promote_admin(email: str, name: str) -> dict:
    await init_db()
    try:
        async with AsyncSession(get_engine(), expire_on_commit=False) as session:
            # If a user with this email exists, promote to admin
            existing = await get_user_by_email(session, email)
            if existing:
                existing.role = "admin"
                session.add(existing)
                await session.commit()
                return {"email": email, "name": existing.name, "promoted": True}

            user = await create_user(session, email=email, name=name, role="admin")
            return {"email": user.email, "name": user.name, "promoted": False}
    finally:
        await dispose_engine()


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create or promote an admin user and print a session token")
    p.add_argument("--email", default="admin@example.com", help="Admin email")
    p.add_argument("--name", default="admin", help="Display name")
    p.add_argument("--minutes", type=int, default=60, help="Token lifetime in minutes")
    return p.parse_args()


def main():
    args = parse_args()
    result = asyncio.run(create_or_promote_admin(args.email, args.name))
    if result.get("promoted"):
        print(f"Promoted existing user '{result['email']}' to admin")
    else:
        print(f"Created admin: {result['email']} (name='{result['name']}')")

    token = create_access_token(result["email"], name=result["name"], role="admin", expires_minutes=args.minutes)
    print("Session token:")
    print(f"  {token}")


if __name__ == "__main__":
    main()
