#!/usr/bin/env python3
"""Create (or look up) an agent user and print an access token for it.

Usage:
    python scripts/create_agent.py agent@example.com --first-name Ana --last-name Lopez
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.models import User
from app.utils.jwt import create_access_token

settings = get_settings()


async def create_agent(email: str, first_name: str, last_name: str, days: int | None) -> None:
    engine = create_async_engine(settings.async_database_url)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email.lower(), first_name=first_name, last_name=last_name)
                session.add(user)
                await session.commit()
                print(f"Created agent: {user.full_name} (ID: {user.id})")
            else:
                print(f"Agent already exists: {user.full_name} (ID: {user.id})")

            expires_in = timedelta(days=days) if days else None
            print(f"Access token: {create_access_token(user.id, expires_in=expires_in)}")
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an Omnidesk agent user")
    parser.add_argument("email")
    parser.add_argument("--first-name", default="Support")
    parser.add_argument("--last-name", default="Agent")
    parser.add_argument("--days", type=int, help="Token lifetime in days (default: configured expiry)")
    args = parser.parse_args()
    asyncio.run(create_agent(args.email, args.first_name, args.last_name, args.days))


if __name__ == "__main__":
    main()
