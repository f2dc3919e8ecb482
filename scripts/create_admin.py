#!/usr/bin/env python3
"""Create an administrator account, or promote an existing user.

Usage:
    DATABASE_URL=... python scripts/create_admin.py --username admin --email admin@example.com --password Secret123
"""
import argparse
import asyncio
import logging

from app.core.config import Settings
from app.core.database import Database
from app.core.security import get_password_hash
from app.models.user import RoleEnum
from app.services.users import UserRepository

logger = logging.getLogger("create_admin")


async def create_admin(settings: Settings, username: str, email: str, password: str) -> str:
    db = Database(settings)
    try:
        await db.create_all()
        async with db.session_factory() as session:
            users = UserRepository(session, timeout=settings.store_timeout)
            user = await users.find_by_username_or_email(username) or await users.find_by_email(email)
            if user is None:
                user = await users.create(
                    username=username,
                    email=email.lower(),
                    hashed_password=get_password_hash(password),
                    role=RoleEnum.admin,
                )
                return f"created {user.username} ({user.id})"
            if user.role == RoleEnum.admin:
                return f"{user.username} is already an admin"
            user.role = RoleEnum.admin
            await users.save(user)
            return f"promoted {user.username} ({user.id})"
    finally:
        await db.close()


def main():
    parser = argparse.ArgumentParser(description="Create or promote an admin user")
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(create_admin(Settings.from_env(), args.username, args.email, args.password))
    logger.info(result)


if __name__ == "__main__":
    main()
