"""
Development seed data.

Run against the database in DATABASE_URL:
    python -m users.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from core import db
from core.log import configure_logging

from . import repository, security

logger = logging.getLogger(__name__)

TEST_DEVELOPER_ID = "48e40a9c-c5e9-4d63-9aba-b77cdf4ca67b"
TEST_DEVELOPER_PASSWORD = "pass"


def development_users() -> list[dict[str, Any]]:
    """
    Users every development database should have. Passwords are hashed on
    each call, so the hash differs between calls.
    """
    return [
        {
            "id": TEST_DEVELOPER_ID,
            "first_name": "Test",
            "last_name": "Developer",
            "middle_name": "Super Dev",
            "email": "testdev@gmail.com",
            "password": security.hash_password(TEST_DEVELOPER_PASSWORD),
            "role_id": 1,
            "verification_code": "ba1bfda5-1c27-4755-bd23-36c7a4dbfd2b",
            "is_verified": True,
            "is_deleted": False,
            "created_by": TEST_DEVELOPER_ID,
        }
    ]


async def seed_users() -> int:
    inserted = 0
    for user in development_users():
        if await repository.insert_user_if_missing(user):
            inserted += 1
            logger.info("user_seeded id=%s email=%s", user["id"], user["email"])
        else:
            logger.info("user_seed_skipped id=%s reason=exists", user["id"])
    return inserted


async def main() -> int:
    await db.init_pool()
    try:
        return await seed_users()
    finally:
        await db.close_pool()


if __name__ == "__main__":
    configure_logging()
    count = asyncio.run(main())
    logger.info("seed_finished inserted=%s", count)
