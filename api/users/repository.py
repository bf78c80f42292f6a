"""
User persistence helpers used by the seed script.
"""

from __future__ import annotations

from typing import Any, Mapping

from core import db


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def insert_user_if_missing(user: Mapping[str, Any]) -> bool:
    """
    Insert `user` unless a row with the same id exists.

    Returns True when a row was inserted.
    """
    row = await db.fetch_one(
        """
        INSERT INTO users (
            id, first_name, last_name, middle_name, email, password,
            role_id, verification_code, is_verified, is_deleted, created_by
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
        ON CONFLICT (id) DO NOTHING
        RETURNING id
        """,
        user["id"],
        user["first_name"],
        user["last_name"],
        user.get("middle_name"),
        normalize_email(user["email"]),
        user["password"],
        user["role_id"],
        user.get("verification_code"),
        bool(user.get("is_verified", False)),
        bool(user.get("is_deleted", False)),
        user.get("created_by"),
    )
    return row is not None
