"""
Release persistence (raw SQL).

Filtered listing goes through `releases/query.py`; the remaining helpers
are small targeted statements (images, dashboard flag, timestamps).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from core import db
from core.errors import EntityNotFoundError

from .filters import Condition, FilterFragment, like_escape
from .query import ReleaseQuery, compile_count, compile_select, compose
from .schemas import Release, ReleaseImage, to_release, to_release_image

logger = logging.getLogger(__name__)


async def list_releases(
    params: Mapping[str, Any],
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[Release]:
    """
    Return releases matching the query-string style `params`, with images,
    style (+ category) and offers eager-loaded.
    """
    sql, args = compile_select(compose(params), limit=limit, offset=offset)
    rows = await db.fetch_all(sql, *args)
    return [to_release(row) for row in rows]


async def count_releases(params: Mapping[str, Any]) -> int:
    sql, args = compile_count(compose(params))
    row = await db.fetch_one(sql, *args)
    return int((row or {}).get("n", 0))


async def find_by_id(release_id: int) -> Release | None:
    query = ReleaseQuery().narrow(FilterFragment(Condition("id", "eq", release_id)))
    sql, args = compile_select(query, limit=1)
    row = await db.fetch_one(sql, *args)
    return to_release(row) if row is not None else None


async def get_by_id(release_id: int) -> Release:
    release = await find_by_id(release_id)
    if release is None:
        raise EntityNotFoundError("Release", release_id)
    return release


async def _require_release(release_id: int) -> None:
    row = await db.fetch_one(
        """
        SELECT id
        FROM releases
        WHERE id = $1
        """,
        release_id,
    )
    if row is None:
        raise EntityNotFoundError("Release", release_id)


def _image_payload(image: str | Mapping[str, Any]) -> str:
    if isinstance(image, Mapping):
        return str(image["image"])
    return str(image)


async def create_images(
    release_id: int,
    images: Sequence[str | Mapping[str, Any]],
) -> list[ReleaseImage]:
    """
    Insert image rows and attach them to the release.

    Both steps share one transaction, so a failure leaves no orphan images.
    """
    await _require_release(release_id)
    payloads = [_image_payload(image) for image in images]
    if not payloads:
        return []

    async with db.transaction() as conn:
        inserted = await conn.fetch(
            """
            INSERT INTO release_images (image)
            SELECT unnest($1::text[])
            RETURNING id
            """,
            payloads,
        )
        rows = await conn.fetch(
            """
            UPDATE release_images
            SET release_id = $1
            WHERE id = ANY($2::int[])
            RETURNING id, release_id, image
            """,
            release_id,
            [record["id"] for record in inserted],
        )

    logger.info("release_images_created release_id=%s count=%s", release_id, len(rows))
    return sorted((to_release_image(dict(row)) for row in rows), key=lambda image: image.id)


async def get_all_images(release_id: int) -> list[ReleaseImage]:
    await _require_release(release_id)
    rows = await db.fetch_all(
        """
        SELECT id, release_id, image
        FROM release_images
        WHERE release_id = $1
        ORDER BY id
        """,
        release_id,
    )
    return [to_release_image(row) for row in rows]


async def get_past_releases(cutoff: datetime) -> list[Release]:
    """
    Releases scheduled strictly before `cutoff`.
    """
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=timezone.utc)
    query = ReleaseQuery().narrow(FilterFragment(Condition("release_date", "lt", cutoff)))
    sql, args = compile_select(query)
    rows = await db.fetch_all(sql, *args)
    return [to_release(row) for row in rows]


async def count_like_releases(slug_prefix: str) -> int:
    """
    Number of releases whose slug starts with `slug_prefix`.
    """
    count = await db.fetch_value(
        """
        SELECT count(*)
        FROM releases
        WHERE slug ILIKE $1 ESCAPE '\\'
        """,
        like_escape(slug_prefix) + "%",
    )
    return int(count or 0)


async def destroy_image(image_id: int) -> None:
    status = await db.execute(
        """
        DELETE FROM release_images
        WHERE id = $1
        """,
        image_id,
    )
    logger.info("release_image_deleted image_id=%s deleted=%s", image_id, db.affected_rows(status))


async def set_hidden_dashboard(release_id: int, hidden_dashboard: bool) -> None:
    await db.execute(
        """
        UPDATE releases
        SET hidden_dashboard = $2
        WHERE id = $1
        """,
        release_id,
        bool(hidden_dashboard),
    )
    logger.info("release_hidden_dashboard_set release_id=%s hidden=%s", release_id, bool(hidden_dashboard))


async def modify_updated_at(release_id: int, updated_at: datetime) -> None:
    """
    Write `updated_at` as given. Nothing else about the row changes.
    """
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)

    await db.execute(
        """
        UPDATE releases
        SET updated_at = $2
        WHERE id = $1
        """,
        release_id,
        updated_at,
    )
    logger.info("release_updated_at_modified release_id=%s updated_at=%s", release_id, updated_at.isoformat())
