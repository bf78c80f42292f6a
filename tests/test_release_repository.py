# test_release_repository.py

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core import db
from core.errors import EntityNotFoundError, ValidationError
from releases import repository
from releases.schemas import Release, ReleaseImage


def _release_row(**overrides):
    row = {
        "id": 1,
        "slug": "aj1-red",
        "name": "Air Jordan 1 Red",
        "sku": "555088-600",
        "gender": "m",
        "color": "Red",
        "release_date": None,
        "price_eur": 180,
        "price_gbp": None,
        "price_usd": 190,
        "hidden_dashboard": False,
        "style_id": 2,
        "updated_at": datetime(2024, 1, 2, tzinfo=timezone.utc),
        "images": [{"id": 3, "release_id": 1, "image": "a.png", "created_at": "2024-01-01T00:00:00"}],
        "style": {"id": 2, "brand": 5, "category": 7, "category_detail": {"id": 7, "name": "Sneakers"}},
        "offers": [{"status": "live", "raffle": True, "shipping": "dhl"}],
    }
    row.update(overrides)
    return row


def _fake_transaction(conn):
    @asynccontextmanager
    async def transaction():
        yield conn

    return MagicMock(side_effect=transaction)


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
async def test_list_releases_converts_rows(mock_fetch_all):
    mock_fetch_all.return_value = [_release_row()]

    releases = await repository.list_releases({"gender": "m", "page": 2}, limit=5)

    sql, *args = mock_fetch_all.await_args.args
    assert "(r.gender = $1 OR r.gender = $2)" in sql
    assert args == ["m", "u", 5]
    assert len(releases) == 1
    release = releases[0]
    assert isinstance(release, Release)
    assert release.images == [ReleaseImage(id=3, release_id=1, image="a.png")]
    assert release.style.category_detail.name == "Sneakers"
    assert release.offers[0].raffle is True


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
async def test_list_releases_rejects_bad_filters_before_querying(mock_fetch_all):
    with pytest.raises(ValidationError):
        await repository.list_releases({"toDate": "not-a-date"})
    mock_fetch_all.assert_not_awaited()


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_count_releases(mock_fetch_one):
    mock_fetch_one.return_value = {"n": 4}
    assert await repository.count_releases({"status": "live"}) == 4

    mock_fetch_one.return_value = None
    assert await repository.count_releases({}) == 0


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_find_by_id(mock_fetch_one):
    mock_fetch_one.return_value = _release_row(id=9)

    release = await repository.find_by_id(9)

    sql, *args = mock_fetch_one.await_args.args
    assert "WHERE r.id = $1" in sql
    assert args == [9, 1]
    assert release.id == 9


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_get_by_id_raises_when_missing(mock_fetch_one):
    mock_fetch_one.return_value = None
    assert await repository.find_by_id(9) is None
    with pytest.raises(EntityNotFoundError):
        await repository.get_by_id(9)


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_create_images_on_missing_release_inserts_nothing(mock_fetch_one):
    mock_fetch_one.return_value = None
    transaction = _fake_transaction(AsyncMock())

    with patch.object(db, "transaction", transaction):
        with pytest.raises(EntityNotFoundError) as excinfo:
            await repository.create_images(42, [{"image": "a.png"}])

    assert excinfo.value.entity_id == 42
    transaction.assert_not_called()


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_create_images_inserts_and_associates(mock_fetch_one):
    mock_fetch_one.return_value = {"id": 1}
    conn = AsyncMock()
    conn.fetch.side_effect = [
        [{"id": 10}, {"id": 11}],
        [
            {"id": 11, "release_id": 1, "image": "b.png"},
            {"id": 10, "release_id": 1, "image": "a.png"},
        ],
    ]

    with patch.object(db, "transaction", _fake_transaction(conn)):
        images = await repository.create_images(1, [{"image": "a.png"}, "b.png"])

    insert_call, associate_call = conn.fetch.await_args_list
    assert "INSERT INTO release_images" in insert_call.args[0]
    assert insert_call.args[1] == ["a.png", "b.png"]
    assert "SET release_id = $1" in associate_call.args[0]
    assert associate_call.args[1:] == (1, [10, 11])
    assert [image.id for image in images] == [10, 11]
    assert all(image.release_id == 1 for image in images)


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_create_images_with_empty_list(mock_fetch_one):
    mock_fetch_one.return_value = {"id": 1}
    transaction = _fake_transaction(AsyncMock())

    with patch.object(db, "transaction", transaction):
        assert await repository.create_images(1, []) == []

    transaction.assert_not_called()


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_get_all_images_without_images(mock_fetch_one, mock_fetch_all):
    mock_fetch_one.return_value = {"id": 1}
    mock_fetch_all.return_value = []

    assert await repository.get_all_images(1) == []


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_get_all_images_missing_release(mock_fetch_one, mock_fetch_all):
    mock_fetch_one.return_value = None

    with pytest.raises(EntityNotFoundError):
        await repository.get_all_images(1)
    mock_fetch_all.assert_not_awaited()


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
@patch("releases.repository.db.fetch_one", new_callable=AsyncMock)
async def test_get_all_images_converts_rows(mock_fetch_one, mock_fetch_all):
    mock_fetch_one.return_value = {"id": 1}
    mock_fetch_all.return_value = [{"id": 5, "release_id": 1, "image": "x.png"}]

    images = await repository.get_all_images(1)

    assert images == [ReleaseImage(id=5, release_id=1, image="x.png")]
    assert mock_fetch_all.await_args.args[1] == 1


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_all", new_callable=AsyncMock)
async def test_get_past_releases_filters_strictly_before_cutoff(mock_fetch_all):
    mock_fetch_all.return_value = [
        _release_row(release_date=datetime(2023, 12, 1, tzinfo=timezone.utc)),
    ]

    releases = await repository.get_past_releases(datetime(2024, 1, 1))

    sql, *args = mock_fetch_all.await_args.args
    assert "WHERE r.release_date < $1" in sql
    assert args == [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    assert releases[0].release_date.year == 2023


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_value", new_callable=AsyncMock)
async def test_count_like_releases_is_prefix_match(mock_fetch_value):
    mock_fetch_value.return_value = 2

    assert await repository.count_like_releases("AJ1") == 2

    sql, pattern = mock_fetch_value.await_args.args
    assert "slug ILIKE $1" in sql
    assert pattern == "AJ1%"


@pytest.mark.asyncio
@patch("releases.repository.db.fetch_value", new_callable=AsyncMock)
async def test_count_like_releases_escapes_wildcards(mock_fetch_value):
    mock_fetch_value.return_value = None

    assert await repository.count_like_releases("AJ_1") == 0
    assert mock_fetch_value.await_args.args[1] == "AJ\\_1%"


@pytest.mark.asyncio
@patch("releases.repository.db.execute", new_callable=AsyncMock)
async def test_destroy_image_is_idempotent(mock_execute):
    mock_execute.return_value = "DELETE 0"

    assert await repository.destroy_image(77) is None
    assert mock_execute.await_args.args[1] == 77


@pytest.mark.asyncio
@patch("releases.repository.db.execute", new_callable=AsyncMock)
async def test_set_hidden_dashboard(mock_execute):
    await repository.set_hidden_dashboard(3, 1)

    sql, release_id, flag = mock_execute.await_args.args
    assert "SET hidden_dashboard = $2" in sql
    assert (release_id, flag) == (3, True)


@pytest.mark.asyncio
@patch("releases.repository.db.execute", new_callable=AsyncMock)
async def test_modify_updated_at_writes_utc_timestamp(mock_execute):
    await repository.modify_updated_at(3, datetime(2024, 2, 1, 12, 30))

    sql, release_id, updated_at = mock_execute.await_args.args
    assert "SET updated_at = $2" in sql
    assert release_id == 3
    assert updated_at == datetime(2024, 2, 1, 12, 30, tzinfo=timezone.utc)
