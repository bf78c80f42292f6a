"""
Release domain models.

Repository functions return these instead of raw asyncpg rows. Nested
associations arrive as decoded JSON (see `core/db.py` codecs).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, Field


class Category(BaseModel):
    id: int
    name: str | None = None


class Style(BaseModel):
    id: int
    brand: int | None = None
    category: int | None = None
    category_detail: Category | None = None


class Offer(BaseModel):
    status: str | None = None
    raffle: bool | None = None
    shipping: str | None = None


class ReleaseImage(BaseModel):
    id: int
    release_id: int | None = None
    image: str


class Release(BaseModel):
    id: int
    slug: str
    name: str
    sku: str | None = None
    gender: str | None = None
    color: str | None = None
    release_date: datetime | None = None
    price_eur: float | None = None
    price_gbp: float | None = None
    price_usd: float | None = None
    hidden_dashboard: bool = False
    style_id: int | None = None
    updated_at: datetime | None = None

    images: list[ReleaseImage] = Field(default_factory=list)
    style: Style | None = None
    offers: list[Offer] = Field(default_factory=list)


def to_release(row: Mapping[str, Any]) -> Release:
    return Release.model_validate(dict(row))


def to_release_image(row: Mapping[str, Any]) -> ReleaseImage:
    return ReleaseImage.model_validate(dict(row))
