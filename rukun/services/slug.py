"""URL slugs for events and expenses."""

import re

from sqlalchemy import select
from sqlalchemy.orm import Session


def generate_slug(text: str) -> str:
    """Lowercase, hyphen-separated slug of a title.

    >>> generate_slug("  17 Agustus: Lomba & Konsumsi ")
    '17-agustus-lomba-konsumsi'
    """
    slug = str(text).lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w\-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def unique_slug(db: Session, model, text: str, exclude_id: int | None = None) -> str:
    """Slug of `text` not yet used by `model`, suffixed -1, -2... on collision."""
    base = generate_slug(text) or "item"
    stmt = select(model.slug).where(model.slug.like(f"{base}%"))
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    existing = set(db.execute(stmt).scalars().all())

    slug = base
    counter = 1
    while slug in existing:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


__all__ = ["generate_slug", "unique_slug"]
