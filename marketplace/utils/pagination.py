"""Offset pagination for list endpoints."""

import math
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    """Normalize page/limit query values to sane bounds."""
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else settings.default_page_size
    return page, min(limit, settings.max_page_size)


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Run ``query`` for one page and count the full result set.

    Returns:
        dict with ``total``, ``page``, ``limit``, ``total_pages`` and ``data``
        (ORM objects; callers validate them into response schemas).
    """
    page, limit = clamp_page(page, limit)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * limit
    result = await db.execute(query.offset(offset).limit(limit))

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
        "data": list(result.scalars().all()),
    }
