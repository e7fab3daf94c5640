"""Reusable limit/offset pagination for list endpoints."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class PaginationParams:
    """Inject as a FastAPI dependency for any list endpoint."""

    def __init__(
        self,
        limit: int = Query(10, ge=1, le=50, description="Items per page"),
        offset: int = Query(0, ge=0, description="Items to skip"),
    ):
        self.limit = limit
        self.offset = offset


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    limit: int
    offset: int


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
) -> tuple[list[Any], int]:
    """Apply limit/offset to a query and return (items, total_count).

    The query should already carry its ordering; rows are de-duplicated so
    eager-loaded joins do not inflate the page.
    """
    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_q)).scalar() or 0

    query = query.offset(params.offset).limit(params.limit)

    result = await db.execute(query)
    items = list(result.scalars().unique().all())
    return items, total
