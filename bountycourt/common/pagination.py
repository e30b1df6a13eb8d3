"""Page-number pagination for the dispute list endpoints."""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class PaginationParams:
    """FastAPI dependency: ``?page=&page_size=``."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number"),
        page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    ):
        self.page = page
        self.page_size = page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
    convert: Callable[[Any], T],
) -> PaginatedResponse[T]:
    """Run an already-ordered query for one page and wrap the converted rows.

    The count ignores ``ORDER BY`` so the queue ordering does not leak into
    the subquery.
    """
    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_q)).scalar() or 0

    result = await db.execute(query.offset(params.offset).limit(params.page_size))
    rows = result.scalars().all()

    return PaginatedResponse(
        items=[convert(row) for row in rows],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=-(-total // params.page_size),
    )
