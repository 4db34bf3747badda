"""Shared page/limit/search handling for list endpoints."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    limit: int = 10
    search: str = ""

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def term(self) -> str:
        return self.search.strip()


def contains_ci(column, term: str):
    """Case-insensitive substring match with LIKE wildcards escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


def numeric_term(term: str) -> int | None:
    stripped = term.strip()
    if stripped.isdigit():
        return int(stripped)
    return None


def build_meta(total_items: int, params: PageParams) -> dict[str, int]:
    return {
        "totalItems": total_items,
        "currentPage": params.page,
        "totalPages": math.ceil(total_items / params.limit),
        "limit": params.limit,
    }


def paginate(
    db: Session,
    stmt: Select,
    params: PageParams,
    serialize: Callable[[Any], dict],
) -> dict[str, Any]:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total_items = db.execute(count_stmt).scalar_one()
    rows = db.execute(stmt.offset(params.offset).limit(params.limit)).scalars().unique().all()
    return {
        "data": [serialize(row) for row in rows],
        "meta": build_meta(total_items, params),
    }
