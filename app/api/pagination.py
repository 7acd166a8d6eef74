# ============================================================================
# SiteLedger - Pagination Helpers
# ============================================================================
#
# page >= 1, perPage clamped to [1, MAX_PAGE_SIZE], order asc|desc,
# sort restricted to a per-resource whitelist.
#
# Response envelope:
#   {"data": [...], "meta": {"page", "perPage", "total", "totalPages"}}
#
# ============================================================================

from dataclasses import dataclass
import math
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi import Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from services.erp_config import get_erp_config


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    per_page: int = 10
    sort: Optional[str] = None
    order: str = "desc"
    search: str = ""

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def normalize_page_params(
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    sort: Optional[str] = None,
    order: Optional[str] = None,
    search: Optional[str] = None,
) -> PageParams:
    config = get_erp_config(validate=False)
    page_value = page if page and page >= 1 else 1
    size = per_page if per_page is not None else config.default_page_size
    size = min(max(size, 1), config.max_page_size)
    order_value = "asc" if (order or "").lower() == "asc" else "desc"
    return PageParams(page_value, size, sort, order_value, (search or "").strip())


def page_params(
    page: Optional[int] = Query(None),
    perPage: Optional[int] = Query(None),
    sort: Optional[str] = Query(None),
    order: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
) -> PageParams:
    """FastAPI dependency reading the standard list query parameters."""
    return normalize_page_params(page, perPage, sort, order, search)


def empty_page(params: PageParams) -> Dict[str, Any]:
    return {
        "data": [],
        "meta": {"page": params.page, "perPage": params.per_page, "total": 0, "totalPages": 0},
    }


def paginate(
    db: Session,
    stmt: Select,
    params: PageParams,
    sort_columns: Mapping[str, Any],
    default_sort: str,
    serialize: Callable[[Any], Dict[str, Any]],
    tiebreaker: Any = None,
) -> Dict[str, Any]:
    """
    Apply sorting and paging to stmt and wrap the serialized rows.

    sort_columns maps public sort keys to columns; an unknown sort key
    falls back to default_sort.
    """
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()

    column = sort_columns.get(params.sort or "", sort_columns[default_sort])
    ordering = [column.asc() if params.order == "asc" else column.desc()]
    if tiebreaker is not None:
        ordering.append(tiebreaker.asc() if params.order == "asc" else tiebreaker.desc())

    rows = db.execute(
        stmt.order_by(*ordering).offset(params.offset).limit(params.per_page)
    ).unique().scalars().all()

    data: List[Dict[str, Any]] = [serialize(row) for row in rows]
    return {
        "data": data,
        "meta": {
            "page": params.page,
            "perPage": params.per_page,
            "total": total,
            "totalPages": math.ceil(total / params.per_page),
        },
    }
