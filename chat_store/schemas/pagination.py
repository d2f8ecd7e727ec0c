from typing import Any, List
from pydantic import BaseModel
from chat_store.utils.pagination import page_window


class PaginatedResponse(BaseModel):
    data: List[Any]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_page(cls, items: List[Any], total: int, page: int, size: int) -> "PaginatedResponse":
        offset, limit = page_window(page, size)
        return cls(
            data=list(items),
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(items) < total,
        )
