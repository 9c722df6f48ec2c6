from typing import Generic, List, TypeVar
from pydantic import BaseModel, Field

T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        # an empty listing still reports one page
        pages = max(1, -(-total // limit))
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)  # type: ignore[assignment]
    pagination: Pagination


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit
