"""Pagination options and response metadata."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict

from xpmanager.errors import BadInputError

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class PaginationOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int | None = None
    page_size: int | None = None

    @property
    def requested(self) -> bool:
        return self.page is not None or self.page_size is not None

    def resolved(self, default_page_size: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
        return self.page or DEFAULT_PAGE, self.page_size or default_page_size


class Paging(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    page_size: int
    pages: int
    total: int

    @classmethod
    def from_count(cls, page: int, page_size: int, total: int) -> Paging:
        return cls(
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size),
            total=total,
        )


def validate_pagination(
    options: PaginationOptions, max_page_size: int = MAX_PAGE_SIZE
) -> None:
    """Reject out-of-range paging parameters."""
    if options.page is not None and options.page < 1:
        raise BadInputError(f"page must be at least 1, got {options.page}")
    if options.page_size is not None and not 1 <= options.page_size <= max_page_size:
        raise BadInputError(
            f"page_size must be between 1 and {max_page_size}, got {options.page_size}"
        )
