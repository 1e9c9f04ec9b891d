"""Page-based listing collector."""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from gitlab_reconciler.exceptions import PaginationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_PAGES = 10_000


@dataclass(frozen=True, slots=True)
class PageRequest:
    """Cursor for one page of a listing."""

    page: int = 1
    per_page: int = DEFAULT_PAGE_SIZE

    def as_params(self) -> dict[str, int]:
        return {"page": self.page, "per_page": self.per_page}


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of results.

    ``next_page`` is ``None`` when the API did not report a next page at all
    and ``0`` when it reported that this is the last page.
    """

    items: list[T] = field(default_factory=list)
    next_page: int | None = None

    @property
    def is_last(self) -> bool:
        return self.next_page == 0


PageFetcher = Callable[[PageRequest], Awaitable[Page[T]]]


async def collect(
    fetch_page: PageFetcher[T],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    start_page: int = 1,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> AsyncIterator[T]:
    """Yield every item of a paginated listing, in order.

    The listing is fetched lazily, one page at a time. It stops at the first
    page that reports no next page, that is empty, or, when the API does not
    report a next page at all, that is shorter than ``page_size``. Iteration
    cannot be resumed; call again to start over from ``start_page``.

    Args:
        fetch_page: Coroutine function fetching one page.
        page_size: Items requested per page.
        start_page: First page number to request.
        max_pages: Upper bound on requests before giving up.

    Yields:
        Items from every page.

    Raises:
        PaginationError: If the listing never reaches a terminal page.
        RemoteRequestError: If any page request fails.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")

    request = PageRequest(page=start_page, per_page=page_size)
    requests_made = 0

    while True:
        if requests_made >= max_pages:
            raise PaginationError(
                f"Listing did not terminate after {max_pages} pages"
            )

        page = await fetch_page(request)
        requests_made += 1

        logger.debug(
            "Fetched page",
            page=request.page,
            item_count=len(page.items),
            next_page=page.next_page,
        )

        for item in page.items:
            yield item

        if not page.items or page.is_last:
            return

        if page.next_page is None:
            if len(page.items) < request.per_page:
                return
            next_page = request.page + 1
        else:
            next_page = page.next_page
            if next_page <= request.page:
                raise PaginationError(
                    f"Next page cursor {next_page} does not advance past "
                    f"page {request.page}"
                )

        request = PageRequest(page=next_page, per_page=request.per_page)


async def collect_all(
    fetch_page: PageFetcher[T],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    start_page: int = 1,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> list[T]:
    """Drain a paginated listing into a list.

    All or nothing: a failing page discards whatever was collected so far.
    """
    items: list[Any] = []
    async for item in collect(
        fetch_page,
        page_size=page_size,
        start_page=start_page,
        max_pages=max_pages,
    ):
        items.append(item)
    return items
