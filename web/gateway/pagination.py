"""Page-number pagination shared by the list endpoints.

``page`` goes through ``Paginator.get_page``, which already falls back to the
first or last page for bad values. ``page_size`` is parsed here: anything that
is not a positive integer gives the default, and large values are capped.
"""

from typing import Callable, Iterable

from django.core.paginator import Paginator

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def page_size_from(request, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    raw = request.GET.get("page_size")
    if raw is None:
        return default
    try:
        size = int(raw)
    except ValueError:
        return default
    if size < 1:
        return default
    return min(size, maximum)


def paginate(request, items: Iterable, render: Callable) -> dict:
    """Return ``{count, page, page_size, results}`` for the requested page."""
    page_size = page_size_from(request)
    p = Paginator(items, page_size)
    page_obj = p.get_page(request.GET.get("page", 1))
    return {
        "count": p.count,
        "page": page_obj.number,
        "page_size": page_size,
        "results": [render(o) for o in page_obj.object_list],
    }
