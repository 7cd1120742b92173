import math

from rail_assets.config import get_settings


def page_window(page: int, limit: int) -> tuple[int, int, int]:
    """Clamp page/limit and return (page, limit, offset)."""
    page = max(page, 1)
    limit = min(max(limit, 1), get_settings().max_page_size)
    return page, limit, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def page_payload(items: list, total: int, page: int, limit: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages(total, limit),
    }
