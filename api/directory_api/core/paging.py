from __future__ import annotations

import math
from typing import Any

# Postgres LIMIT/OFFSET are bigint.
MAX_SQL_OFFSET = 2**63 - 1


def coerce_positive_int(value: Any, default: int, maximum: int | None = None) -> int:
    """Parse a page/limit value, falling back to ``default`` for absent, non-numeric or non-positive input.

    Values above ``maximum`` are clamped to it.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip())
        except ValueError:
            return default
    if parsed <= 0:
        return default
    if maximum is not None and parsed > maximum:
        return maximum
    return parsed


def resolve_page(page: Any, limit: Any, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Return ``(page, limit)`` ready for a LIMIT/OFFSET query.

    ``limit`` is clamped to ``max_limit``. A page whose offset cannot be addressed by the database
    falls back to page 1.
    """
    page_size = coerce_positive_int(limit, default_limit, maximum=max_limit)
    current_page = coerce_positive_int(page, 1)
    if (current_page - 1) * page_size > MAX_SQL_OFFSET:
        current_page = 1
    return current_page, page_size


def page_window(page: int, limit: int) -> tuple[int, int]:
    return (page - 1) * limit, limit


def page_count(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / limit)
