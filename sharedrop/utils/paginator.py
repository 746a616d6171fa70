def page_window(page: int = 1, page_size: int = 10, max_page_size: int = 100) -> tuple[int, int, int]:
    """
    Clamp paging params coming from query strings.
    Returns: (page, page_size, offset) for LIMIT/OFFSET queries.
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), max_page_size)
    return page, page_size, (page - 1) * page_size


def paginate_meta(total: int, page: int = 1, page_size: int = 10):
    return {
        "page": page,
        "limit": page_size,
        "total": total,
        "total_pages": (total + page_size - 1) // page_size,
    }
