from typing import Any, Dict, List, Optional, Sequence, Tuple


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def matches(row: Dict[str, Any], query: str, search_keys: Sequence[str]) -> bool:
    q = query.lower()
    return any(q in str(row.get(key, "")).lower() for key in search_keys)


def filter_and_sort(
    rows: Sequence[Dict[str, Any]],
    search: Optional[str] = None,
    search_keys: Sequence[str] = (),
    sort_key: Optional[str] = None,
    descending: bool = False,
) -> List[Dict[str, Any]]:
    """
    Case-insensitive substring search over search_keys, then a single-key sort.

    Numeric columns sort numerically; anything else sorts as case-folded text
    with the original text as tie-break. Sorting is stable.
    """
    result = list(rows)
    if search and search_keys:
        result = [row for row in result if matches(row, search, search_keys)]
    if sort_key:
        values = [row.get(sort_key) for row in result]
        if all(_is_number(v) for v in values):
            key = lambda row: row.get(sort_key)
        else:
            key = lambda row: (str(row.get(sort_key, "")).casefold(), str(row.get(sort_key, "")))
        result = sorted(result, key=key, reverse=descending)
    return result


def paginate(rows: Sequence[Any], page: int = 1, page_size: int = 10) -> Tuple[List[Any], int]:
    """Returns (page_rows, total)."""
    total = len(rows)
    start = (max(page, 1) - 1) * page_size
    return list(rows[start:start + page_size]), total
