"""
Helpers for callers that build or route BQL queries.
"""

from typing import Iterable

# Substrings that only show up in structured queries
BQL_INDICATORS = (
    " = ", " != ", " < ", " > ", " <= ", " >= ",
    " ~ ", " !~ ",
    " and ", " AND ", " And ",
    " or ", " OR ", " Or ",
    " in ", " IN ", " In ",
    " not ", " NOT ", " Not ",
    "order by", "ORDER BY", "Order By",
    " expand ", " EXPAND ", " Expand ",
    " depth ", " DEPTH ", " Depth ",
)  # fmt: skip


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_id_query(ids: Iterable[str]) -> str:
    """
    Build a BQL query that selects issues by ID.

    Args:
        ids: Issue IDs, in the order they should be listed

    Returns:
        'id = "a"' for one ID, 'id in ("a", "b")' for several, or an empty
        string when ids is empty

    Example:
        build_id_query(["bd-1", "bd-2"])  # 'id in ("bd-1", "bd-2")'
    """
    quoted = [_quote(issue_id) for issue_id in ids]
    if not quoted:
        return ""
    if len(quoted) == 1:
        return f"id = {quoted[0]}"
    return f"id in ({', '.join(quoted)})"


def is_bql_query(text: str) -> bool:
    """
    Guess whether text is a BQL query rather than a plain search string.

    Looks for operators, keywords and clauses surrounded by spaces, plus a
    leading "expand ".
    """
    if any(indicator in text for indicator in BQL_INDICATORS):
        return True
    return text.strip().lower().startswith("expand ")


__all__ = ["build_id_query", "is_bql_query"]
