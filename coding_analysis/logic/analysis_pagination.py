"""Slicing of analysis results into pages."""

from __future__ import annotations

from coding_analysis.models.analysis import AnalysisResult

DEFAULT_PAGE_SIZE = 50


def _page_bounds(page: int | None, limit: int | None, default_limit: int) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or default_limit))
    return page, limit


def paginate_analysis(
    result: AnalysisResult,
    empty_page: int | None = 1,
    empty_limit: int | None = None,
    duplicate_page: int | None = 1,
    duplicate_limit: int | None = None,
    default_limit: int = DEFAULT_PAGE_SIZE,
) -> AnalysisResult:
    """Return a copy of `result` holding one page of empty items and groups.

    Totals always describe the full analysis.
    """
    e_page, e_limit = _page_bounds(empty_page, empty_limit, default_limit)
    d_page, d_limit = _page_bounds(duplicate_page, duplicate_limit, default_limit)
    e_start = (e_page - 1) * e_limit
    d_start = (d_page - 1) * d_limit

    empty = result.empty_responses.model_copy(
        update={
            "items": result.empty_responses.items[e_start:e_start + e_limit],
            "page": e_page,
            "page_size": e_limit,
        }
    )
    duplicates = result.duplicate_values.model_copy(
        update={
            "groups": result.duplicate_values.groups[d_start:d_start + d_limit],
            "page": d_page,
            "page_size": d_limit,
        }
    )
    return result.model_copy(update={"empty_responses": empty, "duplicate_values": duplicates})


__all__ = ["DEFAULT_PAGE_SIZE", "paginate_analysis"]
