"""Offset/limit paging helper shared by every list query."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, has_app_context

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000


def get_page_offset(page: int, page_size: int) -> int:
    """Return the row offset of ``page`` (1-based); 0 for non-positive pages."""
    if page <= 0:
        return 0
    return (page - 1) * page_size


def _page_size_limits() -> tuple[int, int]:
    if has_app_context():
        return (
            current_app.config.get("DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            current_app.config.get("MAX_PAGE_SIZE", MAX_PAGE_SIZE),
        )
    return DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


@dataclass
class Pager:
    """Page number and size requested by the caller."""

    page: int = 1
    page_size: int = 0

    def set_default(self) -> Pager:
        """Clamp the page and substitute the configured default size."""
        default_size, max_size = _page_size_limits()
        if self.page < 1:
            self.page = 1
        if self.page_size <= 0:
            self.page_size = default_size
        elif self.page_size > max_size:
            self.page_size = max_size
        return self

    def get_offset(self) -> int:
        return get_page_offset(self.page, self.page_size)

    def get_limit(self) -> int:
        return self.page_size

    def to_dict(self) -> dict:
        return {"page": self.page, "page_size": self.page_size}
