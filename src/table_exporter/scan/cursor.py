from __future__ import annotations

from typing import Optional

from table_exporter.core.models import ContinuationToken, PageResponse


class PageCursor:
    """Tracks where the scan resumes. Created once per run, advanced once per page."""

    def __init__(self, token: Optional[ContinuationToken] = None, page_index: int = 0):
        self._token = token
        self._page_index = page_index
        self._done = False

    @property
    def token(self) -> Optional[ContinuationToken]:
        return self._token

    @property
    def page_index(self) -> int:
        return self._page_index

    @property
    def done(self) -> bool:
        return self._done

    def advance(self, response: PageResponse) -> None:
        """Move past a fully processed page. Only token absence ends the scan."""
        if self._done:
            raise RuntimeError("cursor already exhausted")
        self._page_index += 1
        if response.next_token is None:
            self._done = True
            self._token = None
        else:
            self._token = response.next_token

    def __repr__(self) -> str:
        return f"PageCursor(page_index={self._page_index}, done={self._done})"
