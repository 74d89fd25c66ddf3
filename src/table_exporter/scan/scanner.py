from __future__ import annotations

from typing import Any, Dict, Optional

from table_exporter.core.models import ContinuationToken, PageRequest, PageResponse
from table_exporter.scan.cursor import PageCursor
from table_exporter.stores.base import SourceStore
from table_exporter.utils.logging import get_logger

FILTER_NAME_PLACEHOLDER = "#filter_field"
FILTER_VALUE_PLACEHOLDER = ":threshold"


class Scanner:
    """Issues bounded page reads against the source store."""

    def __init__(
        self,
        store: SourceStore,
        location: str,
        page_size: int,
        filter_field: Optional[str] = None,
        filter_threshold: Any = None,
    ):
        """
        Args:
            store: Source store client.
            location: Table to scan.
            page_size: Maximum items evaluated per request.
            filter_field: Optional field for the `field > threshold` filter.
            filter_threshold: Threshold value, already computed for the whole run.
        """
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        if filter_field and filter_threshold is None:
            raise ValueError("filter_threshold is required when filter_field is set")

        self.store = store
        self.location = location
        self.page_size = page_size
        self.filter_field = filter_field
        self.filter_threshold = filter_threshold
        self.log = get_logger("table_exporter.scanner")

    def build_request(self, cursor: Optional[PageCursor]) -> PageRequest:
        """Request for the page the cursor points at. Pure."""
        return PageRequest(
            location=self.location,
            limit=self.page_size,
            filter_field=self.filter_field or None,
            filter_threshold=self.filter_threshold if self.filter_field else None,
            token=cursor.token if cursor is not None else None,
        )

    def fetch_page(self, cursor: Optional[PageCursor] = None) -> PageResponse:
        """Fetch one page. Store errors propagate unchanged."""
        req = self.build_request(cursor)
        kwargs: Dict[str, Any] = {}
        if req.filter_field:
            kwargs["filter_expression"] = f"{FILTER_NAME_PLACEHOLDER} > {FILTER_VALUE_PLACEHOLDER}"
            kwargs["filter_names"] = {FILTER_NAME_PLACEHOLDER: req.filter_field}
            kwargs["filter_values"] = {FILTER_VALUE_PLACEHOLDER: req.filter_threshold}

        result = self.store.scan(
            req.location,
            req.limit,
            continuation_token=req.token.value if req.token is not None else None,
            **kwargs,
        )

        next_token = None
        if result.continuation_token is not None:
            next_token = ContinuationToken(result.continuation_token)

        records = list(result.items or [])
        self.log.debug("Scanned %s: items=%s more=%s", req.location, len(records), next_token is not None)
        return PageResponse(records=records, next_token=next_token)
