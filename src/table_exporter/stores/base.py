from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from table_exporter.core.models import Record


@dataclass
class ScanResult:
    """Raw page as the store returns it; the token value is opaque."""

    items: List[Record] = field(default_factory=list)
    continuation_token: Any = None


@dataclass
class BatchWriteOutcome:
    """Result of one bulk write. Unprocessed items were not persisted."""

    unprocessed: List[Record] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unprocessed


class SourceStore(Protocol):
    """Paged read capability of the source table store."""

    def scan(
        self,
        location: str,
        limit: int,
        filter_expression: Optional[str] = None,
        filter_names: Optional[Dict[str, str]] = None,
        filter_values: Optional[Dict[str, Any]] = None,
        continuation_token: Any = None,
    ) -> ScanResult: ...


class DestinationStore(Protocol):
    """Bulk write capability of the destination table store."""

    max_batch_size: int

    def batch_write(self, location: str, items: List[Record]) -> BatchWriteOutcome: ...
