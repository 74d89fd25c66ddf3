from __future__ import annotations
from typing import List, Protocol
from table_exporter.core.models import Record, WriteResult


class Sink(Protocol):
    """Protocol for page sinks."""

    name: str

    def consume_page(self, records: List[Record], page_index: int) -> WriteResult: ...
