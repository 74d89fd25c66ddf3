from __future__ import annotations

from typing import List

from table_exporter.core.errors import InvalidBatchSize, SinkWriteFailed
from table_exporter.core.models import Record, WriteResult
from table_exporter.stores.base import DestinationStore
from table_exporter.transform.batching import split
from table_exporter.utils.logging import get_logger


class UnprocessedItems(Exception):
    """The destination accepted the call but did not persist every item."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"{count} item(s) left unprocessed by the destination store")


class TableSink:
    """Copies each page into a destination table through sequential bulk writes."""

    name = "table"

    def __init__(self, store: DestinationStore, location: str, batch_size: int = 25):
        if not isinstance(batch_size, int) or batch_size < 1:
            raise InvalidBatchSize(f"batch size must be >= 1, got {batch_size!r}")
        self.store = store
        self.location = location
        self.batch_size = batch_size
        self.log = get_logger("table_exporter.sink.table")

    def consume_page(self, records: List[Record], page_index: int) -> WriteResult:
        """Write batches in page order. Batches written before a failure stay written."""
        batches = split(records, self.batch_size)
        written = 0

        for i, batch in enumerate(batches):
            try:
                outcome = self.store.batch_write(self.location, batch)
            except Exception as e:
                raise SinkWriteFailed(self.name, e, batch_index=i, partial=self._partial(written, i)) from e
            if not outcome.ok:
                raise SinkWriteFailed(
                    self.name,
                    UnprocessedItems(len(outcome.unprocessed)),
                    batch_index=i,
                    partial=self._partial(written, i),
                )
            written += len(batch)

        self.log.info(
            "Table write: page=%s table=%s records=%d batches=%d",
            page_index,
            self.location,
            written,
            len(batches),
        )
        return WriteResult(sink=self.name, records_written=written, batches_written=len(batches))

    def _partial(self, records_written: int, batches_written: int) -> WriteResult:
        return WriteResult(sink=self.name, records_written=records_written, batches_written=batches_written)
