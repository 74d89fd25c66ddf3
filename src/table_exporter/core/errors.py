from __future__ import annotations

from typing import Any, Optional

from table_exporter.core.models import WriteResult


class ExportError(Exception):
    """Base class for export pipeline errors."""


class SourceUnavailable(ExportError):
    """The source store could not be reached (throttling, network, service errors)."""


class SourceRequestRejected(ExportError):
    """The source store refused the request (bad filter, limit or table)."""


class InvalidBatchSize(ExportError, ValueError):
    """Batch size must be at least 1."""


class SinkWriteFailed(ExportError):
    """A sink failed to persist a record or a batch.

    Carries the sink name, the offending record (file sink) or batch index
    (table sink), the underlying cause, and what the sink had already written
    for the page before failing (``partial``).
    """

    def __init__(
        self,
        sink: str,
        cause: BaseException,
        record: Any = None,
        batch_index: Optional[int] = None,
        partial: Optional[WriteResult] = None,
    ):
        self.sink = sink
        self.cause = cause
        self.record = record
        self.batch_index = batch_index
        self.partial = partial
        where = f"batch {batch_index}" if batch_index is not None else "record"
        super().__init__(f"{sink} sink failed on {where}: {cause}")
