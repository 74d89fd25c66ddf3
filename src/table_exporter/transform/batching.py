from __future__ import annotations

from typing import List, Sequence

from table_exporter.core.errors import InvalidBatchSize
from table_exporter.core.models import Record

DEFAULT_MAX_BATCH_SIZE = 25


def split(records: Sequence[Record], max_size: int = DEFAULT_MAX_BATCH_SIZE) -> List[List[Record]]:
    """
    Split records into consecutive groups of at most max_size.

    Concatenating the result gives back the input in its original order;
    empty input gives no batches.
    """
    if not isinstance(max_size, int) or max_size < 1:
        raise InvalidBatchSize(f"batch size must be >= 1, got {max_size!r}")

    return [list(records[i : i + max_size]) for i in range(0, len(records), max_size)]
