from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from table_exporter.core.models import Record, WriteResult
from table_exporter.sinks.base import Sink
from table_exporter.utils.logging import get_logger


@dataclass
class PageDelivery:
    """Per-sink outcome of distributing one page."""

    results: List[WriteResult] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_first(self) -> None:
        if self.errors:
            raise self.errors[0]


class SinkSet:
    """
    Delivers each page to every registered sink.

    Sinks are independent: one failing does not stop or undo the others. Once
    all sinks have finished the page, the first failure (in registration
    order) is the one reported.
    """

    name = "sinks"

    def __init__(self, sinks: Optional[List[Sink]] = None, parallel: bool = False):
        self._sinks: List[Sink] = [s for s in (sinks or []) if s is not None]
        self.parallel = parallel
        self.log = get_logger("table_exporter.sink.set")

    def register(self, sink: Sink) -> None:
        self._sinks.append(sink)

    @property
    def sinks(self) -> List[Sink]:
        return list(self._sinks)

    def __len__(self) -> int:
        return len(self._sinks)

    def deliver(self, records: List[Record], page_index: int) -> PageDelivery:
        """Run every sink on the page and collect results and failures."""
        if self.parallel and len(self._sinks) > 1:
            with ThreadPoolExecutor(max_workers=len(self._sinks), thread_name_prefix="sink") as pool:
                futures = [pool.submit(self._run_one, s, records, page_index) for s in self._sinks]
                outcomes = [f.result() for f in futures]
        else:
            outcomes = [self._run_one(s, records, page_index) for s in self._sinks]

        delivery = PageDelivery()
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                # count what a failing sink wrote before it failed
                partial = getattr(outcome, "partial", None)
                if partial is not None and partial.records_written:
                    delivery.results.append(partial)
                delivery.errors.append(outcome)
            else:
                delivery.results.append(outcome)
        return delivery

    def consume_page(self, records: List[Record], page_index: int) -> List[WriteResult]:
        delivery = self.deliver(records, page_index)
        delivery.raise_first()
        return delivery.results

    def _run_one(self, sink: Sink, records: List[Record], page_index: int):
        try:
            return sink.consume_page(records, page_index)
        except Exception as exc:
            self.log.error(
                "Sink '%s' failed on page %s: %r",
                getattr(sink, "name", type(sink).__name__),
                page_index,
                exc,
            )
            return exc
