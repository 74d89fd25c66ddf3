from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from table_exporter.core.engine import ExportPipeline
from table_exporter.core.models import ExportJob
from table_exporter.scan.scanner import Scanner
from table_exporter.sinks.composite import SinkSet
from table_exporter.sinks.file_sink import FileSink
from table_exporter.sinks.table_sink import TableSink
from table_exporter.state.base import CheckpointStore, RunCheckpoint
from table_exporter.state.sqlite_store import SQLiteCheckpointStore
from table_exporter.stores.base import DestinationStore, SourceStore
from table_exporter.stores.dynamodb import DynamoDbDestinationStore, DynamoDbSourceStore
from table_exporter.utils.time import compute_threshold, run_folder_name, utc_now


@dataclass(frozen=True)
class BuiltComponents:
    pipeline: ExportPipeline
    scanner: Scanner
    sinks: SinkSet
    state_store: Optional[CheckpointStore]
    run_timestamp: str
    output_dir: Optional[str]
    threshold: Any


class ComponentFactory:
    """
    Factory responsible for wiring dependencies.
    Keeps main.py clean; store clients can be injected for tests.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        source_store: Optional[SourceStore] = None,
        destination_store: Optional[DestinationStore] = None,
    ):
        self.clock = clock
        self.source_store = source_store
        self.destination_store = destination_store

    def build(self, job: ExportJob) -> BuiltComponents:
        """
        Build all components needed for one export run.

        The clock is read once here: it fixes both the run folder name and the
        filter threshold for the whole run. A resumable checkpoint overrides
        both so a resumed run keeps scanning with the same predicate into the
        same folder.
        """
        now = self.clock()
        state_store = self._state_store(job)
        checkpoint = self._resumable_checkpoint(job, state_store)

        run_timestamp = checkpoint.run_timestamp if checkpoint else run_folder_name(now)
        threshold = self._threshold(job, now, checkpoint)
        output_dir = os.path.join(job.output.directory, run_timestamp) if job.output else None

        scanner = self._scanner(job, threshold)
        sinks = self._sinks(job, output_dir)
        pipeline = ExportPipeline(scanner=scanner, sinks=sinks, state_store=state_store)

        return BuiltComponents(
            pipeline=pipeline,
            scanner=scanner,
            sinks=sinks,
            state_store=state_store,
            run_timestamp=run_timestamp,
            output_dir=output_dir,
            threshold=threshold,
        )

    # ---------- Builders (private) ----------

    def _state_store(self, job: ExportJob) -> Optional[CheckpointStore]:
        if not job.state.enabled:
            return None
        return SQLiteCheckpointStore(job.state.path)

    def _resumable_checkpoint(
        self, job: ExportJob, state_store: Optional[CheckpointStore]
    ) -> Optional[RunCheckpoint]:
        if not state_store or not job.state.resume:
            return None
        checkpoint = state_store.load_checkpoint(job.id)
        if checkpoint and checkpoint.status == "in_progress" and checkpoint.token_payload:
            return checkpoint
        return None

    def _threshold(self, job: ExportJob, now: datetime, checkpoint: Optional[RunCheckpoint]) -> Any:
        if not job.filter:
            return None
        if checkpoint and checkpoint.threshold is not None:
            return checkpoint.threshold
        if job.filter.threshold is not None:
            return job.filter.threshold
        return compute_threshold(now, job.filter.age_days or 0, job.filter.format)

    def _scanner(self, job: ExportJob, threshold: Any) -> Scanner:
        store = self.source_store or DynamoDbSourceStore(
            region=job.source.region,
            endpoint_url=job.source.endpoint_url,
        )
        return Scanner(
            store=store,
            location=job.source.table,
            page_size=job.source.page_size,
            filter_field=job.filter.field if job.filter else None,
            filter_threshold=threshold,
        )

    def _sinks(self, job: ExportJob, output_dir: Optional[str]) -> SinkSet:
        sinks = SinkSet(parallel=job.parallel_sinks)

        if job.output and output_dir:
            sinks.register(
                FileSink(
                    run_dir=output_dir,
                    layout=job.output.layout,
                    naming=job.output.naming,
                    key_fields=job.output.key_fields,
                )
            )

        if job.destination:
            store = self.destination_store or DynamoDbDestinationStore(
                region=job.destination.region,
                endpoint_url=job.destination.endpoint_url,
                max_batch_size=job.destination.batch_size,
            )
            sinks.register(TableSink(store, job.destination.table, batch_size=job.destination.batch_size))

        return sinks
