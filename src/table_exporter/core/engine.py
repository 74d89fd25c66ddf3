from __future__ import annotations

from typing import Optional

from table_exporter.core.models import ExportJob, PipelineState, RunContext
from table_exporter.scan.cursor import PageCursor
from table_exporter.scan.scanner import Scanner
from table_exporter.sinks.composite import SinkSet
from table_exporter.state.base import CheckpointStore
from table_exporter.transform.serialization import decode_token, encode_token
from table_exporter.utils.logging import get_logger
from table_exporter.utils.time import utc_now_iso


class ExportPipeline:
    """
    Drives the scan loop: fetch a page, hand it to every sink, advance the
    cursor, repeat until the source stops returning a continuation token.
    """

    def __init__(
        self,
        scanner: Scanner,
        sinks: SinkSet,
        state_store: Optional[CheckpointStore] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            scanner: Issues page reads against the source store.
            sinks: Sinks every page is delivered to.
            state_store: Optional checkpoint backend for resumable runs.
        """
        self.scanner = scanner
        self.sinks = sinks
        self.state_store = state_store
        self.log = get_logger("table_exporter.engine")

    def run(self, job: ExportJob, run_timestamp: str, output_dir: Optional[str] = None) -> RunContext:
        """
        Export every page of the source table.

        Errors are not raised: the run stops at the failing page and the
        returned context carries the counters so far together with the error.

        Args:
            job: The export job configuration.
            run_timestamp: Identity of this run (also the output folder name).
            output_dir: Run-scoped output directory, if files are written.

        Returns:
            The run context with final state and counters.
        """
        ctx = RunContext(
            run_id=f"{job.id}-{run_timestamp}",
            run_timestamp=run_timestamp,
            output_dir=output_dir,
            started_at_utc=utc_now_iso(),
        )
        cursor = PageCursor()

        self.log.info(
            "Export started: %s (%s) table=%s page_size=%s sinks=%s",
            job.name,
            job.id,
            self.scanner.location,
            self.scanner.page_size,
            len(self.sinks),
        )

        try:
            cursor = self._start(job, ctx)
            ctx.state = PipelineState.SCANNING

            while True:
                page = self.scanner.fetch_page(cursor)
                ctx.pages_scanned += 1
                ctx.records_scanned += len(page.records)

                ctx.state = PipelineState.DISTRIBUTING
                delivery = self.sinks.deliver(page.records, cursor.page_index)
                for result in delivery.results:
                    ctx.apply(result)
                delivery.raise_first()

                self.log.info("Saved page %s with %s records.", cursor.page_index, len(page.records))
                cursor.advance(page)

                if cursor.done:
                    ctx.state = PipelineState.DONE
                    break

                self._checkpoint(job, ctx, cursor)
                ctx.state = PipelineState.SCANNING

        except Exception as e:
            ctx.state = PipelineState.TERMINATED
            ctx.error = e
            self.log.error(
                "Export terminated at page %s after %s page(s): %s",
                cursor.page_index,
                ctx.pages_scanned,
                e,
            )
        finally:
            ctx.finished_at_utc = utc_now_iso()

        if ctx.state == PipelineState.DONE:
            self._finish(job)
            self.log.info("No more data. Done.")

        self.log.info(
            "Export finished: state=%s pages=%s scanned=%s written=%s batches=%s files=%s",
            ctx.state.value,
            ctx.pages_scanned,
            ctx.records_scanned,
            ctx.records_written,
            ctx.batches_written,
            ctx.files_written,
        )
        return ctx

    def _start(self, job: ExportJob, ctx: RunContext) -> PageCursor:
        """Fresh cursor, or the saved one when resuming an interrupted run."""
        if not self.state_store:
            return PageCursor()

        run_number = self.state_store.mark_run_started(job.id)
        self.log.info("Run #%s for job %s", run_number, job.id)

        if not job.state.resume:
            self.state_store.clear_checkpoint(job.id)
            return PageCursor()

        checkpoint = self.state_store.load_checkpoint(job.id)
        if not checkpoint or checkpoint.status != "in_progress":
            return PageCursor()

        token = decode_token(checkpoint.token_payload)
        if token is None:
            self.log.warning("Ignoring checkpoint without a continuation token for %s", job.id)
            return PageCursor()

        ctx.restore(checkpoint.counters)
        ctx.resumed_from_page = checkpoint.page_index
        if checkpoint.run_timestamp:
            ctx.run_timestamp = checkpoint.run_timestamp
            ctx.run_id = f"{job.id}-{checkpoint.run_timestamp}"
        self.log.info("Resuming %s from page %s", job.id, checkpoint.page_index)
        return PageCursor(token=token, page_index=checkpoint.page_index)

    def _checkpoint(self, job: ExportJob, ctx: RunContext, cursor: PageCursor) -> None:
        if not self.state_store:
            return
        self.state_store.save_checkpoint(
            job.id,
            token_payload=encode_token(cursor.token),
            page_index=cursor.page_index,
            run_timestamp=ctx.run_timestamp,
            counters=ctx.counters(),
            threshold=self.scanner.filter_threshold,
        )

    def _finish(self, job: ExportJob) -> None:
        if not self.state_store:
            return
        self.state_store.clear_checkpoint(job.id)
        self.state_store.mark_run_completed(job.id)
