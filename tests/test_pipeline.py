"""
Tests for the export pipeline: termination, distribution, failures and resume.
"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from unittest.mock import Mock

from fakes import FakeDestinationStore, FakeSourceStore, make_pages

from table_exporter.core.engine import ExportPipeline
from table_exporter.core.errors import SinkWriteFailed, SourceUnavailable
from table_exporter.core.factory import ComponentFactory
from table_exporter.core.models import (
    DestinationConfig,
    ExportJob,
    FilterConfig,
    OutputConfig,
    PipelineState,
    SourceConfig,
    StateConfig,
    WriteResult,
)
from table_exporter.scan.scanner import Scanner
from table_exporter.sinks.composite import SinkSet
from table_exporter.sinks.file_sink import FileSink
from table_exporter.sinks.table_sink import TableSink
from table_exporter.state.sqlite_store import SQLiteCheckpointStore

NOW = datetime(2025, 4, 17, 18, 32, tzinfo=timezone.utc)


def _job(**overrides):
    params = dict(
        id="profiles-export",
        name="profiles-export",
        source=SourceConfig(table="profiles", page_size=200),
    )
    params.update(overrides)
    return ExportJob(**params)


class TestPipelineLoop(unittest.TestCase):
    def test_fetches_exactly_n_pages_and_finishes(self):
        store = FakeSourceStore(make_pages([3, 3, 3, 1], ["T1", "T2", "T3", None]))
        sink = Mock()
        sink.name = "mock"
        sink.consume_page.return_value = WriteResult(sink="mock", records_written=0)

        pipeline = ExportPipeline(Scanner(store, "profiles", 3), SinkSet([sink]))
        ctx = pipeline.run(_job(), run_timestamp="20250417_1832")

        self.assertEqual(len(store.calls), 4)
        self.assertEqual(ctx.state, PipelineState.DONE)
        self.assertTrue(ctx.ok)
        self.assertEqual(ctx.pages_scanned, 4)
        self.assertEqual(ctx.records_scanned, 10)
        self.assertEqual([c.args[1] for c in sink.consume_page.call_args_list], [0, 1, 2, 3])

    def test_empty_page_with_token_does_not_terminate(self):
        store = FakeSourceStore(make_pages([0, 0, 2, 0], ["T1", "T2", "T3", None]))
        pipeline = ExportPipeline(Scanner(store, "profiles", 10), SinkSet())

        ctx = pipeline.run(_job(), run_timestamp="r")

        self.assertEqual(len(store.calls), 4)
        self.assertEqual(ctx.state, PipelineState.DONE)
        self.assertEqual(ctx.records_scanned, 2)

    def test_single_empty_last_page(self):
        store = FakeSourceStore(make_pages([0], [None]))
        ctx = ExportPipeline(Scanner(store, "profiles", 10), SinkSet()).run(_job(), run_timestamp="r")
        self.assertEqual(ctx.pages_scanned, 1)
        self.assertEqual(ctx.state, PipelineState.DONE)

    def test_end_to_end_table_copy(self):
        source = FakeSourceStore(make_pages([120, 80, 0], ["T1", "T2", None]))
        destination = FakeDestinationStore()
        sinks = SinkSet([TableSink(destination, "profiles-v2", batch_size=25)])

        ctx = ExportPipeline(Scanner(source, "profiles", 200), sinks).run(_job(), run_timestamp="r")

        self.assertEqual([len(b) for b in destination.batches], [25, 25, 25, 25, 20, 25, 25, 25, 5])
        self.assertEqual(ctx.pages_scanned, 3)
        self.assertEqual(ctx.records_written, {"table": 200})
        self.assertEqual(ctx.batches_written, 9)
        self.assertEqual([r["n"] for r in destination.items], list(range(200)))
        self.assertEqual(ctx.state, PipelineState.DONE)


class TestPipelineFailures(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_source_error_terminates_with_partial_counters(self):
        store = FakeSourceStore(make_pages([5, 5, 5], ["T1", "T2", None]))
        store.fail_on_call = 2
        store.error = SourceUnavailable("connection reset")
        destination = FakeDestinationStore()
        sinks = SinkSet([TableSink(destination, "t")])

        ctx = ExportPipeline(Scanner(store, "profiles", 5), sinks).run(_job(), run_timestamp="r")

        self.assertEqual(ctx.state, PipelineState.TERMINATED)
        self.assertIs(ctx.error, store.error)
        self.assertFalse(ctx.ok)
        self.assertEqual(ctx.pages_scanned, 1)
        self.assertEqual(ctx.records_written, {"table": 5})

    def test_sink_failure_stops_run_at_that_page(self):
        store = FakeSourceStore(make_pages([30, 30, 30], ["T1", "T2", None]))
        destination = FakeDestinationStore()
        destination.fail_on_call = 3  # first batch of page 2
        sinks = SinkSet([TableSink(destination, "t")])

        ctx = ExportPipeline(Scanner(store, "profiles", 30), sinks).run(_job(), run_timestamp="r")

        self.assertEqual(len(store.calls), 2)
        self.assertEqual(ctx.state, PipelineState.TERMINATED)
        self.assertIsInstance(ctx.error, SinkWriteFailed)
        self.assertEqual(ctx.error.batch_index, 0)
        self.assertEqual(ctx.records_written, {"table": 30})

    def test_batches_written_before_a_mid_page_failure_are_counted(self):
        store = FakeSourceStore(make_pages([100], [None]))
        destination = FakeDestinationStore()
        destination.fail_on_call = 3
        sinks = SinkSet([TableSink(destination, "t", batch_size=25)])

        ctx = ExportPipeline(Scanner(store, "profiles", 100), sinks).run(_job(), run_timestamp="r")

        self.assertEqual(ctx.state, PipelineState.TERMINATED)
        self.assertEqual(ctx.error.batch_index, 2)
        self.assertEqual(len(destination.items), 50)
        self.assertEqual(ctx.records_written["table"], 50)
        self.assertEqual(ctx.batches_written, 2)

    def test_file_sink_failure_mid_page_counts_files_written(self):
        run_dir = os.path.join(self.tmp_dir, "out", "r")
        file_sink = FileSink(run_dir)
        real_write = file_sink._write
        calls = []

        def flaky(path, text):
            calls.append(path)
            if len(calls) == 4:
                raise OSError("disk full")
            real_write(path, text)

        file_sink._write = Mock(side_effect=flaky)
        store = FakeSourceStore(make_pages([6], [None]))

        ctx = ExportPipeline(Scanner(store, "profiles", 6), SinkSet([file_sink])).run(_job(), run_timestamp="r")

        self.assertEqual(ctx.state, PipelineState.TERMINATED)
        self.assertEqual(len(os.listdir(run_dir)), 3)
        self.assertEqual(ctx.records_written, {"file": 3})
        self.assertEqual(ctx.files_written, 3)

    def test_failing_file_sink_leaves_table_output_intact(self):
        run_dir = os.path.join(self.tmp_dir, "out", "r")
        file_sink = FileSink(run_dir)
        file_sink._write = Mock(side_effect=OSError("read-only file system"))
        destination = FakeDestinationStore()
        sinks = SinkSet([file_sink, TableSink(destination, "t")])
        store = FakeSourceStore(make_pages([10, 10], ["T1", None]))

        ctx = ExportPipeline(Scanner(store, "profiles", 10), sinks).run(_job(), run_timestamp="r")

        self.assertEqual(ctx.state, PipelineState.TERMINATED)
        self.assertEqual(ctx.error.sink, "file")
        self.assertEqual(len(destination.items), 10)
        self.assertEqual(ctx.records_written, {"table": 10})

    def test_failing_table_sink_leaves_files_intact(self):
        run_dir = os.path.join(self.tmp_dir, "out", "r")
        destination = FakeDestinationStore()
        destination.fail_on_call = 1
        sinks = SinkSet([FileSink(run_dir), TableSink(destination, "t")], parallel=True)
        store = FakeSourceStore(make_pages([4, 4], ["T1", None]))

        ctx = ExportPipeline(Scanner(store, "profiles", 4), sinks).run(_job(), run_timestamp="r")

        self.assertEqual(ctx.error.sink, "table")
        self.assertEqual(len(os.listdir(run_dir)), 4)
        self.assertEqual(ctx.records_written, {"file": 4})


class TestPipelineResume(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.state_path = os.path.join(self.tmp_dir, "state.db")

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _job(self, resume=True):
        return _job(
            output=OutputConfig(directory=os.path.join(self.tmp_dir, "out")),
            filter=FilterConfig(field="lastModifiedDate", age_days=730),
            state=StateConfig(enabled=True, path=self.state_path, resume=resume),
        )

    def test_interrupted_run_resumes_from_checkpoint(self):
        pages = make_pages([3, 3, 3], [{"id": "r2"}, {"id": "r5"}, None])
        job = self._job()

        failing = FakeSourceStore(pages)
        failing.fail_on_call = 3
        failing.error = SourceUnavailable("throttled")
        built = ComponentFactory(clock=lambda: NOW, source_store=failing).build(job)
        first = built.pipeline.run(job, built.run_timestamp, built.output_dir)

        self.assertEqual(first.state, PipelineState.TERMINATED)
        self.assertEqual(first.pages_scanned, 2)

        later = datetime(2025, 4, 18, 9, 0, tzinfo=timezone.utc)
        healthy = FakeSourceStore(pages)
        rebuilt = ComponentFactory(clock=lambda: later, source_store=healthy).build(job)
        second = rebuilt.pipeline.run(job, rebuilt.run_timestamp, rebuilt.output_dir)

        self.assertEqual(rebuilt.run_timestamp, built.run_timestamp)
        self.assertEqual(rebuilt.threshold, built.threshold)
        self.assertEqual(len(healthy.calls), 1)
        self.assertEqual(healthy.calls[0]["continuation_token"], {"id": "r5"})
        self.assertEqual(second.state, PipelineState.DONE)
        self.assertEqual(second.resumed_from_page, 2)
        self.assertEqual(second.pages_scanned, 3)
        self.assertEqual(second.records_written, {"file": 9})
        self.assertEqual(len(os.listdir(built.output_dir)), 9)
        self.assertIsNone(SQLiteCheckpointStore(self.state_path).load_checkpoint(job.id))

    def test_resume_disabled_starts_over(self):
        pages = make_pages([1, 1], ["T1", None])
        job = self._job(resume=False)
        store = SQLiteCheckpointStore(self.state_path)
        store.save_checkpoint(job.id, '"T1"', page_index=1, run_timestamp="old", counters={})

        source = FakeSourceStore(pages)
        built = ComponentFactory(clock=lambda: NOW, source_store=source).build(job)
        ctx = built.pipeline.run(job, built.run_timestamp, built.output_dir)

        self.assertEqual(built.run_timestamp, "20250417_1832")
        self.assertIsNone(source.calls[0]["continuation_token"])
        self.assertEqual(ctx.pages_scanned, 2)
        self.assertIsNone(ctx.resumed_from_page)


class TestFactory(unittest.TestCase):
    def test_builds_sinks_and_threshold_once(self):
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir, True)
        clock = Mock(return_value=NOW)
        job = _job(
            destination=DestinationConfig(table="profiles-v2", batch_size=10),
            output=OutputConfig(directory=tmp_dir),
            filter=FilterConfig(field="ts", age_days=1, format="epoch_seconds"),
        )
        source = FakeSourceStore(make_pages([2, 2], ["T1", None]))
        destination = FakeDestinationStore(max_batch_size=10)

        built = ComponentFactory(clock=clock, source_store=source, destination_store=destination).build(job)
        ctx = built.pipeline.run(job, built.run_timestamp, built.output_dir)

        self.assertEqual(clock.call_count, 1)
        self.assertEqual(built.threshold, int(NOW.timestamp()) - 86400)
        self.assertEqual(built.output_dir, os.path.join(tmp_dir, "20250417_1832"))
        self.assertEqual([s.name for s in built.sinks.sinks], ["file", "table"])
        self.assertEqual(ctx.records_written, {"file": 4, "table": 4})

    def test_absolute_threshold(self):
        job = _job(
            output=OutputConfig(directory="unused"),
            filter=FilterConfig(field="ts", threshold="2023-11-30T09:43:24.495Z"),
        )
        built = ComponentFactory(clock=lambda: NOW, source_store=FakeSourceStore([])).build(job)
        self.assertEqual(built.scanner.filter_threshold, "2023-11-30T09:43:24.495Z")


if __name__ == "__main__":
    unittest.main()
