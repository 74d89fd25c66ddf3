from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Set

from table_exporter.core.errors import SinkWriteFailed
from table_exporter.core.models import FileLayout, FileNaming, Record, WriteResult
from table_exporter.transform.serialization import serialize_page, serialize_record
from table_exporter.utils.hashing import identity_hash
from table_exporter.utils.logging import get_logger

_SEQ_RE = re.compile(r"^record_(\d+)")


class FileSink:
    """
    Writes exported records as JSON files under a run-scoped directory.

    Per-record layout names files either by a run-wide sequence number or by a
    hash of the configured key fields. File names never repeat within the run
    directory: files are created exclusively and a taken name gets a numeric
    suffix.
    """

    name = "file"

    def __init__(
        self,
        run_dir: str,
        layout: FileLayout = FileLayout.PER_RECORD,
        naming: FileNaming = FileNaming.SEQUENCE,
        key_fields: Optional[List[str]] = None,
    ):
        if naming == FileNaming.KEY and not key_fields:
            raise ValueError("key naming requires at least one key field")
        self.run_dir = Path(run_dir)
        self.layout = FileLayout(layout)
        self.naming = FileNaming(naming)
        self.key_fields = list(key_fields or [])
        self._prepared = False
        self._next_seq = 1
        self._used: Set[str] = set()
        self.log = get_logger("table_exporter.sink.file")

    def consume_page(self, records: List[Record], page_index: int) -> WriteResult:
        """Write the page; the first failing record aborts the rest of the page."""
        self._prepare()

        if self.layout == FileLayout.PER_PAGE:
            path = self._claim(f"page_{page_index:06d}")
            try:
                self._write(path, serialize_page(records))
            except (OSError, TypeError, ValueError) as e:
                raise SinkWriteFailed(self.name, e, record=records) from e
            self.log.info("Saved page %s with %s records to %s", page_index, len(records), path)
            return WriteResult(sink=self.name, records_written=len(records), files_written=1)

        written = 0
        for rec in records:
            try:
                path = self._claim(self._stem(rec))
                self._write(path, serialize_record(rec))
            except (OSError, TypeError, ValueError) as e:
                partial = WriteResult(sink=self.name, records_written=written, files_written=written)
                raise SinkWriteFailed(self.name, e, record=rec, partial=partial) from e
            written += 1

        self.log.info("Saved page %s: %s record files in %s", page_index, written, self.run_dir)
        return WriteResult(sink=self.name, records_written=written, files_written=written)

    def _prepare(self) -> None:
        if self._prepared:
            return
        try:
            self.run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkWriteFailed(self.name, e) from e

        # A resumed run reuses its directory; continue after what is already there.
        for existing in self.run_dir.glob("*.json"):
            self._used.add(existing.stem)
            m = _SEQ_RE.match(existing.stem)
            if m:
                self._next_seq = max(self._next_seq, int(m.group(1)) + 1)
        self._prepared = True

    def _stem(self, rec: Record) -> str:
        if self.naming == FileNaming.KEY:
            return f"item_{identity_hash(rec, self.key_fields)}"
        stem = f"record_{self._next_seq:06d}"
        self._next_seq += 1
        return stem

    def _claim(self, stem: str) -> Path:
        candidate = stem
        n = 1
        while candidate in self._used:
            candidate = f"{stem}-{n}"
            n += 1
        self._used.add(candidate)
        return self.run_dir / f"{candidate}.json"

    def _write(self, path: Path, text: str) -> None:
        with open(path, "x", encoding="utf-8") as f:
            f.write(text)
            f.write("\n")
