from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Schema-less, insertion-ordered mapping as returned by the source store.
Record = Dict[str, Any]


class PipelineState(str, Enum):
    """Lifecycle states of one export run."""

    IDLE = "IDLE"
    SCANNING = "SCANNING"
    DISTRIBUTING = "DISTRIBUTING"
    DONE = "DONE"
    TERMINATED = "TERMINATED"


class FileLayout(str, Enum):
    """How the file sink lays records out on disk."""

    PER_RECORD = "per_record"
    PER_PAGE = "per_page"


class FileNaming(str, Enum):
    """Naming scheme for per-record files."""

    SEQUENCE = "sequence"
    KEY = "key"


@dataclass(frozen=True)
class ContinuationToken:
    """Opaque resume marker returned by a paged read. Never inspected."""

    value: Any


@dataclass(frozen=True)
class PageRequest:
    """One bounded read against the source store."""

    location: str
    limit: int
    filter_field: Optional[str] = None
    filter_threshold: Any = None
    token: Optional[ContinuationToken] = None

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("page size limit must be > 0")


@dataclass
class PageResponse:
    """Records of one page plus the token for the next one (None when exhausted)."""

    records: List[Record] = field(default_factory=list)
    next_token: Optional[ContinuationToken] = None

    @property
    def is_last(self) -> bool:
        return self.next_token is None


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a sink consuming one page."""

    sink: str
    records_written: int = 0
    batches_written: int = 0
    files_written: int = 0


@dataclass(frozen=True)
class SourceConfig:
    """Where and how to read."""

    table: str
    page_size: int = 200
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


@dataclass(frozen=True)
class FilterConfig:
    """Timestamp predicate `field > threshold`."""

    field: str
    age_days: Optional[float] = None
    threshold: Any = None
    format: str = "iso"  # iso | epoch_seconds | epoch_millis


@dataclass(frozen=True)
class DestinationConfig:
    """Destination table for bulk writes."""

    table: str
    batch_size: int = 25
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


@dataclass(frozen=True)
class OutputConfig:
    """Local file output."""

    directory: str = "out"
    layout: FileLayout = FileLayout.PER_RECORD
    naming: FileNaming = FileNaming.SEQUENCE
    key_fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StateConfig:
    """Checkpointing for resumable runs."""

    enabled: bool = False
    path: str = "out/state.db"
    resume: bool = True


@dataclass(frozen=True)
class ExportJob:
    """Configuration for one export run."""

    id: str
    name: str
    source: SourceConfig
    destination: Optional[DestinationConfig] = None
    output: Optional[OutputConfig] = None
    filter: Optional[FilterConfig] = None
    state: StateConfig = field(default_factory=StateConfig)
    parallel_sinks: bool = False


@dataclass
class RunContext:
    """Counters and identity of one run; the run's observable result."""

    run_id: str
    run_timestamp: str
    output_dir: Optional[str] = None
    state: PipelineState = PipelineState.IDLE
    pages_scanned: int = 0
    records_scanned: int = 0
    records_written: Dict[str, int] = field(default_factory=dict)
    batches_written: int = 0
    files_written: int = 0
    resumed_from_page: Optional[int] = None
    started_at_utc: str = ""
    finished_at_utc: str = ""
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.DONE and self.error is None

    def apply(self, result: WriteResult) -> None:
        """Accumulate one sink's page result."""
        self.records_written[result.sink] = self.records_written.get(result.sink, 0) + result.records_written
        self.batches_written += result.batches_written
        self.files_written += result.files_written

    def counters(self) -> Dict[str, Any]:
        return {
            "pages_scanned": self.pages_scanned,
            "records_scanned": self.records_scanned,
            "records_written": dict(self.records_written),
            "batches_written": self.batches_written,
            "files_written": self.files_written,
        }

    def restore(self, counters: Dict[str, Any]) -> None:
        """Reload counters saved by a previous, interrupted run."""
        self.pages_scanned = int(counters.get("pages_scanned", 0))
        self.records_scanned = int(counters.get("records_scanned", 0))
        self.records_written = {str(k): int(v) for k, v in (counters.get("records_written") or {}).items()}
        self.batches_written = int(counters.get("batches_written", 0))
        self.files_written = int(counters.get("files_written", 0))
