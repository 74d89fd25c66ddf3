from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class RunCheckpoint:
    """Persisted position of an interrupted export run."""

    token_payload: Optional[str]
    page_index: int
    run_timestamp: str
    status: str
    updated_at_utc: str
    counters: Dict[str, Any] = field(default_factory=dict)
    threshold: Any = None


class CheckpointStore(Protocol):
    """Protocol for checkpoint backends."""

    def mark_run_started(self, job_id: str) -> int: ...

    def mark_run_completed(self, job_id: str) -> None: ...

    def load_checkpoint(self, job_id: str) -> Optional[RunCheckpoint]: ...

    def save_checkpoint(
        self,
        job_id: str,
        token_payload: Optional[str],
        page_index: int,
        run_timestamp: str,
        counters: Dict[str, Any],
        threshold: Any = None,
        status: str = "in_progress",
    ) -> None: ...

    def clear_checkpoint(self, job_id: str) -> None: ...
