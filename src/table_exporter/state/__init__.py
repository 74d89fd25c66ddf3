from table_exporter.state.base import CheckpointStore, RunCheckpoint
from table_exporter.state.sqlite_store import SQLiteCheckpointStore

__all__ = [
    "CheckpointStore",
    "RunCheckpoint",
    "SQLiteCheckpointStore",
]
