from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC time in ISO format."""
    return utc_now().isoformat(timespec="seconds")


def run_folder_name(now: Optional[datetime] = None) -> str:
    """Folder name for a run, e.g. 20250417_1832."""
    return (now or utc_now()).strftime("%Y%m%d_%H%M")


def format_timestamp(moment: datetime, fmt: str = "iso") -> Any:
    """Render a datetime in the representation the store compares against."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    fmt = (fmt or "iso").lower()
    if fmt == "iso":
        # 2023-11-30T09:43:24.495Z
        return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if fmt == "epoch_seconds":
        return int(moment.timestamp())
    if fmt == "epoch_millis":
        return int(moment.timestamp() * 1000)
    raise ValueError(f"Unsupported timestamp format: {fmt}")


def compute_threshold(now: datetime, age_days: float, fmt: str = "iso") -> Any:
    """Point `age_days` before `now`, formatted for the store."""
    if age_days < 0:
        raise ValueError("filter age must not be negative")
    return format_timestamp(now - timedelta(days=age_days), fmt)
