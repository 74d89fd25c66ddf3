from __future__ import annotations

import sys
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from table_exporter.config_models import config_to_job, load_and_validate_config
from table_exporter.core.factory import ComponentFactory
from table_exporter.core.models import ExportJob, RunContext
from table_exporter.utils.logging import get_logger, setup_logging

log = get_logger("table_exporter.main")


def run_one(job: ExportJob, factory: Optional[ComponentFactory] = None) -> RunContext:
    """Run a single export."""
    factory = factory or ComponentFactory()
    built = factory.build(job)

    ctx = built.pipeline.run(job, run_timestamp=built.run_timestamp, output_dir=built.output_dir)
    if ctx.error is not None:
        print(f"FAILED after {ctx.pages_scanned} page(s): {ctx.error}")
    else:
        print("DONE:", ctx.counters())
    return ctx


def run_schedule(job: ExportJob, schedule_cfg: dict) -> None:
    """Run the export repeatedly on a fixed interval."""
    scheduler = BlockingScheduler()

    interval_hours = schedule_cfg.get("interval_hours", 24)
    print(f"Scheduling export every {interval_hours} hours")
    trigger = IntervalTrigger(hours=interval_hours)

    scheduler.add_job(
        run_one,
        trigger=trigger,
        args=[job],
        id=f"export_{job.id}",
        name=f"Scheduled export: {job.name}",
        max_instances=1,
    )

    print(f"Starting scheduled export for job '{job.name}' (every {interval_hours} hours)")
    try:
        scheduler.start()
    except KeyboardInterrupt:
        print("Scheduler stopped by user")


def main() -> None:
    """Main entry point for the table exporter."""
    if len(sys.argv) < 2:
        print("Usage: export-table configs/jobs/<job>.yaml")
        raise SystemExit(2)

    job_path = sys.argv[1]
    setup_logging("configs/logging.yaml")
    print(f"Loading job from {job_path}")

    try:
        config = load_and_validate_config(job_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        raise SystemExit(2)

    job, schedule_cfg = config_to_job(config)

    if schedule_cfg:
        print("Running in scheduled mode")
        run_schedule(job, schedule_cfg)
        return

    print("Running in one-time mode")
    ctx = run_one(job)
    if ctx.error is not None:
        log.error("Export %s failed: %s", job.id, ctx.error)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
