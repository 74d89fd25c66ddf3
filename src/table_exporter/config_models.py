"""
Pydantic models for YAML configuration validation.
Provides schema validation with clear error messages for export job configurations.
"""

from __future__ import annotations
from typing import Any, List, Optional, Literal
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from table_exporter.core.models import FileLayout, FileNaming


class JobConfig(BaseModel):
    """Identity of the export job."""
    id: str = Field(..., description="Unique identifier for the job (checkpoint key)")
    name: str = Field(..., description="Human-readable name for the job")
    parallel_sinks: bool = Field(False, description="Deliver each page to all sinks concurrently")


class SourceConfig(BaseModel):
    """Source table to scan."""
    table: str = Field(..., min_length=1, description="Source table name")
    page_size: int = Field(200, ge=1, description="Maximum items evaluated per scan request")
    region: Optional[str] = Field(None, description="AWS region of the source table")
    endpoint_url: Optional[str] = Field(None, description="Custom endpoint, e.g. DynamoDB Local")


class DestinationConfig(BaseModel):
    """Destination table written with bulk writes."""
    table: str = Field(..., min_length=1, description="Destination table name")
    batch_size: int = Field(25, ge=1, le=25, description="Items per bulk-write request")
    region: Optional[str] = Field(None, description="AWS region of the destination table")
    endpoint_url: Optional[str] = Field(None, description="Custom endpoint, e.g. DynamoDB Local")


class OutputConfig(BaseModel):
    """Local JSON file output."""
    directory: str = Field("out", description="Base directory; each run writes to <directory>/<run timestamp>/")
    layout: FileLayout = Field(FileLayout.PER_RECORD, description="One file per record or per page")
    naming: FileNaming = Field(FileNaming.SEQUENCE, description="sequence or key-derived file names")
    key_fields: List[str] = Field(default_factory=list, description="Identity fields for key naming")

    @model_validator(mode='after')
    def validate_naming(self):
        if self.naming == FileNaming.KEY and not self.key_fields:
            raise ValueError('key_fields cannot be empty when naming is "key"')
        return self


class FilterConfig(BaseModel):
    """Scan filter `field > threshold`."""
    field: str = Field(..., min_length=1, description="Timestamp field to compare")
    age_days: Optional[float] = Field(None, ge=0, description="Threshold as days before run start")
    threshold: Optional[Any] = Field(None, description="Absolute threshold value")
    format: Literal["iso", "epoch_seconds", "epoch_millis"] = Field(
        "iso", description="How the store represents the timestamp field"
    )

    @model_validator(mode='after')
    def validate_threshold_source(self):
        if (self.age_days is None) == (self.threshold is None):
            raise ValueError('filter needs exactly one of age_days or threshold')
        return self


class StateConfig(BaseModel):
    """Checkpointing for resumable runs."""
    enabled: bool = Field(False, description="Persist a checkpoint after each page")
    path: str = Field("out/state.db", description="SQLite checkpoint database")
    resume: bool = Field(True, description="Continue an interrupted run instead of starting over")


class ScheduleConfig(BaseModel):
    """Configuration for scheduled execution."""
    enabled: bool = Field(False, description="Whether scheduling is enabled")
    interval_hours: int = Field(24, ge=1, le=168, description="Interval between runs in hours")


class ExportConfig(BaseModel):
    """Root configuration model for export jobs."""
    job: JobConfig
    source: SourceConfig
    destination: Optional[DestinationConfig] = None
    output: Optional[OutputConfig] = None
    filter: Optional[FilterConfig] = None
    state: StateConfig = Field(default_factory=StateConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @model_validator(mode='after')
    def validate_sinks(self):
        """At least one place to put the data."""
        if self.destination is None and self.output is None:
            raise ValueError('at least one of "destination" or "output" must be configured')
        return self

    @field_validator('destination')
    @classmethod
    def validate_destination(cls, v, info):
        source = info.data.get('source')
        if v is not None and source is not None and v.table == source.table \
                and v.region == source.region and v.endpoint_url == source.endpoint_url:
            raise ValueError('destination table must differ from the source table')
        return v


def load_and_validate_config(config_path: str) -> ExportConfig:
    """
    Load and validate an export configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated ExportConfig object

    Raises:
        ValueError: If configuration is invalid or YAML is malformed
        FileNotFoundError: If config file doesn't exist
    """
    import yaml

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")

    try:
        return ExportConfig(**(raw_config or {}))
    except ValidationError as e:
        # Format validation errors nicely
        error_messages = []
        for error in e.errors():
            field_path = '.'.join(str(loc) for loc in error['loc'])
            error_messages.append(f"  {field_path}: {error['msg']}")

        raise ValueError(
            f"Configuration validation failed for {config_path}:\n" +
            '\n'.join(error_messages)
        ) from e


def config_to_job(config: ExportConfig) -> tuple:
    """
    Convert validated config to the objects expected by the pipeline.

    Returns:
        Tuple of (ExportJob, schedule_config_dict)
    """
    from table_exporter.core import models as core

    job = core.ExportJob(
        id=config.job.id,
        name=config.job.name,
        source=core.SourceConfig(**config.source.model_dump()),
        destination=core.DestinationConfig(**config.destination.model_dump()) if config.destination else None,
        output=core.OutputConfig(**config.output.model_dump()) if config.output else None,
        filter=core.FilterConfig(**config.filter.model_dump()) if config.filter else None,
        state=core.StateConfig(**config.state.model_dump()),
        parallel_sinks=config.job.parallel_sinks,
    )

    schedule_config = config.schedule.model_dump() if config.schedule.enabled else {}
    return job, schedule_config
