from pydantic import BaseModel, Field, model_validator


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class WorkerRules(BaseModel):
    max_items_per_run: int = Field(default=20, ge=1)
    max_processing_time_ms: int = Field(default=120_000, ge=1)
    queued_batch_size: int = Field(default=10, ge=1)
    retry_batch_size: int = Field(default=20, ge=1)
    preview_limit: int = Field(default=10, ge=0)
    stale_publishing_ms: int = Field(default=600_000, ge=1)

    @model_validator(mode="after")
    def check_stale_window(self) -> "WorkerRules":
        if self.stale_publishing_ms < self.max_processing_time_ms:
            raise ValueError("stale_publishing_ms must be >= max_processing_time_ms")
        return self


class RetryRules(BaseModel):
    base_delay_seconds: int = Field(default=60, ge=0)
    max_delay_seconds: int = Field(default=3600, ge=0)
    max_retries: int = Field(default=3, ge=0)

    @model_validator(mode="after")
    def check_delays(self) -> "RetryRules":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


class SchedulerRules(BaseModel):
    # Used only when the in-process dev scheduler is enabled
    poll_interval_seconds: float = Field(default=60.0, gt=0)


class OpsRules(BaseModel):
    data_dir_required: bool = True
    required_env: list[str] = Field(default_factory=list)


class Rules(BaseModel):
    project: ProjectRules
    worker: WorkerRules = Field(default_factory=WorkerRules)
    retry: RetryRules = Field(default_factory=RetryRules)
    scheduler: SchedulerRules = Field(default_factory=SchedulerRules)
    ops: OpsRules = Field(default_factory=OpsRules)
