import logging
import os
from collections.abc import Mapping
from pathlib import Path

from src.components.publishing_worker import WorkerConfig
from src.components.retry import RetryPolicy
from src.rules.models import Rules

logger = logging.getLogger(__name__)

# Environment overrides for the worker limits in rules.yaml
ENV_MAX_ITEMS_PER_RUN = "MAX_ITEMS_PER_RUN"
ENV_MAX_PROCESSING_TIME_MS = "MAX_PROCESSING_TIME_MS"


class ConfigError(ValueError):
    """Startup configuration is invalid."""


def validate_ops_rules(
    rules: Rules,
    data_dir: Path,
    environ: Mapping[str, str] | None = None,
) -> None:
    """
    Validate operational requirements before startup.

    Raises ConfigError listing every problem found.
    """
    env = os.environ if environ is None else environ
    ops = rules.ops
    problems = []

    if ops.data_dir_required:
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            problems.append(f"Data directory {data_dir} is not writable: {e}")

    missing = [name for name in ops.required_env if not env.get(name)]
    if missing:
        problems.append(f"Missing required environment variables: {', '.join(missing)}")

    if problems:
        raise ConfigError("; ".join(problems))

    logger.info("Configuration validated (data dir: %s)", data_dir)


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def build_worker_config(
    rules: Rules,
    environ: Mapping[str, str] | None = None,
) -> WorkerConfig:
    """
    Build the worker configuration from rules plus environment overrides.

    MAX_ITEMS_PER_RUN and MAX_PROCESSING_TIME_MS win over rules.yaml.
    """
    env = os.environ if environ is None else environ
    worker = rules.worker

    max_processing_time_ms = _positive_int(
        env, ENV_MAX_PROCESSING_TIME_MS, worker.max_processing_time_ms
    )

    config = WorkerConfig(
        max_items_per_run=_positive_int(env, ENV_MAX_ITEMS_PER_RUN, worker.max_items_per_run),
        max_processing_time_ms=max_processing_time_ms,
        queued_batch_size=worker.queued_batch_size,
        retry_batch_size=worker.retry_batch_size,
        preview_limit=worker.preview_limit,
        # A run may never outlive the stale window of its own items
        stale_publishing_ms=max(worker.stale_publishing_ms, max_processing_time_ms),
        retry_policy=build_retry_policy(rules),
    )
    logger.debug("Worker config: %s", config)
    return config


def build_retry_policy(rules: Rules) -> RetryPolicy:
    return RetryPolicy(
        base_delay_seconds=rules.retry.base_delay_seconds,
        max_delay_seconds=rules.retry.max_delay_seconds,
        max_retries=rules.retry.max_retries,
    )
