"""
Rules file loading and schema validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.rules.loader import load_rules
from src.rules.models import Rules

RULES_PATH = Path(__file__).parent.parent.parent / "rules.yaml"


def _write(tmp_path: Path, content: str, name: str = "rules.yaml") -> Path:
    path = tmp_path / name
    path.write_text(content)
    return path


class TestLoadRules:
    def test_load_actual_rules_file(self) -> None:
        rules = load_rules(RULES_PATH)

        assert rules.project.slug == "publishing-queue-worker"
        assert rules.worker.max_items_per_run == 20
        assert rules.worker.max_processing_time_ms == 120_000
        assert rules.retry.base_delay_seconds == 60
        assert rules.retry.max_delay_seconds == 3600
        assert rules.scheduler.poll_interval_seconds == 60

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "project: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_missing_project_section(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "worker:\n  max_items_per_run: 5\n")
        with pytest.raises(ValueError, match="validation failed"):
            load_rules(path)

    def test_sections_default_when_omitted(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "project:\n  slug: x\n  rules_version: '2'\n")

        rules = load_rules(path)

        assert rules.worker.queued_batch_size == 10
        assert rules.worker.retry_batch_size == 20
        assert rules.ops.required_env == []

    def test_yaml_block_inside_markdown(self, tmp_path: Path) -> None:
        content = (
            "# Worker rules\n\nSome notes.\n\n"
            "```yaml\n"
            "project:\n  slug: from-markdown\n  rules_version: '1'\n"
            "worker:\n  max_items_per_run: 7\n"
            "```\n\nTrailing text.\n"
        )
        path = _write(tmp_path, content, "rules.md")

        rules = load_rules(path)

        assert rules.project.slug == "from-markdown"
        assert rules.worker.max_items_per_run == 7


class TestRulesSchema:
    def test_non_positive_limits_rejected(self) -> None:
        with pytest.raises(ValueError):
            Rules.model_validate(
                {"project": {"slug": "x", "rules_version": "1"}, "worker": {"max_items_per_run": 0}}
            )

    def test_max_delay_below_base_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_delay_seconds"):
            Rules.model_validate(
                {
                    "project": {"slug": "x", "rules_version": "1"},
                    "retry": {"base_delay_seconds": 600, "max_delay_seconds": 60},
                }
            )

    def test_poll_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Rules.model_validate(
                {
                    "project": {"slug": "x", "rules_version": "1"},
                    "scheduler": {"poll_interval_seconds": 0},
                }
            )

    def test_stale_window_shorter_than_run_rejected(self) -> None:
        with pytest.raises(ValueError, match="stale_publishing_ms"):
            Rules.model_validate(
                {
                    "project": {"slug": "x", "rules_version": "1"},
                    "worker": {"max_processing_time_ms": 60_000, "stale_publishing_ms": 30_000},
                }
            )
