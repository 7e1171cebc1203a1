"""
Configuration loader — reads pipeline.yml into typed settings.

The file is optional: every setting has a default that matches the
retail store repository layout. Environment variables set by CI
(``ECR_REGISTRY``, ``AWS_REGION``) override the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# Default config filename
PIPELINE_CONFIG_FILE = "pipeline.yml"

DEFAULT_REGION = "us-east-1"


class ConfigError(Exception):
    """Raised when pipeline configuration is invalid."""


class GitSettings(BaseModel):
    """How chart changes are committed and pushed back."""

    remote: str = "origin"
    integration_branches: list[str] = Field(default_factory=lambda: ["main"])
    push_max_attempts: int = Field(default=3, ge=1, le=10)
    push_backoff_seconds: float = Field(default=2.0, ge=0)
    push_max_backoff_seconds: float = Field(default=30.0, ge=0)
    author_name: str = "github-actions[bot]"
    author_email: str = "github-actions[bot]@users.noreply.github.com"
    timeout: int = 120


class BuildSettings(BaseModel):
    """Image build knobs."""

    max_parallel: int = Field(default=5, ge=1)
    timeout: int = 1800
    push_timeout: int = 900


class ChartSettings(BaseModel):
    """Chart update knobs."""

    lint: bool = True
    require_lint: bool = False
    lint_timeout: int = 120


class PipelineSettings(BaseModel):
    """Everything the pipeline needs besides the revision range."""

    services_root: str = "src"
    registry: str = ""
    region: str = DEFAULT_REGION
    git: GitSettings = Field(default_factory=GitSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    charts: ChartSettings = Field(default_factory=ChartSettings)

    @field_validator("registry")
    @classmethod
    def _strip_registry(cls, value: str) -> str:
        return value.strip().rstrip("/")

    def is_integration_branch(self, branch: str) -> bool:
        return branch in self.git.integration_branches


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for pipeline.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to pipeline.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PIPELINE_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def apply_env_overrides(
    settings: PipelineSettings,
    environ: Mapping[str, str] | None = None,
) -> PipelineSettings:
    """Overlay CI environment variables onto *settings*."""
    env = os.environ if environ is None else environ
    updates: dict[str, str] = {}
    if env.get("ECR_REGISTRY"):
        updates["registry"] = env["ECR_REGISTRY"].strip().rstrip("/")
    if env.get("AWS_REGION"):
        updates["region"] = env["AWS_REGION"].strip()
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def load_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> PipelineSettings:
    """Load pipeline settings.

    Args:
        path: Explicit path to pipeline.yml. If None, searches upward and
            falls back to defaults when nothing is found.
        environ: Environment mapping for overrides (default: ``os.environ``).

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using defaults", PIPELINE_CONFIG_FILE)
            return apply_env_overrides(PipelineSettings(), environ)
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading pipeline config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to be nested under a "pipeline" key
    data = data.get("pipeline", data)

    try:
        settings = PipelineSettings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid pipeline configuration: {e}") from e

    return apply_env_overrides(settings, environ)


def project_root(config_path: Path | None) -> Path:
    """Project root: the config file's directory, or CWD when there is none."""
    if config_path is None:
        return Path.cwd().resolve()
    return config_path.parent.resolve()
