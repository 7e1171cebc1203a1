"""
Preflight checks — everything that must hold before the first build.

Problems found here are global: the run stops with ``PreconditionError``
before any image is built or any chart file is touched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from retail_cicd.core.models.service import ServiceDescriptor
from retail_cicd.core.services.docker_ops import docker_status
from retail_cicd.core.services.ecr_ops import caller_identity, ecr_login, registry_for

logger = logging.getLogger(__name__)


class PreconditionError(Exception):
    """Raised when a run cannot start safely."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


def service_problems(
    project_root: Path,
    services: Iterable[ServiceDescriptor],
    *,
    need_charts: bool = False,
) -> list[str]:
    """Missing source directories, Dockerfiles and (optionally) values files."""
    problems: list[str] = []
    for svc in services:
        if not (project_root / svc.source_path).is_dir():
            problems.append(f"Service directory not found: {svc.source_path}")
            continue
        if not (project_root / svc.dockerfile_path).is_file():
            problems.append(f"Dockerfile not found: {svc.dockerfile_path}")
        if need_charts and not (project_root / svc.chart_values_path).is_file():
            problems.append(f"{svc.chart_values_path} not found")
    return problems


def docker_problems(project_root: Path) -> list[str]:
    status = docker_status(project_root)
    if not status.get("available"):
        return [status.get("error", "Docker CLI not installed")]
    if not status.get("daemon_running"):
        return ["Docker is not running. Please start Docker and try again."]
    return []


def resolve_registry(project_root: Path, registry: str, region: str) -> str:
    """Registry to push to: the configured one, or the caller's account ECR.

    Raises:
        PreconditionError: If AWS credentials are not usable.
    """
    identity = caller_identity(project_root)
    if "error" in identity:
        raise PreconditionError([
            f"AWS credentials not configured: {identity['error']}. "
            "Run 'aws configure' or set the AWS_* environment variables."
        ])
    if registry:
        return registry
    return registry_for(identity["account"], region)


def login(project_root: Path, registry: str, region: str) -> None:
    result = ecr_login(project_root, registry, region)
    if "error" in result:
        raise PreconditionError([f"Registry login failed for {registry}: {result['error']}"])


def run_preflight(
    project_root: Path,
    services: list[ServiceDescriptor],
    *,
    registry: str,
    region: str,
    push: bool,
    need_charts: bool,
) -> str:
    """Validate a run and log in to the registry.

    Returns:
        The registry host to use (may be derived from the AWS account).

    Raises:
        PreconditionError: On any missing file, tool or credential.
    """
    problems = service_problems(project_root, services, need_charts=need_charts)
    problems.extend(docker_problems(project_root))
    if problems:
        raise PreconditionError(problems)

    if push:
        registry = resolve_registry(project_root, registry, region)
        login(project_root, registry, region)

    logger.info("Preflight passed for %d service(s), registry=%s", len(services), registry or "-")
    return registry
