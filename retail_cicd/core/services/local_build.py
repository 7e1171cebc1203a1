"""
Local builds — test and build images on a developer machine before
pushing a branch.

Services are processed one at a time: unit tests first, then the image
build, then (with ``push``) the push to the caller's ECR registry.
Images are tagged ``<branch>-<sha>`` and ``latest``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from retail_cicd.core.models.image import image_tag_for
from retail_cicd.core.models.results import BuildResult
from retail_cicd.core.models.service import ServiceDescriptor
from retail_cicd.core.services import git_ops
from retail_cicd.core.services.image_build import BuildRequest, build
from retail_cicd.core.services.preflight import (
    PreconditionError,
    docker_problems,
    login,
    resolve_registry,
    service_problems,
)
from retail_cicd.core.services.service_tests import run_service_tests

logger = logging.getLogger(__name__)


def local_tag(project_root: Path) -> str:
    """``<branch>-<sha>`` of the checkout, ``local-local`` outside git."""
    try:
        branch = git_ops.current_branch(cwd=project_root)
        sha = git_ops.short_sha(cwd=project_root)
    except (git_ops.GitError, OSError):
        branch, sha = "local", "local"
    return image_tag_for(branch, sha)


def local_build(
    project_root: Path,
    services: list[ServiceDescriptor],
    *,
    push: bool = False,
    region: str = "us-east-1",
    registry: str = "",
    run_tests: bool = True,
    timeout: int = 1800,
) -> list[BuildResult]:
    """Test and build each service; optionally push.

    Raises:
        PreconditionError: Docker not running, or AWS credentials missing
            when pushing. Raised before any service is processed.
    """
    problems = docker_problems(project_root)
    if problems:
        raise PreconditionError(problems)

    if push:
        registry = resolve_registry(project_root, registry, region)
        logger.info("Using ECR registry: %s", registry)
        login(project_root, registry, region)

    request = BuildRequest(
        project_root=project_root,
        tag=local_tag(project_root),
        floating_tag="latest",
        registry=registry,
        region=region,
        push=push,
        timeout=timeout,
    )

    results: list[BuildResult] = []
    for svc in services:
        logger.info("Processing service: %s", svc.name)
        problems = service_problems(project_root, [svc])
        if problems:
            logger.error(problems[0])
            results.append(BuildResult.failure(svc.name, "build_failed", problems[0]))
            continue

        if run_tests:
            tested = run_service_tests(project_root, svc, timeout=timeout)
            if "error" in tested:
                logger.error("Tests failed for %s", svc.name)
                results.append(BuildResult.failure(svc.name, "test_failed", tested["error"]))
                continue

        results.append(build(svc, request))
    return results
