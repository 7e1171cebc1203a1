"""
Image builds — build, tag and push one image per changed service.

``build()`` handles a single service and never raises for tool failures.
``build_all()`` fans out over a thread pool; each worker drives its own
``docker`` process and shares nothing with its siblings, so one failing
build never stops the others.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from retail_cicd.core.models.image import ImageReference
from retail_cicd.core.models.results import BuildResult
from retail_cicd.core.models.service import ServiceDescriptor
from retail_cicd.core.services.docker_ops import docker_build_image, docker_push
from retail_cicd.core.services.ecr_ops import ensure_repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildRequest:
    """Inputs shared by every build in one run."""

    project_root: Path
    tag: str
    floating_tag: str = "latest"
    registry: str = ""
    region: str = "us-east-1"
    push: bool = True
    timeout: int = 1800
    push_timeout: int = 900


def build(service: ServiceDescriptor, request: BuildRequest) -> BuildResult:
    """Build *service* and, when requested, push it to the registry.

    Two tags are produced: the immutable ``request.tag`` and the floating
    ``request.floating_tag``. A push failure is reported as
    ``push_failed`` (the image exists locally), a build failure as
    ``build_failed``.
    """
    start = time.monotonic()
    image = ImageReference(
        registry=request.registry if request.push else "",
        repository_name=service.repository_name,
        tag=request.tag,
    )
    floating = image.with_tag(request.floating_tag)
    tags = [image.uri, floating.uri]

    def elapsed() -> int:
        return int((time.monotonic() - start) * 1000)

    logger.info("Building %s from %s", image.uri, service.dockerfile_path)
    result = docker_build_image(
        request.project_root,
        dockerfile=service.dockerfile_path,
        context=service.source_path,
        tags=tags,
        timeout=request.timeout,
    )
    if "error" in result:
        logger.error("Build failed for %s: %s", service.name, result["error"])
        return BuildResult.failure(
            service.name, "build_failed", result["error"],
            image=image, tags=tags, duration_ms=elapsed(),
        )

    if not request.push:
        return BuildResult.success(service.name, image, tags=tags, duration_ms=elapsed())

    repo = ensure_repository(request.project_root, service.repository_name, request.region)
    if "error" in repo:
        return BuildResult.failure(
            service.name, "push_failed", repo["error"],
            image=image, tags=tags, duration_ms=elapsed(),
        )

    for ref in tags:
        logger.info("Pushing %s", ref)
        pushed = docker_push(request.project_root, ref, timeout=request.push_timeout)
        if "error" in pushed:
            logger.error("Push failed for %s: %s", ref, pushed["error"])
            return BuildResult.failure(
                service.name, "push_failed", pushed["error"],
                image=image, tags=tags, duration_ms=elapsed(),
            )

    return BuildResult.success(service.name, image, tags=tags, pushed=True, duration_ms=elapsed())


def build_all(
    services: Iterable[ServiceDescriptor],
    request: BuildRequest,
    *,
    max_parallel: int = 5,
) -> list[BuildResult]:
    """Build several services concurrently.

    Results come back in the order *services* was given.
    """
    services = list(services)
    if not services:
        return []

    workers = max(1, min(max_parallel, len(services)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="build") as pool:
        futures = [pool.submit(_build_isolated, svc, request) for svc in services]
        return [f.result() for f in futures]


def _build_isolated(service: ServiceDescriptor, request: BuildRequest) -> BuildResult:
    """Run ``build`` and turn anything unexpected into a failed result."""
    try:
        return build(service, request)
    except Exception as e:
        logger.exception("Unexpected error building %s", service.name)
        return BuildResult.failure(service.name, "build_failed", f"Unexpected error: {e}")
