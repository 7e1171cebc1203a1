"""
Pipeline — the CI run from change detection to the chart commit.

Flow:
    detect → preflight → build (parallel) → update charts (sequential,
    integration branch only) → publish (one commit)

Ordering guarantees:
    - a service's chart is only updated after its image was pushed
    - the single publish happens after every chart update finished
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from retail_cicd.core.config.loader import PipelineSettings
from retail_cicd.core.models.image import ImageReference, floating_tag_for, image_tag_for, validate_tag
from retail_cicd.core.models.results import PipelineReport, UpdateResult
from retail_cicd.core.models.service import ServiceRegistry
from retail_cicd.core.services import change_detect, chart_update, commit_publish, git_ops
from retail_cicd.core.services.image_build import BuildRequest, build_all
from retail_cicd.core.services.preflight import PreconditionError, run_preflight

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """Per-run inputs, usually taken from the CI event."""

    base: str | None = None
    head: str | None = None
    force_all: bool = False
    branch: str | None = None
    tag: str | None = None
    push: bool = True
    publish: bool = True


def run_pipeline(
    project_root: Path,
    settings: PipelineSettings,
    options: PipelineOptions,
    *,
    sleep: Callable[[float], None] | None = None,
) -> PipelineReport:
    """Execute one CI run.

    Raises:
        GitError: If the revision range cannot be resolved.
        PreconditionError: If files, tools or credentials are missing.
            Raised before any build starts.
        InvalidTagError: If an explicit tag is not a valid image tag.
    """
    registry = ServiceRegistry(settings.services_root)
    worktree = git_ops.WorkTree.open(project_root, branch=options.branch, remote=settings.git.remote)
    root = worktree.root

    change_set = change_detect.detect(
        root, registry, options.base, options.head, options.force_all,
    )

    head_ref = options.head or "HEAD"
    tag = validate_tag(options.tag) if options.tag else image_tag_for(
        worktree.branch, git_ops.short_sha(head_ref, cwd=root),
    )
    # Charts may only reference images that exist in the registry
    charts_enabled = options.push and settings.is_integration_branch(worktree.branch)
    report = PipelineReport(
        change_set=change_set, branch=worktree.branch, tag=tag, charts_enabled=charts_enabled,
    )

    if change_set.empty:
        logger.info("Nothing changed, skipping build and chart update")
        return report

    services = registry.ordered(change_set.changed_services)
    push_registry = run_preflight(
        root,
        services,
        registry=settings.registry,
        region=settings.region,
        push=options.push,
        need_charts=charts_enabled,
    )

    request = BuildRequest(
        project_root=root,
        tag=tag,
        floating_tag=floating_tag_for(worktree.branch, settings.git.integration_branches),
        registry=push_registry,
        region=settings.region,
        push=options.push,
        timeout=settings.build.timeout,
        push_timeout=settings.build.push_timeout,
    )
    report.builds = build_all(services, request, max_parallel=settings.build.max_parallel)

    if not charts_enabled:
        if options.push:
            logger.info("Branch %s is not an integration branch, charts left untouched", worktree.branch)
        else:
            logger.info("Images were not pushed, charts left untouched")
        return report

    pushed = {r.service for r in report.builds if r.ok and r.pushed}
    targets = [
        (
            svc,
            ImageReference(registry=push_registry, repository_name=svc.repository_name, tag=tag),
        )
        for svc in services
        if svc.name in pushed
    ]
    report.updates = chart_update.update_many(
        root,
        targets,
        lint=settings.charts.lint,
        require_lint=settings.charts.require_lint,
        lint_timeout=settings.charts.lint_timeout,
    )

    report.commit = commit_publish.publish(
        worktree, report.updates, settings.git, push=options.publish, sleep=sleep,
    )
    return report


def update_charts(
    project_root: Path,
    settings: PipelineSettings,
    services: list[str],
    tag: str,
    *,
    registry: str | None = None,
    lint: bool = True,
    stage: bool = True,
) -> list[UpdateResult]:
    """Manual chart update: point the named services at an explicit tag.

    Bypasses change detection and the integration-branch gate. Every name
    and the tag are validated before any file is read.

    Raises:
        UnknownServiceError: For a name outside the registry.
        InvalidTagError: For a malformed tag.
        PreconditionError: When no registry is configured.
    """
    service_registry = ServiceRegistry(settings.services_root)
    descriptors = service_registry.resolve(services)
    validate_tag(tag)
    registry_host = (registry or settings.registry).strip().rstrip("/")
    if not registry_host:
        raise PreconditionError([
            "ECR registry not provided. Set ECR_REGISTRY environment variable "
            "or pass it as the third argument."
        ])

    if stage and not git_ops.is_repository(cwd=project_root):
        logger.warning("%s is not a git repository, changes will not be staged", project_root)
        stage = False

    targets = [
        (svc, ImageReference(registry=registry_host, repository_name=svc.repository_name, tag=tag))
        for svc in descriptors
    ]
    return chart_update.update_many(
        project_root,
        targets,
        lint=lint and settings.charts.lint,
        require_lint=settings.charts.require_lint,
        stage=stage,
        lint_timeout=settings.charts.lint_timeout,
    )
