"""
CLI commands for the CI pipeline.

Thin wrappers over ``retail_cicd.core.services.change_detect`` and
``retail_cicd.core.services.pipeline``. Meant to be called from the
GitHub Actions workflow, so both commands read the usual ``GITHUB_*``
variables when options are omitted.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click


def _resolve_project_root(ctx: click.Context) -> Path:
    """Resolve project root from context or CWD."""
    config_path: Path | None = ctx.obj.get("config_path")
    if config_path is None:
        from retail_cicd.core.config.loader import find_config_file

        config_path = find_config_file()
    return config_path.parent.resolve() if config_path else Path.cwd()


def _ci_branch() -> str | None:
    """Branch name from the Actions environment (PR head wins)."""
    return os.environ.get("GITHUB_HEAD_REF") or os.environ.get("GITHUB_REF_NAME") or None


def _write_github_output(values: dict[str, str]) -> None:
    """Append ``key=value`` lines to $GITHUB_OUTPUT when running in Actions."""
    path = os.environ.get("GITHUB_OUTPUT")
    if not path:
        return
    with open(path, "a", encoding="utf-8") as fh:
        for key, value in values.items():
            fh.write(f"{key}={value}\n")


def _fail(message: str, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


@click.group()
def pipeline() -> None:
    """CI pipeline — detect changes, build, update charts, publish."""


# ── Detect ──────────────────────────────────────────────────────


@pipeline.command("detect")
@click.option("--base", default=None, help="Base revision (default: parent of head).")
@click.option("--head", default=None, envvar="GITHUB_SHA", help="Head revision (default: $GITHUB_SHA or HEAD).")
@click.option("--force-all", is_flag=True, help="Select every service.")
@click.option("--worktree", is_flag=True, help="Compare uncommitted changes against HEAD.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def detect(
    ctx: click.Context,
    base: str | None,
    head: str | None,
    force_all: bool,
    worktree: bool,
    as_json: bool,
) -> None:
    """Print the services changed between two revisions."""
    from retail_cicd.core.config.loader import ConfigError, load_settings
    from retail_cicd.core.models.service import ServiceRegistry
    from retail_cicd.core.services import change_detect
    from retail_cicd.core.services.git_ops import GitError

    project_root = _resolve_project_root(ctx)
    try:
        settings = load_settings(ctx.obj.get("config_path"))
        change_set = change_detect.detect(
            project_root,
            ServiceRegistry(settings.services_root),
            base,
            head,
            force_all,
            worktree=worktree,
        )
    except (ConfigError, GitError) as e:
        _fail(str(e), as_json)
        return

    _write_github_output({
        "services": json.dumps(change_set.names()),
        "has_changes": "true" if not change_set.empty else "false",
    })

    if as_json:
        click.echo(json.dumps(change_set.to_dict(), indent=2))
        return

    for name in change_set.names():
        click.echo(name)


# ── Run ─────────────────────────────────────────────────────────


@pipeline.command("run")
@click.option("--base", default=None, help="Base revision (default: parent of head).")
@click.option("--head", default=None, envvar="GITHUB_SHA", help="Head revision (default: $GITHUB_SHA or HEAD).")
@click.option("--force-all", is_flag=True, help="Build every service regardless of changes.")
@click.option("--branch", default=None, help="Branch name (default: $GITHUB_HEAD_REF, $GITHUB_REF_NAME or current).")
@click.option("--tag", default=None, help="Image tag (default: <branch>-<short sha>).")
@click.option("--registry", default=None, help="ECR registry host (default: $ECR_REGISTRY or the caller's account).")
@click.option("--region", default=None, help="AWS region (default: $AWS_REGION or us-east-1).")
@click.option("--no-push", is_flag=True, help="Build images without pushing them.")
@click.option("--no-publish", is_flag=True, help="Commit chart changes but do not push the commit.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    base: str | None,
    head: str | None,
    force_all: bool,
    branch: str | None,
    tag: str | None,
    registry: str | None,
    region: str | None,
    no_push: bool,
    no_publish: bool,
    as_json: bool,
) -> None:
    """Detect, build, push, update charts and publish in one go."""
    from retail_cicd.core.config.loader import ConfigError, load_settings
    from retail_cicd.core.models.image import InvalidTagError
    from retail_cicd.core.services.git_ops import GitError
    from retail_cicd.core.services.pipeline import PipelineOptions, run_pipeline
    from retail_cicd.core.services.preflight import PreconditionError

    project_root = _resolve_project_root(ctx)
    try:
        settings = load_settings(ctx.obj.get("config_path"))
        overrides = {}
        if registry:
            overrides["registry"] = registry.strip().rstrip("/")
        if region:
            overrides["region"] = region
        if overrides:
            settings = settings.model_copy(update=overrides)

        options = PipelineOptions(
            base=base,
            head=head,
            force_all=force_all,
            branch=branch or _ci_branch(),
            tag=tag,
            push=not no_push,
            publish=not no_publish,
        )
        report = run_pipeline(project_root, settings, options)
    except PreconditionError as e:
        if as_json:
            click.echo(json.dumps({"error": "preflight failed", "problems": e.problems}, indent=2))
            sys.exit(1)
        click.secho("❌ Preflight failed:", fg="red", bold=True)
        for problem in e.problems:
            click.echo(f"   • {problem}")
        sys.exit(1)
    except (ConfigError, GitError, InvalidTagError) as e:
        _fail(str(e), as_json)
        return

    _write_github_output({
        "services": json.dumps(report.change_set.names()),
        "tag": report.tag,
        "status": report.status,
    })

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)

    click.secho(f"🚀 Pipeline {report.branch} @ {report.tag}", fg="cyan", bold=True)
    if report.change_set.empty:
        click.secho("   No service changes detected, nothing to do.", fg="yellow")
        click.echo()
        return

    click.echo(f"   Changed: {', '.join(report.change_set.names())}")
    click.echo()

    for r in report.builds:
        icon = "✅" if r.ok else "❌"
        click.echo(f"   {icon} build  {r.service.value:<10} {r.image.uri if r.image else '-'}")
        if r.error:
            click.echo(f"      {r.error.splitlines()[-1]}")
    for u in report.updates:
        icon = "✅" if u.ok else "❌"
        click.echo(f"   {icon} chart  {u.service.value:<10} {u.status}")
        if u.error:
            click.echo(f"      {u.error}")
    if not report.charts_enabled:
        reason = "images were not pushed" if no_push else f"{report.branch} is not an integration branch"
        click.echo(f"   ⏭️  charts skipped: {reason}")
    if report.commit is not None:
        icon = "✅" if report.commit.ok else "❌"
        detail = report.commit.commit or report.commit.error or report.commit.message
        click.echo(f"   {icon} commit {report.commit.status} {detail or ''}".rstrip())

    click.echo()
    color = {"ok": "green", "partial": "yellow", "failed": "red"}[report.status]
    click.secho(f"   Status: {report.status}", fg=color, bold=True)
    if report.failed_services:
        click.echo(f"   Failed: {', '.join(report.failed_services)}")
    click.echo()

    if not report.ok:
        sys.exit(1)
