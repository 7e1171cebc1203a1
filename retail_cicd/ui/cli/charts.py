"""
CLI commands for Helm chart values.

Thin wrappers over ``retail_cicd.core.services.pipeline.update_charts``.
"""

from __future__ import annotations

import json
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


@click.group()
def charts() -> None:
    """Helm charts — point values.yaml at a new image."""


@charts.command("update")
@click.argument("service")
@click.argument("tag")
@click.argument("registry", required=False, envvar="ECR_REGISTRY")
@click.option("--no-lint", is_flag=True, help="Skip helm lint after editing.")
@click.option("--no-stage", is_flag=True, help="Leave the edited files unstaged.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def update(
    ctx: click.Context,
    service: str,
    tag: str,
    registry: str | None,
    no_lint: bool,
    no_stage: bool,
    as_json: bool,
) -> None:
    """Set image.repository/image.tag of SERVICE (or 'all') to TAG.

    REGISTRY defaults to $ECR_REGISTRY.
    """
    from retail_cicd.core.config.loader import ConfigError, load_settings
    from retail_cicd.core.models.image import InvalidTagError
    from retail_cicd.core.models.service import UnknownServiceError
    from retail_cicd.core.services.pipeline import update_charts
    from retail_cicd.core.services.preflight import PreconditionError

    project_root = _resolve_project_root(ctx)
    try:
        settings = load_settings(ctx.obj.get("config_path"))
        results = update_charts(
            project_root,
            settings,
            [service],
            tag,
            registry=registry,
            lint=not no_lint,
            stage=not no_stage,
        )
    except (ConfigError, UnknownServiceError, InvalidTagError, PreconditionError) as e:
        if as_json:
            click.echo(json.dumps({"error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    failed = [r for r in results if not r.ok]

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        sys.exit(1 if failed else 0)

    for r in results:
        if r.status == "ok":
            click.secho(f"✅ {r.service.value}: {r.values_path}", fg="green")
            click.echo(f"   repository: {r.previous_repository} → {r.image.repository if r.image else '?'}")
            click.echo(f"   tag:        {r.previous_tag} → {tag}")
            click.echo(f"   lint:       {r.lint}")
        elif r.status == "unchanged":
            click.secho(f"⏭️  {r.service.value}: already at {tag}", fg="yellow")
        else:
            click.secho(f"❌ {r.service.value}: {r.error}", fg="red")
            if r.backup_path:
                click.echo(f"   Backup kept at {r.backup_path}")

    click.echo()
    if failed:
        click.secho(f"❌ {len(failed)} of {len(results)} chart update(s) failed", fg="red", bold=True)
        sys.exit(1)

    click.secho("✅ Chart update complete", fg="green", bold=True)
    if any(r.staged for r in results):
        click.echo("   Next: review with 'git diff --cached', then commit and push.")
    click.echo()
