"""
CLI command for local image builds.

Thin wrapper over ``retail_cicd.core.services.local_build``.
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


@click.command()
@click.argument("services", nargs=-1)
@click.option("--all", "all_services", is_flag=True, help="Build every service.")
@click.option("--push", is_flag=True, help="Push the images to ECR after building.")
@click.option("--region", default=None, help="AWS region (default: $AWS_REGION or us-east-1).")
@click.option("--skip-tests", is_flag=True, help="Do not run unit tests before building.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(
    ctx: click.Context,
    services: tuple[str, ...],
    all_services: bool,
    push: bool,
    region: str | None,
    skip_tests: bool,
    as_json: bool,
) -> None:
    """Test and build service images locally.

    \b
    Examples:
        retail-cicd build ui catalog
        retail-cicd build --all --push
    """
    from retail_cicd.core.config.loader import ConfigError, load_settings
    from retail_cicd.core.models.service import ALL_SERVICES, ServiceRegistry, UnknownServiceError
    from retail_cicd.core.services.local_build import local_build
    from retail_cicd.core.services.preflight import PreconditionError

    if not services and not all_services:
        raise click.UsageError("Name at least one service, or pass --all.")

    project_root = _resolve_project_root(ctx)
    try:
        settings = load_settings(ctx.obj.get("config_path"))
        registry = ServiceRegistry(settings.services_root)
        descriptors = registry.resolve([ALL_SERVICES] if all_services else list(services))
        results = local_build(
            project_root,
            descriptors,
            push=push,
            region=region or settings.region,
            registry=settings.registry,
            run_tests=not skip_tests,
            timeout=settings.build.timeout,
        )
    except (ConfigError, UnknownServiceError, PreconditionError) as e:
        if as_json:
            click.echo(json.dumps({"error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    failed = [r for r in results if not r.ok]

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        sys.exit(1 if failed else 0)

    click.secho("🐳 Build summary", fg="cyan", bold=True)
    for r in results:
        if r.ok:
            pushed = " (pushed)" if r.pushed else ""
            click.secho(f"   ✅ {r.service.value:<10} {', '.join(r.tags)}{pushed}", fg="green")
        else:
            click.secho(f"   ❌ {r.service.value:<10} {r.status}", fg="red")
            if r.error:
                for line in r.error.splitlines()[-5:]:
                    click.echo(f"      {line}")
    click.echo()

    if failed:
        click.secho(f"❌ {len(failed)} of {len(results)} service(s) failed", fg="red", bold=True)
        sys.exit(1)
    click.secho("✅ All services built successfully", fg="green", bold=True)
