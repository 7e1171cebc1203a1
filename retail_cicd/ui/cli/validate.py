"""
CLI command for setup validation.

Thin wrapper over ``retail_cicd.core.services.setup_validate``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

_ICONS = {"pass": ("✓", "green"), "warn": ("⚠", "yellow"), "fail": ("✗", "red")}


def _resolve_project_root(ctx: click.Context) -> Path:
    """Resolve project root from context or CWD."""
    config_path: Path | None = ctx.obj.get("config_path")
    if config_path is None:
        from retail_cicd.core.config.loader import find_config_file

        config_path = find_config_file()
    return config_path.parent.resolve() if config_path else Path.cwd()


@click.command()
@click.option("--no-probe", is_flag=True, help="Only check files; do not run docker/aws/helm.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def validate(ctx: click.Context, no_probe: bool, as_json: bool) -> None:
    """Check that this checkout is ready for the CI/CD pipeline."""
    from retail_cicd.core.config.loader import ConfigError, load_settings
    from retail_cicd.core.models.service import ServiceRegistry
    from retail_cicd.core.services.setup_validate import validate_setup

    project_root = _resolve_project_root(ctx)
    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    report = validate_setup(
        project_root,
        ServiceRegistry(settings.services_root),
        probe_tools=not no_probe,
    )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(report.exit_code)

    click.secho("🔍 CI/CD setup validation", fg="cyan", bold=True)
    for section, checks in report.sections().items():
        click.echo()
        click.secho(f"   {section}", fg="white", bold=True)
        for check in checks:
            icon, color = _ICONS[check.status]
            click.secho(f"     {icon} {check.message}", fg=color)

    click.echo()
    click.secho("   Summary", fg="white", bold=True)
    click.secho(f"     Passed:   {report.passed}", fg="green")
    click.secho(f"     Warnings: {report.warnings}", fg="yellow")
    click.secho(f"     Failed:   {report.failed}", fg="red")

    recommendations = report.recommendations()
    if recommendations:
        click.echo()
        click.secho("   Recommendations", fg="white", bold=True)
        for rec in recommendations:
            click.echo(f"     • {rec}")
    click.echo()

    if report.exit_code:
        click.secho("❌ Setup validation failed. Fix the errors above.", fg="red", bold=True)
        sys.exit(report.exit_code)
    if report.warnings:
        click.secho("⚠️  Setup validation passed with warnings.", fg="yellow", bold=True)
    else:
        click.secho("✅ Setup validation passed.", fg="green", bold=True)
