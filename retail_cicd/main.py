"""
Retail Store CI/CD — CLI entrypoint.

Usage:
    retail-cicd --help
    retail-cicd validate
    retail-cicd charts update catalog main-abc1234
    retail-cicd build cart --push
    retail-cicd pipeline run
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from retail_cicd.core.observability.logging_config import setup_logging

from retail_cicd import __version__


@click.group()
@click.version_option(version=__version__, prog_name="retail-cicd")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pipeline.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Retail Store CI/CD — build images, update Helm charts, publish."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("RSC_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("RSC_LOG_FILE"),
        log_file_level=os.environ.get("RSC_LOG_FILE_LEVEL"),
    )


# ── Register command groups ────────────────────────────────────

from retail_cicd.ui.cli.build import build
from retail_cicd.ui.cli.charts import charts
from retail_cicd.ui.cli.pipeline import pipeline
from retail_cicd.ui.cli.validate import validate

cli.add_command(charts)
cli.add_command(build)
cli.add_command(pipeline)
cli.add_command(validate)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
