"""
Per-service unit tests, run before a local image build.

The command depends on the service's toolchain:

    java  → ./mvnw test -q
    go    → go test ./...
    node  → yarn install --frozen-lockfile, then yarn test

A service without its build manifest is skipped with a warning rather
than failed, mirroring how the images themselves would still build.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from retail_cicd.core.models.service import ServiceDescriptor

logger = logging.getLogger(__name__)


# language → (manifest that must exist, commands to run in order)
TEST_COMMANDS: dict[str, tuple[str, list[list[str]]]] = {
    "java": ("mvnw", [["./mvnw", "test", "-q"]]),
    "go": ("go.mod", [["go", "test", "./..."]]),
    "node": (
        "package.json",
        [
            ["yarn", "install", "--frozen-lockfile", "--silent"],
            ["yarn", "test"],
        ],
    ),
}


def run_service_tests(project_root: Path, service: ServiceDescriptor, *, timeout: int = 1800) -> dict:
    """Run the unit tests of one service.

    Returns:
        {"ok": True}, {"skipped": True, "reason": "..."} or {"error": "..."}
    """
    spec = TEST_COMMANDS.get(service.language)
    if spec is None:
        logger.warning("Unknown service type for %s, skipping tests", service.name)
        return {"skipped": True, "reason": f"no test command for {service.language}"}

    manifest, commands = spec
    cwd = project_root / service.source_path
    if not (cwd / manifest).is_file():
        logger.warning("%s not found for %s, skipping tests", manifest, service.name)
        return {"skipped": True, "reason": f"{manifest} not found"}

    for cmd in commands:
        logger.info("Running %s in %s", " ".join(cmd), service.source_path)
        try:
            r = subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError:
            return {"error": f"{cmd[0]} not installed"}
        except PermissionError:
            return {"error": f"{cmd[0]} is not executable"}
        except subprocess.TimeoutExpired:
            return {"error": f"{' '.join(cmd)} timed out after {timeout}s"}
        if r.returncode != 0:
            output = (r.stdout + r.stderr).strip().splitlines()[-20:]
            return {"error": "\n".join(output) or f"{' '.join(cmd)} exited with code {r.returncode}"}

    return {"ok": True}
