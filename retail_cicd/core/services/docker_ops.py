"""
Docker operations — daemon status, build, tag, push, registry login.

Every function returns a dict: ``{"ok": True, ...}`` on success or
``{"error": "..."}`` on failure. Nothing here raises for a failing
docker command, so callers can aggregate per-service outcomes.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def run_docker(
    *args: str,
    cwd: Path,
    timeout: int = 60,
    stdin: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    logger.debug("docker %s (cwd=%s)", args[0] if args else "", cwd)
    return subprocess.run(
        ["docker", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
        input=stdin,
    )


def docker_available() -> bool:
    return shutil.which("docker") is not None


def docker_status(project_root: Path) -> dict:
    """Docker CLI and daemon availability.

    Returns:
        {"available": bool, "version": str | None, "daemon_running": bool}
    """
    if not docker_available():
        return {
            "available": False,
            "error": "Docker CLI not installed",
            "daemon_running": False,
        }

    r_ver = run_docker("--version", cwd=project_root, timeout=5)
    version = r_ver.stdout.strip() if r_ver.returncode == 0 else None

    r_info = run_docker("info", "--format", "{{.ServerVersion}}", cwd=project_root, timeout=10)
    daemon_running = r_info.returncode == 0

    return {
        "available": True,
        "version": version,
        "daemon_running": daemon_running,
        "server_version": r_info.stdout.strip() if daemon_running else None,
    }


def docker_build_image(
    project_root: Path,
    *,
    dockerfile: str,
    context: str,
    tags: list[str],
    timeout: int = 1800,
) -> dict:
    """Build one image from *dockerfile* with build context *context*.

    Returns:
        {"ok": True, "tags": [...], "output": "..."} or {"error": "..."}
    """
    if not tags:
        return {"error": "At least one tag is required"}

    args = ["build", "-f", dockerfile]
    for tag in tags:
        args.extend(["-t", tag])
    args.append(context)

    try:
        r = run_docker(*args, cwd=project_root, timeout=timeout)
    except subprocess.TimeoutExpired:
        return {"error": f"docker build timed out after {timeout}s"}

    if r.returncode != 0:
        return {"error": _tail(r.stderr) or f"docker build exited with code {r.returncode}"}
    return {"ok": True, "tags": tags, "output": r.stdout.strip()}


def docker_push(project_root: Path, image: str, *, timeout: int = 900) -> dict:
    """Push a single image reference.

    Returns:
        {"ok": True, "image": ...} or {"error": "..."}
    """
    try:
        r = run_docker("push", image, cwd=project_root, timeout=timeout)
    except subprocess.TimeoutExpired:
        return {"error": f"docker push {image} timed out after {timeout}s"}

    if r.returncode != 0:
        return {"error": _tail(r.stderr) or f"Failed to push '{image}'"}
    return {"ok": True, "image": image}


def docker_login(project_root: Path, registry: str, *, username: str, password: str) -> dict:
    """Log in to *registry*, passing the password on stdin.

    The password never appears in argv or in log records.
    """
    r = run_docker(
        "login", "--username", username, "--password-stdin", registry,
        cwd=project_root, timeout=60, stdin=password,
    )
    if r.returncode != 0:
        return {"error": r.stderr.strip() or f"docker login to {registry} failed"}
    return {"ok": True, "registry": registry}


def _tail(text: str, lines: int = 20) -> str:
    """Last lines of noisy build output, enough to show the failing step."""
    return "\n".join(text.strip().splitlines()[-lines:])
