"""Helm operations — chart lint.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path


logger = logging.getLogger(__name__)


def helm_available() -> bool:
    """Check if helm CLI is available."""
    return shutil.which("helm") is not None


def helm_lint(project_root: Path, chart: str, *, timeout: int = 120) -> dict:
    """Lint a chart directory.

    Returns:
        {"ok": True, "output": str}, {"skipped": True, "reason": str}
        when helm is not installed, or {"error": "..."}
    """
    if not helm_available():
        return {"skipped": True, "reason": "helm CLI not found"}

    cmd = ["helm", "lint", chart]
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, cwd=project_root)
    except subprocess.TimeoutExpired:
        return {"error": f"helm lint timed out after {timeout}s"}
    if r.returncode != 0:
        return {"error": (r.stdout.strip() + "\n" + r.stderr.strip()).strip() or "Helm lint failed"}
    return {"ok": True, "output": r.stdout}
