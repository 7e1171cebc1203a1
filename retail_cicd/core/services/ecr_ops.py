"""
Amazon ECR operations via the aws CLI.

Covers what the build pipeline needs from the registry: who we are,
where the registry lives, logging docker in, and making sure a
repository exists before the first push.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path

from retail_cicd.core.services.docker_ops import docker_login

logger = logging.getLogger(__name__)

_ALREADY_EXISTS = "RepositoryAlreadyExistsException"
_NOT_FOUND = "RepositoryNotFoundException"


def run_aws(
    *args: str,
    cwd: Path,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run an aws CLI command and return the result."""
    logger.debug("aws %s", " ".join(args[:2]))
    return subprocess.run(
        ["aws", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def aws_available() -> bool:
    return shutil.which("aws") is not None


def registry_for(account_id: str, region: str) -> str:
    """ECR registry host for an account and region."""
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"


def caller_identity(project_root: Path) -> dict:
    """Validate credentials with ``sts get-caller-identity``.

    Returns:
        {"ok": True, "account": "123456789012", "arn": "..."} or {"error": "..."}
    """
    if not aws_available():
        return {"error": "AWS CLI not installed"}

    r = run_aws("sts", "get-caller-identity", "--output", "json", cwd=project_root, timeout=30)
    if r.returncode != 0:
        return {"error": r.stderr.strip() or "AWS credentials not configured"}
    try:
        data = json.loads(r.stdout)
    except json.JSONDecodeError:
        return {"error": "Unexpected output from aws sts get-caller-identity"}
    return {"ok": True, "account": data.get("Account", ""), "arn": data.get("Arn", "")}


def ecr_login(project_root: Path, registry: str, region: str) -> dict:
    """Log docker in to *registry* with a short-lived ECR password."""
    r = run_aws("ecr", "get-login-password", "--region", region, cwd=project_root, timeout=60)
    if r.returncode != 0:
        return {"error": r.stderr.strip() or "aws ecr get-login-password failed"}
    result = docker_login(project_root, registry, username="AWS", password=r.stdout.strip())
    if "error" in result:
        return result
    logger.info("Logged in to %s", registry)
    return {"ok": True, "registry": registry}


def ensure_repository(project_root: Path, name: str, region: str) -> dict:
    """Create the ECR repository *name* if and only if it is absent.

    Another run may create the repository between our check and our
    create; ``RepositoryAlreadyExistsException`` therefore counts as
    success.

    Returns:
        {"ok": True, "created": bool} or {"error": "..."}
    """
    r = run_aws(
        "ecr", "describe-repositories",
        "--repository-names", name,
        "--region", region,
        cwd=project_root, timeout=30,
    )
    if r.returncode == 0:
        return {"ok": True, "created": False, "repository": name}
    if _NOT_FOUND not in r.stderr:
        return {"error": r.stderr.strip() or f"Cannot describe ECR repository {name}"}

    logger.info("Creating ECR repository: %s", name)
    r = run_aws(
        "ecr", "create-repository",
        "--repository-name", name,
        "--region", region,
        "--image-scanning-configuration", "scanOnPush=true",
        "--encryption-configuration", "encryptionType=AES256",
        cwd=project_root, timeout=30,
    )
    if r.returncode == 0:
        return {"ok": True, "created": True, "repository": name}
    if _ALREADY_EXISTS in r.stderr:
        logger.info("ECR repository %s was created concurrently", name)
        return {"ok": True, "created": False, "repository": name}
    return {"error": r.stderr.strip() or f"Cannot create ECR repository {name}"}
