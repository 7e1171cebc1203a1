"""
Setup validation — is this checkout ready for the CI/CD pipeline?

Walks the expected file manifest (per-service Dockerfiles, build
manifests, charts, workflow and policy files) and probes the external
tools (docker, aws, helm). Every check yields pass, warn or fail with a
remediation hint. Nothing is ever modified.

Only ``fail`` results affect the exit code; warnings are advisory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from retail_cicd.core.config.loader import PIPELINE_CONFIG_FILE
from retail_cicd.core.models.service import ServiceRegistry
from retail_cicd.core.services.docker_ops import docker_status
from retail_cicd.core.services.ecr_ops import aws_available, caller_identity

logger = logging.getLogger(__name__)

CheckStatus = Literal["pass", "warn", "fail"]

WORKFLOWS_DIR = ".github/workflows"
REQUIRED_WORKFLOWS = ("ci-cd-microservices.yml", "security-scan.yml")

# language → [(manifest, severity when missing)]
BUILD_MANIFESTS: dict[str, list[tuple[str, CheckStatus]]] = {
    "java": [("pom.xml", "fail"), ("mvnw", "fail")],
    "go": [("go.mod", "fail")],
    "node": [("package.json", "fail"), ("yarn.lock", "warn")],
}


class CheckResult(BaseModel):
    """One line of the validation report."""

    section: str
    status: CheckStatus
    message: str
    remediation: str = ""


class ValidationReport(BaseModel):
    """All checks plus pass/warn/fail tallies."""

    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for c in self.checks if c.status == "pass")

    @property
    def warnings(self) -> int:
        return sum(1 for c in self.checks if c.status == "warn")

    @property
    def failed(self) -> int:
        return sum(1 for c in self.checks if c.status == "fail")

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def sections(self) -> dict[str, list[CheckResult]]:
        grouped: dict[str, list[CheckResult]] = {}
        for c in self.checks:
            grouped.setdefault(c.section, []).append(c)
        return grouped

    def recommendations(self) -> list[str]:
        """Remediation steps for every non-passing check, deduplicated."""
        seen: list[str] = []
        for c in self.checks:
            if c.status != "pass" and c.remediation and c.remediation not in seen:
                seen.append(c.remediation)
        return seen

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "passed": self.passed,
            "warnings": self.warnings,
            "failed": self.failed,
            "checks": [c.model_dump() for c in self.checks],
            "recommendations": self.recommendations(),
        }


class _Section:
    """Collects checks under one heading."""

    def __init__(self, report: ValidationReport, name: str):
        self._report = report
        self.name = name

    def add(self, status: CheckStatus, message: str, remediation: str = "") -> None:
        self._report.checks.append(
            CheckResult(section=self.name, status=status, message=message, remediation=remediation)
        )

    def ok(self, message: str) -> None:
        self.add("pass", message)

    def warn(self, message: str, remediation: str = "") -> None:
        self.add("warn", message, remediation)

    def fail(self, message: str, remediation: str = "") -> None:
        self.add("fail", message, remediation)

    def file(self, root: Path, rel: str, label: str, *, missing: CheckStatus, remediation: str = "") -> bool:
        if (root / rel).is_file():
            self.ok(f"{label} found: {rel}")
            return True
        self.add(missing, f"{label} missing: {rel}", remediation)
        return False


# ═══════════════════════════════════════════════════════════════════
#  Sections
# ═══════════════════════════════════════════════════════════════════


def _check_project_structure(root: Path, services: ServiceRegistry, s: _Section) -> None:
    services_root = services.services_root
    if services_root not in ("", ".") and not (root / services_root).is_dir():
        s.fail(
            f"{services_root} directory not found. Are you in the project root?",
            "Run the validator from the repository root or pass --config.",
        )
        return
    s.ok("Project root directory confirmed")

    for svc in services:
        if (root / svc.source_path).is_dir():
            s.ok(f"Service directory found: {svc.source_path}")
        else:
            s.fail(
                f"Service directory missing: {svc.source_path}",
                "Ensure all required files are present and the layout matches src/<service>.",
            )
    for svc in services:
        s.file(
            root, svc.dockerfile_path, "Dockerfile", missing="fail",
            remediation="Every service needs a Dockerfile at src/<service>/Dockerfile.",
        )


def _check_workflows(root: Path, s: _Section) -> None:
    if not (root / WORKFLOWS_DIR).is_dir():
        s.fail(f"{WORKFLOWS_DIR} directory not found", "Add the CI/CD workflow definitions.")
        return
    s.ok(f"{WORKFLOWS_DIR} directory exists")

    for name in REQUIRED_WORKFLOWS:
        s.file(
            root, f"{WORKFLOWS_DIR}/{name}", "Workflow file", missing="fail",
            remediation=f"Restore {WORKFLOWS_DIR}/{name}.",
        )

    if (root / ".github/dependabot.yml").is_file():
        s.ok("Dependabot configuration found")
    else:
        s.warn(
            "Dependabot configuration missing (automated dependency updates disabled)",
            "Add .github/dependabot.yml to enable automated dependency updates.",
        )

    if (root / PIPELINE_CONFIG_FILE).is_file():
        s.ok(f"Pipeline configuration found: {PIPELINE_CONFIG_FILE}")
    else:
        s.warn(
            f"Pipeline configuration missing: {PIPELINE_CONFIG_FILE} (defaults will be used)",
            f"Add {PIPELINE_CONFIG_FILE} to pin the registry, integration branches and retry policy.",
        )


def _check_workflow_syntax(root: Path, s: _Section) -> None:
    workflows = sorted((root / WORKFLOWS_DIR).glob("*.yml")) + sorted((root / WORKFLOWS_DIR).glob("*.yaml"))
    if not workflows:
        s.warn("No workflow files to validate")
        return
    for wf in workflows:
        try:
            yaml.safe_load(wf.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as e:
            s.fail(f"Invalid YAML syntax: {wf.name} ({e.__class__.__name__})", f"Fix the YAML in {wf.name}.")
        else:
            s.ok(f"Valid YAML syntax: {wf.name}")


def _exposed_ports(dockerfile: Path) -> set[int]:
    """Numeric ports named by EXPOSE instructions (protocol suffix ignored)."""
    try:
        lines = dockerfile.read_text(encoding="utf-8").splitlines()
    except OSError:
        return set()
    ports: set[int] = set()
    for line in lines:
        words = line.split()
        if len(words) < 2 or words[0].upper() != "EXPOSE":
            continue
        for word in words[1:]:
            port = word.split("/", 1)[0]
            if port.isdigit():
                ports.add(int(port))
    return ports


def _check_docker(root: Path, services: ServiceRegistry, s: _Section, *, probe: bool) -> None:
    if probe:
        status = docker_status(root)
        if status.get("available"):
            s.ok("Docker CLI installed")
            if status.get("daemon_running"):
                s.ok("Docker daemon is running")
            else:
                s.warn("Docker daemon is not running (required for local builds)", "Start Docker.")
        else:
            s.warn("Docker not installed (required for local builds)", "Install Docker.")

    for svc in services:
        s.file(
            root, f"{svc.source_path}/.dockerignore", ".dockerignore", missing="warn",
            remediation="Add missing .dockerignore files to keep build contexts small.",
        )

    for svc in services:
        exposed = _exposed_ports(root / svc.dockerfile_path)
        if exposed and svc.port not in exposed:
            ports = ", ".join(str(p) for p in sorted(exposed))
            s.warn(
                f"{svc.dockerfile_path} exposes {ports}, expected {svc.port}",
                f"EXPOSE {svc.port} in {svc.dockerfile_path} so the chart's container port matches.",
            )


def _check_aws(root: Path, s: _Section) -> None:
    if not aws_available():
        s.warn("AWS CLI not installed (required for ECR operations)", "Install the AWS CLI.")
        return
    s.ok("AWS CLI installed")

    identity = caller_identity(root)
    if "error" in identity:
        s.warn(
            "AWS credentials not configured (required for ECR operations)",
            "Run: aws configure",
        )
        return
    s.ok("AWS credentials configured")
    if identity.get("account"):
        s.ok(f"AWS Account ID: {identity['account']}")


def _check_charts(root: Path, services: ServiceRegistry, s: _Section, *, probe: bool) -> None:
    if probe:
        if shutil.which("helm"):
            s.ok("Helm CLI installed")
        else:
            s.warn(
                "Helm not installed (chart validation will be skipped)",
                "Install helm so chart updates are linted before commit.",
            )

    for svc in services:
        values = root / svc.chart_values_path
        if not values.is_file():
            s.fail(
                f"Chart values missing: {svc.chart_values_path}",
                "Each service needs src/<service>/chart/values.yaml with an image section.",
            )
            continue
        try:
            data = yaml.safe_load(values.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError):
            s.fail(f"Invalid YAML syntax: {svc.chart_values_path}", f"Fix the YAML in {svc.chart_values_path}.")
            continue
        image = data.get("image") if isinstance(data, dict) else None
        if isinstance(image, dict) and "repository" in image and "tag" in image:
            s.ok(f"Chart values found: {svc.chart_values_path}")
        else:
            s.fail(
                f"No image.repository/image.tag in {svc.chart_values_path}",
                "Add image.repository and image.tag so automated updates have a target.",
            )


def _check_service_dependencies(root: Path, services: ServiceRegistry, s: _Section) -> None:
    for svc in services:
        for manifest, severity in BUILD_MANIFESTS.get(svc.language, []):
            s.file(
                root, f"{svc.source_path}/{manifest}", f"{svc.language} build file", missing=severity,
                remediation=f"Add {manifest} to {svc.source_path}.",
            )


def _check_security_files(root: Path, s: _Section) -> None:
    s.file(root, "SECURITY.md", "Security policy", missing="warn",
           remediation="Consider adding security policy and license files.")
    s.file(root, "LICENSE", "License file", missing="warn",
           remediation="Consider adding security policy and license files.")
    s.file(root, ".gitignore", ".gitignore file", missing="warn", remediation="Add a .gitignore.")


# ═══════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════


def validate_setup(
    project_root: Path,
    services: ServiceRegistry | None = None,
    *,
    probe_tools: bool = True,
) -> ValidationReport:
    """Run every check against *project_root*.

    Args:
        project_root: Repository root.
        services: Service registry (default layout under ``src``).
        probe_tools: Also probe docker, aws and helm. Disable for offline runs.
    """
    services = services or ServiceRegistry()
    report = ValidationReport()

    _check_project_structure(project_root, services, _Section(report, "Project Structure"))
    _check_workflows(project_root, _Section(report, "GitHub Actions Workflows"))
    if (project_root / WORKFLOWS_DIR).is_dir():
        _check_workflow_syntax(project_root, _Section(report, "Workflow Syntax"))
    _check_docker(project_root, services, _Section(report, "Docker Setup"), probe=probe_tools)
    if probe_tools:
        _check_aws(project_root, _Section(report, "AWS Setup"))
    _check_charts(project_root, services, _Section(report, "Helm Charts"), probe=probe_tools)
    _check_service_dependencies(project_root, services, _Section(report, "Service Dependencies"))
    _check_security_files(project_root, _Section(report, "Security and Compliance"))

    logger.info(
        "Validation: %d passed, %d warnings, %d failed",
        report.passed, report.warnings, report.failed,
    )
    return report
