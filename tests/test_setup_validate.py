"""
Tests for setup validation — file manifest checks and tool probes.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from retail_cicd.core.services.setup_validate import ValidationReport, CheckResult, validate_setup

WORKFLOW = "name: ci\non: [push]\njobs:\n  build:\n    runs-on: ubuntu-latest\n    steps: []\n"


@pytest.fixture
def complete(project: Path) -> Path:
    """A project that passes every file check."""
    wf = project / ".github" / "workflows"
    wf.mkdir(parents=True)
    (wf / "ci-cd-microservices.yml").write_text(WORKFLOW)
    (wf / "security-scan.yml").write_text(WORKFLOW)
    (project / ".github" / "dependabot.yml").write_text("version: 2\n")
    (project / "pipeline.yml").write_text("region: us-east-1\n")
    for name in ("SECURITY.md", "LICENSE", ".gitignore"):
        (project / name).write_text("x\n")
    return project


def _messages(report: ValidationReport, status: str) -> list[str]:
    return [c.message for c in report.checks if c.status == status]


class TestFileChecks:
    def test_complete_project_passes(self, complete: Path):
        report = validate_setup(complete, probe_tools=False)
        assert report.failed == 0, _messages(report, "fail")
        assert report.warnings == 0, _messages(report, "warn")
        assert report.exit_code == 0

    def test_missing_services_root(self, tmp_path: Path):
        report = validate_setup(tmp_path, probe_tools=False)
        assert report.exit_code == 1
        assert any("src directory not found" in m for m in _messages(report, "fail"))

    def test_missing_dockerfile_fails(self, complete: Path):
        (complete / "src" / "cart" / "Dockerfile").unlink()
        report = validate_setup(complete, probe_tools=False)
        assert _messages(report, "fail") == ["Dockerfile missing: src/cart/Dockerfile"]

    def test_missing_workflow_fails(self, complete: Path):
        (complete / ".github" / "workflows" / "security-scan.yml").unlink()
        report = validate_setup(complete, probe_tools=False)
        assert report.exit_code == 1

    def test_invalid_workflow_yaml_fails(self, complete: Path):
        (complete / ".github" / "workflows" / "ci-cd-microservices.yml").write_text("jobs: [unclosed\n")
        report = validate_setup(complete, probe_tools=False)
        assert any(m.startswith("Invalid YAML syntax: ci-cd-microservices.yml") for m in _messages(report, "fail"))

    def test_missing_values_fails(self, complete: Path):
        (complete / "src" / "ui" / "chart" / "values.yaml").unlink()
        report = validate_setup(complete, probe_tools=False)
        assert "Chart values missing: src/ui/chart/values.yaml" in _messages(report, "fail")

    def test_values_without_image_fails(self, complete: Path):
        (complete / "src" / "cart" / "chart" / "values.yaml").write_text("replicaCount: 1\n")
        report = validate_setup(complete, probe_tools=False)
        assert report.exit_code == 1
        assert _messages(report, "fail") == ["No image.repository/image.tag in src/cart/chart/values.yaml"]

    def test_exposed_port_mismatch_warns(self, complete: Path):
        (complete / "src" / "ui" / "Dockerfile").write_text("FROM scratch\nEXPOSE 80\n")
        (complete / "src" / "orders" / "Dockerfile").write_text("FROM scratch\nexpose 8080/tcp 9090\n")
        report = validate_setup(complete, probe_tools=False)
        assert report.exit_code == 0
        assert _messages(report, "warn") == ["src/ui/Dockerfile exposes 80, expected 8080"]

    def test_missing_build_manifests(self, complete: Path):
        (complete / "src" / "catalog" / "go.mod").unlink()
        (complete / "src" / "checkout" / "yarn.lock").unlink()
        report = validate_setup(complete, probe_tools=False)
        assert _messages(report, "fail") == ["go build file missing: src/catalog/go.mod"]
        assert _messages(report, "warn") == ["node build file missing: src/checkout/yarn.lock"]

    def test_optional_files_only_warn(self, project: Path):
        wf = project / ".github" / "workflows"
        wf.mkdir(parents=True)
        (wf / "ci-cd-microservices.yml").write_text(WORKFLOW)
        (wf / "security-scan.yml").write_text(WORKFLOW)
        report = validate_setup(project, probe_tools=False)
        assert report.exit_code == 0
        assert report.warnings >= 5
        assert report.recommendations()

    def test_read_only(self, complete: Path):
        before = sorted(p.relative_to(complete) for p in complete.rglob("*"))
        validate_setup(complete, probe_tools=False)
        assert sorted(p.relative_to(complete) for p in complete.rglob("*")) == before


class TestToolProbes:
    def test_missing_tools_only_warn(self, complete: Path):
        with patch("retail_cicd.core.services.setup_validate.docker_status",
                   return_value={"available": False, "daemon_running": False}), \
             patch("retail_cicd.core.services.setup_validate.aws_available", return_value=False), \
             patch("retail_cicd.core.services.setup_validate.shutil.which", return_value=None):
            report = validate_setup(complete)
        assert report.exit_code == 0
        warned = _messages(report, "warn")
        assert any("Docker not installed" in m for m in warned)
        assert any("AWS CLI not installed" in m for m in warned)
        assert any("Helm not installed" in m for m in warned)

    def test_all_tools_present(self, complete: Path):
        with patch("retail_cicd.core.services.setup_validate.docker_status",
                   return_value={"available": True, "daemon_running": True}), \
             patch("retail_cicd.core.services.setup_validate.aws_available", return_value=True), \
             patch("retail_cicd.core.services.setup_validate.caller_identity",
                   return_value={"ok": True, "account": "123456789012"}), \
             patch("retail_cicd.core.services.setup_validate.shutil.which", return_value="/usr/bin/helm"):
            report = validate_setup(complete)
        assert report.failed == 0 and report.warnings == 0
        assert "AWS Account ID: 123456789012" in _messages(report, "pass")


class TestReport:
    def test_recommendations_deduplicated(self):
        report = ValidationReport(checks=[
            CheckResult(section="a", status="warn", message="x", remediation="do it"),
            CheckResult(section="a", status="fail", message="y", remediation="do it"),
            CheckResult(section="b", status="pass", message="z", remediation="ignored"),
        ])
        assert report.recommendations() == ["do it"]
        assert report.exit_code == 1
        assert list(report.sections()) == ["a", "b"]
