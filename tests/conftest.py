"""
Shared test fixtures and configuration.
"""

import shutil
import subprocess
import textwrap
from pathlib import Path

import pytest

from retail_cicd.core.models.service import ServiceName, ServiceRegistry

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

VALUES_YAML = textwrap.dedent("""\
    # Default values for the service chart
    replicaCount: 1

    image:
      repository: public.ecr.aws/aws-containers/retail-store-sample-{name}
      pullPolicy: IfNotPresent
      # Overrides the image tag whose default is the chart appVersion.
      tag: "1.0.0"

    service:
      type: ClusterIP
      port: 80

    resources:
      limits:
        memory: 512Mi
""")

_MANIFESTS = {
    "java": {"pom.xml": "<project/>\n", "mvnw": "#!/bin/sh\n"},
    "go": {"go.mod": "module example.com/catalog\n"},
    "node": {"package.json": "{}\n", "yarn.lock": ""},
}


def git(*args: str, cwd: Path) -> str:
    """Run git in *cwd* and return stdout; fail the test on error."""
    r = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True)
    assert r.returncode == 0, f"git {' '.join(args)} failed: {r.stderr}"
    return r.stdout.strip()


def write_services(root: Path) -> None:
    """Lay out src/<service>/ with Dockerfile, build manifests and chart."""
    for svc in ServiceRegistry():
        src = root / svc.source_path
        (src / "chart").mkdir(parents=True, exist_ok=True)
        (src / "Dockerfile").write_text("FROM scratch\n")
        (src / ".dockerignore").write_text("target/\n")
        (src / "chart" / "Chart.yaml").write_text(f"apiVersion: v2\nname: {svc.name.value}\nversion: 0.1.0\n")
        (src / "chart" / "values.yaml").write_text(VALUES_YAML.format(name=svc.name.value))
        for name, content in _MANIFESTS[svc.language].items():
            (src / name).write_text(content)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project tree with every service, no git."""
    root = tmp_path / "project"
    root.mkdir()
    write_services(root)
    return root


@pytest.fixture
def git_project(tmp_path: Path) -> Path:
    """The project tree committed on ``main`` with an ``origin`` bare remote."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    remote = tmp_path / "remote.git"
    git("init", "-q", "--bare", str(remote), cwd=tmp_path)

    root = tmp_path / "project"
    root.mkdir()
    git("init", "-q", cwd=root)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=root)
    git("config", "user.name", "Test", cwd=root)
    git("config", "user.email", "test@example.com", cwd=root)
    git("config", "commit.gpgsign", "false", cwd=root)
    write_services(root)
    (root / "README.md").write_text("# retail store\n")
    git("add", "-A", cwd=root)
    git("commit", "-q", "-m", "initial", cwd=root)
    git("remote", "add", "origin", str(remote), cwd=root)
    git("push", "-q", "origin", "main", cwd=root)
    return root


@pytest.fixture
def services() -> ServiceRegistry:
    return ServiceRegistry()


@pytest.fixture
def catalog(services: ServiceRegistry):
    return services.get(ServiceName.CATALOG)
