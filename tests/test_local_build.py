"""
Tests for local builds — tests before build, per-service isolation and
the optional push.
"""

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from retail_cicd.core.models.results import BuildResult
from retail_cicd.core.services.local_build import local_build, local_tag
from retail_cicd.core.services.preflight import PreconditionError

MOD = "retail_cicd.core.services.local_build"
DOCKER_UP = {"available": True, "daemon_running": True}


def _ok_build(service, request):
    return BuildResult(service=service.name, status="ok", tags=[f"{service.repository_name}:{request.tag}"])


class TestLocalBuild:
    def test_tests_then_build(self, project: Path, services):
        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch(f"{MOD}.run_service_tests", return_value={"ok": True}) as tests, \
             patch(f"{MOD}.build", side_effect=_ok_build) as build, \
             patch(f"{MOD}.local_tag", return_value="main-abc1234"):
            results = local_build(project, services.resolve(["ui", "catalog"]))

        assert [r.status for r in results] == ["ok", "ok"]
        assert tests.call_count == 2
        request = build.call_args.args[1]
        assert request.tag == "main-abc1234"
        assert request.push is False
        assert request.registry == ""

    def test_failed_tests_skip_build(self, project: Path, services):
        def fake_tests(root, svc, *, timeout):
            return {"error": "1 test failed"} if svc.name.value == "cart" else {"ok": True}

        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch(f"{MOD}.run_service_tests", side_effect=fake_tests), \
             patch(f"{MOD}.build", side_effect=_ok_build) as build:
            results = local_build(project, services.resolve(["cart", "orders"]))

        assert [r.status for r in results] == ["test_failed", "ok"]
        assert [c.args[0].name.value for c in build.call_args_list] == ["orders"]

    def test_skip_tests(self, project: Path, services):
        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch(f"{MOD}.run_service_tests") as tests, \
             patch(f"{MOD}.build", side_effect=_ok_build):
            local_build(project, services.resolve(["ui"]), run_tests=False)
        tests.assert_not_called()

    def test_missing_service_dir(self, project: Path, services):
        shutil.rmtree(project / "src" / "orders")
        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch(f"{MOD}.run_service_tests", return_value={"ok": True}), \
             patch(f"{MOD}.build", side_effect=_ok_build):
            results = local_build(project, services.resolve(["orders", "ui"]))
        assert results[0].status == "ok"
        assert results[1].status == "build_failed"
        assert "src/orders" in results[1].error

    def test_docker_not_running(self, project: Path, services):
        with patch("retail_cicd.core.services.preflight.docker_status",
                   return_value={"available": True, "daemon_running": False}), \
             patch(f"{MOD}.build") as build:
            with pytest.raises(PreconditionError, match="Docker is not running"):
                local_build(project, services.resolve(["ui"]))
        build.assert_not_called()

    def test_push_resolves_account_registry(self, project: Path, services):
        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch("retail_cicd.core.services.preflight.caller_identity",
                   return_value={"ok": True, "account": "123456789012"}), \
             patch("retail_cicd.core.services.preflight.ecr_login", return_value={"ok": True}) as login, \
             patch(f"{MOD}.run_service_tests", return_value={"ok": True}), \
             patch(f"{MOD}.build", side_effect=_ok_build) as build:
            local_build(project, services.resolve(["ui"]), push=True, region="eu-west-1")

        registry = "123456789012.dkr.ecr.eu-west-1.amazonaws.com"
        login.assert_called_once_with(project, registry, "eu-west-1")
        assert build.call_args.args[1].registry == registry

    def test_push_without_credentials(self, project: Path, services):
        with patch("retail_cicd.core.services.preflight.docker_status", return_value=DOCKER_UP), \
             patch("retail_cicd.core.services.preflight.caller_identity",
                   return_value={"error": "Unable to locate credentials"}), \
             patch(f"{MOD}.build") as build:
            with pytest.raises(PreconditionError, match="AWS credentials not configured"):
                local_build(project, services.resolve(["ui"]), push=True)
        build.assert_not_called()


class TestLocalTag:
    def test_outside_git(self, tmp_path: Path):
        with patch(f"{MOD}.git_ops.current_branch", side_effect=FileNotFoundError):
            assert local_tag(tmp_path) == "local-local"
