"""
Tests for image builds — tagging, push flow and failure isolation.

docker and aws are mocked at the ``image_build`` module seam.
"""

import threading
from pathlib import Path
from unittest.mock import patch

from retail_cicd.core.models.service import ServiceRegistry
from retail_cicd.core.services.image_build import BuildRequest, build, build_all

REGISTRY = "123456789012.dkr.ecr.us-east-1.amazonaws.com"
MOD = "retail_cicd.core.services.image_build"


def _request(tmp_path: Path, **kwargs) -> BuildRequest:
    defaults = dict(project_root=tmp_path, tag="main-abc1234", registry=REGISTRY, push=True)
    defaults.update(kwargs)
    return BuildRequest(**defaults)


class TestBuild:
    def test_build_and_push(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}) as b, \
             patch(f"{MOD}.ensure_repository", return_value={"ok": True, "created": False}) as repo, \
             patch(f"{MOD}.docker_push", return_value={"ok": True}) as push:
            result = build(catalog, _request(tmp_path))

        assert result.ok
        assert result.pushed
        assert result.image.uri == f"{REGISTRY}/retail-store-catalog:main-abc1234"
        assert result.tags == [
            f"{REGISTRY}/retail-store-catalog:main-abc1234",
            f"{REGISTRY}/retail-store-catalog:latest",
        ]

        kwargs = b.call_args.kwargs
        assert kwargs["dockerfile"] == "src/catalog/Dockerfile"
        assert kwargs["context"] == "src/catalog"
        repo.assert_called_once_with(tmp_path, "retail-store-catalog", "us-east-1")
        assert [c.args[1] for c in push.call_args_list] == result.tags

    def test_local_build_has_no_registry(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}), \
             patch(f"{MOD}.ensure_repository") as repo, \
             patch(f"{MOD}.docker_push") as push:
            result = build(catalog, _request(tmp_path, push=False))

        assert result.ok
        assert not result.pushed
        assert result.tags == ["retail-store-catalog:main-abc1234", "retail-store-catalog:latest"]
        repo.assert_not_called()
        push.assert_not_called()

    def test_build_failure(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"error": "step 3/7 failed"}), \
             patch(f"{MOD}.docker_push") as push:
            result = build(catalog, _request(tmp_path))
        assert result.status == "build_failed"
        assert result.error == "step 3/7 failed"
        push.assert_not_called()

    def test_push_failure(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}), \
             patch(f"{MOD}.ensure_repository", return_value={"ok": True}), \
             patch(f"{MOD}.docker_push", return_value={"error": "denied"}):
            result = build(catalog, _request(tmp_path))
        assert result.status == "push_failed"
        assert not result.pushed

    def test_repository_failure_is_push_failure(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}), \
             patch(f"{MOD}.ensure_repository", return_value={"error": "AccessDenied"}), \
             patch(f"{MOD}.docker_push") as push:
            result = build(catalog, _request(tmp_path))
        assert result.status == "push_failed"
        push.assert_not_called()

    def test_feature_branch_floating_tag(self, tmp_path: Path, catalog):
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}):
            result = build(catalog, _request(tmp_path, push=False, floating_tag="feature-x-latest"))
        assert result.tags[1] == "retail-store-catalog:feature-x-latest"


class TestBuildAll:
    def test_keeps_input_order(self, tmp_path: Path, services: ServiceRegistry):
        descriptors = services.resolve(["orders", "ui", "cart"])
        with patch(f"{MOD}.docker_build_image", return_value={"ok": True}):
            results = build_all(descriptors, _request(tmp_path, push=False))
        assert [r.service.value for r in results] == ["ui", "cart", "orders"]

    def test_one_failure_does_not_stop_siblings(self, tmp_path: Path, services: ServiceRegistry):
        def fake_build(project_root, *, dockerfile, context, tags, timeout):
            if context == "src/cart":
                return {"error": "compile error"}
            return {"ok": True}

        with patch(f"{MOD}.docker_build_image", side_effect=fake_build):
            results = build_all(services, _request(tmp_path, push=False))

        statuses = {r.service.value: r.status for r in results}
        assert statuses["cart"] == "build_failed"
        assert [s for s, st in statuses.items() if st == "ok"] == ["ui", "catalog", "checkout", "orders"]

    def test_unexpected_exception_is_isolated(self, tmp_path: Path, services: ServiceRegistry):
        def fake_build(project_root, *, dockerfile, context, tags, timeout):
            if context == "src/ui":
                raise OSError("disk full")
            return {"ok": True}

        with patch(f"{MOD}.docker_build_image", side_effect=fake_build):
            results = build_all(services.resolve(["ui", "catalog"]), _request(tmp_path, push=False))
        assert results[0].status == "build_failed"
        assert "disk full" in results[0].error
        assert results[1].ok

    def test_runs_in_parallel(self, tmp_path: Path, services: ServiceRegistry):
        barrier = threading.Barrier(3, timeout=5)

        def fake_build(*args, **kwargs):
            barrier.wait()
            return {"ok": True}

        with patch(f"{MOD}.docker_build_image", side_effect=fake_build):
            results = build_all(
                services.resolve(["ui", "catalog", "cart"]),
                _request(tmp_path, push=False),
                max_parallel=3,
            )
        assert all(r.ok for r in results)

    def test_empty(self, tmp_path: Path):
        assert build_all([], _request(tmp_path)) == []
