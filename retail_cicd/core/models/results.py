"""
Result models — what each pipeline stage reports back.

Stages never raise for external tool failures: a failed ``docker build``
or ``helm lint`` is captured in a result with an error string, so one
service's failure never aborts its siblings. The pipeline collects the
results into a ``PipelineReport``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from retail_cicd.core.models.change_set import ChangeSet
from retail_cicd.core.models.image import ImageReference
from retail_cicd.core.models.service import ServiceName

BuildStatus = Literal["ok", "build_failed", "push_failed", "test_failed", "skipped"]
UpdateStatus = Literal["ok", "unchanged", "failed"]
LintStatus = Literal["passed", "failed", "skipped"]
CommitStatus = Literal["ok", "noop", "failed"]


class BuildResult(BaseModel):
    """Outcome of building (and optionally pushing) one service image."""

    service: ServiceName
    status: BuildStatus = "ok"
    image: ImageReference | None = None
    tags: list[str] = Field(default_factory=list)
    pushed: bool = False
    error: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, service: ServiceName, image: ImageReference, **kwargs: Any) -> BuildResult:
        return cls(service=service, status="ok", image=image, **kwargs)

    @classmethod
    def failure(
        cls,
        service: ServiceName,
        status: BuildStatus,
        error: str,
        **kwargs: Any,
    ) -> BuildResult:
        return cls(service=service, status=status, error=error, **kwargs)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["image"] = self.image.uri if self.image else None
        return data


class UpdateResult(BaseModel):
    """Outcome of patching one service's chart values."""

    service: ServiceName
    status: UpdateStatus = "ok"
    values_path: str = ""
    image: ImageReference | None = None
    previous_repository: str | None = None
    previous_tag: str | None = None
    lint: LintStatus = "skipped"
    staged: bool = False
    backup_path: str | None = None   # kept only when the update failed
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "unchanged")

    @property
    def changed(self) -> bool:
        return self.status == "ok"

    @classmethod
    def failure(cls, service: ServiceName, error: str, **kwargs: Any) -> UpdateResult:
        return cls(service=service, status="failed", error=error, **kwargs)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["image"] = self.image.uri if self.image else None
        return data


class CommitResult(BaseModel):
    """Outcome of publishing staged chart changes."""

    status: CommitStatus = "noop"
    commit: str | None = None
    message: str = ""
    files: list[str] = Field(default_factory=list)
    attempts: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @classmethod
    def noop(cls, reason: str = "") -> CommitResult:
        return cls(status="noop", message=reason)

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> CommitResult:
        return cls(status="failed", error=error, **kwargs)


class PipelineReport(BaseModel):
    """Aggregated result of one pipeline run."""

    change_set: ChangeSet
    branch: str = ""
    tag: str = ""
    charts_enabled: bool = False
    builds: list[BuildResult] = Field(default_factory=list)
    updates: list[UpdateResult] = Field(default_factory=list)
    commit: CommitResult | None = None

    @property
    def failed_services(self) -> list[str]:
        failed: list[str] = []
        for r in self.builds:
            if not r.ok and r.status != "skipped":
                failed.append(r.service.value)
        for u in self.updates:
            if not u.ok and u.service.value not in failed:
                failed.append(u.service.value)
        return failed

    @property
    def succeeded_services(self) -> list[str]:
        failed = set(self.failed_services)
        return [r.service.value for r in self.builds if r.ok and r.service.value not in failed]

    @property
    def ok(self) -> bool:
        if self.failed_services:
            return False
        return self.commit is None or self.commit.ok

    @property
    def status(self) -> str:
        if self.ok:
            return "ok"
        if self.succeeded_services:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "branch": self.branch,
            "tag": self.tag,
            "charts_enabled": self.charts_enabled,
            "change_set": self.change_set.to_dict(),
            "builds": [r.to_dict() for r in self.builds],
            "updates": [u.to_dict() for u in self.updates],
            "commit": self.commit.model_dump(mode="json") if self.commit else None,
            "succeeded": self.succeeded_services,
            "failed": self.failed_services,
        }
