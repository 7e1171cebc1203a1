"""
ChangeSet model — which services need a rebuild in this run.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from retail_cicd.core.models.service import ServiceName


class ChangeSet(BaseModel):
    """The subset of services whose sources changed.

    Computed once at the start of a run and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    changed_services: frozenset[ServiceName] = Field(default_factory=frozenset)
    forced: bool = False
    base: str | None = None
    head: str | None = None
    changed_files: tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.changed_services

    def __contains__(self, name: object) -> bool:
        return name in self.changed_services

    def names(self) -> list[str]:
        """Changed service names in registry order."""
        return [s.value for s in ServiceName if s in self.changed_services]

    def to_dict(self) -> dict:
        return {
            "services": self.names(),
            "forced": self.forced,
            "base": self.base,
            "head": self.head,
            "changed_files": list(self.changed_files),
        }
