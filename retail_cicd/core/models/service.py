"""
Service model — the closed set of deployable microservices.

Every service is described by a frozen ``ServiceDescriptor``. The
``ServiceRegistry`` is the only way to turn a user-supplied name into a
descriptor: unknown names are rejected at the boundary with
``UnknownServiceError`` before any file or process is touched.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict

# Keyword accepted wherever a list of services is expected
ALL_SERVICES = "all"

REPOSITORY_PREFIX = "retail-store-"


class UnknownServiceError(ValueError):
    """Raised when a service identifier is not part of the registry."""

    def __init__(self, name: str, valid: Iterable[str]):
        self.name = name
        self.valid = list(valid)
        super().__init__(
            f"Invalid service name: {name!r}. Valid services: {', '.join(self.valid)}"
        )


class ServiceName(str, Enum):
    """Identity of a microservice. The set is closed."""

    UI = "ui"
    CATALOG = "catalog"
    CART = "cart"
    CHECKOUT = "checkout"
    ORDERS = "orders"

    def __str__(self) -> str:
        return self.value


class ServiceDescriptor(BaseModel):
    """Static build and deploy coordinates of one service.

    Paths are POSIX-style and relative to the project root, which is how
    ``git diff --name-only`` reports them.
    """

    model_config = ConfigDict(frozen=True)

    name: ServiceName
    source_path: str
    dockerfile_path: str
    chart_path: str
    chart_values_path: str
    language: str          # java, go, node
    port: int = 8080

    @property
    def repository_name(self) -> str:
        """Registry repository name, e.g. ``retail-store-catalog``."""
        return f"{REPOSITORY_PREFIX}{self.name.value}"

    def owns_path(self, path: str) -> bool:
        """Whether *path* is the source directory or anything below it."""
        source = PurePosixPath(self.source_path).parts
        parts = PurePosixPath(path.strip().removeprefix("./")).parts
        return len(parts) >= len(source) and parts[: len(source)] == source


# Build toolchain per service, matching the sample application
_LANGUAGES: dict[ServiceName, str] = {
    ServiceName.UI: "java",
    ServiceName.CATALOG: "go",
    ServiceName.CART: "java",
    ServiceName.CHECKOUT: "node",
    ServiceName.ORDERS: "java",
}


def make_descriptor(name: ServiceName, services_root: str = "src") -> ServiceDescriptor:
    """Build the conventional descriptor for *name* under *services_root*."""
    root = PurePosixPath(services_root) if services_root not in ("", ".") else PurePosixPath()
    source = root / name.value
    chart = source / "chart"
    return ServiceDescriptor(
        name=name,
        source_path=source.as_posix(),
        dockerfile_path=(source / "Dockerfile").as_posix(),
        chart_path=chart.as_posix(),
        chart_values_path=(chart / "values.yaml").as_posix(),
        language=_LANGUAGES[name],
    )


class ServiceRegistry:
    """Typed lookup table from ``ServiceName`` to ``ServiceDescriptor``.

    Iteration order is the declaration order of ``ServiceName``, so every
    report and commit message lists services the same way.
    """

    def __init__(self, services_root: str = "src"):
        self.services_root = services_root
        self._services: dict[ServiceName, ServiceDescriptor] = {
            name: make_descriptor(name, services_root) for name in ServiceName
        }

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._services.values())

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, name: object) -> bool:
        try:
            self.parse(name)  # type: ignore[arg-type]
        except UnknownServiceError:
            return False
        return True

    @property
    def names(self) -> list[str]:
        return [name.value for name in self._services]

    def parse(self, name: str | ServiceName) -> ServiceName:
        """Convert a raw identifier into a ``ServiceName``.

        Raises:
            UnknownServiceError: If *name* is not a registered service.
        """
        if isinstance(name, ServiceName):
            return name
        try:
            return ServiceName(str(name).strip())
        except ValueError:
            raise UnknownServiceError(str(name), self.names) from None

    def get(self, name: str | ServiceName) -> ServiceDescriptor:
        """Look up a descriptor by name."""
        return self._services[self.parse(name)]

    def resolve(self, names: Iterable[str | ServiceName]) -> list[ServiceDescriptor]:
        """Expand a list of names (``"all"`` allowed) into descriptors.

        Duplicates collapse; the result is in registry order. Every name is
        validated before anything is returned.
        """
        requested: set[ServiceName] = set()
        for raw in names:
            if str(raw).strip() == ALL_SERVICES:
                requested.update(self._services)
            else:
                requested.add(self.parse(raw))
        return [svc for name, svc in self._services.items() if name in requested]

    def ordered(self, names: Iterable[ServiceName]) -> list[ServiceDescriptor]:
        """Descriptors for *names*, in registry order."""
        wanted = set(names)
        return [svc for name, svc in self._services.items() if name in wanted]
