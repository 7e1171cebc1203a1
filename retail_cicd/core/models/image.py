"""
Image reference model — where a built image lives in the registry.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, field_validator

# Container registry tag grammar: [A-Za-z0-9_][A-Za-z0-9._-]{0,127}
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")
_TAG_ILLEGAL_RE = re.compile(r"[^A-Za-z0-9._-]+")

MAX_TAG_LENGTH = 128


class InvalidTagError(ValueError):
    """Raised when a string is not a valid container image tag."""


def validate_tag(tag: str) -> str:
    """Return *tag* unchanged if it is a valid registry tag.

    Raises:
        InvalidTagError: Empty, too long, or containing illegal characters.
    """
    if not tag or not _TAG_RE.match(tag):
        raise InvalidTagError(
            f"Invalid image tag: {tag!r}. Tags use letters, digits, '.', '_' and '-', "
            f"must not start with '.' or '-', and are at most {MAX_TAG_LENGTH} characters."
        )
    return tag


def sanitize_tag_component(value: str) -> str:
    """Make a branch name usable inside a tag (``feature/x`` → ``feature-x``)."""
    cleaned = _TAG_ILLEGAL_RE.sub("-", value.strip()).strip(".-")
    return cleaned or "local"


def image_tag_for(branch: str, sha: str) -> str:
    """Commit-derived immutable tag: ``<branch>-<sha>``."""
    tag = f"{sanitize_tag_component(branch)}-{sanitize_tag_component(sha)}"
    return validate_tag(tag[:MAX_TAG_LENGTH])


def floating_tag_for(branch: str, integration_branches: list[str]) -> str:
    """Mutable alias pushed alongside the immutable tag."""
    if branch in integration_branches:
        return "latest"
    return validate_tag(f"{sanitize_tag_component(branch)[: MAX_TAG_LENGTH - 7]}-latest")


class ImageReference(BaseModel):
    """A pushed (or pushable) image: ``<registry>/<repository_name>:<tag>``."""

    model_config = ConfigDict(frozen=True)

    registry: str
    repository_name: str
    tag: str

    @field_validator("tag")
    @classmethod
    def _check_tag(cls, value: str) -> str:
        return validate_tag(value)

    @field_validator("registry")
    @classmethod
    def _strip_registry(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def repository(self) -> str:
        """Fully qualified repository, the value written to ``image.repository``."""
        if not self.registry:
            return self.repository_name
        return f"{self.registry}/{self.repository_name}"

    @property
    def uri(self) -> str:
        return f"{self.repository}:{self.tag}"

    def with_tag(self, tag: str) -> ImageReference:
        return ImageReference(registry=self.registry, repository_name=self.repository_name, tag=tag)

    def __str__(self) -> str:
        return self.uri
