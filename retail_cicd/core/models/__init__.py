"""
Domain models — Pydantic types for the pipeline.

All models are re-exported here for convenient access:

    from retail_cicd.core.models import ServiceRegistry, ChangeSet, ImageReference
"""

from retail_cicd.core.models.change_set import ChangeSet
from retail_cicd.core.models.image import (
    ImageReference,
    InvalidTagError,
    floating_tag_for,
    image_tag_for,
    validate_tag,
)
from retail_cicd.core.models.results import (
    BuildResult,
    CommitResult,
    PipelineReport,
    UpdateResult,
)
from retail_cicd.core.models.service import (
    ALL_SERVICES,
    ServiceDescriptor,
    ServiceName,
    ServiceRegistry,
    UnknownServiceError,
)

__all__ = [
    "ALL_SERVICES",
    # results.py
    "BuildResult",
    # change_set.py
    "ChangeSet",
    "CommitResult",
    # image.py
    "ImageReference",
    "InvalidTagError",
    "PipelineReport",
    # service.py
    "ServiceDescriptor",
    "ServiceName",
    "ServiceRegistry",
    "UnknownServiceError",
    "UpdateResult",
    "floating_tag_for",
    "image_tag_for",
    "validate_tag",
]
