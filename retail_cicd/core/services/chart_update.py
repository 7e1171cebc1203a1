"""
Chart updates — point a service's Helm values at a new image.

Only ``image.repository`` and ``image.tag`` change. The document is
edited structurally with ruamel.yaml's round-trip loader, so comments,
key order, quoting, indentation and the document marker elsewhere in
``values.yaml`` survive the edit.

Step order per service:
    1. back up values.yaml to values.yaml.backup
    2. set image.repository / image.tag and write the file
    3. helm lint the chart; on failure restore the backup byte-for-byte
    4. drop the backup and stage the file
"""

from __future__ import annotations

import io
import logging
import shutil
from pathlib import Path
from typing import Any, Iterable

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError
from ruamel.yaml.scalarstring import DoubleQuotedScalarString, SingleQuotedScalarString
from ruamel.yaml.util import load_yaml_guess_indent

from retail_cicd.core.models.image import ImageReference
from retail_cicd.core.models.results import UpdateResult
from retail_cicd.core.models.service import ServiceDescriptor
from retail_cicd.core.services import git_ops
from retail_cicd.core.services.helm_ops import helm_lint

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"


class ValuesDocumentError(ValueError):
    """Raised when values.yaml cannot be parsed into a mapping."""


def _mapping_indent(text: str) -> int | None:
    """Indent of the first nested block mapping in *text*."""
    parent = None
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        depth = len(line) - len(line.lstrip(" "))
        if parent is not None:
            if depth > parent and not stripped.startswith("- "):
                return depth - parent
            parent = None
        if stripped.endswith(":") and not stripped.startswith("- "):
            parent = depth
    return None


def _layout(text: str) -> tuple[int, int, int]:
    """``(mapping, sequence, offset)`` indents as written in *text*."""
    _, indent, block_seq_indent = load_yaml_guess_indent(text)
    if block_seq_indent is None:
        mapping = indent or 2
        return mapping, mapping, 0
    return _mapping_indent(text) or 2, indent, block_seq_indent


def _has_explicit_start(text: str) -> bool:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return stripped == "---" or stripped.startswith("--- ")
    return False


def _yaml(text: str) -> YAML:
    """Round-trip YAML instance that writes with the layout of *text*."""
    mapping, sequence, offset = _layout(text)
    yaml = YAML()  # round-trip mode
    yaml.preserve_quotes = True
    yaml.width = 4096
    yaml.indent(mapping=mapping, sequence=sequence, offset=offset)
    yaml.explicit_start = _has_explicit_start(text)
    return yaml


def load_values(path: Path) -> tuple[CommentedMap, YAML]:
    """Parse a values document, keeping comments and formatting metadata.

    Returns the document and a YAML instance that dumps it back with the
    source file's indentation and document marker.
    """
    try:
        text = path.read_text(encoding="utf-8")
        yaml = _yaml(text)
        data = yaml.load(text)
    except YAMLError as e:
        raise ValuesDocumentError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return CommentedMap(), yaml
    if not isinstance(data, dict):
        raise ValuesDocumentError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data, yaml


def dump_values(data: Any, yaml: YAML) -> str:
    buf = io.StringIO()
    yaml.dump(data, buf)
    return buf.getvalue()


def read_image(data: Any) -> tuple[str | None, str | None]:
    """Current ``(image.repository, image.tag)`` of a values document."""
    image = data.get("image") if isinstance(data, dict) else None
    if not isinstance(image, dict):
        return None, None
    repo = image.get("repository")
    tag = image.get("tag")
    return (
        str(repo) if repo is not None else None,
        str(tag) if tag is not None else None,
    )


def _quoted_like(current: Any, value: str) -> str:
    """*value*, quoted the way *current* was in the source document."""
    if isinstance(current, (DoubleQuotedScalarString, SingleQuotedScalarString)):
        return type(current)(value)
    return value


def set_image(data: CommentedMap, repository: str, tag: str) -> bool:
    """Set the two image fields in place. Returns True if anything changed."""
    image = data.get("image")
    if not isinstance(image, dict):
        image = CommentedMap()
        data["image"] = image

    changed = False
    current_repo = image.get("repository")
    if current_repo != repository:
        image["repository"] = _quoted_like(current_repo, repository)
        changed = True
    # A tag like 1.0 may have been loaded as a float; compare as text
    current_tag = image.get("tag")
    if current_tag is None or str(current_tag) != tag or not isinstance(current_tag, str):
        image["tag"] = _quoted_like(current_tag, tag)
        changed = True
    return changed


def backup_path_for(values_path: Path) -> Path:
    return values_path.with_name(values_path.name + BACKUP_SUFFIX)


def _restore(values_path: Path, backup: Path) -> None:
    shutil.copyfile(backup, values_path)
    logger.warning("Restored %s from %s", values_path, backup.name)


def update(
    project_root: Path,
    service: ServiceDescriptor,
    image: ImageReference,
    *,
    lint: bool = True,
    require_lint: bool = False,
    stage: bool = True,
    lint_timeout: int = 120,
) -> UpdateResult:
    """Point *service*'s chart at *image*.

    Never raises for tool or document problems; failures come back as an
    ``UpdateResult`` with ``status="failed"``. After a failed lint the
    values file is identical to what it was before the call, and the
    backup copy is left next to it for inspection.
    """
    values_path = project_root / service.chart_values_path
    rel_path = service.chart_values_path
    base = {"service": service.name, "values_path": rel_path, "image": image}

    logger.info("Updating %s: %s", rel_path, image.uri)

    if not values_path.is_file():
        return UpdateResult.failure(error=f"{rel_path} not found", **base)

    try:
        data, yaml = load_values(values_path)
    except (ValuesDocumentError, OSError) as e:
        return UpdateResult.failure(error=str(e), **base)

    prev_repo, prev_tag = read_image(data)
    base.update(previous_repository=prev_repo, previous_tag=prev_tag)

    if not set_image(data, image.repository, image.tag):
        logger.info("%s already at %s, nothing to do", rel_path, image.uri)
        return UpdateResult(status="unchanged", **base)

    # ── 1. Backup ───────────────────────────────────────────────
    backup = backup_path_for(values_path)
    try:
        shutil.copyfile(values_path, backup)
    except OSError as e:
        return UpdateResult.failure(error=f"Cannot back up {rel_path}: {e}", **base)

    # ── 2. Write ────────────────────────────────────────────────
    try:
        values_path.write_text(dump_values(data, yaml), encoding="utf-8")
    except (OSError, YAMLError) as e:
        _restore(values_path, backup)
        return UpdateResult.failure(
            error=f"Cannot write {rel_path}: {e}", backup_path=str(backup), **base,
        )

    logger.info(
        "%s: image.repository %s -> %s, image.tag %s -> %s",
        rel_path, prev_repo, image.repository, prev_tag, image.tag,
    )

    # ── 3. Validate ─────────────────────────────────────────────
    lint_status = "skipped"
    if lint:
        result = helm_lint(project_root, service.chart_path, timeout=lint_timeout)
        if result.get("skipped"):
            if require_lint:
                _restore(values_path, backup)
                return UpdateResult.failure(
                    error=f"Chart validation required but {result['reason']}",
                    backup_path=str(backup), **base,
                )
            logger.warning("Helm not installed, skipping chart validation for %s", service.name)
        elif "error" in result:
            _restore(values_path, backup)
            return UpdateResult.failure(
                error=f"helm lint failed for {service.chart_path}: {result['error']}",
                lint="failed", backup_path=str(backup), **base,
            )
        else:
            lint_status = "passed"

    # ── 4. Stage ────────────────────────────────────────────────
    if stage:
        try:
            git_ops.stage([rel_path], cwd=project_root)
        except git_ops.GitError as e:
            _restore(values_path, backup)
            return UpdateResult.failure(
                error=str(e), lint=lint_status, backup_path=str(backup), **base,
            )

    backup.unlink(missing_ok=True)
    return UpdateResult(status="ok", lint=lint_status, staged=stage, **base)


def update_many(
    project_root: Path,
    targets: Iterable[tuple[ServiceDescriptor, ImageReference]],
    **kwargs: Any,
) -> list[UpdateResult]:
    """Update several services one after another.

    Runs sequentially on purpose: every update writes to and stages in the
    same checkout. A failure for one service does not stop the others.
    """
    results = []
    for service, image in targets:
        result = update(project_root, service, image, **kwargs)
        if not result.ok:
            logger.error("Chart update failed for %s: %s", service.name, result.error)
        results.append(result)
    return results
