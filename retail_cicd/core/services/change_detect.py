"""
Change detection — which services need a rebuild for a revision range.

A service is in the change set iff at least one changed path lies under
its source directory. Nothing else (docs, workflows, other services)
ever pulls a service in.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from retail_cicd.core.models.change_set import ChangeSet
from retail_cicd.core.models.service import ServiceName, ServiceRegistry
from retail_cicd.core.services import git_ops

logger = logging.getLogger(__name__)


def services_for_paths(paths: Iterable[str], registry: ServiceRegistry) -> frozenset[ServiceName]:
    """Map changed paths to the services that own them."""
    paths = list(paths)
    return frozenset(
        svc.name for svc in registry if any(svc.owns_path(p) for p in paths)
    )


def resolve_range(base: str | None, head: str | None, *, cwd: Path) -> tuple[str, str]:
    """Normalize a revision range.

    - head defaults to ``HEAD``
    - an empty or all-zero base (a new branch push) means "everything"
    - a missing base defaults to the parent of head, or the empty tree for
      a root commit
    """
    head_ref = (head or "HEAD").strip() or "HEAD"
    resolved_head = git_ops.rev_parse(head_ref, cwd=cwd)
    if resolved_head is None:
        raise git_ops.GitError(f"Unable to resolve head revision: {head_ref}")

    raw_base = (base or "").strip()
    if raw_base and set(raw_base) == {"0"}:
        return git_ops.EMPTY_TREE, resolved_head
    if raw_base:
        resolved_base = git_ops.rev_parse(raw_base, cwd=cwd)
        if resolved_base is None:
            raise git_ops.GitError(f"Unable to resolve base revision: {raw_base}")
        return resolved_base, resolved_head

    parent = git_ops.rev_parse(f"{resolved_head}^", cwd=cwd)
    return (parent or git_ops.EMPTY_TREE), resolved_head


def detect(
    project_root: Path,
    registry: ServiceRegistry,
    base: str | None = None,
    head: str | None = None,
    force_all: bool = False,
    *,
    worktree: bool = False,
) -> ChangeSet:
    """Compute the change set for a run.

    Args:
        project_root: Repository root.
        registry: Service registry (source paths).
        base: Comparison base revision.
        head: Head revision (default ``HEAD``).
        force_all: Skip detection and select every service.
        worktree: Compare the working tree against HEAD instead of a range.

    Raises:
        GitError: If git cannot resolve the range or produce a diff.
    """
    if force_all:
        logger.info("Force-all requested: selecting every service")
        return ChangeSet(
            changed_services=frozenset(svc.name for svc in registry),
            forced=True,
            base=base,
            head=head,
        )

    if worktree:
        files = git_ops.worktree_changes(cwd=project_root)
        base_ref, head_ref = "HEAD", "WORKTREE"
    else:
        base_ref, head_ref = resolve_range(base, head, cwd=project_root)
        files = git_ops.changed_files(base_ref, head_ref, cwd=project_root)

    changed = services_for_paths(files, registry)
    change_set = ChangeSet(
        changed_services=changed,
        base=base_ref,
        head=head_ref,
        changed_files=tuple(sorted(set(files))),
    )
    if change_set.empty:
        logger.info("No service changes in %d changed file(s)", len(files))
    else:
        logger.info("Changed services: %s", ", ".join(change_set.names()))
    return change_set
