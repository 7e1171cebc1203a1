"""
Git operations — revision ranges, staging, commit and push.

Thin wrappers over the git CLI. Plumbing used for change detection
raises ``GitError``; the push helper instead reports whether the remote
rejected the update so the publisher can decide to rebase and retry.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# SHA of git's empty tree; diffing against it lists every tracked file
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

# Substrings git prints when a push loses a race with another commit.
# A hook decline is reported as "[remote rejected]" and is not a race.
_REJECTION_MARKERS = (
    "[rejected]",
    "non-fast-forward",
    "fetch first",
)


class GitError(RuntimeError):
    """Raised when a git command needed for the pipeline fails."""


# ═══════════════════════════════════════════════════════════════════
#  Low-level runner
# ═══════════════════════════════════════════════════════════════════


def run_git(
    *args: str,
    cwd: Path,
    timeout: int = 30,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the result.

    Raises:
        GitError: If the command does not finish within *timeout* seconds.
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {args[0]} timed out after {timeout}s") from e


def _check(r: subprocess.CompletedProcess[str], what: str) -> str:
    if r.returncode != 0:
        raise GitError(f"{what} failed: {r.stderr.strip() or f'exit code {r.returncode}'}")
    return r.stdout


# ═══════════════════════════════════════════════════════════════════
#  Revisions
# ═══════════════════════════════════════════════════════════════════


def rev_parse(ref: str, *, cwd: Path) -> str | None:
    """Resolve *ref* to a full sha, or None if it does not exist."""
    if ref == EMPTY_TREE:
        return ref
    r = run_git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", cwd=cwd)
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None


def short_sha(ref: str = "HEAD", *, cwd: Path, length: int = 7) -> str:
    r = run_git("rev-parse", f"--short={length}", ref, cwd=cwd)
    return _check(r, f"git rev-parse {ref}").strip()


def current_branch(*, cwd: Path) -> str:
    """Checked-out branch name (``HEAD`` when detached)."""
    r = run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    return _check(r, "git rev-parse --abbrev-ref HEAD").strip()


def is_repository(*, cwd: Path) -> bool:
    try:
        r = run_git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    except FileNotFoundError:
        return False
    return r.returncode == 0 and r.stdout.strip() == "true"


def changed_files(base: str, head: str, *, cwd: Path) -> list[str]:
    """Paths touched between two revisions (repository-relative, POSIX)."""
    r = run_git("diff", "--name-only", "--no-renames", base, head, cwd=cwd, timeout=60)
    out = _check(r, f"git diff {base} {head}")
    return [line.strip() for line in out.splitlines() if line.strip()]


def worktree_changes(*, cwd: Path) -> list[str]:
    """Paths with staged, unstaged or untracked changes in the working tree."""
    r = run_git("status", "--porcelain", "--untracked-files=all", cwd=cwd)
    out = _check(r, "git status")
    paths: list[str] = []
    for line in out.splitlines():
        if len(line) < 4:
            continue
        entry = line[3:]
        # Renames are reported as "old -> new"; both sides count
        for part in entry.split(" -> "):
            part = part.strip().strip('"')
            if part:
                paths.append(part)
    return paths


# ═══════════════════════════════════════════════════════════════════
#  Staging and committing
# ═══════════════════════════════════════════════════════════════════


def stage(paths: Iterable[str], *, cwd: Path) -> None:
    paths = list(paths)
    if not paths:
        return
    _check(run_git("add", "--", *paths, cwd=cwd), "git add")


def has_staged_changes(paths: Iterable[str], *, cwd: Path) -> bool:
    """Whether the index differs from HEAD for any of *paths*."""
    r = run_git("diff", "--cached", "--quiet", "--", *paths, cwd=cwd)
    if r.returncode not in (0, 1):
        raise GitError(f"git diff --cached failed: {r.stderr.strip()}")
    return r.returncode == 1


def commit(
    message: str,
    paths: Iterable[str],
    *,
    cwd: Path,
    author_name: str,
    author_email: str,
    timeout: int = 30,
) -> str:
    """Commit exactly *paths* with the given identity. Returns the new sha."""
    r = run_git(
        "-c", f"user.name={author_name}",
        "-c", f"user.email={author_email}",
        "commit", "--no-verify", "-m", message, "--", *paths,
        cwd=cwd, timeout=timeout,
    )
    _check(r, "git commit")
    return rev_parse("HEAD", cwd=cwd) or ""


# ═══════════════════════════════════════════════════════════════════
#  Remote
# ═══════════════════════════════════════════════════════════════════


@dataclass
class PushOutcome:
    ok: bool
    rejected: bool = False
    error: str = ""


def push(remote: str, branch: str, *, cwd: Path, timeout: int = 120) -> PushOutcome:
    """Push HEAD to ``<remote>/<branch>``. Never forces."""
    try:
        r = run_git("push", remote, f"HEAD:refs/heads/{branch}", cwd=cwd, timeout=timeout)
    except GitError as e:
        return PushOutcome(ok=False, error=str(e))
    if r.returncode == 0:
        return PushOutcome(ok=True)
    stderr = r.stderr.strip()
    lowered = stderr.lower()
    rejected = any(marker in lowered for marker in _REJECTION_MARKERS)
    return PushOutcome(ok=False, rejected=rejected, error=stderr or f"exit code {r.returncode}")


def pull_rebase(remote: str, branch: str, *, cwd: Path, timeout: int = 120) -> tuple[bool, str]:
    """Rebase local commits onto the remote branch; abort on conflict."""
    try:
        r = run_git("pull", "--rebase", "--no-autostash", remote, branch, cwd=cwd, timeout=timeout)
    except GitError as e:
        error = str(e)
    else:
        if r.returncode == 0:
            return True, ""
        error = r.stderr.strip() or r.stdout.strip() or f"exit code {r.returncode}"
    run_git("rebase", "--abort", cwd=cwd)
    return False, error


# ═══════════════════════════════════════════════════════════════════
#  Work tree handle
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WorkTree:
    """The repository checkout a run writes to.

    Created once per run and handed to every stage that mutates the
    repository, so there is exactly one owner of the checkout.
    """

    root: Path
    branch: str
    remote: str = "origin"

    @classmethod
    def open(cls, root: Path, *, branch: str | None = None, remote: str = "origin") -> WorkTree:
        root = root.resolve()
        if not is_repository(cwd=root):
            raise GitError(f"Not a git repository: {root}")
        return cls(root=root, branch=branch or current_branch(cwd=root), remote=remote)
