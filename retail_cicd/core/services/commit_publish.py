"""
Commit publishing — one commit for all staged chart updates, pushed back
to the branch the run came from.

A push that loses a race against another commit is rebased and retried a
bounded number of times. The publisher never force-pushes.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from retail_cicd.core.config.loader import GitSettings
from retail_cicd.core.models.results import CommitResult, UpdateResult
from retail_cicd.core.reliability.retry import BoundedRetry, RetryState
from retail_cicd.core.services import git_ops
from retail_cicd.core.services.git_ops import WorkTree

logger = logging.getLogger(__name__)

SKIP_CI_MARKER = "[skip ci]"


def commit_message(updates: Iterable[UpdateResult]) -> str:
    """Describe the updated services and their new images.

    ``[skip ci]`` keeps the commit from triggering another pipeline run.
    """
    updates = list(updates)
    names = ", ".join(u.service.value for u in updates)
    lines = [f"chore(helm): update image tags for {names} {SKIP_CI_MARKER}", ""]
    for u in updates:
        image = u.image.uri if u.image else "?"
        lines.append(f"- {u.service.value}: {image}")
    return "\n".join(lines) + "\n"


def publish(
    worktree: WorkTree,
    updates: Iterable[UpdateResult],
    settings: GitSettings,
    *,
    push: bool = True,
    sleep: Callable[[float], None] | None = None,
) -> CommitResult:
    """Commit and push every staged chart update.

    Args:
        worktree: The checkout the updates were staged in.
        updates: Chart update results; only ``status == "ok"`` ones count.
        settings: Remote, author identity and retry budget.
        push: Commit only, without pushing (local runs).
        sleep: Injected for tests; defaults to ``time.sleep``.
    """
    staged = [u for u in updates if u.changed and u.staged]
    if not staged:
        logger.info("No chart changes staged, nothing to commit")
        return CommitResult.noop("No chart changes staged")

    paths = [u.values_path for u in staged]
    root = worktree.root

    try:
        if not git_ops.has_staged_changes(paths, cwd=root):
            return CommitResult.noop("Staged files do not differ from HEAD")
        message = commit_message(staged)
        sha = git_ops.commit(
            message, paths, cwd=root,
            author_name=settings.author_name,
            author_email=settings.author_email,
        )
    except git_ops.GitError as e:
        return CommitResult.failure(str(e), files=paths)

    logger.info("Committed %s for %d chart(s)", sha[:7], len(paths))
    if not push:
        return CommitResult(status="ok", commit=sha, message=message, files=paths)

    retry_kwargs = {}
    if sleep is not None:
        retry_kwargs["sleep"] = sleep
    retry = BoundedRetry(
        name=f"push {worktree.remote}/{worktree.branch}",
        max_attempts=settings.push_max_attempts,
        base_delay=settings.push_backoff_seconds,
        max_delay=settings.push_max_backoff_seconds,
        **retry_kwargs,
    )

    while retry.begin():
        outcome = git_ops.push(worktree.remote, worktree.branch, cwd=root, timeout=settings.timeout)
        if outcome.ok:
            retry.succeed()
            break
        if not outcome.rejected:
            retry.abort(outcome.error)
            break
        logger.warning("Push rejected (attempt %d): %s", retry.attempt, outcome.error)
        if retry.fail(outcome.error) is RetryState.EXHAUSTED:
            break
        try:
            rebased, error = git_ops.pull_rebase(
                worktree.remote, worktree.branch, cwd=root, timeout=settings.timeout,
            )
        except git_ops.GitError as e:
            rebased, error = False, str(e)
        if not rebased:
            retry.abort(f"Rebase onto {worktree.remote}/{worktree.branch} failed: {error}")
            break

    if retry.state is RetryState.SUCCEEDED:
        final_sha = git_ops.rev_parse("HEAD", cwd=root) or sha
        logger.info("Pushed %s to %s/%s", final_sha[:7], worktree.remote, worktree.branch)
        return CommitResult(
            status="ok", commit=final_sha, message=message, files=paths, attempts=retry.attempt,
        )

    if retry.state is RetryState.EXHAUSTED:
        error = (
            f"Push to {worktree.remote}/{worktree.branch} still rejected after "
            f"{retry.attempt} attempts; re-run the update manually. Last error: {retry.last_error}"
        )
    else:
        error = retry.last_error
    return CommitResult.failure(error, commit=sha, message=message, files=paths, attempts=retry.attempt)
