"""The create-PR workflow.

Runs analyze -> classify -> choose -> pre-action -> branch -> commit -> push
-> PR -> worktree. Two stash tokens may be alive during a run and they are
never merged: the action's own stash (popped back on failure) and the
unstaged-changes stash that moves edits into the new worktree (only ever
reported on failure, never retried).
"""

import logging
import re
from collections.abc import Callable
from pathlib import Path

from newpr import actions
from newpr.config import generate_branch_name, generate_worktree_path
from newpr.context import NewprContext
from newpr.errors import (
    ActionFailedError,
    AmbiguousStateError,
    BranchExistsError,
    DetachedHeadError,
    GhNotAvailableError,
    InvalidArgumentError,
    NewprError,
    PrNotFoundError,
    UserCancelledError,
    WorktreeExistsError,
)
from newpr.models import (
    ActionKey,
    BranchFrom,
    CreatePrResult,
    PullRequestInfo,
    Scenario,
    ScenarioContext,
    StateAction,
)
from newpr.ops import Git
from newpr.scenarios import default_action, resolve_context, select_action
from newpr.state import analyze, classify

logger = logging.getLogger(__name__)

Chooser = Callable[[Scenario, ScenarioContext], StateAction | None]

REMOTE = "origin"
UNSTAGED_STASH_MESSAGE = "newpr: unstaged changes for worktree"
FETCH_WARNING = "Could not fetch from origin (network unavailable?)"


def pr_body(summary: str) -> str:
    return (
        f"## Summary\n\n{summary}\n\n"
        "## Changes\n\n-\n\n"
        "## Test Plan\n\n- [ ]\n\n"
        "---\nPR created with `newpr`"
    )


def title_from_branch(branch: str) -> str:
    """``feat/add-dark-mode`` -> ``Add Dark Mode``."""
    name = re.sub(r"^(feat|fix|chore)/", "", branch).replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name)


def _require_github(ctx: NewprContext) -> None:
    if not ctx.github.is_available():
        raise GhNotAvailableError(
            "GitHub CLI (gh) is required and must be authenticated. Run: gh auth login"
        )


def _fetch(git: Git, root: Path, warnings: list[str]) -> None:
    try:
        git.fetch(root, REMOTE)
    except NewprError as exc:
        logger.debug("fetch failed: %s", exc)
        warnings.append(FETCH_WARNING)


def _restore_stash(git: Git, root: Path, stash_ref: str) -> None:
    try:
        git.stash_pop(root, stash_ref)
    except NewprError as exc:
        logger.warning(
            "Could not restore stashed changes (%s): %s. Recover them with 'git stash pop'.",
            stash_ref,
            exc,
        )


def _apply_stash(
    git: Git,
    root: Path,
    stash_ref: str,
    worktree_path: Path,
    what: str,
    warnings: list[str],
    *,
    unstaged_only: bool = False,
) -> None:
    """Move a stash into the new worktree, keeping it when it does not apply cleanly."""
    try:
        if unstaged_only:
            git.stash_apply_unstaged(worktree_path, stash_ref)
        else:
            git.stash_apply(worktree_path, stash_ref)
    except NewprError as exc:
        logger.warning("Could not apply %s to %s: %s", what, worktree_path, exc)
        try:
            git.reset_merge(worktree_path)
        except NewprError as reset_exc:
            logger.warning("Could not reset %s: %s", worktree_path, reset_exc)
        warnings.append(
            f"Failed to apply {what} to worktree {worktree_path}. "
            f"They are kept in stash {stash_ref}."
        )
        return

    try:
        git.stash_drop(root, stash_ref)
    except NewprError as exc:
        logger.warning("Could not drop stash %s: %s", stash_ref, exc)


def _choose_action(
    scenario: Scenario,
    context: ScenarioContext | None,
    action_key: ActionKey | None,
    chooser: Chooser | None,
) -> StateAction:
    if context is None:
        raise AmbiguousStateError(
            f"No actions available for scenario '{scenario}'.",
            details={"scenario": scenario.value},
        )
    if action_key is not None:
        return select_action(context, action_key, scenario)
    if chooser is not None:
        chosen = chooser(scenario, context)
        if chosen is None:
            raise UserCancelledError()
        return chosen
    action = default_action(context)
    if action is None:
        raise AmbiguousStateError(f"Could not determine an action for scenario '{scenario}'.")
    return action


def create_pr(
    ctx: NewprContext,
    description: str,
    *,
    action_key: ActionKey | None = None,
    base_branch: str | None = None,
    branch_name: str | None = None,
    draft: bool | None = None,
    chooser: Chooser | None = None,
) -> CreatePrResult:
    """Create a branch, PR and worktree for description from whatever state the tree is in.

    Args:
        ctx: Operations, config and hooks to use.
        description: PR title and commit subject.
        action_key: Explicit action; must be offered for the detected scenario.
        base_branch: Overrides the configured base branch.
        branch_name: Overrides the generated ``<prefix>/<slug>-<suffix>`` name.
        draft: Overrides the configured draft setting.
        chooser: Interactive picker used when no action_key is given. Returning
            None cancels the run.

    Raises:
        AmbiguousStateError: Run from a PR worktree.
        ActionNotAvailableError: action_key is not offered for the scenario.
        BranchExistsError: The target branch exists but has no open PR to reuse.
        ActionFailedError: The pre-branch step failed. Any stash it took has
            been popped back.
    """
    if not description.strip():
        raise InvalidArgumentError("A PR description is required")
    _require_github(ctx)

    git = ctx.git
    base = base_branch or ctx.config.base_branch
    use_draft = ctx.config.draft_pr if draft is None else draft
    warnings: list[str] = []
    root = git.repo_root(ctx.cwd)

    _fetch(git, root, warnings)
    state = analyze(git, base, ctx.cwd)
    scenario = classify(state)
    logger.debug("scenario: %s", scenario)

    if scenario == Scenario.PR_WORKTREE:
        raise AmbiguousStateError(
            "Cannot create a PR from a PR worktree. Switch to the main worktree first.",
            details={"scenario": scenario.value},
        )

    context = resolve_context(scenario, state, base)
    action = _choose_action(scenario, context, action_key, chooser)
    logger.debug("action: %s (from %s)", action.action, action.branch_from)

    if actions.is_existing_branch_action(action):
        return _pr_for_existing_branch(
            ctx,
            root,
            state.repo_name,
            state.current_branch,
            action=action,
            description=description,
            base=base,
            draft=use_draft,
            scenario=scenario,
            warnings=warnings,
        )

    branch = branch_name or generate_branch_name(ctx.config, description)
    ctx.hooks.update(
        branch=branch,
        base_branch=base,
        description=description,
        scenario=scenario.value,
        action=action.action.value,
    )

    # Everything up to here is read-only.
    if git.remote_branch_exists(root, branch):
        existing = ctx.github.get_pr_by_branch(root, branch)
        if existing is None or existing.state != "OPEN":
            raise BranchExistsError(
                f"Branch {branch} already exists on remote but has no open PR"
            )
        logger.debug("branch %s already has PR #%d", branch, existing.number)
        return _setup_pr_worktree(ctx, root, state.repo_name, existing, warnings)
    if git.branch_exists(root, branch):
        raise BranchExistsError(f"Branch {branch} already exists locally")

    original_ref = state.current_branch or git.head_commit(root)
    result = actions.execute(action, description, branch, git, root, base_branch=base)
    if not result.success:
        if result.stash_ref:
            _restore_stash(git, root, result.stash_ref)
        raise ActionFailedError(
            f"Action failed: {result.message}", details={"action": action.action.value}
        )

    action_stash = result.stash_ref
    unstaged_stash: str | None = None
    try:
        if action.stash_unstaged:
            unstaged_stash = git.stash(
                root,
                message=UNSTAGED_STASH_MESSAGE,
                keep_index=True,
                include_untracked=True,
            )

        ctx.hooks.run("pre-branch")
        git.create_branch(root, branch, actions.get_branch_point(action, base))
        ctx.hooks.run("post-branch")

        if git.staged_files(root):
            ctx.hooks.run("pre-commit")
            git.commit(root, f"feat: {description}")
            ctx.hooks.run("post-commit")
        elif action.branch_from == BranchFrom.ORIGIN_MAIN:
            ctx.hooks.run("pre-commit")
            git.commit(
                root,
                f"chore: initialize {branch}\n\nBranch created for: {description}",
                allow_empty=True,
            )
            ctx.hooks.run("post-commit")

        ctx.hooks.run("pre-push")
        git.push(root, REMOTE, branch, set_upstream=True)
        ctx.hooks.run("post-push")

        git.checkout(root, original_ref)

        ctx.hooks.run("pre-pr")
        pr = ctx.github.create_pr(
            root,
            title=description,
            body=pr_body(description),
            base=base,
            head=branch,
            draft=use_draft,
        )
        ctx.hooks.update(pr_number=pr.number, pr_url=pr.url)
        ctx.hooks.run("post-pr")

        worktree_path = generate_worktree_path(
            ctx.config, root, state.repo_name, pr.number, branch
        )
        ctx.hooks.update(worktree_path=worktree_path)
        ctx.hooks.run("pre-worktree")
        git.add_worktree(root, worktree_path, branch)
        git.mark_pr_worktree(worktree_path, pr.number)

        if action_stash:
            stash_ref, action_stash = action_stash, None
            _apply_stash(git, root, stash_ref, worktree_path, "stashed changes", warnings)
        if unstaged_stash:
            stash_ref, unstaged_stash = unstaged_stash, None
            _apply_stash(
                git,
                root,
                stash_ref,
                worktree_path,
                "unstaged changes",
                warnings,
                unstaged_only=True,
            )

        ctx.hooks.run("post-worktree")
    except Exception:
        _rollback(git, root, branch, original_ref, action_stash, unstaged_stash)
        raise

    return CreatePrResult(
        pr_number=pr.number,
        pr_url=pr.url,
        branch=branch,
        worktree_path=worktree_path,
        draft=use_draft,
        created=True,
        scenario=scenario,
        action_taken=action.action,
        warnings=tuple(warnings),
    )


def _rollback(
    git: Git,
    root: Path,
    branch: str,
    original_ref: str,
    action_stash: str | None,
    unstaged_stash: str | None,
) -> None:
    logger.debug("rolling back creation of %s", branch)
    try:
        if git.current_branch(root) == branch:
            git.checkout(root, original_ref)
    except NewprError as exc:
        logger.warning("Could not return to %s: %s", original_ref, exc)
    if action_stash:
        _restore_stash(git, root, action_stash)
    if unstaged_stash:
        logger.warning(
            "Unstaged changes are still stashed (%s). Run 'git stash pop' to recover them.",
            unstaged_stash,
        )


def create_pr_for_existing_branch(
    ctx: NewprContext,
    branch: str | None = None,
    *,
    action: StateAction | None = None,
    description: str = "",
    base_branch: str | None = None,
    draft: bool | None = None,
) -> CreatePrResult:
    """Open (or reuse) a PR for an existing branch and give it a worktree.

    ``branch`` defaults to the current branch.
    """
    _require_github(ctx)
    git = ctx.git
    root = git.repo_root(ctx.cwd)
    warnings: list[str] = []
    _fetch(git, root, warnings)
    return _pr_for_existing_branch(
        ctx,
        root,
        git.repo_name(root),
        branch if branch is not None else git.current_branch(ctx.cwd),
        action=action,
        description=description,
        base=base_branch or ctx.config.base_branch,
        draft=ctx.config.draft_pr if draft is None else draft,
        scenario=None,
        warnings=warnings,
    )


def _pr_for_existing_branch(
    ctx: NewprContext,
    root: Path,
    repo_name: str,
    branch: str | None,
    *,
    action: StateAction | None,
    description: str,
    base: str,
    draft: bool,
    scenario: Scenario | None,
    warnings: list[str],
) -> CreatePrResult:
    git = ctx.git
    if branch is None:
        raise DetachedHeadError("Cannot determine current branch for an existing-branch action")
    if not git.branch_exists(root, branch) and not git.remote_branch_exists(root, branch):
        raise InvalidArgumentError(f"Branch {branch} does not exist locally or on {REMOTE}")
    ctx.hooks.update(branch=branch, base_branch=base, description=description or branch)

    stash_ref: str | None = None
    if action is not None:
        ctx.hooks.update(action=action.action.value)
        result = actions.execute(action, description, branch, git, root, base_branch=base)
        if not result.success:
            if result.stash_ref:
                _restore_stash(git, root, result.stash_ref)
            raise ActionFailedError(
                f"Action failed: {result.message}", details={"action": action.action.value}
            )
        stash_ref = result.stash_ref

    switched_from: str | None = None
    try:
        on_remote = git.remote_branch_exists(root, branch)
        if git.branch_exists(root, branch) and (
            not on_remote or git.has_unpushed_commits(root, branch)
        ):
            ctx.hooks.run("pre-push")
            git.push(root, REMOTE, branch, set_upstream=True)
            ctx.hooks.run("post-push")

        pr = ctx.github.get_pr_by_branch(root, branch)
        created = pr is None
        if pr is None:
            ctx.hooks.run("pre-pr")
            pr = ctx.github.create_pr(
                root,
                title=title_from_branch(branch),
                body=pr_body(f"PR created from existing branch: `{branch}`"),
                base=base,
                head=branch,
                draft=draft,
            )
            ctx.hooks.update(pr_number=pr.number, pr_url=pr.url)
            ctx.hooks.run("post-pr")
        else:
            logger.debug("reusing PR #%d for %s", pr.number, branch)
            ctx.hooks.update(pr_number=pr.number, pr_url=pr.url)

        checked_out_at = git.worktree_path_for_branch(root, branch)
        if checked_out_at is not None and checked_out_at != root:
            warnings.append(f"Branch {branch} is already checked out at {checked_out_at}")
            worktree_path = checked_out_at
        else:
            if checked_out_at == root:
                # A branch can only be checked out in one worktree.
                git.checkout(root, base)
                switched_from = branch
            worktree_path = generate_worktree_path(ctx.config, root, repo_name, pr.number, branch)
            if worktree_path.exists():
                raise WorktreeExistsError(f"Worktree already exists: {worktree_path}")
            ctx.hooks.update(worktree_path=worktree_path)
            ctx.hooks.run("pre-worktree")
            if git.branch_exists(root, branch):
                git.add_worktree(root, worktree_path, branch)
            else:
                git.add_worktree(
                    root,
                    worktree_path,
                    branch,
                    create_branch=True,
                    start_point=f"{REMOTE}/{branch}",
                )
            git.mark_pr_worktree(worktree_path, pr.number)

        if stash_ref:
            ref, stash_ref = stash_ref, None
            _apply_stash(git, root, ref, worktree_path, "stashed changes", warnings)

        ctx.hooks.run("post-worktree")
    except Exception:
        if switched_from is not None:
            try:
                git.checkout(root, switched_from)
            except NewprError as exc:
                logger.warning("Could not return to %s: %s", switched_from, exc)
        if stash_ref:
            _restore_stash(git, root, stash_ref)
        raise

    return CreatePrResult(
        pr_number=pr.number,
        pr_url=pr.url,
        branch=branch,
        worktree_path=worktree_path,
        draft=pr.is_draft,
        created=created,
        scenario=scenario,
        action_taken=action.action if action else None,
        warnings=tuple(warnings),
    )


def setup_pr_worktree(ctx: NewprContext, pr_number: int) -> CreatePrResult:
    """Create a worktree for an existing PR."""
    _require_github(ctx)
    root = ctx.git.repo_root(ctx.cwd)
    pr = ctx.github.get_pr(root, pr_number)
    if pr is None:
        raise PrNotFoundError(f"Could not find PR #{pr_number}")
    warnings: list[str] = []
    _fetch(ctx.git, root, warnings)
    return _setup_pr_worktree(ctx, root, ctx.git.repo_name(root), pr, warnings)


def _setup_pr_worktree(
    ctx: NewprContext,
    root: Path,
    repo_name: str,
    pr: PullRequestInfo,
    warnings: list[str],
) -> CreatePrResult:
    git = ctx.git
    head = pr.head_branch
    if pr.state != "OPEN":
        warnings.append(f"PR #{pr.number} is {pr.state}")

    worktree_path = generate_worktree_path(ctx.config, root, repo_name, pr.number, head)
    if worktree_path.exists():
        raise WorktreeExistsError(
            f"Worktree already exists: {worktree_path}",
            details={"worktreePath": str(worktree_path)},
        )
    checked_out_at = git.worktree_path_for_branch(root, head)
    if checked_out_at is not None:
        raise WorktreeExistsError(
            f"Branch {head} is already checked out at {checked_out_at}",
            details={"worktreePath": str(checked_out_at)},
        )

    ctx.hooks.update(branch=head, pr_number=pr.number, pr_url=pr.url, worktree_path=worktree_path)
    ctx.hooks.run("pre-worktree")
    if git.branch_exists(root, head):
        git.add_worktree(root, worktree_path, head)
    else:
        git.add_worktree(
            root, worktree_path, head, create_branch=True, start_point=f"{REMOTE}/{head}"
        )
    git.mark_pr_worktree(worktree_path, pr.number)
    ctx.hooks.run("post-worktree")

    return CreatePrResult(
        pr_number=pr.number,
        pr_url=pr.url,
        branch=head,
        worktree_path=worktree_path,
        draft=pr.is_draft,
        created=False,
        warnings=tuple(warnings),
    )
