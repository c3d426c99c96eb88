"""Pre-branch side effects of each action.

``execute`` only prepares the tree (stage, stash, push base, WIP commit).
Branch creation and everything after it belongs to ``newpr.workflow``.
"""

import logging
from pathlib import Path
from typing import assert_never

from newpr.models import ActionKey, ActionResult, BranchFrom, StateAction
from newpr.ops import Git

logger = logging.getLogger(__name__)

WIP_COMMIT_MESSAGE = "chore: work in progress\n\nCommitted with newpr"

_STAGE_ALL = frozenset({ActionKey.COMMIT_ALL, ActionKey.USE_COMMITS_AND_COMMIT_ALL})
_STASHING = frozenset(
    {ActionKey.STASH_AND_EMPTY, ActionKey.USE_COMMITS_AND_STASH, ActionKey.PR_FOR_BRANCH_STASH}
)
_EXISTING_BRANCH = frozenset(
    {
        ActionKey.CREATE_PR_FOR_BRANCH,
        ActionKey.PR_FOR_BRANCH_COMMIT_ALL,
        ActionKey.PR_FOR_BRANCH_STASH,
    }
)


def execute(
    action: StateAction,
    description: str,
    target_branch: str,
    git: Git,
    cwd: Path | None = None,
    *,
    base_branch: str = "main",
) -> ActionResult:
    """Run the pre-branch step of action in cwd, the current directory by default.

    Never raises for a failing git call. The result reports the failure and
    still carries any stash taken before it.
    """
    if cwd is None:
        cwd = Path.cwd()
    stash_ref: str | None = None
    logger.debug("executing %s for %s", action.action, target_branch)
    try:
        match action.action:
            case (
                ActionKey.EMPTY_COMMIT
                | ActionKey.COMMIT_STAGED
                | ActionKey.USE_COMMITS
                | ActionKey.BRANCH_FROM_DETACHED
                | ActionKey.CREATE_PR_FOR_BRANCH
            ):
                pass
            case ActionKey.COMMIT_ALL | ActionKey.USE_COMMITS_AND_COMMIT_ALL:
                git.add(cwd, ".")
            case ActionKey.STASH_AND_EMPTY | ActionKey.USE_COMMITS_AND_STASH:
                stash_ref = git.stash(
                    cwd,
                    message=f"newpr: auto-stash before creating {target_branch}",
                    include_untracked=True,
                )
            case ActionKey.PR_FOR_BRANCH_STASH:
                stash_ref = git.stash(
                    cwd,
                    message="newpr: auto-stash before creating PR",
                    include_untracked=True,
                )
            case ActionKey.PUSH_THEN_BRANCH:
                git.push(cwd, "origin", base_branch)
            case ActionKey.PR_FOR_BRANCH_COMMIT_ALL:
                git.add(cwd, ".")
                git.commit(cwd, WIP_COMMIT_MESSAGE)
            case _:
                assert_never(action.action)
    except Exception as exc:
        logger.debug("%s failed: %s", action.action, exc)
        return ActionResult(
            success=False,
            message=f"{describe_action(action)}: {exc}",
            stash_ref=stash_ref,
        )

    if stash_ref:
        logger.debug("stashed changes as %s", stash_ref)
    return ActionResult(success=True, message=describe_action(action), stash_ref=stash_ref)


def get_branch_point(action: StateAction, base_branch: str) -> str:
    if action.branch_from == BranchFrom.HEAD:
        return "HEAD"
    return f"origin/{base_branch}"


def requires_stage_all(action: StateAction) -> bool:
    return action.action in _STAGE_ALL


def involves_stashing(action: StateAction) -> bool:
    return action.action in _STASHING


def needs_push_to_base(action: StateAction) -> bool:
    return action.action == ActionKey.PUSH_THEN_BRANCH


def commits_to_current_branch(action: StateAction) -> bool:
    return action.action == ActionKey.PR_FOR_BRANCH_COMMIT_ALL


def is_existing_branch_action(action: StateAction) -> bool:
    """True for actions that open a PR for the current branch instead of a new one."""
    return action.action in _EXISTING_BRANCH


def describe_action(action: StateAction) -> str:
    match action.action:
        case ActionKey.EMPTY_COMMIT:
            return "Creating empty initial commit"
        case ActionKey.COMMIT_STAGED:
            return "Committing staged changes"
        case ActionKey.COMMIT_ALL:
            return "Staging and committing all changes"
        case ActionKey.STASH_AND_EMPTY:
            return "Stashing changes and creating empty commit"
        case ActionKey.USE_COMMITS:
            return "Using existing commits for PR"
        case ActionKey.PUSH_THEN_BRANCH:
            return "Pushing base branch before creating branch"
        case ActionKey.USE_COMMITS_AND_COMMIT_ALL:
            return "Using commits and staging all changes"
        case ActionKey.USE_COMMITS_AND_STASH:
            return "Using commits and stashing uncommitted changes"
        case ActionKey.CREATE_PR_FOR_BRANCH:
            return "Creating PR for current branch"
        case ActionKey.PR_FOR_BRANCH_COMMIT_ALL:
            return "Committing changes to current branch for PR"
        case ActionKey.PR_FOR_BRANCH_STASH:
            return "Stashing changes before creating PR"
        case ActionKey.BRANCH_FROM_DETACHED:
            return "Creating branch from detached HEAD"
        case _:
            assert_never(action.action)
