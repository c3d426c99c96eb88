"""Read the repository into a GitState and classify it into a Scenario."""

import logging
import re
from pathlib import Path
from typing import assert_never

from newpr.models import CommitRelationship, GitState, Scenario, WorktreeType
from newpr.ops import Git

logger = logging.getLogger(__name__)

PR_WORKTREE_DIR = re.compile(r"\.pr\d+$")


def detect_worktree_type(git: Git, cwd: Path, repo_root: Path) -> WorktreeType:
    """Tell the main worktree, a PR worktree and any other linked worktree apart.

    The administrative area decides first: only linked worktrees can be PR
    worktrees, and one we created carries a marker with its PR number. The
    ``<repo>.pr<N>`` directory name is honoured for worktrees made by hand.
    """
    if not git.is_linked_worktree(cwd):
        return WorktreeType.MAIN_WORKTREE
    if git.pr_marker(cwd) is not None:
        return WorktreeType.PR_WORKTREE
    if PR_WORKTREE_DIR.search(repo_root.name):
        return WorktreeType.PR_WORKTREE
    return WorktreeType.OTHER


def analyze(git: Git, base_branch: str, cwd: Path) -> GitState:
    """Snapshot the repository at cwd relative to origin/<base_branch>.

    Uses query operations only. Two calls with no mutation in between
    produce equal states.
    """
    repo_root = git.repo_root(cwd)
    remote_base = f"origin/{base_branch}"
    head = git.head_commit(cwd)
    base_commit = git.ref_commit(cwd, remote_base)

    if base_commit is None:
        logger.debug("%s does not exist; treating every commit as local", remote_base)
        same = False
        ancestor = False
        ahead = git.count_commits(cwd, "HEAD")
        behind = 0
        local_commits: list[str] = []
    else:
        same = head == base_commit
        ancestor = not same and git.is_ancestor(cwd, "HEAD", remote_base)
        counts = git.count_ahead_behind(cwd, "HEAD", remote_base)
        ahead = counts.ahead
        behind = counts.behind
        local_commits = git.list_commits(cwd, f"{remote_base}..HEAD")

    state = GitState(
        current_branch=git.current_branch(cwd),
        base_branch=base_branch,
        worktree_type=detect_worktree_type(git, cwd, repo_root),
        same_as_base=same,
        is_ancestor_of_base=ancestor,
        ahead=ahead,
        behind=behind,
        staged_files=tuple(git.staged_files(cwd)),
        unstaged_files=tuple(git.unstaged_files(cwd)),
        local_commits=tuple(local_commits),
        repo_root=repo_root,
        repo_name=git.repo_name(repo_root),
    )
    logger.debug(
        "analyzed %s: branch=%s relationship=%s staged=%d unstaged=%d",
        repo_root,
        state.current_branch,
        state.relationship,
        len(state.staged_files),
        len(state.unstaged_files),
    )
    return state


def _classify_on_base(state: GitState) -> Scenario:
    match state.relationship:
        case CommitRelationship.SAME | CommitRelationship.BEHIND | CommitRelationship.ANCESTOR:
            if state.has_staged_changes and state.has_unstaged_changes:
                return Scenario.MAIN_BOTH_SAME
            if state.has_staged_changes:
                return Scenario.MAIN_STAGED_SAME
            if state.has_unstaged_changes:
                return Scenario.MAIN_UNSTAGED_SAME
            return Scenario.MAIN_CLEAN_SAME
        case CommitRelationship.AHEAD | CommitRelationship.DIVERGENT:
            if state.has_changes:
                return Scenario.MAIN_CHANGES_AHEAD
            return Scenario.MAIN_CLEAN_AHEAD
        case _:
            assert_never(state.relationship)


def _classify_on_branch(state: GitState) -> Scenario:
    if state.has_changes:
        return Scenario.BRANCH_WITH_CHANGES
    match state.relationship:
        case CommitRelationship.SAME | CommitRelationship.BEHIND:
            return Scenario.BRANCH_SAME_AS_MAIN
        case CommitRelationship.ANCESTOR:
            return Scenario.BRANCH_ANCESTOR
        case CommitRelationship.AHEAD | CommitRelationship.DIVERGENT:
            return Scenario.BRANCH_DIVERGENT
        case _:
            assert_never(state.relationship)


def classify(state: GitState) -> Scenario:
    """Map a state to exactly one scenario. First match wins."""
    if state.worktree_type == WorktreeType.PR_WORKTREE:
        return Scenario.PR_WORKTREE
    if state.current_branch is None:
        return Scenario.DETACHED_HEAD
    if state.current_branch == state.base_branch:
        return _classify_on_base(state)
    return _classify_on_branch(state)


def describe_scenario(scenario: Scenario, base_branch: str = "main") -> str:
    base = base_branch
    match scenario:
        case Scenario.MAIN_CLEAN_SAME:
            return f"On {base}, same as origin/{base}, no uncommitted changes"
        case Scenario.MAIN_STAGED_SAME:
            return f"On {base}, same as origin/{base}, staged changes only"
        case Scenario.MAIN_UNSTAGED_SAME:
            return f"On {base}, same as origin/{base}, unstaged changes only"
        case Scenario.MAIN_BOTH_SAME:
            return f"On {base}, same as origin/{base}, both staged and unstaged changes"
        case Scenario.MAIN_CLEAN_AHEAD:
            return f"On {base}, ahead of origin/{base}, no uncommitted changes"
        case Scenario.MAIN_CHANGES_AHEAD:
            return f"On {base}, ahead of origin/{base}, with uncommitted changes"
        case Scenario.BRANCH_SAME_AS_MAIN:
            return f"On feature branch at same commit as {base}"
        case Scenario.BRANCH_ANCESTOR:
            return f"On feature branch that is already merged into {base}"
        case Scenario.BRANCH_DIVERGENT:
            return f"On feature branch with commits not in {base}"
        case Scenario.BRANCH_WITH_CHANGES:
            return "On feature branch with uncommitted changes"
        case Scenario.DETACHED_HEAD:
            return "In detached HEAD state"
        case Scenario.PR_WORKTREE:
            return "Running from a PR worktree"
        case _:
            assert_never(scenario)
