"""Operations interface injected into the analyzer, executor and workflow.

The core never spawns git or gh directly. It receives a ``Git`` and a
``GitHub`` implementation: ``RealGit``/``RealGitHub`` in production and the
in-memory fakes from ``newpr.fakes`` in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from newpr import gh_ops, git_ops
from newpr.models import AheadBehind, PullRequestInfo


class Git(ABC):
    """Abstract interface for the git operations newpr needs.

    Query methods must not mutate the repository. Mutation methods raise
    ``newpr.errors.GitError`` when the underlying command fails.
    """

    # ============================================================================
    # Query Operations
    # ============================================================================

    @abstractmethod
    def repo_root(self, cwd: Path) -> Path:
        """Top-level directory of the worktree containing cwd."""
        ...

    @abstractmethod
    def repo_name(self, repo_root: Path) -> str: ...

    @abstractmethod
    def current_branch(self, cwd: Path) -> str | None:
        """Checked out branch, or None for a detached HEAD."""
        ...

    @abstractmethod
    def head_commit(self, cwd: Path) -> str: ...

    @abstractmethod
    def ref_commit(self, cwd: Path, ref: str) -> str | None:
        """Commit SHA a ref points at, or None if the ref does not exist."""
        ...

    @abstractmethod
    def is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool: ...

    @abstractmethod
    def count_ahead_behind(self, cwd: Path, left: str, right: str) -> AheadBehind: ...

    @abstractmethod
    def count_commits(self, cwd: Path, ref: str) -> int: ...

    @abstractmethod
    def list_commits(self, cwd: Path, revision_range: str) -> list[str]:
        """One-line summaries for a revision range, newest first."""
        ...

    @abstractmethod
    def staged_files(self, cwd: Path) -> list[str]: ...

    @abstractmethod
    def unstaged_files(self, cwd: Path) -> list[str]:
        """Modified-but-unstaged and untracked paths."""
        ...

    @abstractmethod
    def is_linked_worktree(self, cwd: Path) -> bool:
        """True when cwd belongs to a linked worktree rather than the main one."""
        ...

    @abstractmethod
    def pr_marker(self, cwd: Path) -> int | None:
        """PR number recorded in the worktree's administrative area, if any."""
        ...

    @abstractmethod
    def worktree_path_for_branch(self, cwd: Path, branch: str) -> Path | None:
        """Path of the worktree that has branch checked out, if any."""
        ...

    @abstractmethod
    def branch_exists(self, cwd: Path, branch: str) -> bool: ...

    @abstractmethod
    def remote_branch_exists(self, cwd: Path, branch: str) -> bool: ...

    @abstractmethod
    def has_unpushed_commits(self, cwd: Path, branch: str) -> bool:
        """True if branch has no upstream or is ahead of it."""
        ...

    # ============================================================================
    # Mutation Operations
    # ============================================================================

    @abstractmethod
    def fetch(self, cwd: Path, remote: str) -> None: ...

    @abstractmethod
    def add(self, cwd: Path, pattern: str) -> None: ...

    @abstractmethod
    def stash(
        self,
        cwd: Path,
        *,
        message: str | None = None,
        keep_index: bool = False,
        include_untracked: bool = False,
    ) -> str | None:
        """Stash changes.

        Returns:
            A stash reference usable with stash_pop/stash_apply/stash_drop,
            or None when there was nothing to stash.
        """
        ...

    @abstractmethod
    def stash_pop(self, cwd: Path, stash_ref: str) -> None: ...

    @abstractmethod
    def stash_apply(self, cwd: Path, stash_ref: str) -> None:
        """Apply a stash into the worktree at cwd without dropping it."""
        ...

    @abstractmethod
    def stash_apply_unstaged(self, cwd: Path, stash_ref: str) -> None:
        """Apply only the unstaged changes of a --keep-index stash into cwd.

        Staged changes recorded in the stash are skipped; untracked files
        are restored untracked. Nothing is changed when it fails.
        """
        ...

    @abstractmethod
    def reset_merge(self, cwd: Path) -> None:
        """Abort a half-applied merge or stash in the worktree at cwd."""
        ...

    @abstractmethod
    def stash_drop(self, cwd: Path, stash_ref: str) -> None: ...

    @abstractmethod
    def commit(self, cwd: Path, message: str, *, allow_empty: bool = False) -> str:
        """Create a commit and return its SHA."""
        ...

    @abstractmethod
    def push(self, cwd: Path, remote: str, branch: str, *, set_upstream: bool = False) -> None: ...

    @abstractmethod
    def checkout(self, cwd: Path, ref: str) -> None: ...

    @abstractmethod
    def create_branch(self, cwd: Path, branch: str, start_point: str) -> None:
        """Create branch at start_point and check it out."""
        ...

    @abstractmethod
    def add_worktree(
        self,
        cwd: Path,
        path: Path,
        branch: str,
        *,
        create_branch: bool = False,
        start_point: str | None = None,
    ) -> None: ...

    @abstractmethod
    def mark_pr_worktree(self, worktree_path: Path, pr_number: int) -> None:
        """Record that the worktree at worktree_path serves a pull request."""
        ...


class GitHub(ABC):
    """Abstract interface for pull request operations."""

    @abstractmethod
    def is_available(self) -> bool:
        """True when the GitHub CLI is installed and authenticated."""
        ...

    @abstractmethod
    def create_pr(
        self,
        cwd: Path,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool,
    ) -> PullRequestInfo: ...

    @abstractmethod
    def get_pr(self, cwd: Path, pr_number: int) -> PullRequestInfo | None: ...

    @abstractmethod
    def get_pr_by_branch(self, cwd: Path, branch: str) -> PullRequestInfo | None: ...


class RealGit(Git):
    """Production implementation backed by the git binary."""

    def repo_root(self, cwd: Path) -> Path:
        return git_ops.get_repo_root(cwd)

    def repo_name(self, repo_root: Path) -> str:
        return git_ops.get_repo_name(repo_root)

    def current_branch(self, cwd: Path) -> str | None:
        return git_ops.get_current_branch(cwd)

    def head_commit(self, cwd: Path) -> str:
        return git_ops.get_head_commit(cwd)

    def ref_commit(self, cwd: Path, ref: str) -> str | None:
        return git_ops.get_ref_commit(cwd, ref)

    def is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool:
        return git_ops.is_ancestor(cwd, ancestor, descendant)

    def count_ahead_behind(self, cwd: Path, left: str, right: str) -> AheadBehind:
        return git_ops.count_ahead_behind(cwd, left, right)

    def count_commits(self, cwd: Path, ref: str) -> int:
        return git_ops.count_commits(cwd, ref)

    def list_commits(self, cwd: Path, revision_range: str) -> list[str]:
        return git_ops.list_commits(cwd, revision_range)

    def staged_files(self, cwd: Path) -> list[str]:
        return git_ops.get_staged_files(cwd)

    def unstaged_files(self, cwd: Path) -> list[str]:
        return git_ops.get_unstaged_files(cwd)

    def is_linked_worktree(self, cwd: Path) -> bool:
        return git_ops.get_git_dir(cwd) != git_ops.get_common_dir(cwd)

    def pr_marker(self, cwd: Path) -> int | None:
        return git_ops.read_pr_marker(cwd)

    def worktree_path_for_branch(self, cwd: Path, branch: str) -> Path | None:
        for wt in git_ops.parse_worktrees(cwd):
            if wt.branch == branch:
                return wt.path
        return None

    def branch_exists(self, cwd: Path, branch: str) -> bool:
        return git_ops.branch_exists(cwd, branch)

    def remote_branch_exists(self, cwd: Path, branch: str) -> bool:
        return git_ops.remote_branch_exists(cwd, branch)

    def has_unpushed_commits(self, cwd: Path, branch: str) -> bool:
        return git_ops.has_unpushed_commits(cwd, branch)

    def fetch(self, cwd: Path, remote: str) -> None:
        git_ops.fetch(cwd, remote)

    def add(self, cwd: Path, pattern: str) -> None:
        git_ops.add(cwd, pattern)

    def stash(
        self,
        cwd: Path,
        *,
        message: str | None = None,
        keep_index: bool = False,
        include_untracked: bool = False,
    ) -> str | None:
        return git_ops.stash_push(
            cwd, message, keep_index=keep_index, include_untracked=include_untracked
        )

    def stash_pop(self, cwd: Path, stash_ref: str) -> None:
        git_ops.stash_pop(cwd, stash_ref)

    def stash_apply(self, cwd: Path, stash_ref: str) -> None:
        git_ops.stash_apply(cwd, stash_ref)

    def stash_apply_unstaged(self, cwd: Path, stash_ref: str) -> None:
        git_ops.stash_apply_unstaged(cwd, stash_ref)

    def reset_merge(self, cwd: Path) -> None:
        git_ops.reset_merge(cwd)

    def stash_drop(self, cwd: Path, stash_ref: str) -> None:
        git_ops.stash_drop(cwd, stash_ref)

    def commit(self, cwd: Path, message: str, *, allow_empty: bool = False) -> str:
        return git_ops.commit(cwd, message, allow_empty=allow_empty)

    def push(self, cwd: Path, remote: str, branch: str, *, set_upstream: bool = False) -> None:
        git_ops.push(cwd, remote, branch, set_upstream=set_upstream)

    def checkout(self, cwd: Path, ref: str) -> None:
        git_ops.checkout(cwd, ref)

    def create_branch(self, cwd: Path, branch: str, start_point: str) -> None:
        git_ops.checkout_new_branch(cwd, branch, start_point)

    def add_worktree(
        self,
        cwd: Path,
        path: Path,
        branch: str,
        *,
        create_branch: bool = False,
        start_point: str | None = None,
    ) -> None:
        base = (start_point or "HEAD") if create_branch else None
        git_ops.worktree_add(cwd, path, branch, base=base)

    def mark_pr_worktree(self, worktree_path: Path, pr_number: int) -> None:
        git_ops.write_pr_marker(worktree_path, pr_number)


class RealGitHub(GitHub):
    """Production implementation backed by the gh CLI."""

    def is_available(self) -> bool:
        return gh_ops.is_installed() and gh_ops.is_authenticated()

    def create_pr(
        self,
        cwd: Path,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool,
    ) -> PullRequestInfo:
        return gh_ops.create_pr(cwd, title=title, body=body, base=base, head=head, draft=draft)

    def get_pr(self, cwd: Path, pr_number: int) -> PullRequestInfo | None:
        return gh_ops.get_pr(cwd, pr_number)

    def get_pr_by_branch(self, cwd: Path, branch: str) -> PullRequestInfo | None:
        return gh_ops.get_pr_by_branch(cwd, branch)
