"""In-memory fakes for the operations interface.

These back the executor and workflow tests. They hold just enough state to
make a workflow run observable: branches, staged/unstaged files, stashes,
remote branches and worktrees.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from newpr.models import AheadBehind, PullRequestInfo
from newpr.ops import Git, GitHub


@dataclass(frozen=True)
class FakeStash:
    ref: str
    message: str | None
    staged_files: tuple[str, ...]
    unstaged_files: tuple[str, ...]


class FakeGit(Git):
    """In-memory fake implementation of Git.

    Constructor Injection:
    ---------------------
    - current_branch / head_commit / refs: what HEAD and named refs resolve to
    - ahead_behind: (left, right) -> AheadBehind for count_ahead_behind()
    - ancestors: set of (ancestor, descendant) pairs for is_ancestor()
    - commits: revision range -> summaries for list_commits()
    - staged_files / unstaged_files: initial working tree status
    - remote_branches / local_branches: branch existence
    - *_raises: exception raised by the matching mutation

    Mutation Tracking:
    -----------------
    Read-only properties expose every mutation call for assertions:
    fetch_calls, added, stash_calls, stash_pop_calls, stash_apply_calls,
    unstaged_apply_calls, reset_merge_calls, stash_drop_calls, commits_made,
    push_calls, checkout_calls, created_branches, worktrees_added,
    marked_worktrees.
    """

    def __init__(
        self,
        *,
        repo_root: Path = Path("/repo"),
        repo_name: str = "repo",
        current_branch: str | None = "main",
        head_commit: str = "a" * 40,
        refs: dict[str, str] | None = None,
        ahead_behind: dict[tuple[str, str], AheadBehind] | None = None,
        ancestors: set[tuple[str, str]] | None = None,
        commit_counts: dict[str, int] | None = None,
        commits: dict[str, list[str]] | None = None,
        staged_files: list[str] | None = None,
        unstaged_files: list[str] | None = None,
        linked_worktree: bool = False,
        pr_marker: int | None = None,
        worktree_paths: dict[str, Path] | None = None,
        local_branches: set[str] | None = None,
        remote_branches: set[str] | None = None,
        pushed_branches: set[str] | None = None,
        fetch_raises: Exception | None = None,
        add_raises: Exception | None = None,
        stash_raises: Exception | None = None,
        stash_pop_raises: Exception | None = None,
        stash_apply_raises: Exception | None = None,
        stash_apply_unstaged_raises: Exception | None = None,
        commit_raises: Exception | None = None,
        push_raises: Exception | None = None,
        checkout_raises: Exception | None = None,
        create_branch_raises: Exception | None = None,
        add_worktree_raises: Exception | None = None,
    ) -> None:
        self._repo_root = repo_root
        self._repo_name = repo_name
        self._current_branch = current_branch
        self._head_commit = head_commit
        self._refs = dict(refs) if refs is not None else {"origin/main": head_commit}
        self._ahead_behind = dict(ahead_behind or {})
        self._ancestors = set(ancestors or set())
        self._commit_counts = dict(commit_counts or {})
        self._commits = dict(commits or {})
        self._staged = list(staged_files or [])
        self._unstaged = list(unstaged_files or [])
        self._linked_worktree = linked_worktree
        self._pr_marker = pr_marker
        self._worktree_paths = dict(worktree_paths or {})
        self._local_branches = set(local_branches or set())
        if current_branch is not None:
            self._local_branches.add(current_branch)
        self._remote_branches = set(remote_branches or set())
        self._pushed_branches = set(pushed_branches or set())

        self._fetch_raises = fetch_raises
        self._add_raises = add_raises
        self._stash_raises = stash_raises
        self._stash_pop_raises = stash_pop_raises
        self._stash_apply_raises = stash_apply_raises
        self._stash_apply_unstaged_raises = stash_apply_unstaged_raises
        self._commit_raises = commit_raises
        self._push_raises = push_raises
        self._checkout_raises = checkout_raises
        self._create_branch_raises = create_branch_raises
        self._add_worktree_raises = add_worktree_raises

        self._stashes: list[FakeStash] = []
        self._stash_counter = 0
        self._commit_counter = 0

        # Mutation tracking
        self._fetch_calls: list[tuple[Path, str]] = []
        self._added: list[tuple[Path, str]] = []
        self._stash_calls: list[tuple[Path, str | None, bool, bool]] = []
        self._stash_pop_calls: list[tuple[Path, str]] = []
        self._stash_apply_calls: list[tuple[Path, str]] = []
        self._unstaged_apply_calls: list[tuple[Path, str]] = []
        self._reset_merge_calls: list[Path] = []
        self._stash_drop_calls: list[tuple[Path, str]] = []
        self._commits_made: list[tuple[Path, str, bool]] = []
        self._push_calls: list[tuple[Path, str, str, bool]] = []
        self._checkout_calls: list[tuple[Path, str]] = []
        self._created_branches: list[tuple[Path, str, str]] = []
        self._worktrees_added: list[tuple[Path, str, bool, str | None]] = []
        self._marked_worktrees: list[tuple[Path, int]] = []

    # ============================================================================
    # Queries
    # ============================================================================

    def repo_root(self, cwd: Path) -> Path:
        return self._repo_root

    def repo_name(self, repo_root: Path) -> str:
        return self._repo_name

    def current_branch(self, cwd: Path) -> str | None:
        return self._current_branch

    def head_commit(self, cwd: Path) -> str:
        return self._head_commit

    def ref_commit(self, cwd: Path, ref: str) -> str | None:
        if ref == "HEAD":
            return self._head_commit
        return self._refs.get(ref)

    def is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool:
        return (ancestor, descendant) in self._ancestors

    def count_ahead_behind(self, cwd: Path, left: str, right: str) -> AheadBehind:
        return self._ahead_behind.get((left, right), AheadBehind(0, 0))

    def count_commits(self, cwd: Path, ref: str) -> int:
        return self._commit_counts.get(ref, 0)

    def list_commits(self, cwd: Path, revision_range: str) -> list[str]:
        return list(self._commits.get(revision_range, []))

    def staged_files(self, cwd: Path) -> list[str]:
        return list(self._staged)

    def unstaged_files(self, cwd: Path) -> list[str]:
        return list(self._unstaged)

    def is_linked_worktree(self, cwd: Path) -> bool:
        return self._linked_worktree

    def pr_marker(self, cwd: Path) -> int | None:
        return self._pr_marker

    def worktree_path_for_branch(self, cwd: Path, branch: str) -> Path | None:
        if branch == self._current_branch:
            return self._repo_root
        return self._worktree_paths.get(branch)

    def branch_exists(self, cwd: Path, branch: str) -> bool:
        return branch in self._local_branches

    def remote_branch_exists(self, cwd: Path, branch: str) -> bool:
        return branch in self._remote_branches

    def has_unpushed_commits(self, cwd: Path, branch: str) -> bool:
        return branch not in self._pushed_branches

    # ============================================================================
    # Mutations
    # ============================================================================

    def fetch(self, cwd: Path, remote: str) -> None:
        self._fetch_calls.append((cwd, remote))
        if self._fetch_raises is not None:
            raise self._fetch_raises

    def add(self, cwd: Path, pattern: str) -> None:
        if self._add_raises is not None:
            raise self._add_raises
        self._added.append((cwd, pattern))
        for path in self._unstaged:
            if path not in self._staged:
                self._staged.append(path)
        self._unstaged = []

    def stash(
        self,
        cwd: Path,
        *,
        message: str | None = None,
        keep_index: bool = False,
        include_untracked: bool = False,
    ) -> str | None:
        self._stash_calls.append((cwd, message, keep_index, include_untracked))
        if self._stash_raises is not None:
            raise self._stash_raises
        if not self._staged and not self._unstaged:
            return None
        self._stash_counter += 1
        ref = f"stash-{self._stash_counter}"
        staged = () if keep_index else tuple(self._staged)
        self._stashes.insert(0, FakeStash(ref, message, staged, tuple(self._unstaged)))
        if not keep_index:
            self._staged = []
        self._unstaged = []
        return ref

    def _find_stash(self, stash_ref: str) -> FakeStash:
        for entry in self._stashes:
            if entry.ref == stash_ref:
                return entry
        raise KeyError(stash_ref)

    def stash_pop(self, cwd: Path, stash_ref: str) -> None:
        self._stash_pop_calls.append((cwd, stash_ref))
        if self._stash_pop_raises is not None:
            raise self._stash_pop_raises
        entry = self._find_stash(stash_ref)
        self._stashes.remove(entry)
        self._staged.extend(entry.staged_files)
        self._unstaged.extend(entry.unstaged_files)

    def stash_apply(self, cwd: Path, stash_ref: str) -> None:
        self._stash_apply_calls.append((cwd, stash_ref))
        if self._stash_apply_raises is not None:
            raise self._stash_apply_raises
        self._find_stash(stash_ref)

    def stash_apply_unstaged(self, cwd: Path, stash_ref: str) -> None:
        self._unstaged_apply_calls.append((cwd, stash_ref))
        if self._stash_apply_unstaged_raises is not None:
            raise self._stash_apply_unstaged_raises
        self._find_stash(stash_ref)

    def reset_merge(self, cwd: Path) -> None:
        self._reset_merge_calls.append(cwd)

    def stash_drop(self, cwd: Path, stash_ref: str) -> None:
        self._stash_drop_calls.append((cwd, stash_ref))
        self._stashes.remove(self._find_stash(stash_ref))

    def commit(self, cwd: Path, message: str, *, allow_empty: bool = False) -> str:
        if self._commit_raises is not None:
            raise self._commit_raises
        self._commits_made.append((cwd, message, allow_empty))
        self._staged = []
        self._commit_counter += 1
        return f"{self._commit_counter:040d}"

    def push(self, cwd: Path, remote: str, branch: str, *, set_upstream: bool = False) -> None:
        if self._push_raises is not None:
            raise self._push_raises
        self._push_calls.append((cwd, remote, branch, set_upstream))
        self._remote_branches.add(branch)
        self._pushed_branches.add(branch)

    def checkout(self, cwd: Path, ref: str) -> None:
        self._checkout_calls.append((cwd, ref))
        if self._checkout_raises is not None:
            raise self._checkout_raises
        self._current_branch = ref if ref in self._local_branches else None

    def create_branch(self, cwd: Path, branch: str, start_point: str) -> None:
        if self._create_branch_raises is not None:
            raise self._create_branch_raises
        self._created_branches.append((cwd, branch, start_point))
        self._local_branches.add(branch)
        self._current_branch = branch

    def add_worktree(
        self,
        cwd: Path,
        path: Path,
        branch: str,
        *,
        create_branch: bool = False,
        start_point: str | None = None,
    ) -> None:
        if self._add_worktree_raises is not None:
            raise self._add_worktree_raises
        self._worktrees_added.append((path, branch, create_branch, start_point))
        self._local_branches.add(branch)
        self._worktree_paths[branch] = path

    def mark_pr_worktree(self, worktree_path: Path, pr_number: int) -> None:
        self._marked_worktrees.append((worktree_path, pr_number))

    # ============================================================================
    # Mutation Tracking Properties
    # ============================================================================

    @property
    def fetch_calls(self) -> list[tuple[Path, str]]:
        return list(self._fetch_calls)

    @property
    def added(self) -> list[tuple[Path, str]]:
        return list(self._added)

    @property
    def stash_calls(self) -> list[tuple[Path, str | None, bool, bool]]:
        """(cwd, message, keep_index, include_untracked) per stash() call."""
        return list(self._stash_calls)

    @property
    def stash_pop_calls(self) -> list[tuple[Path, str]]:
        return list(self._stash_pop_calls)

    @property
    def stash_apply_calls(self) -> list[tuple[Path, str]]:
        return list(self._stash_apply_calls)

    @property
    def unstaged_apply_calls(self) -> list[tuple[Path, str]]:
        """(cwd, stash_ref) per stash_apply_unstaged() call."""
        return list(self._unstaged_apply_calls)

    @property
    def reset_merge_calls(self) -> list[Path]:
        return list(self._reset_merge_calls)

    @property
    def stash_drop_calls(self) -> list[tuple[Path, str]]:
        return list(self._stash_drop_calls)

    @property
    def stashes(self) -> list[FakeStash]:
        """Stash entries still on the stack, newest first."""
        return list(self._stashes)

    @property
    def commits_made(self) -> list[tuple[Path, str, bool]]:
        """(cwd, message, allow_empty) per commit() call."""
        return list(self._commits_made)

    @property
    def push_calls(self) -> list[tuple[Path, str, str, bool]]:
        return list(self._push_calls)

    @property
    def checkout_calls(self) -> list[tuple[Path, str]]:
        return list(self._checkout_calls)

    @property
    def created_branches(self) -> list[tuple[Path, str, str]]:
        return list(self._created_branches)

    @property
    def worktrees_added(self) -> list[tuple[Path, str, bool, str | None]]:
        """(path, branch, create_branch, start_point) per add_worktree() call."""
        return list(self._worktrees_added)

    @property
    def marked_worktrees(self) -> list[tuple[Path, int]]:
        return list(self._marked_worktrees)

    @property
    def staged(self) -> list[str]:
        return list(self._staged)

    @property
    def unstaged(self) -> list[str]:
        return list(self._unstaged)

    @property
    def branch(self) -> str | None:
        return self._current_branch


class FakeGitHub(GitHub):
    """In-memory fake implementation of GitHub.

    ``prs`` seeds existing pull requests; created PRs are numbered from
    ``next_number`` and become visible to get_pr / get_pr_by_branch.
    """

    def __init__(
        self,
        *,
        available: bool = True,
        prs: list[PullRequestInfo] | None = None,
        next_number: int = 101,
        create_pr_raises: Exception | None = None,
    ) -> None:
        self._available = available
        self._prs: dict[int, PullRequestInfo] = {pr.number: pr for pr in prs or []}
        self._next_number = next_number
        self._create_pr_raises = create_pr_raises
        self._created: list[PullRequestInfo] = []
        self._bodies: dict[int, str] = {}

    def is_available(self) -> bool:
        return self._available

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
        if self._create_pr_raises is not None:
            raise self._create_pr_raises
        number = self._next_number
        self._next_number += 1
        pr = PullRequestInfo(
            number=number,
            title=title,
            state="OPEN",
            url=f"https://github.com/acme/repo/pull/{number}",
            head_branch=head,
            base_branch=base,
            is_draft=draft,
        )
        self._prs[number] = pr
        self._created.append(pr)
        self._bodies[number] = body
        return pr

    def get_pr(self, cwd: Path, pr_number: int) -> PullRequestInfo | None:
        return self._prs.get(pr_number)

    def get_pr_by_branch(self, cwd: Path, branch: str) -> PullRequestInfo | None:
        for pr in self._prs.values():
            if pr.head_branch == branch:
                return pr
        return None

    @property
    def created_prs(self) -> list[PullRequestInfo]:
        return list(self._created)

    @property
    def pr_bodies(self) -> dict[int, str]:
        """Body passed to create_pr(), keyed by PR number."""
        return dict(self._bodies)
