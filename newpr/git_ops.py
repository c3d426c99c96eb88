"""Git subprocess operations."""

import re
import subprocess
from pathlib import Path
from typing import Sequence

from newpr.errors import GitError
from newpr.models import AheadBehind, ParsedWorktree

PR_WORKTREE_MARKER = "newpr-pr"
NO_LOCAL_CHANGES = "No local changes to save"


def run(
    args: Sequence[str],
    cwd: Path | None = None,
    *,
    strip: bool = True,
    input: str | None = None,
) -> str:
    """Run a git command and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=False,
        input=input,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    if result.returncode != 0:
        raise GitError(args, result.stderr.strip() or result.stdout.strip())
    return result.stdout.strip() if strip else result.stdout


def try_run(args: Sequence[str], cwd: Path | None = None) -> str | None:
    """Run a git command, returning None on failure."""
    try:
        return run(args, cwd=cwd)
    except GitError:
        return None


def get_repo_root(cwd: Path) -> Path:
    """Get the top-level directory of the worktree containing cwd."""
    return Path(run(["rev-parse", "--show-toplevel"], cwd=cwd)).resolve()


def get_repo_name(repo_root: Path) -> str:
    """Get the repository name from the origin URL, falling back to the directory name."""
    remote = try_run(["remote", "get-url", "origin"], cwd=repo_root)
    if remote:
        match = re.search(r"[/:]([^/:]+?)(?:\.git)?/?$", remote.strip())
        if match:
            return match.group(1)
    return repo_root.name


def get_current_branch(cwd: Path) -> str | None:
    """Get the checked out branch, or None when HEAD is detached."""
    return try_run(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=cwd)


def get_head_commit(cwd: Path) -> str:
    return run(["rev-parse", "HEAD"], cwd=cwd)


def get_ref_commit(cwd: Path, ref: str) -> str | None:
    """Resolve a ref to a commit SHA, or None if it does not exist."""
    return try_run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=cwd)


def is_ancestor(cwd: Path, ancestor: str, descendant: str) -> bool:
    return try_run(["merge-base", "--is-ancestor", ancestor, descendant], cwd=cwd) is not None


def count_ahead_behind(cwd: Path, left: str, right: str) -> AheadBehind:
    """Count commits ahead and behind between two refs."""
    out = try_run(["rev-list", "--left-right", "--count", f"{left}...{right}"], cwd=cwd)
    if not out:
        return AheadBehind(0, 0)
    parts = out.split()
    if len(parts) != 2:
        return AheadBehind(0, 0)
    return AheadBehind(ahead=int(parts[0]), behind=int(parts[1]))


def count_commits(cwd: Path, ref: str) -> int:
    out = try_run(["rev-list", "--count", ref], cwd=cwd)
    return int(out) if out and out.isdigit() else 0


def list_commits(cwd: Path, revision_range: str) -> list[str]:
    """List one-line commit summaries in a range, newest first."""
    out = try_run(["log", "--format=%h %s", revision_range], cwd=cwd)
    if not out:
        return []
    return [line for line in out.splitlines() if line.strip()]


def _status_entries(cwd: Path) -> list[tuple[str, str]]:
    """Parse ``git status --porcelain -z`` into (XY, path) pairs.

    With -z paths are never quoted, and a rename or copy is followed by an
    extra field holding the source path.
    """
    out = run(["status", "--porcelain", "-z"], cwd=cwd, strip=False)
    fields = out.split("\0")
    entries: list[tuple[str, str]] = []
    index = 0
    while index < len(fields):
        field = fields[index]
        index += 1
        if len(field) < 4:
            continue
        status = field[:2]
        if status[0] in ("R", "C"):
            index += 1
        entries.append((status, field[3:]))
    return entries


def get_staged_files(cwd: Path) -> list[str]:
    """List paths with changes in the index."""
    return [path for status, path in _status_entries(cwd) if status[0] not in (" ", "?")]


def get_unstaged_files(cwd: Path) -> list[str]:
    """List modified-but-unstaged and untracked paths."""
    return [
        path
        for status, path in _status_entries(cwd)
        if status[1] != " " or status[0] == "?"
    ]


def get_git_dir(cwd: Path) -> Path:
    return Path(run(["rev-parse", "--absolute-git-dir"], cwd=cwd)).resolve()


def get_common_dir(cwd: Path) -> Path:
    common_dir = Path(run(["rev-parse", "--git-common-dir"], cwd=cwd))
    if not common_dir.is_absolute():
        common_dir = cwd / common_dir
    return common_dir.resolve()


def read_pr_marker(cwd: Path) -> int | None:
    """Read the PR number recorded in the worktree's administrative directory."""
    marker = get_git_dir(cwd) / PR_WORKTREE_MARKER
    if not marker.is_file():
        return None
    content = marker.read_text(encoding="utf-8").strip()
    return int(content) if content.isdigit() else None


def write_pr_marker(worktree_path: Path, pr_number: int) -> None:
    """Record the PR number in the worktree's administrative directory."""
    marker = get_git_dir(worktree_path) / PR_WORKTREE_MARKER
    marker.write_text(f"{pr_number}\n", encoding="utf-8")


def parse_worktrees(repo_root: Path | None = None) -> list[ParsedWorktree]:
    """Parse the output of git worktree list --porcelain."""
    output = run(["worktree", "list", "--porcelain"], cwd=repo_root)
    worktrees: list[ParsedWorktree] = []
    current_path = ""
    current_branch = ""
    current_head = ""
    current_is_bare = False

    def flush() -> None:
        if current_path and not current_is_bare and (current_branch or current_head):
            worktrees.append(
                ParsedWorktree(
                    path=Path(current_path),
                    branch=current_branch,
                    head=current_head,
                    is_main=not worktrees,
                )
            )

    for line in output.splitlines():
        if line.startswith("worktree "):
            flush()
            current_path = line.split(" ", 1)[1]
            current_branch = ""
            current_head = ""
            current_is_bare = False
        elif line.startswith("branch "):
            ref = line.split(" ", 1)[1]
            current_branch = ref.removeprefix("refs/heads/")
        elif line.startswith("HEAD "):
            current_head = line.split(" ", 1)[1]
        elif line.startswith("detached"):
            current_branch = "(detached)"
        elif line.startswith("bare"):
            current_is_bare = True

    flush()
    return worktrees


def get_upstream(cwd: Path, ref_name: str) -> str | None:
    """Get the upstream tracking branch for a ref."""
    return try_run(["rev-parse", "--abbrev-ref", f"{ref_name}@{{upstream}}"], cwd=cwd)


def branch_exists(cwd: Path, branch: str) -> bool:
    """Check if a local branch exists."""
    return try_run(["show-ref", "--verify", f"refs/heads/{branch}"], cwd=cwd) is not None


def remote_branch_exists(cwd: Path, branch: str) -> bool:
    """Check if a remote branch exists on origin."""
    out = try_run(["ls-remote", "--heads", "origin", branch], cwd=cwd)
    return bool(out and out.strip())


def has_unpushed_commits(cwd: Path, branch: str) -> bool:
    """Check if a branch has commits not pushed to upstream."""
    upstream = get_upstream(cwd, branch)
    if not upstream:
        return True
    ab = count_ahead_behind(cwd, branch, upstream)
    return ab.ahead > 0


def fetch(cwd: Path, remote: str) -> None:
    run(["fetch", remote], cwd=cwd)


def add(cwd: Path, pattern: str) -> None:
    run(["add", "--", pattern], cwd=cwd)


def stash_push(
    cwd: Path,
    message: str | None = None,
    *,
    keep_index: bool = False,
    include_untracked: bool = False,
) -> str | None:
    """Stash changes and return the stash commit SHA, or None if nothing was stashed."""
    args = ["stash", "push"]
    if keep_index:
        args.append("--keep-index")
    if include_untracked:
        args.append("--include-untracked")
    if message:
        args.extend(["-m", message])
    out = run(args, cwd=cwd)
    if NO_LOCAL_CHANGES in out:
        return None
    return run(["rev-parse", "stash@{0}"], cwd=cwd)


def resolve_stash_entry(cwd: Path, stash_ref: str) -> str:
    """Map a stash commit SHA to its current stash@{n} slot."""
    if stash_ref.startswith("stash@{"):
        return stash_ref
    out = run(["stash", "list", "--format=%H"], cwd=cwd)
    for index, sha in enumerate(out.splitlines()):
        if sha.strip() == stash_ref:
            return f"stash@{{{index}}}"
    raise GitError(["stash", "list"], f"stash {stash_ref} not found")


def stash_apply(cwd: Path, stash_ref: str) -> None:
    run(["stash", "apply", stash_ref], cwd=cwd)


def stash_apply_unstaged(cwd: Path, stash_ref: str) -> None:
    """Apply only the unstaged part of a stash taken with --keep-index.

    The stash's index commit (``<ref>^2``) holds the staged changes that were
    already committed elsewhere, so only the diff from it to the stashed
    worktree is applied, plus any untracked files kept in ``<ref>^3``.
    ``git apply`` is all-or-nothing: on failure no file has been touched.
    """
    patch = run(["diff", "--binary", f"{stash_ref}^2", stash_ref], cwd=cwd, strip=False)
    if patch.strip():
        run(["apply", "--whitespace=nowarn"], cwd=cwd, input=patch)

    untracked = f"{stash_ref}^3"
    if get_ref_commit(cwd, untracked) is None:
        return
    out = run(["ls-tree", "-r", "-z", "--name-only", untracked], cwd=cwd, strip=False)
    paths = [path for path in out.split("\0") if path]
    if paths:
        run(["checkout", untracked, "--", *paths], cwd=cwd)
        run(["reset", "--quiet", "--", *paths], cwd=cwd)


def reset_merge(cwd: Path) -> None:
    """Back out a conflicted merge or apply, keeping unrelated local changes."""
    run(["reset", "--merge"], cwd=cwd)


def stash_pop(cwd: Path, stash_ref: str) -> None:
    run(["stash", "pop", resolve_stash_entry(cwd, stash_ref)], cwd=cwd)


def stash_drop(cwd: Path, stash_ref: str) -> None:
    run(["stash", "drop", resolve_stash_entry(cwd, stash_ref)], cwd=cwd)


def commit(cwd: Path, message: str, *, allow_empty: bool = False) -> str:
    """Create a commit and return its SHA."""
    args = ["commit", "-m", message]
    if allow_empty:
        args.append("--allow-empty")
    run(args, cwd=cwd)
    return get_head_commit(cwd)


def push(cwd: Path, remote: str, branch: str, *, set_upstream: bool = False) -> None:
    args = ["push"]
    if set_upstream:
        args.append("-u")
    run([*args, remote, branch], cwd=cwd)


def checkout(cwd: Path, ref: str) -> None:
    run(["checkout", ref], cwd=cwd)


def checkout_new_branch(cwd: Path, branch: str, start_point: str) -> None:
    run(["checkout", "-b", branch, start_point], cwd=cwd)


def worktree_add(cwd: Path, path: Path, branch: str, base: str | None = None) -> None:
    """Add a new worktree, creating the branch at base when given."""
    ensure_worktree_parent(path)
    if base:
        run(["worktree", "add", "-b", branch, str(path), base], cwd=cwd)
    else:
        run(["worktree", "add", str(path), branch], cwd=cwd)


def ensure_worktree_parent(path: Path) -> None:
    """Ensure the parent directory of a worktree path exists."""
    parent = path.parent
    if parent:
        parent.mkdir(parents=True, exist_ok=True)
