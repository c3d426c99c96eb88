"""Data models for newpr."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class WorktreeType(StrEnum):
    """Kind of worktree the command runs from."""

    MAIN_WORKTREE = "main_worktree"
    PR_WORKTREE = "pr_worktree"
    OTHER = "other"


class CommitRelationship(StrEnum):
    """Relationship of HEAD to origin/<base>."""

    SAME = "same"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGENT = "divergent"
    ANCESTOR = "ancestor"


class Scenario(StrEnum):
    """Classified situation of the working tree."""

    MAIN_CLEAN_SAME = "main_clean_same"
    MAIN_STAGED_SAME = "main_staged_same"
    MAIN_UNSTAGED_SAME = "main_unstaged_same"
    MAIN_BOTH_SAME = "main_both_same"
    MAIN_CLEAN_AHEAD = "main_clean_ahead"
    MAIN_CHANGES_AHEAD = "main_changes_ahead"
    BRANCH_SAME_AS_MAIN = "branch_same_as_main"
    BRANCH_ANCESTOR = "branch_ancestor"
    BRANCH_DIVERGENT = "branch_divergent"
    BRANCH_WITH_CHANGES = "branch_with_changes"
    DETACHED_HEAD = "detached_head"
    PR_WORKTREE = "pr_worktree"


class ActionKey(StrEnum):
    """Named strategy for turning a scenario into a pushed branch and PR."""

    EMPTY_COMMIT = "empty_commit"
    COMMIT_STAGED = "commit_staged"
    COMMIT_ALL = "commit_all"
    STASH_AND_EMPTY = "stash_and_empty"
    USE_COMMITS = "use_commits"
    PUSH_THEN_BRANCH = "push_then_branch"
    USE_COMMITS_AND_COMMIT_ALL = "use_commits_and_commit_all"
    USE_COMMITS_AND_STASH = "use_commits_and_stash"
    CREATE_PR_FOR_BRANCH = "create_pr_for_branch"
    PR_FOR_BRANCH_COMMIT_ALL = "pr_for_branch_commit_all"
    PR_FOR_BRANCH_STASH = "pr_for_branch_stash"
    BRANCH_FROM_DETACHED = "branch_from_detached"


class BranchFrom(StrEnum):
    """Start point of the new branch."""

    HEAD = "head"
    ORIGIN_MAIN = "origin_main"


class MessageLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class GitState:
    """Snapshot of repository and worktree facts relative to a base branch."""

    current_branch: str | None
    base_branch: str = "main"
    worktree_type: WorktreeType = WorktreeType.MAIN_WORKTREE
    same_as_base: bool = False
    is_ancestor_of_base: bool = False
    ahead: int = 0
    behind: int = 0
    staged_files: tuple[str, ...] = ()
    unstaged_files: tuple[str, ...] = ()
    local_commits: tuple[str, ...] = ()
    repo_root: Path = field(default_factory=Path)
    repo_name: str = ""

    @property
    def relationship(self) -> CommitRelationship:
        """Collapse the raw counters into a single relationship."""
        if self.same_as_base:
            return CommitRelationship.SAME
        if self.is_ancestor_of_base:
            return CommitRelationship.ANCESTOR
        has_unique = self.ahead > 0 or bool(self.local_commits)
        if has_unique and self.behind > 0:
            return CommitRelationship.DIVERGENT
        if has_unique:
            return CommitRelationship.AHEAD
        return CommitRelationship.BEHIND

    @property
    def has_staged_changes(self) -> bool:
        return bool(self.staged_files)

    @property
    def has_unstaged_changes(self) -> bool:
        return bool(self.unstaged_files)

    @property
    def has_changes(self) -> bool:
        return self.has_staged_changes or self.has_unstaged_changes


@dataclass(frozen=True)
class StateAction:
    """An action chosen for a scenario."""

    action: ActionKey
    branch_from: BranchFrom = BranchFrom.ORIGIN_MAIN
    stash_unstaged: bool = False


@dataclass(frozen=True)
class Choice:
    """A labelled choice; ``action=None`` is an informational entry such as cancel."""

    label: str
    action: StateAction | None


@dataclass(frozen=True)
class ScenarioContext:
    """Message and ranked choices for a scenario."""

    message: str
    choices: tuple[Choice, ...]
    sub_message: str | None = None
    level: MessageLevel = MessageLevel.INFO


@dataclass(frozen=True)
class ActionResult:
    """Outcome of the pre-branch step of an action."""

    success: bool
    message: str = ""
    stash_ref: str | None = None


@dataclass(frozen=True)
class AheadBehind:
    """Commit counts ahead/behind a reference."""

    ahead: int
    behind: int


@dataclass(frozen=True)
class ParsedWorktree:
    """Raw worktree data from git worktree list."""

    path: Path
    branch: str
    head: str
    is_main: bool = False


@dataclass(frozen=True)
class PullRequestInfo:
    """Information about a pull request."""

    number: int
    title: str
    state: str
    url: str
    head_branch: str
    base_branch: str
    is_draft: bool = False


@dataclass(frozen=True)
class AvailableAction:
    key: ActionKey
    label: str


@dataclass(frozen=True)
class StateReport:
    """Structured answer to "what situation is this tree in"."""

    scenario: Scenario
    description: str
    current_branch: str | None
    base_branch: str
    worktree_type: WorktreeType
    has_changes: bool
    has_staged_changes: bool
    has_unstaged_changes: bool
    local_commits: tuple[str, ...]
    staged_files: tuple[str, ...]
    unstaged_files: tuple[str, ...]
    available_actions: tuple[AvailableAction, ...]
    recommended_action: ActionKey | None


@dataclass(frozen=True)
class CreatePrResult:
    """Result of a create-PR workflow run."""

    pr_number: int
    pr_url: str
    branch: str
    worktree_path: Path
    draft: bool
    created: bool
    scenario: Scenario | None = None
    action_taken: ActionKey | None = None
    warnings: tuple[str, ...] = ()
