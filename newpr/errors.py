"""Error types for newpr.

Every error carries an ``ErrorCode`` so the CLI can report failures in a
machine-readable envelope.
"""

from collections.abc import Sequence
from enum import StrEnum


class ErrorCode(StrEnum):
    NOT_GIT_REPO = "NOT_GIT_REPO"
    DETACHED_HEAD = "DETACHED_HEAD"
    BRANCH_EXISTS = "BRANCH_EXISTS"
    WORKTREE_EXISTS = "WORKTREE_EXISTS"
    STASH_FAILED = "STASH_FAILED"
    GIT_FAILED = "GIT_FAILED"
    GH_NOT_AVAILABLE = "GH_NOT_AVAILABLE"
    GH_FAILED = "GH_FAILED"
    PR_NOT_FOUND = "PR_NOT_FOUND"
    INVALID_CONFIG = "INVALID_CONFIG"
    USER_CANCELLED = "USER_CANCELLED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_ACTION = "INVALID_ACTION"
    ACTION_NOT_AVAILABLE = "ACTION_NOT_AVAILABLE"
    AMBIGUOUS_STATE = "AMBIGUOUS_STATE"
    HOOK_FAILED = "HOOK_FAILED"
    OPERATION_FAILED = "OPERATION_FAILED"


class NewprError(Exception):
    """Base class for all newpr failures."""

    code = ErrorCode.OPERATION_FAILED

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class GitError(NewprError):
    """Git command failed."""

    code = ErrorCode.GIT_FAILED

    def __init__(self, cmd: Sequence[str], stderr: str) -> None:
        self.cmd = list(cmd)
        self.stderr = stderr
        super().__init__(f"git {' '.join(cmd)}: {stderr}")


class GitHubError(NewprError):
    """gh command failed or returned something unparseable."""

    code = ErrorCode.GH_FAILED


class GhNotAvailableError(NewprError):
    code = ErrorCode.GH_NOT_AVAILABLE


class NotGitRepoError(NewprError):
    code = ErrorCode.NOT_GIT_REPO


class ConfigError(NewprError):
    """Repository configuration is invalid."""

    code = ErrorCode.INVALID_CONFIG


class HookError(NewprError):
    """Hook configuration or execution failed."""

    code = ErrorCode.HOOK_FAILED


class InvalidArgumentError(NewprError):
    code = ErrorCode.INVALID_ARGUMENT


class InvalidActionError(NewprError):
    """The action key is not one of the known keys."""

    code = ErrorCode.INVALID_ACTION


class ActionNotAvailableError(NewprError):
    """The action key is valid but not offered for the current scenario."""

    code = ErrorCode.ACTION_NOT_AVAILABLE

    def __init__(self, action: str, scenario: str, available: Sequence[str]) -> None:
        self.action = action
        self.scenario = scenario
        self.available = list(available)
        super().__init__(
            f"Action '{action}' is not available for scenario '{scenario}'. "
            f"Available: {', '.join(self.available) or 'none'}",
            details={"availableActions": self.available},
        )


class DetachedHeadError(NewprError):
    code = ErrorCode.DETACHED_HEAD


class AmbiguousStateError(NewprError):
    """The tree is in a state the workflow refuses to guess about."""

    code = ErrorCode.AMBIGUOUS_STATE


class ActionFailedError(NewprError):
    code = ErrorCode.OPERATION_FAILED


class BranchExistsError(NewprError):
    code = ErrorCode.BRANCH_EXISTS


class WorktreeExistsError(NewprError):
    code = ErrorCode.WORKTREE_EXISTS


class PrNotFoundError(NewprError):
    code = ErrorCode.PR_NOT_FOUND


class UserCancelledError(NewprError):
    code = ErrorCode.USER_CANCELLED

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)
