from __future__ import annotations

from pathlib import Path

import pytest

from newpr.actions import (
    WIP_COMMIT_MESSAGE,
    commits_to_current_branch,
    describe_action,
    execute,
    get_branch_point,
    involves_stashing,
    is_existing_branch_action,
    needs_push_to_base,
    requires_stage_all,
)
from newpr.errors import GitError
from newpr.fakes import FakeGit
from newpr.models import ActionKey, BranchFrom, StateAction

CWD = Path("/repo")
STASHING = {ActionKey.STASH_AND_EMPTY, ActionKey.USE_COMMITS_AND_STASH, ActionKey.PR_FOR_BRANCH_STASH}


def _dirty_git(**kwargs: object) -> FakeGit:
    return FakeGit(staged_files=["a.py"], unstaged_files=["b.py"], **kwargs)  # type: ignore[arg-type]


@pytest.mark.parametrize("key", list(ActionKey))
def test_stash_ref_only_for_stashing_actions(key: ActionKey) -> None:
    git = _dirty_git()
    result = execute(StateAction(key), "Add thing", "feat/add-thing-abc123", git, CWD)
    assert result.success is True
    assert (result.stash_ref is not None) == (key in STASHING)
    assert involves_stashing(StateAction(key)) == (key in STASHING)


@pytest.mark.parametrize(
    "key",
    [
        ActionKey.EMPTY_COMMIT,
        ActionKey.COMMIT_STAGED,
        ActionKey.USE_COMMITS,
        ActionKey.BRANCH_FROM_DETACHED,
        ActionKey.CREATE_PR_FOR_BRANCH,
    ],
)
def test_actions_without_side_effects(key: ActionKey) -> None:
    git = _dirty_git()
    execute(StateAction(key), "desc", "feat/x", git, CWD)
    assert git.added == []
    assert git.stash_calls == []
    assert git.push_calls == []
    assert git.commits_made == []


@pytest.mark.parametrize("key", [ActionKey.COMMIT_ALL, ActionKey.USE_COMMITS_AND_COMMIT_ALL])
def test_stage_all_actions(key: ActionKey) -> None:
    git = _dirty_git()
    execute(StateAction(key), "desc", "feat/x", git, CWD)
    assert git.added == [(CWD, ".")]
    assert git.staged == ["a.py", "b.py"]
    assert requires_stage_all(StateAction(key))


def test_stash_and_empty_names_target_branch() -> None:
    git = _dirty_git()
    result = execute(StateAction(ActionKey.STASH_AND_EMPTY), "desc", "feat/x-1a2b3c", git, CWD)
    assert result.stash_ref == "stash-1"
    assert git.stash_calls == [
        (CWD, "newpr: auto-stash before creating feat/x-1a2b3c", False, True)
    ]
    assert git.staged == []
    assert git.unstaged == []


def test_push_then_branch_pushes_configured_base() -> None:
    git = FakeGit(current_branch="develop")
    execute(
        StateAction(ActionKey.PUSH_THEN_BRANCH), "desc", "feat/x", git, CWD, base_branch="develop"
    )
    assert git.push_calls == [(CWD, "origin", "develop", False)]
    assert needs_push_to_base(StateAction(ActionKey.PUSH_THEN_BRANCH))


def test_pr_for_branch_commit_all_commits_wip() -> None:
    git = _dirty_git(current_branch="feat/x")
    action = StateAction(ActionKey.PR_FOR_BRANCH_COMMIT_ALL, BranchFrom.HEAD)
    result = execute(action, "desc", "feat/x", git, CWD)
    assert result.success
    assert git.added == [(CWD, ".")]
    assert git.commits_made == [(CWD, WIP_COMMIT_MESSAGE, False)]
    assert commits_to_current_branch(action)


def test_failure_is_reported_not_raised() -> None:
    git = _dirty_git(add_raises=GitError(["add", "--", "."], "index.lock exists"))
    result = execute(StateAction(ActionKey.COMMIT_ALL), "desc", "feat/x", git, CWD)
    assert result.success is False
    assert result.message.startswith("Staging and committing all changes: ")
    assert "index.lock exists" in result.message
    assert result.stash_ref is None


def test_failed_stash_reports_no_ref() -> None:
    git = _dirty_git(stash_raises=GitError(["stash", "push"], "cannot stash"))
    result = execute(StateAction(ActionKey.PR_FOR_BRANCH_STASH), "desc", "feat/x", git, CWD)
    assert result.success is False
    assert result.stash_ref is None


def test_stash_on_clean_tree_returns_no_ref() -> None:
    git = FakeGit()
    result = execute(StateAction(ActionKey.STASH_AND_EMPTY), "desc", "feat/x", git, CWD)
    assert result.success is True
    assert result.stash_ref is None


def test_get_branch_point() -> None:
    assert get_branch_point(StateAction(ActionKey.USE_COMMITS, BranchFrom.HEAD), "main") == "HEAD"
    assert get_branch_point(StateAction(ActionKey.EMPTY_COMMIT), "develop") == "origin/develop"


def test_existing_branch_actions() -> None:
    existing = {key for key in ActionKey if is_existing_branch_action(StateAction(key))}
    assert existing == {
        ActionKey.CREATE_PR_FOR_BRANCH,
        ActionKey.PR_FOR_BRANCH_COMMIT_ALL,
        ActionKey.PR_FOR_BRANCH_STASH,
    }


def test_every_action_has_a_description() -> None:
    descriptions = {describe_action(StateAction(key)) for key in ActionKey}
    assert len(descriptions) == len(ActionKey)


def test_cwd_defaults_to_current_directory(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    git = _dirty_git()
    result = execute(StateAction(ActionKey.COMMIT_ALL), "Add thing", "feat/x", git)
    assert result.success is True
    assert git.added == [(Path.cwd(), ".")]
