from __future__ import annotations

import logging
from pathlib import Path

import pytest

from newpr.config import WorktreeConfig
from newpr.context import NewprContext
from newpr.errors import (
    ActionFailedError,
    ActionNotAvailableError,
    AmbiguousStateError,
    BranchExistsError,
    DetachedHeadError,
    GhNotAvailableError,
    GitError,
    GitHubError,
    HookError,
    PrNotFoundError,
    UserCancelledError,
    WorktreeExistsError,
)
from newpr.fakes import FakeGit, FakeGitHub
from newpr.hooks import HookRunner
from newpr.models import ActionKey, AheadBehind, PullRequestInfo, Scenario
from newpr.workflow import (
    FETCH_WARNING,
    UNSTAGED_STASH_MESSAGE,
    create_pr,
    create_pr_for_existing_branch,
    setup_pr_worktree,
    title_from_branch,
)

BRANCH = "feat/add-dark-mode-abc123"


@pytest.fixture
def root(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    return path


def _ctx(
    git: FakeGit,
    github: FakeGitHub | None = None,
    *,
    config: WorktreeConfig | None = None,
    hooks: dict[str, tuple[str, ...]] | None = None,
) -> NewprContext:
    repo_root = git.repo_root(Path("."))
    return NewprContext(
        git=git,
        github=github or FakeGitHub(),
        hooks=HookRunner(hooks or {}, repo_root),
        config=config or WorktreeConfig(),
        cwd=repo_root,
    )


def _worktree(root: Path, number: int) -> Path:
    return (root.parent / f"repo.pr{number}").resolve()


def _pr(number: int, head: str, state: str = "OPEN") -> PullRequestInfo:
    return PullRequestInfo(
        number=number,
        title=head,
        state=state,
        url=f"https://github.com/acme/repo/pull/{number}",
        head_branch=head,
        base_branch="main",
    )


def _boom(*cmd: str) -> GitError:
    return GitError(list(cmd), "boom")


def test_clean_main_creates_branch_pr_and_worktree(root: Path) -> None:
    git = FakeGit(repo_root=root)
    github = FakeGitHub()

    result = create_pr(_ctx(git, github), "Add dark mode", branch_name=BRANCH)

    assert git.fetch_calls == [(root, "origin")]
    assert git.created_branches == [(root, BRANCH, "origin/main")]
    assert git.commits_made == [
        (root, f"chore: initialize {BRANCH}\n\nBranch created for: Add dark mode", True)
    ]
    assert git.push_calls == [(root, "origin", BRANCH, True)]
    assert git.checkout_calls == [(root, "main")]
    assert git.branch == "main"

    pr = github.created_prs[0]
    assert pr.title == "Add dark mode"
    assert pr.base_branch == "main"
    assert pr.head_branch == BRANCH
    assert pr.is_draft is False

    path = _worktree(root, 101)
    assert git.worktrees_added == [(path, BRANCH, False, None)]
    assert git.marked_worktrees == [(path, 101)]
    assert result.pr_number == 101
    assert result.created is True
    assert result.worktree_path == path
    assert result.scenario == Scenario.MAIN_CLEAN_SAME
    assert result.action_taken == ActionKey.EMPTY_COMMIT
    assert result.warnings == ()


def test_generated_branch_name(root: Path) -> None:
    result = create_pr(_ctx(FakeGit(repo_root=root)), "Add dark mode")
    assert result.branch.startswith("feat/add-dark-mode-")
    assert len(result.branch) == len("feat/add-dark-mode-") + 6


def test_commit_staged_branches_from_head(root: Path) -> None:
    git = FakeGit(repo_root=root, staged_files=["a.py"])
    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH)
    assert result.scenario == Scenario.MAIN_STAGED_SAME
    assert git.created_branches == [(root, BRANCH, "HEAD")]
    assert git.commits_made == [(root, "feat: Fix login", False)]


def test_both_same_moves_unstaged_changes_into_worktree(root: Path) -> None:
    git = FakeGit(repo_root=root, staged_files=["a.py"], unstaged_files=["b.py"])
    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH)

    assert result.action_taken == ActionKey.COMMIT_STAGED
    assert git.stash_calls == [(root, UNSTAGED_STASH_MESSAGE, True, True)]
    assert git.commits_made == [(root, "feat: Fix login", False)]
    path = _worktree(root, 101)
    assert git.unstaged_apply_calls == [(path, "stash-1")]
    assert git.stash_apply_calls == []
    assert git.stash_drop_calls == [(root, "stash-1")]
    assert git.stashes == []


def test_stash_and_empty_applies_stash_into_worktree(root: Path) -> None:
    git = FakeGit(repo_root=root, unstaged_files=["b.py"])
    create_pr(
        _ctx(git), "Fix login", branch_name=BRANCH, action_key=ActionKey.STASH_AND_EMPTY
    )

    assert git.stash_calls == [(root, f"newpr: auto-stash before creating {BRANCH}", False, True)]
    assert git.commits_made[0][2] is True
    assert git.stash_apply_calls == [(_worktree(root, 101), "stash-1")]
    assert git.stash_pop_calls == []
    assert git.stashes == []


def test_failed_stash_apply_becomes_warning(root: Path) -> None:
    git = FakeGit(
        repo_root=root,
        unstaged_files=["b.py"],
        stash_apply_raises=_boom("stash", "apply"),
    )
    result = create_pr(
        _ctx(git), "Fix login", branch_name=BRANCH, action_key=ActionKey.STASH_AND_EMPTY
    )
    assert any("kept in stash stash-1" in warning for warning in result.warnings)
    assert git.reset_merge_calls == [_worktree(root, 101)]
    assert git.stash_pop_calls == []
    assert git.stash_drop_calls == []
    assert len(git.stashes) == 1


def test_conflicting_unstaged_changes_are_reset_and_kept(root: Path) -> None:
    git = FakeGit(
        repo_root=root,
        staged_files=["a.py"],
        unstaged_files=["a.py"],
        stash_apply_unstaged_raises=_boom("apply"),
    )

    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH)

    path = _worktree(root, 101)
    assert git.unstaged_apply_calls == [(path, "stash-1")]
    assert git.reset_merge_calls == [path]
    assert git.stash_drop_calls == []
    assert [entry.ref for entry in git.stashes] == ["stash-1"]
    assert result.warnings == (
        f"Failed to apply unstaged changes to worktree {path}. They are kept in stash stash-1.",
    )


def test_branch_creation_failure_pops_stash_exactly_once(root: Path) -> None:
    git = FakeGit(
        repo_root=root,
        unstaged_files=["b.py"],
        create_branch_raises=_boom("checkout", "-b"),
    )
    github = FakeGitHub()

    with pytest.raises(GitError):
        create_pr(
            _ctx(git, github),
            "Fix login",
            branch_name=BRANCH,
            action_key=ActionKey.STASH_AND_EMPTY,
        )

    assert git.stash_pop_calls == [(root, "stash-1")]
    assert git.unstaged == ["b.py"]
    assert git.stashes == []
    assert git.push_calls == []
    assert github.created_prs == []


def test_push_failure_returns_to_original_branch(root: Path) -> None:
    git = FakeGit(repo_root=root, unstaged_files=["b.py"], push_raises=_boom("push"))

    with pytest.raises(GitError):
        create_pr(
            _ctx(git), "Fix login", branch_name=BRANCH, action_key=ActionKey.STASH_AND_EMPTY
        )

    assert git.checkout_calls == [(root, "main")]
    assert git.branch == "main"
    assert git.stash_pop_calls == [(root, "stash-1")]


def test_pr_creation_failure_restores_stash(root: Path) -> None:
    git = FakeGit(repo_root=root, unstaged_files=["b.py"])
    github = FakeGitHub(create_pr_raises=GitHubError("gh pr create: HTTP 502"))

    with pytest.raises(GitHubError):
        create_pr(
            _ctx(git, github),
            "Fix login",
            branch_name=BRANCH,
            action_key=ActionKey.STASH_AND_EMPTY,
        )

    assert git.checkout_calls == [(root, "main")]
    assert git.stash_pop_calls == [(root, "stash-1")]
    assert git.worktrees_added == []


def test_pop_failure_is_logged_and_original_error_surfaces(
    root: Path, caplog: pytest.LogCaptureFixture
) -> None:
    git = FakeGit(
        repo_root=root,
        unstaged_files=["b.py"],
        create_branch_raises=GitError(["checkout", "-b"], "original failure"),
        stash_pop_raises=GitError(["stash", "pop"], "conflict"),
    )

    with caplog.at_level(logging.WARNING, logger="newpr.workflow"):
        with pytest.raises(GitError) as excinfo:
            create_pr(
                _ctx(git),
                "Fix login",
                branch_name=BRANCH,
                action_key=ActionKey.STASH_AND_EMPTY,
            )

    assert excinfo.value.stderr == "original failure"
    assert len(git.stash_pop_calls) == 1
    assert "Could not restore stashed changes" in caplog.text


def test_unapplied_unstaged_stash_is_reported_not_popped(
    root: Path, caplog: pytest.LogCaptureFixture
) -> None:
    git = FakeGit(
        repo_root=root,
        staged_files=["a.py"],
        unstaged_files=["b.py"],
        push_raises=_boom("push"),
    )

    with caplog.at_level(logging.WARNING, logger="newpr.workflow"):
        with pytest.raises(GitError):
            create_pr(_ctx(git), "Fix login", branch_name=BRANCH)

    assert git.stash_pop_calls == []
    assert len(git.stashes) == 1
    assert "still stashed" in caplog.text


def test_action_failure_raises_before_branching(root: Path) -> None:
    git = FakeGit(repo_root=root, unstaged_files=["b.py"], add_raises=_boom("add"))
    with pytest.raises(ActionFailedError) as excinfo:
        create_pr(_ctx(git), "Fix login", branch_name=BRANCH)
    assert "Staging and committing all changes" in excinfo.value.message
    assert git.created_branches == []


def test_pr_worktree_is_ambiguous(root: Path) -> None:
    git = FakeGit(repo_root=root, linked_worktree=True, pr_marker=5)
    with pytest.raises(AmbiguousStateError):
        create_pr(_ctx(git), "Fix login")
    assert git.created_branches == []


def test_explicit_action_must_be_offered(root: Path) -> None:
    git = FakeGit(repo_root=root)
    with pytest.raises(ActionNotAvailableError):
        create_pr(_ctx(git), "Fix login", action_key=ActionKey.COMMIT_ALL)
    assert git.stash_calls == []
    assert git.added == []


def test_chooser_picks_action(root: Path) -> None:
    git = FakeGit(repo_root=root, staged_files=["a.py"])
    seen: list[Scenario] = []

    def chooser(scenario, context):  # type: ignore[no-untyped-def]
        seen.append(scenario)
        return context.choices[1].action

    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH, chooser=chooser)
    assert seen == [Scenario.MAIN_STAGED_SAME]
    assert result.action_taken == ActionKey.EMPTY_COMMIT
    assert git.created_branches == [(root, BRANCH, "origin/main")]


def test_chooser_cancel(root: Path) -> None:
    git = FakeGit(repo_root=root)
    with pytest.raises(UserCancelledError):
        create_pr(_ctx(git), "Fix login", chooser=lambda scenario, context: None)
    assert git.created_branches == []


def test_existing_remote_branch_with_pr_gets_worktree(root: Path) -> None:
    git = FakeGit(repo_root=root, remote_branches={"feat/x-1"})
    github = FakeGitHub(prs=[_pr(7, "feat/x-1")])

    result = create_pr(_ctx(git, github), "Fix login", branch_name="feat/x-1")

    assert result.created is False
    assert result.pr_number == 7
    assert git.worktrees_added == [(_worktree(root, 7), "feat/x-1", True, "origin/feat/x-1")]
    assert git.created_branches == []
    assert git.stash_calls == []
    assert github.created_prs == []


def test_existing_remote_branch_without_pr(root: Path) -> None:
    git = FakeGit(repo_root=root, remote_branches={"feat/x-1"})
    with pytest.raises(BranchExistsError):
        create_pr(_ctx(git), "Fix login", branch_name="feat/x-1")
    assert git.created_branches == []


def test_existing_remote_branch_with_merged_pr(root: Path) -> None:
    git = FakeGit(repo_root=root, remote_branches={"feat/x-1"})
    github = FakeGitHub(prs=[_pr(7, "feat/x-1", state="MERGED")])

    with pytest.raises(BranchExistsError, match="no open PR"):
        create_pr(_ctx(git, github), "Fix login", branch_name="feat/x-1")

    assert git.worktrees_added == []
    assert git.created_branches == []
    assert github.created_prs == []


def test_fetch_failure_becomes_warning(root: Path) -> None:
    git = FakeGit(repo_root=root, fetch_raises=_boom("fetch", "origin"))
    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH)
    assert result.warnings == (FETCH_WARNING,)


def test_requires_github_cli(root: Path) -> None:
    with pytest.raises(GhNotAvailableError):
        create_pr(_ctx(FakeGit(repo_root=root), FakeGitHub(available=False)), "Fix login")


def test_detached_head_returns_to_original_commit(root: Path) -> None:
    git = FakeGit(repo_root=root, current_branch=None)
    result = create_pr(_ctx(git), "Fix login", branch_name=BRANCH)

    assert result.action_taken == ActionKey.BRANCH_FROM_DETACHED
    assert git.created_branches == [(root, BRANCH, "HEAD")]
    assert git.commits_made == []
    assert git.checkout_calls == [(root, "a" * 40)]
    assert git.branch is None


def test_draft_from_config(root: Path) -> None:
    github = FakeGitHub()
    result = create_pr(
        _ctx(FakeGit(repo_root=root), github, config=WorktreeConfig(draft_pr=True)),
        "Fix login",
        branch_name=BRANCH,
    )
    assert result.draft is True
    assert github.created_prs[0].is_draft is True


def test_failing_pre_hook_rolls_back(root: Path) -> None:
    git = FakeGit(repo_root=root, unstaged_files=["b.py"])
    ctx = _ctx(git, hooks={"pre-branch": ("exit 3",)})

    with pytest.raises(HookError):
        create_pr(ctx, "Fix login", branch_name=BRANCH, action_key=ActionKey.STASH_AND_EMPTY)

    assert git.created_branches == []
    assert git.stash_pop_calls == [(root, "stash-1")]


def test_hooks_receive_context(root: Path) -> None:
    git = FakeGit(repo_root=root)
    ctx = _ctx(git, hooks={"post-pr": ('echo "$NEWPR_PR_NUMBER $NEWPR_BRANCH" > hook.out',)})
    create_pr(ctx, "Fix login", branch_name=BRANCH)
    assert (root / "hook.out").read_text() == f"101 {BRANCH}\n"


def _divergent_git(root: Path, **kwargs: object) -> FakeGit:
    return FakeGit(  # type: ignore[arg-type]
        repo_root=root,
        current_branch="feat/dark-mode",
        refs={"origin/main": "b" * 40},
        ahead_behind={("HEAD", "origin/main"): AheadBehind(2, 0)},
        commits={"origin/main..HEAD": ["c2 second", "c1 first"]},
        **kwargs,
    )


def test_divergent_branch_gets_its_own_pr(root: Path) -> None:
    git = _divergent_git(root)
    github = FakeGitHub()

    result = create_pr(_ctx(git, github), "ignored for existing branches")

    assert result.scenario == Scenario.BRANCH_DIVERGENT
    assert result.action_taken == ActionKey.CREATE_PR_FOR_BRANCH
    assert result.created is True
    assert result.branch == "feat/dark-mode"
    assert git.push_calls == [(root, "origin", "feat/dark-mode", True)]
    assert github.created_prs[0].title == "Dark Mode"
    assert "`feat/dark-mode`" in github.pr_bodies[101]
    assert git.checkout_calls == [(root, "main")]
    assert git.worktrees_added == [(_worktree(root, 101), "feat/dark-mode", False, None)]
    assert git.created_branches == []


def test_branch_with_changes_stash_moves_into_pr_worktree(root: Path) -> None:
    git = _divergent_git(
        root,
        unstaged_files=["b.py"],
        remote_branches={"feat/dark-mode"},
        pushed_branches={"feat/dark-mode"},
    )
    github = FakeGitHub(prs=[_pr(9, "feat/dark-mode")])

    result = create_pr(
        _ctx(git, github), "Fix login", action_key=ActionKey.PR_FOR_BRANCH_STASH
    )

    assert result.created is False
    assert result.pr_number == 9
    assert git.push_calls == []
    assert git.stash_apply_calls == [(_worktree(root, 9), "stash-1")]
    assert git.stashes == []


def test_branch_with_changes_commit_all_pushes_wip(root: Path) -> None:
    git = _divergent_git(
        root,
        unstaged_files=["b.py"],
        remote_branches={"feat/dark-mode"},
    )
    result = create_pr(_ctx(git), "Fix login")

    assert result.action_taken == ActionKey.PR_FOR_BRANCH_COMMIT_ALL
    assert git.commits_made[0][1].startswith("chore: work in progress")
    assert git.push_calls == [(root, "origin", "feat/dark-mode", True)]


def test_existing_branch_rollback(root: Path) -> None:
    git = _divergent_git(
        root,
        unstaged_files=["b.py"],
        remote_branches={"feat/dark-mode"},
        pushed_branches={"feat/dark-mode"},
        add_worktree_raises=_boom("worktree", "add"),
    )
    github = FakeGitHub(prs=[_pr(9, "feat/dark-mode")])

    with pytest.raises(GitError):
        create_pr(_ctx(git, github), "Fix login", action_key=ActionKey.PR_FOR_BRANCH_STASH)

    assert git.checkout_calls == [(root, "main"), (root, "feat/dark-mode")]
    assert git.branch == "feat/dark-mode"
    assert git.stash_pop_calls == [(root, "stash-1")]
    assert git.unstaged == ["b.py"]


def test_existing_branch_requires_a_branch(root: Path) -> None:
    with pytest.raises(DetachedHeadError):
        create_pr_for_existing_branch(_ctx(FakeGit(repo_root=root, current_branch=None)))


def test_existing_branch_already_checked_out_elsewhere(root: Path) -> None:
    elsewhere = root.parent / "repo.pr3"
    git = FakeGit(
        repo_root=root,
        local_branches={"feat/y"},
        remote_branches={"feat/y"},
        pushed_branches={"feat/y"},
        worktree_paths={"feat/y": elsewhere},
    )
    github = FakeGitHub(prs=[_pr(3, "feat/y")])

    result = create_pr_for_existing_branch(_ctx(git, github), "feat/y")

    assert result.worktree_path == elsewhere
    assert result.created is False
    assert git.worktrees_added == []
    assert result.warnings == (f"Branch feat/y is already checked out at {elsewhere}",)


def test_setup_pr_worktree(root: Path) -> None:
    git = FakeGit(repo_root=root)
    github = FakeGitHub(prs=[_pr(42, "feat/y", state="MERGED")])

    result = setup_pr_worktree(_ctx(git, github), 42)

    path = _worktree(root, 42)
    assert result.created is False
    assert result.branch == "feat/y"
    assert result.warnings == ("PR #42 is MERGED",)
    assert git.worktrees_added == [(path, "feat/y", True, "origin/feat/y")]
    assert git.marked_worktrees == [(path, 42)]


def test_setup_pr_worktree_missing_pr(root: Path) -> None:
    with pytest.raises(PrNotFoundError):
        setup_pr_worktree(_ctx(FakeGit(repo_root=root)), 42)


def test_setup_pr_worktree_refuses_existing_path(root: Path) -> None:
    (root.parent / "repo.pr42").mkdir()
    github = FakeGitHub(prs=[_pr(42, "feat/y")])
    with pytest.raises(WorktreeExistsError):
        setup_pr_worktree(_ctx(FakeGit(repo_root=root), github), 42)


def test_title_from_branch() -> None:
    assert title_from_branch("feat/add-dark-mode") == "Add Dark Mode"
    assert title_from_branch("fix/login") == "Login"
    assert title_from_branch("spike") == "Spike"
