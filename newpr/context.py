"""Capability bundle handed to the workflow."""

from dataclasses import dataclass
from pathlib import Path

from newpr.config import WorktreeConfig, load_config
from newpr.errors import GitError, NotGitRepoError
from newpr.hooks import HookRunner
from newpr.ops import Git, GitHub, RealGit, RealGitHub


@dataclass
class NewprContext:
    """Everything a workflow run may touch.

    Tests build one directly with fakes; the CLI uses ``create_context``.
    """

    git: Git
    github: GitHub
    hooks: HookRunner
    config: WorktreeConfig
    cwd: Path


def create_context(cwd: Path, *, no_hooks: bool = False) -> NewprContext:
    git = RealGit()
    try:
        repo_root = git.repo_root(cwd)
    except GitError as exc:
        raise NotGitRepoError(f"Not inside a git repository: {cwd}") from exc

    config = load_config(repo_root)
    return NewprContext(
        git=git,
        github=RealGitHub(),
        hooks=HookRunner(config.hooks, repo_root, enabled=not no_hooks),
        config=config,
        cwd=cwd,
    )
