"""Lifecycle hook execution."""

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from newpr.errors import HookError

logger = logging.getLogger(__name__)

HOOK_PHASES = (
    "pre-branch",
    "post-branch",
    "pre-commit",
    "post-commit",
    "pre-push",
    "post-push",
    "pre-pr",
    "post-pr",
    "pre-worktree",
    "post-worktree",
)

# Phases that run inside the new worktree once it exists.
WORKTREE_CWD_PHASES = frozenset({"post-worktree"})


def validate_hooks(hooks: Mapping[str, Sequence[str]]) -> None:
    unknown = sorted(set(hooks) - set(HOOK_PHASES))
    if unknown:
        raise HookError(f"Unknown hook phase(s): {', '.join(unknown)}")


class HookRunner:
    """Run configured shell commands at each phase of the create workflow.

    Context values set through ``update`` are exported to every command as
    ``NEWPR_*`` environment variables. A failing ``pre-*`` hook raises
    HookError; a failing ``post-*`` hook is only logged.
    """

    def __init__(
        self,
        hooks: Mapping[str, Sequence[str]] | None,
        repo_root: Path,
        *,
        enabled: bool = True,
    ) -> None:
        self.hooks = dict(hooks or {})
        validate_hooks(self.hooks)
        self.repo_root = repo_root
        self.enabled = enabled
        self.context: dict[str, str] = {"REPO_ROOT": str(repo_root)}
        self.executed: list[tuple[str, str]] = []

    def update(self, **values: object) -> None:
        for key, value in values.items():
            if value is not None:
                self.context[key.upper()] = str(value)

    def commands_for(self, phase: str) -> list[str]:
        if not self.enabled:
            return []
        return [c for c in self.hooks.get(phase, ()) if c.strip()]

    def _env(self, phase: str) -> dict[str, str]:
        env = dict(os.environ)
        env["NEWPR_HOOK"] = phase
        for key, value in self.context.items():
            env[f"NEWPR_{key}"] = value
        return env

    def _cwd(self, phase: str) -> Path:
        worktree = self.context.get("WORKTREE_PATH")
        if phase in WORKTREE_CWD_PHASES and worktree:
            return Path(worktree)
        return self.repo_root

    def run(self, phase: str) -> None:
        if phase not in HOOK_PHASES:
            raise HookError(f"Unknown hook phase: {phase}")
        for command in self.commands_for(phase):
            logger.debug("running %s hook: %s", phase, command)
            try:
                subprocess.run(
                    command,
                    cwd=self._cwd(phase),
                    env=self._env(phase),
                    shell=True,
                    check=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                )
            except subprocess.CalledProcessError as exc:
                stderr = (exc.stderr or exc.stdout or "").strip() or "unknown error"
                if phase.startswith("pre-"):
                    raise HookError(f"Hook failed ({phase}): `{command}`: {stderr}") from exc
                logger.warning("%s hook `%s` failed: %s", phase, command, stderr)
            self.executed.append((phase, command))
