"""Repository configuration (.worktreerc) and name generation."""

import json
import re
import secrets
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from newpr.errors import ConfigError

CONFIG_FILE_NAMES = (".worktreerc", ".worktreerc.json")
DEFAULT_BASE_BRANCH = "main"
DEFAULT_WORKTREE_PATTERN = "{repo}.pr{number}"
DEFAULT_WORKTREE_PARENT = ".."
DEFAULT_BRANCH_PREFIX = "feat"

SLUG_MAX_LENGTH = 50
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class WorktreeConfig:
    base_branch: str = DEFAULT_BASE_BRANCH
    draft_pr: bool = False
    worktree_pattern: str = DEFAULT_WORKTREE_PATTERN
    worktree_parent: str = DEFAULT_WORKTREE_PARENT
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    hooks: dict[str, tuple[str, ...]] = field(default_factory=dict)


def find_config_file(repo_root: Path) -> Path | None:
    for name in CONFIG_FILE_NAMES:
        path = repo_root / name
        if path.is_file():
            return path
    return None


def _expect_str(raw: dict[str, object], key: str, default: str, path: Path) -> str:
    value = raw.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Invalid '{key}' in {path}: expected a non-empty string")
    return value


def _parse_hooks(value: object, path: Path) -> dict[str, tuple[str, ...]]:
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid 'hooks' in {path}: expected an object")
    hooks: dict[str, tuple[str, ...]] = {}
    for phase, commands in cast(dict[str, object], value).items():
        if isinstance(commands, str):
            commands = [commands]
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ConfigError(f"Invalid hooks.{phase} in {path}: expected a list of commands")
        hooks[phase] = tuple(c for c in cast(list[str], commands) if c.strip())
    return hooks


def load_config(repo_root: Path) -> WorktreeConfig:
    """Load the first config file found at repo_root, merged over defaults."""
    path = find_config_file(repo_root)
    if path is None:
        return WorktreeConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config format in {path}")
    raw = cast(dict[str, object], raw)

    draft = raw.get("draftPr", False)
    if not isinstance(draft, bool):
        raise ConfigError(f"Invalid 'draftPr' in {path}: expected true or false")

    return WorktreeConfig(
        base_branch=_expect_str(raw, "baseBranch", DEFAULT_BASE_BRANCH, path),
        draft_pr=draft,
        worktree_pattern=_expect_str(raw, "worktreePattern", DEFAULT_WORKTREE_PATTERN, path),
        worktree_parent=_expect_str(raw, "worktreeParent", DEFAULT_WORKTREE_PARENT, path),
        branch_prefix=_expect_str(raw, "branchPrefix", DEFAULT_BRANCH_PREFIX, path),
        hooks=_parse_hooks(raw.get("hooks", {}), path),
    )


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def generate_branch_name(config: WorktreeConfig, description: str) -> str:
    """Build ``<prefix>/<slug>-<suffix>`` from a free-text description."""
    slug = slugify(description) or "change"
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(6))
    return f"{config.branch_prefix}/{slug}-{suffix}"


def generate_worktree_path(
    config: WorktreeConfig,
    repo_root: Path,
    repo_name: str,
    pr_number: int,
    branch: str | None = None,
) -> Path:
    name = config.worktree_pattern.replace("{repo}", repo_name)
    name = name.replace("{number}", str(pr_number))
    if branch:
        name = name.replace("{branch}", branch)
    parent = Path(config.worktree_parent).expanduser()
    if not parent.is_absolute():
        parent = repo_root / parent
    return (parent / name).resolve()
