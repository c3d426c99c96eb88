"""GitHub CLI operations."""

import json
import re
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from newpr.errors import GitHubError
from newpr.models import PullRequestInfo

PR_FIELDS = "number,title,state,url,headRefName,baseRefName,isDraft"
PR_URL_PATTERN = re.compile(r"https://[^\s/]+/[^/\s]+/[^/\s]+/pull/(\d+)")


def _run_gh(args: Sequence[str], cwd: Path | None = None) -> str:
    try:
        result = subprocess.run(
            ["gh", *args],
            cwd=cwd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or exc.stdout or "").strip() or "unknown error"
        raise GitHubError(f"gh {' '.join(args)}: {stderr}") from exc
    return result.stdout.strip()


def is_installed() -> bool:
    return shutil.which("gh") is not None


def is_authenticated() -> bool:
    try:
        _run_gh(["auth", "status"])
    except GitHubError:
        return False
    return True


def _parse_pr(data: dict[str, object]) -> PullRequestInfo:
    return PullRequestInfo(
        number=int(data["number"]),  # type: ignore[arg-type]
        title=str(data.get("title") or ""),
        state=str(data.get("state") or "OPEN"),
        url=str(data.get("url") or ""),
        head_branch=str(data.get("headRefName") or ""),
        base_branch=str(data.get("baseRefName") or ""),
        is_draft=bool(data.get("isDraft")),
    )


def _view_pr(selector: str, cwd: Path) -> PullRequestInfo | None:
    try:
        out = _run_gh(["pr", "view", selector, "--json", PR_FIELDS], cwd=cwd)
        data = json.loads(out or "{}")
    except (GitHubError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or "number" not in data:
        return None
    return _parse_pr(data)


def get_pr(cwd: Path, pr_number: int) -> PullRequestInfo | None:
    """Get pull request information by number."""
    return _view_pr(str(pr_number), cwd)


def get_pr_by_branch(cwd: Path, branch: str) -> PullRequestInfo | None:
    """Get pull request information for a head branch."""
    return _view_pr(branch, cwd)


def create_pr(
    cwd: Path,
    *,
    title: str,
    body: str,
    base: str,
    head: str,
    draft: bool,
) -> PullRequestInfo:
    """Create a pull request and return its details."""
    args = ["pr", "create", "--title", title, "--body", body, "--base", base, "--head", head]
    if draft:
        args.append("--draft")
    out = _run_gh(args, cwd=cwd)

    # gh pr create prints the PR URL rather than JSON
    match = PR_URL_PATTERN.search(out)
    if not match:
        raise GitHubError(f"Failed to parse PR creation response: {out}")
    number = int(match.group(1))
    info = get_pr(cwd, number)
    if info is not None:
        return info
    return PullRequestInfo(
        number=number,
        title=title,
        state="OPEN",
        url=match.group(0),
        head_branch=head,
        base_branch=base,
        is_draft=draft,
    )
