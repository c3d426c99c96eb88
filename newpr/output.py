"""Result rendering: the JSON envelope and the human-readable views."""

import json
from collections.abc import Sequence
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table
from rich.text import Text

from newpr.errors import NewprError
from newpr.models import CreatePrResult, MessageLevel, ScenarioContext, StateReport


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_envelope(
    command: str, data: dict[str, object], warnings: Sequence[str] = ()
) -> dict[str, object]:
    envelope: dict[str, object] = {
        "success": True,
        "command": command,
        "timestamp": _timestamp(),
        "data": data,
    }
    if warnings:
        envelope["warnings"] = list(warnings)
    return envelope


def error_envelope(command: str, error: NewprError) -> dict[str, object]:
    payload: dict[str, object] = {"code": error.code.value, "message": error.message}
    if error.details:
        payload["details"] = error.details
    return {
        "success": False,
        "command": command,
        "timestamp": _timestamp(),
        "error": payload,
    }


def dumps(envelope: dict[str, object]) -> str:
    return json.dumps(envelope, indent=2)


def create_result_data(result: CreatePrResult) -> dict[str, object]:
    data: dict[str, object] = {
        "prNumber": result.pr_number,
        "prUrl": result.pr_url,
        "branch": result.branch,
        "worktreePath": str(result.worktree_path),
        "draft": result.draft,
        "created": result.created,
    }
    if result.scenario is not None:
        data["scenario"] = result.scenario.value
    if result.action_taken is not None:
        data["actionTaken"] = result.action_taken.value
    return data


def state_report_data(report: StateReport) -> dict[str, object]:
    data: dict[str, object] = {
        "scenario": report.scenario.value,
        "description": report.description,
        "currentBranch": report.current_branch,
        "baseBranch": report.base_branch,
        "worktreeType": report.worktree_type.value,
        "hasChanges": report.has_changes,
        "hasStagedChanges": report.has_staged_changes,
        "hasUnstagedChanges": report.has_unstaged_changes,
        "localCommits": list(report.local_commits),
        "availableActions": [
            {"key": action.key.value, "label": action.label}
            for action in report.available_actions
        ],
        "recommendedAction": report.recommended_action.value
        if report.recommended_action
        else None,
    }
    if report.staged_files or report.unstaged_files:
        data["stagedFiles"] = list(report.staged_files)
        data["unstagedFiles"] = list(report.unstaged_files)
    return data


def render_state_report(report: StateReport, console: Console) -> None:
    console.print(Text(report.description, style="bold"))

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Scenario", report.scenario.value)
    table.add_row("Branch", report.current_branch or "(detached)")
    table.add_row("Base", report.base_branch)
    table.add_row("Worktree", report.worktree_type.value)
    table.add_row("Changes", "yes" if report.has_changes else "no")
    console.print(table)

    if report.local_commits:
        console.print(Text("Local commits:", style="bold"))
        for commit in report.local_commits:
            console.print(f"  {commit}", highlight=False)
    for title, files in (("Staged", report.staged_files), ("Unstaged", report.unstaged_files)):
        if files:
            console.print(Text(f"{title}:", style="bold"))
            for path in files:
                console.print(f"  {path}", highlight=False, markup=False)

    if report.available_actions:
        console.print(Text("Available actions:", style="bold"))
        for action in report.available_actions:
            marker = "*" if action.key == report.recommended_action else " "
            console.print(f" {marker} {action.key.value:28} {action.label}", highlight=False)


def render_scenario_message(context: ScenarioContext, console: Console) -> None:
    style = "yellow" if context.level == MessageLevel.WARNING else "cyan"
    console.print(Text(context.message, style=style))
    if context.sub_message:
        console.print(Text(context.sub_message, style="dim"))


def render_create_result(result: CreatePrResult, console: Console) -> None:
    verb = "Created" if result.created else "Using existing"
    console.print(Text(f"{verb} PR #{result.pr_number}: {result.pr_url}", style="green"))
    console.print(f"Branch:   {result.branch}", highlight=False, markup=False)
    console.print(f"Worktree: {result.worktree_path}", highlight=False, markup=False)
    for warning in result.warnings:
        console.print(Text(f"Warning: {warning}", style="yellow"))
