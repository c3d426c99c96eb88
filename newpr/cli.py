"""Command line interface for newpr."""

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console

from newpr import output, ui, workflow
from newpr.context import create_context
from newpr.errors import NewprError
from newpr.models import CreatePrResult, Scenario, ScenarioContext, StateAction
from newpr.scenarios import build_state_report, parse_action_key
from newpr.state import analyze


def _fail(command: str, error: NewprError, as_json: bool) -> NoReturn:
    if as_json:
        click.echo(output.dumps(output.error_envelope(command, error)))
    else:
        click.echo(f"newpr: {error.message}", err=True)
    raise SystemExit(1)


def _is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def _interactive_chooser(console: Console) -> workflow.Chooser:
    def choose(scenario: Scenario, context: ScenarioContext) -> StateAction | None:
        output.render_scenario_message(context, console)
        try:
            return ui.choose_action(scenario, context)
        except KeyboardInterrupt:
            return None

    return choose


def _emit_result(command: str, result: CreatePrResult, as_json: bool) -> None:
    if as_json:
        envelope = output.success_envelope(
            command, output.create_result_data(result), result.warnings
        )
        click.echo(output.dumps(envelope))
    else:
        output.render_create_result(result, Console())


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--debug", is_flag=True, help="Log every git and workflow step.")
def main(debug: bool) -> None:
    """newpr: turn the current working tree into a branch, a PR and a worktree."""
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s - %(levelname)s - %(message)s")


@main.command("create")
@click.argument("description", nargs=-1, required=True)
@click.option("--action", "action", default=None, help="Action key to run for the detected state.")
@click.option("--base", "base_branch", default=None, help="Base branch for the PR.")
@click.option("--branch-name", default=None, help="Use this branch name instead of generating one.")
@click.option("--draft/--no-draft", default=None, help="Create the PR as a draft.")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result envelope.")
@click.option("--non-interactive", is_flag=True, help="Never prompt; take the recommended action.")
@click.option("--no-hooks", is_flag=True, help="Skip configured lifecycle hooks.")
def create(
    description: tuple[str, ...],
    action: str | None,
    base_branch: str | None,
    branch_name: str | None,
    draft: bool | None,
    as_json: bool,
    non_interactive: bool,
    no_hooks: bool,
) -> None:
    """Create a PR and worktree for DESCRIPTION."""
    try:
        action_key = parse_action_key(action) if action else None
        ctx = create_context(Path.cwd(), no_hooks=no_hooks)
        chooser = None
        if action_key is None and not as_json and not non_interactive and _is_interactive():
            chooser = _interactive_chooser(Console())
        result = workflow.create_pr(
            ctx,
            " ".join(description),
            action_key=action_key,
            base_branch=base_branch,
            branch_name=branch_name,
            draft=draft,
            chooser=chooser,
        )
    except NewprError as exc:
        _fail("create", exc, as_json)
    _emit_result("create", result, as_json)


@main.command("state")
@click.option("--base", "base_branch", default=None, help="Base branch to compare against.")
@click.option("--verbose", "-v", is_flag=True, help="Include staged and unstaged file lists.")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result envelope.")
def state(base_branch: str | None, verbose: bool, as_json: bool) -> None:
    """Show the detected scenario and the actions available for it."""
    try:
        ctx = create_context(Path.cwd(), no_hooks=True)
        git_state = analyze(ctx.git, base_branch or ctx.config.base_branch, ctx.cwd)
        report = build_state_report(git_state, verbose=verbose)
    except NewprError as exc:
        _fail("state", exc, as_json)
    if as_json:
        click.echo(output.dumps(output.success_envelope("state", output.state_report_data(report))))
    else:
        output.render_state_report(report, Console())


@main.command("checkout")
@click.argument("pr_number", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result envelope.")
@click.option("--no-hooks", is_flag=True, help="Skip configured lifecycle hooks.")
def checkout(pr_number: int, as_json: bool, no_hooks: bool) -> None:
    """Create a worktree for an existing PR."""
    try:
        ctx = create_context(Path.cwd(), no_hooks=no_hooks)
        result = workflow.setup_pr_worktree(ctx, pr_number)
    except NewprError as exc:
        _fail("checkout", exc, as_json)
    _emit_result("checkout", result, as_json)


@main.command("branch")
@click.argument("branch")
@click.option("--base", "base_branch", default=None, help="Base branch for the PR.")
@click.option("--draft/--no-draft", default=None, help="Create the PR as a draft.")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result envelope.")
@click.option("--no-hooks", is_flag=True, help="Skip configured lifecycle hooks.")
def branch(
    branch: str, base_branch: str | None, draft: bool | None, as_json: bool, no_hooks: bool
) -> None:
    """Open or reuse a PR for an existing BRANCH and give it a worktree."""
    try:
        ctx = create_context(Path.cwd(), no_hooks=no_hooks)
        result = workflow.create_pr_for_existing_branch(
            ctx, branch, base_branch=base_branch, draft=draft
        )
    except NewprError as exc:
        _fail("branch", exc, as_json)
    _emit_result("branch", result, as_json)


if __name__ == "__main__":
    main()
