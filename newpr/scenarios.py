"""Offer ranked choices for a scenario and validate requested actions.

Everything here is pure: the same (scenario, state, base) always yields the
same choices in the same order, and index 0 is the recommendation.
"""

from typing import assert_never

from newpr.errors import ActionNotAvailableError, InvalidActionError
from newpr.models import (
    ActionKey,
    AvailableAction,
    BranchFrom,
    Choice,
    GitState,
    MessageLevel,
    Scenario,
    ScenarioContext,
    StateAction,
    StateReport,
)
from newpr.state import classify, describe_scenario


def _action(
    key: ActionKey,
    *,
    branch_from: BranchFrom = BranchFrom.ORIGIN_MAIN,
    stash_unstaged: bool = False,
) -> StateAction:
    return StateAction(action=key, branch_from=branch_from, stash_unstaged=stash_unstaged)


def _from_head(key: ActionKey, *, stash_unstaged: bool = False) -> StateAction:
    return _action(key, branch_from=BranchFrom.HEAD, stash_unstaged=stash_unstaged)


def _cancel(label: str = "Cancel") -> Choice:
    return Choice(label, None)


def _message_level(scenario: Scenario) -> MessageLevel:
    if scenario in (
        Scenario.MAIN_CLEAN_SAME,
        Scenario.BRANCH_SAME_AS_MAIN,
        Scenario.BRANCH_ANCESTOR,
        Scenario.DETACHED_HEAD,
    ):
        return MessageLevel.WARNING
    return MessageLevel.INFO


def _choices(scenario: Scenario, state: GitState, base: str) -> ScenarioContext | None:
    branch = state.current_branch or "unknown"
    empty = _action(ActionKey.EMPTY_COMMIT)
    stash_and_empty = _action(ActionKey.STASH_AND_EMPTY)

    match scenario:
        case Scenario.MAIN_CLEAN_SAME:
            return ScenarioContext(
                message=f"No changes detected from {base} branch.",
                sub_message=(
                    f"You are on '{base}' with no local commits or uncommitted changes.\n"
                    "A PR requires at least one commit difference from the base branch."
                ),
                choices=(
                    Choice("Continue with empty initial commit", empty),
                    _cancel("Cancel - I'll make some changes first"),
                ),
            )
        case Scenario.MAIN_STAGED_SAME:
            return ScenarioContext(
                message="You have staged changes ready to commit.",
                choices=(
                    Choice(
                        "Commit staged changes to the new PR branch",
                        _from_head(ActionKey.COMMIT_STAGED),
                    ),
                    Choice("Leave changes here and continue with empty initial commit", empty),
                    _cancel(),
                ),
            )
        case Scenario.MAIN_UNSTAGED_SAME:
            return ScenarioContext(
                message="You have unstaged changes.",
                choices=(
                    Choice(
                        "Stage all and commit to the new PR branch",
                        _from_head(ActionKey.COMMIT_ALL),
                    ),
                    Choice("Leave changes here and continue with empty initial commit", empty),
                    Choice("Stash changes (will restore after)", stash_and_empty),
                    _cancel(),
                ),
            )
        case Scenario.MAIN_BOTH_SAME:
            return ScenarioContext(
                message="You have both staged and unstaged changes.",
                choices=(
                    Choice(
                        "Commit staged to PR branch, move unstaged to new worktree",
                        _from_head(ActionKey.COMMIT_STAGED, stash_unstaged=True),
                    ),
                    Choice(
                        "Stage all and commit everything to the new PR branch",
                        _from_head(ActionKey.COMMIT_ALL),
                    ),
                    Choice("Leave all changes here and continue with empty initial commit", empty),
                    Choice("Stash all changes (will restore after)", stash_and_empty),
                    _cancel(),
                ),
            )
        case Scenario.MAIN_CLEAN_AHEAD:
            return ScenarioContext(
                message=f"You have local commits on '{base}' not yet pushed.",
                sub_message="These commits will NOT be included in the new PR branch by default.",
                choices=(
                    Choice(
                        "Use these commits for the PR (create branch from HEAD)",
                        _from_head(ActionKey.USE_COMMITS),
                    ),
                    Choice(
                        f"Push commits to origin/{base} first, then create PR branch",
                        _action(ActionKey.PUSH_THEN_BRANCH),
                    ),
                    Choice(f"Start fresh from origin/{base} (ignore local commits)", empty),
                    _cancel(),
                ),
            )
        case Scenario.MAIN_CHANGES_AHEAD:
            return ScenarioContext(
                message="You have local commits AND uncommitted changes.",
                choices=(
                    Choice(
                        "Include commits + commit uncommitted changes to PR branch",
                        _from_head(ActionKey.USE_COMMITS_AND_COMMIT_ALL),
                    ),
                    Choice(
                        "Include commits only, stash uncommitted changes",
                        _from_head(ActionKey.USE_COMMITS_AND_STASH),
                    ),
                    Choice(f"Start fresh from origin/{base} (ignore all local work)", empty),
                    _cancel(),
                ),
            )
        case Scenario.BRANCH_SAME_AS_MAIN:
            return ScenarioContext(
                message=f"Branch '{branch}' is at the same commit as {base}.",
                sub_message=(
                    "No divergent commits detected. A PR requires at least one commit difference."
                ),
                choices=(
                    Choice(f"Continue with empty initial commit (new branch from {base})", empty),
                    _cancel(),
                ),
            )
        case Scenario.BRANCH_ANCESTOR:
            return ScenarioContext(
                message=f"Branch '{branch}' appears to be already merged into {base}.",
                sub_message="Creating a PR would result in no changes.",
                choices=(
                    Choice(f"Continue with empty initial commit (new branch from {base})", empty),
                    _cancel("Cancel - I'll check the branch status first"),
                ),
            )
        case Scenario.BRANCH_DIVERGENT:
            return ScenarioContext(
                message=f"You are on branch '{branch}' with commits not in {base}.",
                choices=(
                    Choice(
                        f"Create PR for THIS branch ({branch} → {base})",
                        _from_head(ActionKey.CREATE_PR_FOR_BRANCH),
                    ),
                    Choice(
                        f"Create NEW branch from {base} (ignore current branch's commits)", empty
                    ),
                    _cancel(),
                ),
            )
        case Scenario.BRANCH_WITH_CHANGES:
            if state.local_commits or state.ahead > 0:
                return ScenarioContext(
                    message=f"You are on branch '{branch}' with uncommitted changes.",
                    sub_message=f"Branch also has commits not in {base}.",
                    choices=(
                        Choice(
                            "Create PR for THIS branch, commit changes first",
                            _from_head(ActionKey.PR_FOR_BRANCH_COMMIT_ALL),
                        ),
                        Choice(
                            "Create PR for THIS branch, stash uncommitted changes",
                            _from_head(ActionKey.PR_FOR_BRANCH_STASH),
                        ),
                        Choice(f"Create NEW branch from {base} (ignore current branch)", empty),
                        _cancel(),
                    ),
                )
            return ScenarioContext(
                message=f"You are on branch '{branch}' with uncommitted changes.",
                choices=(
                    Choice(
                        "Stage all and commit to a new PR branch",
                        _from_head(ActionKey.COMMIT_ALL),
                    ),
                    Choice("Leave changes and continue with empty initial commit", empty),
                    Choice("Stash changes (will restore after)", stash_and_empty),
                    _cancel(),
                ),
            )
        case Scenario.DETACHED_HEAD:
            return ScenarioContext(
                message="You are in detached HEAD state.",
                choices=(
                    Choice(
                        "Create branch from this commit",
                        _from_head(ActionKey.BRANCH_FROM_DETACHED),
                    ),
                    Choice(f"Create branch from origin/{base}", empty),
                    _cancel(),
                ),
            )
        case Scenario.PR_WORKTREE:
            return None
        case _:
            assert_never(scenario)


def resolve_context(scenario: Scenario, state: GitState, base_branch: str) -> ScenarioContext | None:
    """Return the message and ranked choices for a scenario.

    ``None`` means no automatic handling exists (a PR worktree); the caller
    has to be re-targeted at the main worktree.
    """
    context = _choices(scenario, state, base_branch)
    if context is None:
        return None
    return ScenarioContext(
        message=context.message,
        choices=context.choices,
        sub_message=context.sub_message,
        level=_message_level(scenario),
    )


def available_actions(context: ScenarioContext | None) -> list[StateAction]:
    if context is None:
        return []
    return [choice.action for choice in context.choices if choice.action is not None]


def parse_action_key(text: str) -> ActionKey:
    """Parse an action key given on the command line or by an API caller."""
    try:
        return ActionKey(text.strip())
    except ValueError:
        valid = ", ".join(key.value for key in ActionKey)
        raise InvalidActionError(
            f"Invalid action '{text}'. Valid actions: {valid}",
            details={"validActions": [key.value for key in ActionKey]},
        ) from None


def select_action(
    context: ScenarioContext | None, key: ActionKey, scenario: Scenario
) -> StateAction:
    """Return the scenario's StateAction for key; never substitute another one."""
    actions = available_actions(context)
    for action in actions:
        if action.action == key:
            return action
    raise ActionNotAvailableError(key.value, scenario.value, [a.action.value for a in actions])


def default_action(context: ScenarioContext | None) -> StateAction | None:
    actions = available_actions(context)
    return actions[0] if actions else None


def recommended_action(scenario: Scenario, state: GitState, base_branch: str) -> ActionKey | None:
    action = default_action(resolve_context(scenario, state, base_branch))
    return action.action if action else None


def build_state_report(state: GitState, *, verbose: bool = False) -> StateReport:
    scenario = classify(state)
    context = resolve_context(scenario, state, state.base_branch)
    choices = context.choices if context else ()
    actions = tuple(
        AvailableAction(key=choice.action.action, label=choice.label)
        for choice in choices
        if choice.action is not None
    )
    return StateReport(
        scenario=scenario,
        description=describe_scenario(scenario, state.base_branch),
        current_branch=state.current_branch,
        base_branch=state.base_branch,
        worktree_type=state.worktree_type,
        has_changes=state.has_changes,
        has_staged_changes=state.has_staged_changes,
        has_unstaged_changes=state.has_unstaged_changes,
        local_commits=state.local_commits,
        staged_files=state.staged_files if verbose else (),
        unstaged_files=state.unstaged_files if verbose else (),
        available_actions=actions,
        recommended_action=actions[0].key if actions else None,
    )
