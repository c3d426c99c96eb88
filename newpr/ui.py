from __future__ import annotations

import questionary

from newpr.models import Scenario, ScenarioContext, StateAction


def choose_action(scenario: Scenario, context: ScenarioContext) -> StateAction | None:
    """Prompt for one of the scenario's choices; None means cancel."""
    choices = [
        questionary.Choice(title=choice.label, value=index)
        for index, choice in enumerate(context.choices)
    ]
    selected = questionary.select("What would you like to do?", choices=choices).unsafe_ask()
    if selected is None:
        return None
    return context.choices[selected].action
