from __future__ import annotations

import logging
from typing import Any, Sequence

from casebuilder.models import Analysis, Case, PairContent, Scenario
from casebuilder.parties import split_pair_key

logger = logging.getLogger("casebuilder.case")

_KEEP: Any = object()


def _selection_in(scenarios: Sequence[Scenario], selected_id: str | None) -> str | None:
    if selected_id is None:
        return None
    return selected_id if any(scenario.id == selected_id for scenario in scenarios) else None


def select_pair(case: Case, key: str) -> Case:
    """Make ``key`` the active pair, swapping the live analysis/scenarios to its slot.

    Live content of the previous pair is not flushed; it must have been saved
    with ``save_pair_content`` beforehand.
    """
    split_pair_key(key)
    if case.active_pair_key == key:
        return case

    pair_content = dict(case.pair_content)
    slot = pair_content.get(key)
    if slot is None:
        slot = PairContent()
        pair_content[key] = slot

    logger.info(
        "pair_selected",
        extra={
            "event": "pair_selected",
            "previous_pair_key": case.active_pair_key,
            "pair_key": key,
            "has_analysis": slot.analysis is not None,
            "scenario_count": len(slot.scenarios),
        },
    )
    return case.model_copy(
        update={
            "active_pair_key": key,
            "pair_content": pair_content,
            "analysis": slot.analysis,
            "scenarios": list(slot.scenarios),
            "selected_scenario_id": _selection_in(slot.scenarios, case.selected_scenario_id),
        }
    )


def save_pair_content(
    case: Case,
    key: str,
    *,
    analysis: Analysis | None = _KEEP,
    scenarios: Sequence[Scenario] = _KEEP,
) -> Case:
    """Write content to the keyed slot and to the live fields in one step.

    Omitted arguments keep what the keyed pair already holds: the live fields
    for the active pair, the stored slot (or nothing) for any other key. Saving
    under a key other than the active one makes that key active, since the
    live fields now hold its content. The party list is carried over as is.
    """
    split_pair_key(key)
    if key == case.active_pair_key:
        current = PairContent(analysis=case.analysis, scenarios=list(case.scenarios))
    else:
        current = case.pair_content.get(key) or PairContent()
    next_analysis = current.analysis if analysis is _KEEP else analysis
    next_scenarios = list(current.scenarios if scenarios is _KEEP else scenarios)

    pair_content = dict(case.pair_content)
    pair_content[key] = PairContent(analysis=next_analysis, scenarios=next_scenarios)
    return case.model_copy(
        update={
            "active_pair_key": key,
            "pair_content": pair_content,
            "analysis": next_analysis,
            "scenarios": next_scenarios,
            "parties": list(case.parties),
            "selected_scenario_id": _selection_in(next_scenarios, case.selected_scenario_id),
        }
    )


def sync_active_pair(case: Case) -> Case:
    if case.active_pair_key is None:
        return case
    return save_pair_content(case, case.active_pair_key)
