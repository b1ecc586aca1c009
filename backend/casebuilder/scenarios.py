from __future__ import annotations

import logging
from typing import Mapping, Sequence

from casebuilder.errors import CaseError, UnknownIssueError
from casebuilder.models import SCENARIOS_PER_ISSUE, Case, Scenario, ScenarioDraft

logger = logging.getLogger("casebuilder.case")


def scenario_id(issue_id: str, position: int) -> str:
    return f"{issue_id}-{position + 1}"


def reconcile_scenarios(case: Case, issue_id: str, drafts: Sequence[ScenarioDraft]) -> Case:
    """Replace one issue's scenario set with ids ``{issue_id}-1..5`` in draft order.

    An empty draft list is the explicit clear path: every scenario of the case
    and the selection are dropped.
    """
    if not drafts:
        logger.info(
            "scenarios_cleared",
            extra={"event": "scenarios_cleared", "issue_id": issue_id, "removed": len(case.scenarios)},
        )
        return case.model_copy(update={"scenarios": [], "selected_scenario_id": None})

    if case.find_issue(issue_id) is None:
        raise UnknownIssueError(issue_id)

    if len(drafts) > SCENARIOS_PER_ISSUE:
        logger.warning(
            "scenario_drafts_truncated",
            extra={
                "event": "scenario_drafts_truncated",
                "issue_id": issue_id,
                "received": len(drafts),
                "kept": SCENARIOS_PER_ISSUE,
            },
        )

    reconciled = [
        Scenario(id=scenario_id(issue_id, position), issue_id=issue_id, kind=draft.kind, description=draft.description)
        for position, draft in enumerate(drafts[:SCENARIOS_PER_ISSUE])
    ]
    scenarios = [scenario for scenario in case.scenarios if scenario.issue_id != issue_id] + reconciled

    selected_id = case.selected_scenario_id
    if selected_id is not None:
        selected = case.find_scenario(selected_id)
        new_ids = {scenario.id for scenario in reconciled}
        if selected is not None and selected.issue_id == issue_id and selected_id not in new_ids:
            selected_id = None

    snapshot = case.original_snapshot
    if issue_id not in snapshot.scenarios:
        snapshot_scenarios = dict(snapshot.scenarios)
        snapshot_scenarios[issue_id] = [scenario.model_copy(deep=True) for scenario in reconciled]
        snapshot = snapshot.model_copy(update={"scenarios": snapshot_scenarios})

    return case.model_copy(
        update={
            "scenarios": scenarios,
            "selected_scenario_id": selected_id,
            "original_snapshot": snapshot,
        }
    )


def reconcile_scenario_batch(
    case: Case,
    drafts_by_issue: Mapping[str, Sequence[ScenarioDraft]],
) -> tuple[Case, list[CaseError]]:
    """Reconcile several issues independently; a rejected issue does not block the others."""
    errors: list[CaseError] = []
    for issue_id, drafts in drafts_by_issue.items():
        if not drafts:
            # An empty set here means "nothing generated", not the whole-case clear.
            continue
        try:
            case = reconcile_scenarios(case, issue_id, drafts)
        except CaseError as exc:
            logger.warning(
                "scenario_reconcile_rejected",
                extra={"event": "scenario_reconcile_rejected", "issue_id": issue_id, "error": str(exc)},
            )
            errors.append(exc)
    return case, errors
