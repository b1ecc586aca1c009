from __future__ import annotations

import logging

import pytest

from casebuilder.errors import UnknownIssueError
from casebuilder.models import SCENARIO_KINDS, Analysis, Case, Issue, ScenarioDraft
from casebuilder.scenarios import reconcile_scenario_batch, reconcile_scenarios


def _case() -> Case:
    return Case(
        id="case-1",
        content="Case text",
        analysis=Analysis(
            id="a1",
            issues=[Issue(id="i1", name="Access"), Issue(id="i2", name="Staffing", priority=1)],
        ),
    )


def _drafts(label: str, count: int = 5) -> list[ScenarioDraft]:
    return [
        ScenarioDraft(kind=SCENARIO_KINDS[index % len(SCENARIO_KINDS)], description=f"{label} {index + 1}")
        for index in range(count)
    ]


def test_reconcile_assigns_positional_ids() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("access"))

    assert [scenario.id for scenario in case.scenarios] == [f"i1-{n}" for n in range(1, 6)]
    assert [scenario.kind for scenario in case.scenarios] == list(SCENARIO_KINDS)
    assert all(scenario.issue_id == "i1" for scenario in case.scenarios)


def test_reconcile_replaces_only_the_target_issue() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("access"))
    case = reconcile_scenarios(case, "i2", _drafts("staffing"))
    case = reconcile_scenarios(case, "i1", _drafts("access v2"))

    assert len(case.scenarios_for_issue("i1")) == 5
    assert len(case.scenarios_for_issue("i2")) == 5
    assert case.find_scenario("i1-1").description == "access v2 1"
    assert case.find_scenario("i2-1").description == "staffing 1"


def test_extra_drafts_are_truncated(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="casebuilder.case")

    case = reconcile_scenarios(_case(), "i1", _drafts("access", count=7))

    assert [scenario.id for scenario in case.scenarios] == [f"i1-{n}" for n in range(1, 6)]
    assert any(getattr(record, "event", None) == "scenario_drafts_truncated" for record in caplog.records)


def test_empty_drafts_clear_every_scenario_and_the_selection() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("access"))
    case = reconcile_scenarios(case, "i2", _drafts("staffing"))
    case = case.model_copy(update={"selected_scenario_id": "i2-3"})

    cleared = reconcile_scenarios(case, "i1", [])

    assert cleared.scenarios == []
    assert cleared.selected_scenario_id is None


def test_selection_survives_when_its_id_is_regenerated() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("access"))
    case = case.model_copy(update={"selected_scenario_id": "i1-3"})

    assert reconcile_scenarios(case, "i1", _drafts("again")).selected_scenario_id == "i1-3"
    assert reconcile_scenarios(case, "i1", _drafts("short", count=2)).selected_scenario_id is None


def test_selection_on_another_issue_is_untouched() -> None:
    case = reconcile_scenarios(_case(), "i2", _drafts("staffing"))
    case = case.model_copy(update={"selected_scenario_id": "i2-5"})
    assert reconcile_scenarios(case, "i1", _drafts("access", count=1)).selected_scenario_id == "i2-5"


def test_unknown_issue_is_rejected_without_changes() -> None:
    case = _case()
    with pytest.raises(UnknownIssueError):
        reconcile_scenarios(case, "missing", _drafts("x"))
    assert case.scenarios == []


def test_first_reconcile_seeds_the_snapshot_once() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("first"))
    case = reconcile_scenarios(case, "i1", _drafts("second"))

    snapshot = case.original_snapshot.scenarios["i1"]
    assert [scenario.description for scenario in snapshot] == [f"first {n}" for n in range(1, 6)]


def test_each_issue_gets_its_own_snapshot_when_first_reconciled() -> None:
    case = reconcile_scenarios(_case(), "i1", _drafts("access"))
    case = reconcile_scenarios(case, "i1", _drafts("access again"))
    case = reconcile_scenarios(case, "i2", _drafts("staffing"))
    case = reconcile_scenarios(case, "i2", _drafts("staffing again"))

    snapshots = case.original_snapshot.scenarios
    assert [scenario.description for scenario in snapshots["i1"]] == [f"access {n}" for n in range(1, 6)]
    assert [scenario.description for scenario in snapshots["i2"]] == [f"staffing {n}" for n in range(1, 6)]
    assert [scenario.id for scenario in snapshots["i2"]] == [f"i2-{n}" for n in range(1, 6)]


def test_batch_applies_valid_issues_and_collects_errors() -> None:
    case, errors = reconcile_scenario_batch(
        _case(),
        {"i1": _drafts("access"), "ghost": _drafts("ghost"), "i2": []},
    )

    assert len(case.scenarios_for_issue("i1")) == 5
    assert case.scenarios_for_issue("i2") == []
    assert len(errors) == 1
    assert isinstance(errors[0], UnknownIssueError)
