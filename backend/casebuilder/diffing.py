from __future__ import annotations

import difflib
from typing import Sequence, TypeVar

from pydantic import BaseModel, Field

from casebuilder.models import Case, Issue, Scenario

RecordT = TypeVar("RecordT", bound=BaseModel)


class FieldChange(BaseModel):
    field: str
    old: object = None
    new: object = None


class RecordChange(BaseModel):
    id: str
    label: str
    fields: list[FieldChange] = Field(default_factory=list)


class RecordDiff(BaseModel):
    added: list[dict[str, object]] = Field(default_factory=list)
    removed: list[dict[str, object]] = Field(default_factory=list)
    changed: list[RecordChange] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class AnalysisDiff(BaseModel):
    agreement_map: list[str] = Field(default_factory=list)
    interest_map: list[str] = Field(default_factory=list)
    issues: RecordDiff = Field(default_factory=RecordDiff)


class CaseDiff(BaseModel):
    analysis: AnalysisDiff | None = None
    scenarios: dict[str, RecordDiff] = Field(default_factory=dict)


def diff_text(original: str, current: str, *, label: str = "text") -> list[str]:
    """Unified diff lines; empty when the texts are equal."""
    if original == current:
        return []
    return list(
        difflib.unified_diff(
            original.splitlines(),
            current.splitlines(),
            fromfile=f"original/{label}",
            tofile=f"current/{label}",
            lineterm="",
        )
    )


def compare_records(
    original: Sequence[RecordT],
    current: Sequence[RecordT],
    *,
    label_field: str = "name",
) -> RecordDiff:
    before = {record.id: record.model_dump() for record in original}  # type: ignore[attr-defined]
    after = {record.id: record.model_dump() for record in current}  # type: ignore[attr-defined]

    diff = RecordDiff()
    for record_id, values in after.items():
        previous = before.get(record_id)
        if previous is None:
            diff.added.append(values)
            continue
        fields = [
            FieldChange(field=key, old=previous.get(key), new=value)
            for key, value in values.items()
            if previous.get(key) != value
        ]
        if fields:
            label = str(previous.get(label_field) or record_id)
            diff.changed.append(RecordChange(id=record_id, label=label, fields=fields))
    diff.removed.extend(values for record_id, values in before.items() if record_id not in after)
    return diff


def diff_issues(original: Sequence[Issue], current: Sequence[Issue]) -> RecordDiff:
    return compare_records(original, current)


def diff_scenarios(original: Sequence[Scenario], current: Sequence[Scenario]) -> RecordDiff:
    return compare_records(original, current, label_field="kind")


def diff_case(case: Case) -> CaseDiff:
    """Compare the live analysis and scenarios with the first captured versions."""
    result = CaseDiff()
    original = case.original_snapshot.analysis
    if original is not None and case.analysis is not None:
        result.analysis = AnalysisDiff(
            agreement_map=diff_text(original.agreement_map, case.analysis.agreement_map, label="agreement_map"),
            interest_map=diff_text(original.interest_map, case.analysis.interest_map, label="interest_map"),
            issues=diff_issues(original.issues, case.analysis.issues),
        )
    for issue_id, scenarios in case.original_snapshot.scenarios.items():
        issue_diff = diff_scenarios(scenarios, case.scenarios_for_issue(issue_id))
        if not issue_diff.is_empty:
            result.scenarios[issue_id] = issue_diff
    return result
