"""Case aggregate transitions.

Every function takes the current ``Case`` and returns a new one; the input is
never mutated, so a rejected operation (a raised ``CaseError``) leaves the
caller's case exactly as it was.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Mapping, Sequence
from uuid import uuid4

from casebuilder.codec import decode_issues, merge_issue_drafts
from casebuilder.errors import CaseError, UnknownIssueError, UnknownScenarioError
from casebuilder.models import (
    Analysis,
    AnalysisDraft,
    Case,
    Issue,
    IssueDraft,
    PartyInput,
    RiskAssessment,
    ScenarioDraft,
    utc_now_iso,
)
from casebuilder.pairs import save_pair_content, select_pair, sync_active_pair
from casebuilder.parties import normalize_parties, pair_key, primary_pair_key, promote_pair, split_pair_key
from casebuilder.scenarios import reconcile_scenario_batch, reconcile_scenarios
from casebuilder import stages
from casebuilder.stages import Stage

logger = logging.getLogger("casebuilder.case")


def case_id_for_content(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _touch(case: Case, **update: object) -> Case:
    return case.model_copy(update={**update, "updated_at": utc_now_iso()})


def _require_analysis(case: Case) -> Analysis:
    if case.analysis is None:
        raise CaseError("The case has no analysis yet.")
    return case.analysis


def new_case(content: str, title: str | None = None) -> Case:
    """Start a case from raw content; nothing downstream survives."""
    now = utc_now_iso()
    return Case(
        id=case_id_for_content(content),
        title=(title or "").strip() or "Untitled Case",
        content=content,
        created_at=now,
        updated_at=now,
    )


def _activate_pair(case: Case, key: str | None) -> Case:
    if key is None or key == case.active_pair_key:
        return case
    if case.active_pair_key is None:
        # First pair for this case adopts whatever is already live.
        return save_pair_content(case, key, analysis=case.analysis, scenarios=case.scenarios)
    return select_pair(case, key)


def _drop_orphaned_pair(case: Case) -> Case:
    """Deactivate a pair whose parties are gone; its stored slot is kept."""
    if case.active_pair_key is None:
        return case
    known = {party.id for party in case.parties}
    if all(party_id in known for party_id in split_pair_key(case.active_pair_key)):
        return case
    logger.info(
        "pair_deactivated",
        extra={"event": "pair_deactivated", "case_id": case.id, "pair_key": case.active_pair_key},
    )
    return case.model_copy(
        update={"active_pair_key": None, "analysis": None, "scenarios": [], "selected_scenario_id": None}
    )


def set_parties(case: Case, inputs: Sequence[PartyInput]) -> Case:
    parties = normalize_parties(inputs, case.parties)
    updated = _touch(case, parties=parties, processed=True)
    key = primary_pair_key(parties)
    detached = _drop_orphaned_pair(updated)
    if detached is not updated:
        # Live content went with the dropped pair; load the new pair's slot.
        return detached if key is None else select_pair(detached, key)
    return _activate_pair(updated, key)


def select_party_pair(case: Case, party1_id: str, party2_id: str) -> Case:
    parties = promote_pair(case.parties, party1_id, party2_id)
    updated = _touch(case, parties=parties)
    return _activate_pair(updated, pair_key(party1_id, party2_id))


def _write_analysis(case: Case, analysis: Analysis) -> Case:
    analysis = analysis.model_copy(update={"updated_at": utc_now_iso()})
    snapshot = case.original_snapshot
    if snapshot.analysis is None:
        snapshot = snapshot.model_copy(update={"analysis": analysis.model_copy(deep=True)})
    updated = _touch(
        case,
        analysis=analysis,
        original_snapshot=snapshot,
        recalculation_status=stages.on_write(case.recalculation_status, Stage.ANALYSIS),
    )
    return sync_active_pair(updated)


def set_analysis(case: Case, analysis: Analysis) -> Case:
    return _write_analysis(case, analysis)


def apply_generated_analysis(case: Case, draft: AnalysisDraft) -> Case:
    """Replace the analysis with generated content, keeping user-owned issue fields."""
    previous = case.analysis
    issues = merge_issue_drafts(draft.issues, previous.issues if previous else [])
    if previous is None:
        analysis = Analysis(
            id=str(uuid4()),
            agreement_map=draft.agreement_map,
            interest_map=draft.interest_map,
            issues=issues,
        )
    else:
        analysis = previous.model_copy(
            update={
                "agreement_map": draft.agreement_map,
                "interest_map": draft.interest_map,
                "issues": issues,
            }
        )
    logger.info(
        "analysis_generated",
        extra={
            "event": "analysis_generated",
            "case_id": case.id,
            "issue_count": len(issues),
            "replaced": previous is not None,
        },
    )
    return _write_analysis(case, analysis)


def update_agreement_map(case: Case, text: str) -> Case:
    analysis = _require_analysis(case)
    return _write_analysis(case, analysis.model_copy(update={"agreement_map": text}))


def update_interest_map(case: Case, text: str) -> Case:
    analysis = _require_analysis(case)
    return _write_analysis(case, analysis.model_copy(update={"interest_map": text}))


def update_issues_text(case: Case, text: str) -> Case:
    analysis = _require_analysis(case)
    issues = decode_issues(text, analysis.issues)
    return _write_analysis(case, analysis.model_copy(update={"issues": issues}))


def update_issue(case: Case, issue: Issue) -> Case:
    analysis = _require_analysis(case)
    if not any(existing.id == issue.id for existing in analysis.issues):
        raise UnknownIssueError(issue.id)
    issues = [issue if existing.id == issue.id else existing for existing in analysis.issues]
    return _write_analysis(case, analysis.model_copy(update={"issues": issues}))


def _after_scenario_write(case: Case) -> Case:
    updated = _touch(
        case,
        recalculation_status=stages.on_write(case.recalculation_status, Stage.SCENARIOS),
    )
    return sync_active_pair(updated)


def apply_scenarios(case: Case, issue_id: str, drafts: Sequence[ScenarioDraft]) -> Case:
    return _after_scenario_write(reconcile_scenarios(case, issue_id, drafts))


def apply_scenario_batch(
    case: Case,
    drafts_by_issue: Mapping[str, Sequence[ScenarioDraft]],
) -> tuple[Case, list[CaseError]]:
    reconciled, errors = reconcile_scenario_batch(case, drafts_by_issue)
    if reconciled is case:
        return case, errors
    return _after_scenario_write(reconciled), errors


def select_scenario(case: Case, scenario_id: str | None) -> Case:
    if scenario_id is not None and case.find_scenario(scenario_id) is None:
        raise UnknownScenarioError(scenario_id)
    return _touch(case, selected_scenario_id=scenario_id)


def set_risk_assessment(case: Case, assessment: RiskAssessment) -> Case:
    """Store the current assessment for its scenario, replacing any older one."""
    if case.find_scenario(assessment.scenario_id) is None:
        raise UnknownScenarioError(assessment.scenario_id)
    assessments = [item for item in case.risk_assessments if item.scenario_id != assessment.scenario_id]
    assessments.append(assessment)
    return _touch(
        case,
        risk_assessments=assessments,
        recalculation_status=stages.on_write(case.recalculation_status, Stage.RISK_ASSESSMENTS),
    )


def remove_risk_assessment(case: Case, assessment_id: str) -> Case:
    remaining = [item for item in case.risk_assessments if item.id != assessment_id]
    if len(remaining) == len(case.risk_assessments):
        raise CaseError(f"Unknown risk assessment '{assessment_id}'.")
    return _touch(case, risk_assessments=remaining)


def mark_recalculated(case: Case, stage: Stage) -> Case:
    return _touch(case, recalculation_status=stages.mark_recalculated(case.recalculation_status, stage))


def mark_stale(case: Case, stage: Stage) -> Case:
    return _touch(case, recalculation_status=stages.mark_stale(case.recalculation_status, stage))


def reset_recalculation(case: Case) -> Case:
    return _touch(case, recalculation_status=stages.reset())


def restore_original_analysis(case: Case) -> Case:
    """Reject analysis edits: bring back the first captured texts, keeping boundaries."""
    original = case.original_snapshot.analysis
    if original is None:
        raise CaseError("No original analysis has been captured.")
    current = case.analysis
    drafts = [IssueDraft(name=issue.name, description=issue.description) for issue in original.issues]
    if current is None:
        restored = original.model_copy(deep=True)
    else:
        restored = current.model_copy(
            update={
                "agreement_map": original.agreement_map,
                "interest_map": original.interest_map,
                "issues": merge_issue_drafts(drafts, current.issues),
            }
        )
    return _write_analysis(case, restored)


def restore_original_scenarios(case: Case, issue_id: str) -> Case:
    original = case.original_snapshot.scenarios.get(issue_id)
    if not original:
        raise CaseError(f"No original scenarios captured for issue '{issue_id}'.")
    drafts = [ScenarioDraft(kind=scenario.kind, description=scenario.description) for scenario in original]
    return apply_scenarios(case, issue_id, drafts)
