from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from casebuilder import case as transitions
from casebuilder.errors import NoCaseError
from casebuilder.models import (
    Analysis,
    AnalysisDraft,
    Case,
    Issue,
    PartyInput,
    RiskAssessment,
    Scenario,
    ScenarioDraft,
)
from casebuilder.pairs import save_pair_content
from casebuilder.stages import Stage


class SetContentAction(BaseModel):
    type: Literal["set_content"] = "set_content"
    content: str = Field(..., min_length=1)
    title: str | None = Field(default=None, max_length=200)


class SetPartiesAction(BaseModel):
    type: Literal["set_parties"] = "set_parties"
    parties: list[PartyInput] = Field(default_factory=list)


class SelectPartyPairAction(BaseModel):
    type: Literal["select_party_pair"] = "select_party_pair"
    party1_id: str = Field(..., min_length=1)
    party2_id: str = Field(..., min_length=1)


class SavePairContentAction(BaseModel):
    type: Literal["save_pair_content"] = "save_pair_content"
    pair_key: str = Field(..., min_length=3)
    analysis: Analysis | None = None
    scenarios: list[Scenario] = Field(default_factory=list)


class SetAnalysisAction(BaseModel):
    type: Literal["set_analysis"] = "set_analysis"
    analysis: Analysis


class ApplyGeneratedAnalysisAction(BaseModel):
    type: Literal["apply_generated_analysis"] = "apply_generated_analysis"
    draft: AnalysisDraft


class UpdateAgreementMapAction(BaseModel):
    type: Literal["update_agreement_map"] = "update_agreement_map"
    text: str


class UpdateInterestMapAction(BaseModel):
    type: Literal["update_interest_map"] = "update_interest_map"
    text: str


class UpdateIssuesTextAction(BaseModel):
    type: Literal["update_issues_text"] = "update_issues_text"
    text: str


class UpdateIssueAction(BaseModel):
    type: Literal["update_issue"] = "update_issue"
    issue: Issue


class ApplyScenariosAction(BaseModel):
    type: Literal["apply_scenarios"] = "apply_scenarios"
    issue_id: str = Field(..., min_length=1)
    drafts: list[ScenarioDraft] = Field(default_factory=list)


class SelectScenarioAction(BaseModel):
    type: Literal["select_scenario"] = "select_scenario"
    scenario_id: str | None = None


class SetRiskAssessmentAction(BaseModel):
    type: Literal["set_risk_assessment"] = "set_risk_assessment"
    assessment: RiskAssessment


class RemoveRiskAssessmentAction(BaseModel):
    type: Literal["remove_risk_assessment"] = "remove_risk_assessment"
    assessment_id: str = Field(..., min_length=1)


class MarkRecalculatedAction(BaseModel):
    type: Literal["mark_recalculated"] = "mark_recalculated"
    stage: Stage


class MarkStaleAction(BaseModel):
    type: Literal["mark_stale"] = "mark_stale"
    stage: Stage


class ResetRecalculationAction(BaseModel):
    type: Literal["reset_recalculation"] = "reset_recalculation"


class RestoreOriginalAnalysisAction(BaseModel):
    type: Literal["restore_original_analysis"] = "restore_original_analysis"


class RestoreOriginalScenariosAction(BaseModel):
    type: Literal["restore_original_scenarios"] = "restore_original_scenarios"
    issue_id: str = Field(..., min_length=1)


CaseAction = Annotated[
    Union[
        SetContentAction,
        SetPartiesAction,
        SelectPartyPairAction,
        SavePairContentAction,
        SetAnalysisAction,
        ApplyGeneratedAnalysisAction,
        UpdateAgreementMapAction,
        UpdateInterestMapAction,
        UpdateIssuesTextAction,
        UpdateIssueAction,
        ApplyScenariosAction,
        SelectScenarioAction,
        SetRiskAssessmentAction,
        RemoveRiskAssessmentAction,
        MarkRecalculatedAction,
        MarkStaleAction,
        ResetRecalculationAction,
        RestoreOriginalAnalysisAction,
        RestoreOriginalScenariosAction,
    ],
    Field(discriminator="type"),
]


def apply_action(case: Case | None, action: CaseAction) -> Case:
    """Reduce one action onto the case and return the new case."""
    if isinstance(action, SetContentAction):
        return transitions.new_case(action.content, action.title)
    if case is None:
        raise NoCaseError(f"Action '{action.type}' needs a case; set the case content first.")

    if isinstance(action, SetPartiesAction):
        return transitions.set_parties(case, action.parties)
    if isinstance(action, SelectPartyPairAction):
        return transitions.select_party_pair(case, action.party1_id, action.party2_id)
    if isinstance(action, SavePairContentAction):
        provided = action.model_fields_set
        kwargs: dict[str, object] = {}
        if "analysis" in provided:
            kwargs["analysis"] = action.analysis
        if "scenarios" in provided:
            kwargs["scenarios"] = action.scenarios
        return save_pair_content(case, action.pair_key, **kwargs)
    if isinstance(action, SetAnalysisAction):
        return transitions.set_analysis(case, action.analysis)
    if isinstance(action, ApplyGeneratedAnalysisAction):
        return transitions.apply_generated_analysis(case, action.draft)
    if isinstance(action, UpdateAgreementMapAction):
        return transitions.update_agreement_map(case, action.text)
    if isinstance(action, UpdateInterestMapAction):
        return transitions.update_interest_map(case, action.text)
    if isinstance(action, UpdateIssuesTextAction):
        return transitions.update_issues_text(case, action.text)
    if isinstance(action, UpdateIssueAction):
        return transitions.update_issue(case, action.issue)
    if isinstance(action, ApplyScenariosAction):
        return transitions.apply_scenarios(case, action.issue_id, action.drafts)
    if isinstance(action, SelectScenarioAction):
        return transitions.select_scenario(case, action.scenario_id)
    if isinstance(action, SetRiskAssessmentAction):
        return transitions.set_risk_assessment(case, action.assessment)
    if isinstance(action, RemoveRiskAssessmentAction):
        return transitions.remove_risk_assessment(case, action.assessment_id)
    if isinstance(action, MarkRecalculatedAction):
        return transitions.mark_recalculated(case, action.stage)
    if isinstance(action, MarkStaleAction):
        return transitions.mark_stale(case, action.stage)
    if isinstance(action, ResetRecalculationAction):
        return transitions.reset_recalculation(case)
    if isinstance(action, RestoreOriginalAnalysisAction):
        return transitions.restore_original_analysis(case)
    if isinstance(action, RestoreOriginalScenariosAction):
        return transitions.restore_original_scenarios(case, action.issue_id)
    raise ValueError(f"Unsupported case action: {action!r}")
