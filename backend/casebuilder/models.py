from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

ScenarioKind = Literal[
    "redline_violated_a",
    "bottomline_violated_a",
    "agreement_area",
    "bottomline_violated_b",
    "redline_violated_b",
]

SCENARIO_KINDS: tuple[str, ...] = (
    "redline_violated_a",
    "bottomline_violated_a",
    "agreement_area",
    "bottomline_violated_b",
    "redline_violated_b",
)
SCENARIOS_PER_ISSUE = len(SCENARIO_KINDS)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Party(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    is_primary: bool = False
    is_user_side: bool = False
    ideal_outcomes: list[str] = Field(default_factory=list)


class PartyInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    is_primary: bool = False


class Issue(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    redline_a: str = ""
    bottomline_a: str = ""
    redline_b: str = ""
    bottomline_b: str = ""
    priority: int = 0


class IssueDraft(BaseModel):
    name: str = ""
    description: str = ""


class Scenario(BaseModel):
    id: str = Field(..., min_length=1)
    issue_id: str = Field(..., min_length=1)
    kind: ScenarioKind
    description: str = ""


class ScenarioDraft(BaseModel):
    kind: ScenarioKind
    description: str = ""


class Analysis(BaseModel):
    id: str = Field(..., min_length=1)
    agreement_map: str = ""
    interest_map: str = ""
    issues: list[Issue] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class AnalysisDraft(BaseModel):
    agreement_map: str = ""
    interest_map: str = ""
    issues: list[IssueDraft] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    id: str = Field(..., min_length=1)
    scenario_id: str = Field(..., min_length=1)
    category: str = ""
    short_term_impact: str = ""
    short_term_mitigation: str = ""
    short_term_risk_after: str = ""
    long_term_impact: str = ""
    long_term_mitigation: str = ""
    long_term_risk_after: str = ""
    overall_assessment: str = ""


class RecalculationStatus(BaseModel):
    analysis_fresh: bool = True
    scenarios_fresh: bool = True
    risk_assessments_fresh: bool = True
    last_timestamp: str | None = None


class OriginalSnapshot(BaseModel):
    analysis: Analysis | None = None
    scenarios: dict[str, list[Scenario]] = Field(default_factory=dict)


class PairContent(BaseModel):
    analysis: Analysis | None = None
    scenarios: list[Scenario] = Field(default_factory=list)


class Case(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = "Untitled Case"
    content: str = ""
    processed: bool = False
    parties: list[Party] = Field(default_factory=list)
    active_pair_key: str | None = None
    pair_content: dict[str, PairContent] = Field(default_factory=dict)
    analysis: Analysis | None = None
    scenarios: list[Scenario] = Field(default_factory=list)
    selected_scenario_id: str | None = None
    risk_assessments: list[RiskAssessment] = Field(default_factory=list)
    recalculation_status: RecalculationStatus = Field(default_factory=RecalculationStatus)
    original_snapshot: OriginalSnapshot = Field(default_factory=OriginalSnapshot)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    def find_issue(self, issue_id: str) -> Issue | None:
        if self.analysis is None:
            return None
        for issue in self.analysis.issues:
            if issue.id == issue_id:
                return issue
        return None

    def find_scenario(self, scenario_id: str) -> Scenario | None:
        for scenario in self.scenarios:
            if scenario.id == scenario_id:
                return scenario
        return None

    def scenarios_for_issue(self, issue_id: str) -> list[Scenario]:
        return [scenario for scenario in self.scenarios if scenario.issue_id == issue_id]
