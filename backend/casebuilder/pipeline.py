"""Session wrapper around the pure case core.

The session is the only place that touches the store: it loads the current
case, reduces one action onto it and writes the result back. Generation
stages call the collaborator first and dispatch only a settled result, so a
failed or rate-limited call leaves the stored case untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from casebuilder import case as transitions
from casebuilder import db
from casebuilder.actions import (
    ApplyGeneratedAnalysisAction,
    ApplyScenariosAction,
    CaseAction,
    SetPartiesAction,
    SetRiskAssessmentAction,
    apply_action,
)
from casebuilder.codec import ordered_issues
from casebuilder.errors import CaseError, NoCaseError, UnknownIssueError, UnknownScenarioError
from casebuilder.generation import CaseGenerator, GenerationError, RateLimited
from casebuilder.models import Case, Party, ScenarioDraft
from casebuilder.parties import get_party, split_pair_key

logger = logging.getLogger("casebuilder.pipeline")


@dataclass
class BatchOutcome:
    case: Case
    generated_issue_ids: list[str] = field(default_factory=list)
    errors: list[CaseError] = field(default_factory=list)
    rate_limited: RateLimited | None = None


def negotiating_pair(case: Case) -> tuple[Party, Party]:
    """The two parties generation runs for: the active pair, else the first two."""
    if case.active_pair_key is not None:
        first_id, second_id = split_pair_key(case.active_pair_key)
        first = get_party(case.parties, first_id)
        second = get_party(case.parties, second_id)
        if first is not None and second is not None:
            return first, second
    if len(case.parties) < 2:
        raise CaseError("At least two parties are needed before generating case content.")
    return case.parties[0], case.parties[1]


class CaseSession:
    def __init__(self, generator: CaseGenerator, *, storage_key: str | None = None) -> None:
        self._generator = generator
        self._storage_key = storage_key

    def load(self) -> Case | None:
        return db.load_case(self._storage_key)

    def require(self) -> Case:
        case = self.load()
        if case is None:
            raise NoCaseError("No case has been created yet.")
        return case

    def _persist(self, case: Case, event: str, **fields: object) -> Case:
        db.save_case(case, self._storage_key)
        logger.info(event, extra={"event": event, "case_id": case.id, **fields})
        return case

    def dispatch(self, action: CaseAction) -> Case:
        case = apply_action(self.load(), action)
        return self._persist(case, "case_action_applied", action=action.type)

    def clear(self) -> bool:
        return db.delete_case(self._storage_key)

    def _rate_limited(self, result: RateLimited, **fields: object) -> RateLimited:
        logger.warning(
            "generation_deferred",
            extra={"event": "generation_deferred", "operation": result.operation, **fields},
        )
        return result

    def identify_parties(self) -> Case | RateLimited:
        case = self.require()
        result = self._generator.identify_parties(case.content)
        if isinstance(result, RateLimited):
            return self._rate_limited(result, case_id=case.id)
        if not result:
            logger.warning("parties_not_identified", extra={"event": "parties_not_identified", "case_id": case.id})
            return case
        return self.dispatch(SetPartiesAction(parties=result))

    def generate_analysis(self) -> Case | RateLimited:
        case = self.require()
        party1, party2 = negotiating_pair(case)
        result = self._generator.generate_analysis(case.content, party1, party2)
        if isinstance(result, RateLimited):
            return self._rate_limited(result, case_id=case.id)
        return self.dispatch(ApplyGeneratedAnalysisAction(draft=result))

    def generate_scenarios(self, issue_id: str) -> Case | RateLimited:
        case = self.require()
        issue = case.find_issue(issue_id)
        if issue is None:
            raise UnknownIssueError(issue_id)
        party1, party2 = negotiating_pair(case)
        result = self._generator.generate_scenarios(issue, party1, party2)
        if isinstance(result, RateLimited):
            return self._rate_limited(result, case_id=case.id, issue_id=issue_id)
        if not result:
            # An empty set would clear every scenario of the case.
            raise GenerationError(f"No usable scenarios were generated for issue '{issue_id}'.")
        return self.dispatch(ApplyScenariosAction(issue_id=issue_id, drafts=result))

    def generate_all_scenarios(self) -> BatchOutcome:
        """Generate scenarios issue by issue in priority order.

        Results settled before a rate limit are kept; the issue that hit the
        limit and every later one are left as they were.
        """
        case = self.require()
        if case.analysis is None:
            raise CaseError("The case has no analysis yet.")
        party1, party2 = negotiating_pair(case)

        drafts_by_issue: dict[str, list[ScenarioDraft]] = {}
        rate_limited: RateLimited | None = None
        for issue in ordered_issues(case.analysis.issues):
            result = self._generator.generate_scenarios(issue, party1, party2)
            if isinstance(result, RateLimited):
                rate_limited = self._rate_limited(result, case_id=case.id, issue_id=issue.id)
                break
            drafts_by_issue[issue.id] = list(result)

        current = self.require()
        updated, errors = transitions.apply_scenario_batch(current, drafts_by_issue)
        outcome = BatchOutcome(
            case=updated,
            generated_issue_ids=[issue_id for issue_id, drafts in drafts_by_issue.items() if drafts],
            errors=errors,
            rate_limited=rate_limited,
        )
        if updated is not current:
            self._persist(
                updated,
                "scenario_batch_applied",
                issue_count=len(outcome.generated_issue_ids),
                rejected=len(errors),
            )
        return outcome

    def generate_risk_assessment(self, scenario_id: str) -> Case | RateLimited:
        case = self.require()
        scenario = case.find_scenario(scenario_id)
        if scenario is None:
            raise UnknownScenarioError(scenario_id)
        issue = case.find_issue(scenario.issue_id)
        if issue is None:
            raise UnknownIssueError(scenario.issue_id)
        party1, party2 = negotiating_pair(case)
        result = self._generator.generate_risk_assessment(scenario, issue, party1, party2)
        if isinstance(result, RateLimited):
            return self._rate_limited(result, case_id=case.id, scenario_id=scenario_id)
        return self.dispatch(SetRiskAssessmentAction(assessment=result))
