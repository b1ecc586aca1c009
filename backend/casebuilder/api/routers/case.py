from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from casebuilder.actions import (
    SavePairContentAction,
    SelectPartyPairAction,
    SetContentAction,
    SetPartiesAction,
    UpdateIssuesTextAction,
)
from casebuilder.api.contracts import (
    CaseActionRequest,
    CaseContentRequest,
    IssuesMarkdownRequest,
    PairSaveRequest,
    PairSelectRequest,
    PartiesRequest,
)
from casebuilder.api.services.runtime import (
    CaseGeneratorGetter,
    case_errors_as_http,
    rate_limited_response,
    serialize_case,
    serialize_case_status,
)
from casebuilder.codec import encode_issues
from casebuilder.diffing import diff_case
from casebuilder.generation import RateLimited
from casebuilder.parties import pair_key
from casebuilder.pipeline import CaseSession
from casebuilder.validation import validate_case


def build_case_router(*, get_case_generator: CaseGeneratorGetter) -> APIRouter:
    router = APIRouter(prefix="/case")

    def session() -> CaseSession:
        return CaseSession(get_case_generator())

    @router.get("")
    def read_case() -> dict[str, object]:
        with case_errors_as_http():
            case = session().load()
        if case is None:
            return {"case": None, "validation": {}}
        return {**serialize_case(case), "validation": validate_case(case)}

    @router.delete("")
    def clear_case() -> dict[str, object]:
        with case_errors_as_http():
            removed = session().clear()
        return {"status": "cleared", "removed": removed}

    @router.put("/content")
    def set_content(payload: CaseContentRequest) -> dict[str, object]:
        with case_errors_as_http():
            case = session().dispatch(SetContentAction(content=payload.content, title=payload.title))
        return serialize_case(case)

    @router.put("/parties")
    def set_parties(payload: PartiesRequest) -> dict[str, object]:
        with case_errors_as_http():
            case = session().dispatch(SetPartiesAction(parties=payload.parties))
        return serialize_case(case)

    @router.post("/parties/identify", response_model=None)
    def identify_parties() -> dict[str, object] | JSONResponse:
        with case_errors_as_http():
            result = session().identify_parties()
        if isinstance(result, RateLimited):
            return rate_limited_response(result)
        return serialize_case(result)

    @router.post("/pairs/select")
    def select_pair(payload: PairSelectRequest) -> dict[str, object]:
        with case_errors_as_http():
            case = session().dispatch(
                SelectPartyPairAction(party1_id=payload.party1_id, party2_id=payload.party2_id)
            )
        return serialize_case(case)

    @router.post("/pairs/save")
    def save_pair(payload: PairSaveRequest) -> dict[str, object]:
        with case_errors_as_http():
            key = pair_key(payload.party1_id, payload.party2_id)
            fields: dict[str, object] = {"pair_key": key}
            if payload.analysis is not None:
                fields["analysis"] = payload.analysis
            if payload.scenarios is not None:
                fields["scenarios"] = payload.scenarios
            case = session().dispatch(SavePairContentAction(**fields))
        return serialize_case(case)

    @router.post("/actions")
    def dispatch_action(payload: CaseActionRequest) -> dict[str, object]:
        with case_errors_as_http():
            case = session().dispatch(payload.action)
        return serialize_case(case)

    @router.get("/issues/markdown")
    def read_issues_markdown() -> dict[str, object]:
        with case_errors_as_http():
            case = session().require()
        issues = case.analysis.issues if case.analysis else []
        return {"case_id": case.id, "markdown": encode_issues(issues), "issue_count": len(issues)}

    @router.put("/issues/markdown")
    def write_issues_markdown(payload: IssuesMarkdownRequest) -> dict[str, object]:
        with case_errors_as_http():
            case = session().dispatch(UpdateIssuesTextAction(text=payload.markdown))
        return {**serialize_case(case), "validation": validate_case(case)}

    @router.post("/generate/analysis", response_model=None)
    def generate_analysis() -> dict[str, object] | JSONResponse:
        with case_errors_as_http():
            result = session().generate_analysis()
        if isinstance(result, RateLimited):
            return rate_limited_response(result)
        return serialize_case(result)

    @router.post("/generate/scenarios", response_model=None)
    def generate_all_scenarios() -> dict[str, object] | JSONResponse:
        with case_errors_as_http():
            outcome = session().generate_all_scenarios()
        if outcome.rate_limited is not None and not outcome.generated_issue_ids:
            return rate_limited_response(outcome.rate_limited)
        return {
            **serialize_case(outcome.case),
            "generated_issue_ids": outcome.generated_issue_ids,
            "errors": [str(error) for error in outcome.errors],
            "rate_limited": outcome.rate_limited is not None,
        }

    @router.post("/generate/scenarios/{issue_id}", response_model=None)
    def generate_scenarios(issue_id: str) -> dict[str, object] | JSONResponse:
        with case_errors_as_http():
            result = session().generate_scenarios(issue_id)
        if isinstance(result, RateLimited):
            return rate_limited_response(result)
        return serialize_case(result)

    @router.post("/generate/risk/{scenario_id}", response_model=None)
    def generate_risk_assessment(scenario_id: str) -> dict[str, object] | JSONResponse:
        with case_errors_as_http():
            result = session().generate_risk_assessment(scenario_id)
        if isinstance(result, RateLimited):
            return rate_limited_response(result)
        return serialize_case(result)

    @router.get("/status")
    def case_status() -> dict[str, object]:
        with case_errors_as_http():
            case = session().require()
        return serialize_case_status(case)

    @router.get("/diff")
    def case_diff() -> dict[str, object]:
        with case_errors_as_http():
            case = session().require()
        return {"case_id": case.id, "diff": diff_case(case).model_dump(mode="json")}

    return router
