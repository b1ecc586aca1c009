from __future__ import annotations

from pathlib import Path

import pytest

from casebuilder import db
from casebuilder.actions import SetContentAction, SetPartiesAction, UpdateIssuesTextAction
from casebuilder.codec import encode_issues
from casebuilder.config import settings
from casebuilder.errors import CaseError, NoCaseError
from casebuilder.generation import GenerationError, RateLimited, TemplateCaseGenerator
from casebuilder.models import Issue, Party, PartyInput
from casebuilder.pipeline import CaseSession


class ScriptedGenerator(TemplateCaseGenerator):
    """Template output, except for the operations told to rate-limit or return nothing."""

    def __init__(self, *, limited: set[str] | None = None, limit_after: int | None = None) -> None:
        self.limited = limited or set()
        self.limit_after = limit_after
        self.scenario_calls = 0

    def identify_parties(self, content: str):
        if "identify_parties" in self.limited:
            return RateLimited(operation="identify_parties")
        return [PartyInput(name="Relief NGO", is_primary=True), PartyInput(name="Valley council", is_primary=True)]

    def generate_analysis(self, content: str, party1: Party, party2: Party):
        if "generate_analysis" in self.limited:
            return RateLimited(operation="generate_analysis")
        return super().generate_analysis(content, party1, party2)

    def generate_scenarios(self, issue: Issue, party1: Party, party2: Party):
        self.scenario_calls += 1
        if "empty_scenarios" in self.limited:
            return []
        if self.limit_after is not None and self.scenario_calls > self.limit_after:
            return RateLimited(operation="generate_scenarios")
        return super().generate_scenarios(issue, party1, party2)


@pytest.fixture(autouse=True)
def isolated_store(tmp_path: Path):
    original = settings.database_url
    settings.database_url = f"sqlite:///{tmp_path}/pipeline.db"
    db.init_db()
    yield
    settings.database_url = original


def _stored_bytes() -> str | None:
    with db.get_conn() as conn:
        row = conn.execute(
            "SELECT payload_json FROM case_records WHERE storage_key = ?",
            (settings.case_storage_key,),
        ).fetchone()
    return None if row is None else row["payload_json"]


def _session_with_analysis(generator: ScriptedGenerator) -> CaseSession:
    session = CaseSession(generator)
    session.dispatch(SetContentAction(content="A convoy needs access to the valley."))
    session.identify_parties()
    session.generate_analysis()
    return session


def test_dispatch_writes_through_to_the_store() -> None:
    session = CaseSession(ScriptedGenerator())
    case = session.dispatch(SetContentAction(content="text"))
    assert db.load_case() == case


def test_dispatch_without_case_raises_and_stores_nothing() -> None:
    session = CaseSession(ScriptedGenerator())
    with pytest.raises(NoCaseError):
        session.dispatch(SetPartiesAction(parties=[]))
    assert _stored_bytes() is None


def test_rate_limited_generation_leaves_stored_case_byte_identical() -> None:
    session = CaseSession(ScriptedGenerator(limited={"identify_parties", "generate_analysis"}))
    session.dispatch(SetContentAction(content="text"))
    session.dispatch(SetPartiesAction(parties=[PartyInput(name="A"), PartyInput(name="B")]))
    before = _stored_bytes()

    assert isinstance(session.identify_parties(), RateLimited)
    assert isinstance(session.generate_analysis(), RateLimited)
    assert _stored_bytes() == before


def test_full_generation_flow_persists_each_stage() -> None:
    session = _session_with_analysis(ScriptedGenerator())
    case = session.require()
    assert case.processed
    assert [party.name for party in case.parties] == ["Relief NGO", "Valley council"]
    issue_id = case.analysis.issues[0].id

    case = session.generate_scenarios(issue_id)
    assert [scenario.id for scenario in case.scenarios] == [f"{issue_id}-{n}" for n in range(1, 6)]

    case = session.generate_risk_assessment(f"{issue_id}-1")
    assert case.risk_assessments[0].scenario_id == f"{issue_id}-1"
    assert db.load_case() == case


def test_generation_needs_two_parties() -> None:
    session = CaseSession(ScriptedGenerator())
    session.dispatch(SetContentAction(content="text"))
    with pytest.raises(CaseError):
        session.generate_analysis()


def test_empty_generated_scenarios_never_clear_the_case() -> None:
    session = _session_with_analysis(ScriptedGenerator(limited={"empty_scenarios"}))
    issue_id = session.require().analysis.issues[0].id
    before = _stored_bytes()

    with pytest.raises(GenerationError):
        session.generate_scenarios(issue_id)
    assert _stored_bytes() == before


def test_batch_keeps_results_settled_before_a_rate_limit() -> None:
    session = _session_with_analysis(ScriptedGenerator(limit_after=1))
    analysis = session.require().analysis
    text = encode_issues(analysis.issues) + "\n\n## Staffing\n\nLocal hires."
    case = session.dispatch(UpdateIssuesTextAction(text=text))
    first_issue, second_issue = case.analysis.issues

    outcome = session.generate_all_scenarios()

    assert outcome.rate_limited is not None
    assert outcome.generated_issue_ids == [first_issue.id]
    assert len(outcome.case.scenarios_for_issue(first_issue.id)) == 5
    assert outcome.case.scenarios_for_issue(second_issue.id) == []
    assert db.load_case() == outcome.case


def test_identify_parties_with_no_result_keeps_the_case() -> None:
    class Silent(ScriptedGenerator):
        def identify_parties(self, content: str):
            return []

    session = CaseSession(Silent())
    session.dispatch(SetContentAction(content="text"))
    before = _stored_bytes()
    case = session.identify_parties()
    assert case.parties == []
    assert _stored_bytes() == before


def test_clear_removes_the_stored_case() -> None:
    session = CaseSession(ScriptedGenerator())
    session.dispatch(SetContentAction(content="text"))
    assert session.clear() is True
    assert session.load() is None

