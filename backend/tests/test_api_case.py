from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from casebuilder.config import settings
from casebuilder.generation import RateLimited, TemplateCaseGenerator
from casebuilder.main import app
from casebuilder.models import PartyInput


class FakeCaseGenerator(TemplateCaseGenerator):
    rate_limited = False

    def identify_parties(self, content: str):
        if self.rate_limited:
            return RateLimited(operation="identify_parties")
        return [PartyInput(name="Relief NGO", is_primary=True), PartyInput(name="Valley council", is_primary=True)]

    def generate_analysis(self, content, party1, party2):
        if self.rate_limited:
            return RateLimited(operation="generate_analysis")
        return super().generate_analysis(content, party1, party2)


@pytest.fixture()
def generator() -> FakeCaseGenerator:
    return FakeCaseGenerator()


@pytest.fixture(autouse=True)
def isolated_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, generator: FakeCaseGenerator):
    original = settings.database_url
    settings.database_url = f"sqlite:///{tmp_path}/api.db"
    monkeypatch.setattr("casebuilder.main.get_case_generator", lambda: generator)
    yield
    settings.database_url = original


def _bootstrap(client: TestClient) -> dict[str, object]:
    assert client.put("/case/content", json={"content": "A convoy needs access.", "title": "Valley"}).status_code == 200
    assert client.post("/case/parties/identify").status_code == 200
    response = client.post("/case/generate/analysis")
    assert response.status_code == 200
    return response.json()["case"]


def test_empty_store_has_no_case() -> None:
    with TestClient(app) as client:
        response = client.get("/case")
        assert response.status_code == 200
        assert response.json()["case"] is None
        assert client.get("/case/status").status_code == 404


def test_full_flow_over_http() -> None:
    with TestClient(app) as client:
        case = _bootstrap(client)
        assert case["title"] == "Valley"
        assert case["active_pair_key"] == "party-1|party-2"
        issue_id = case["analysis"]["issues"][0]["id"]

        response = client.post(f"/case/generate/scenarios/{issue_id}")
        assert response.status_code == 200
        scenarios = response.json()["case"]["scenarios"]
        assert [scenario["id"] for scenario in scenarios] == [f"{issue_id}-{n}" for n in range(1, 6)]

        response = client.post(f"/case/generate/risk/{issue_id}-2")
        assert response.status_code == 200
        assert response.json()["case"]["risk_assessments"][0]["scenario_id"] == f"{issue_id}-2"

        status = client.get("/case/status").json()
        assert status["stale_stages"] == []
        assert status["scenario_count"] == 5


def test_issue_markdown_round_trip_keeps_ids() -> None:
    with TestClient(app) as client:
        case = _bootstrap(client)
        issue_id = case["analysis"]["issues"][0]["id"]

        markdown = client.get("/case/issues/markdown").json()["markdown"]
        assert markdown.startswith("## Issue 1")

        response = client.put(
            "/case/issues/markdown",
            json={"markdown": "## Access Route\n\nRevised wording\n\n## Staffing\n\nLocal hires."},
        )
        assert response.status_code == 200
        issues = response.json()["case"]["analysis"]["issues"]
        assert [issue["name"] for issue in issues] == ["Access Route", "Staffing"]
        assert issues[0]["id"] == issue_id

        status = client.get("/case/status").json()
        assert status["stale_stages"] == ["scenarios", "risk_assessments"]
        assert status["next_stage"] == "scenarios"


def test_rate_limited_generation_returns_429_and_keeps_case(generator: FakeCaseGenerator) -> None:
    with TestClient(app) as client:
        _bootstrap(client)
        before = client.get("/case").json()

        generator.rate_limited = True
        response = client.post("/case/generate/analysis")

        assert response.status_code == 429
        assert response.json()["status"] == "rate_limited"
        assert client.get("/case").json() == before


def test_generic_action_endpoint_and_error_mapping() -> None:
    with TestClient(app) as client:
        response = client.post("/case/actions", json={"action": {"type": "reset_recalculation"}})
        assert response.status_code == 404

        _bootstrap(client)
        response = client.post("/case/actions", json={"action": {"type": "mark_stale", "stage": "analysis"}})
        assert response.status_code == 200
        assert response.json()["case"]["recalculation_status"]["analysis_fresh"] is False

        response = client.post("/case/actions", json={"action": {"type": "select_scenario", "scenario_id": "nope"}})
        assert response.status_code == 404

        response = client.post("/case/actions", json={"action": {"type": "teleport"}})
        assert response.status_code == 422

        response = client.post("/case/pairs/select", json={"party1_id": "party-1", "party2_id": "party-1"})
        assert response.status_code == 409


def test_pair_endpoints_isolate_content() -> None:
    with TestClient(app) as client:
        _bootstrap(client)
        client.put(
            "/case/parties",
            json={
                "parties": [
                    {"name": "Relief NGO", "is_primary": True},
                    {"name": "Valley council", "is_primary": True},
                    {"name": "Militia"},
                ]
            },
        )

        switched = client.post("/case/pairs/select", json={"party1_id": "party-1", "party2_id": "party-3"}).json()
        assert switched["case"]["analysis"] is None
        assert len(switched["case"]["parties"]) == 3

        back = client.post("/case/pairs/select", json={"party1_id": "party-1", "party2_id": "party-2"}).json()
        assert back["case"]["analysis"] is not None


def test_diff_reports_edits_against_first_analysis() -> None:
    with TestClient(app) as client:
        _bootstrap(client)
        edit = {"type": "update_agreement_map", "text": "# Island of Agreements\n\nedited"}
        assert client.post("/case/actions", json={"action": edit}).status_code == 200

        diff = client.get("/case/diff").json()["diff"]
        assert diff["analysis"]["agreement_map"]
        assert diff["analysis"]["issues"]["changed"] == []


def test_delete_clears_the_case() -> None:
    with TestClient(app) as client:
        _bootstrap(client)
        assert client.delete("/case").json()["removed"] is True
        assert client.get("/case").json()["case"] is None


def test_saving_a_second_pair_does_not_copy_the_first_pairs_scenarios() -> None:
    with TestClient(app) as client:
        case = _bootstrap(client)
        issue_id = case["analysis"]["issues"][0]["id"]
        assert client.post(f"/case/generate/scenarios/{issue_id}").status_code == 200
        client.put(
            "/case/parties",
            json={
                "parties": [
                    {"name": "Relief NGO", "is_primary": True},
                    {"name": "Valley council", "is_primary": True},
                    {"name": "Militia"},
                ]
            },
        )

        response = client.post(
            "/case/pairs/save",
            json={
                "party1_id": "party-1",
                "party2_id": "party-3",
                "analysis": {"id": "analysis-militia", "agreement_map": "# Island of Agreements"},
            },
        )

        assert response.status_code == 200
        saved = response.json()["case"]
        assert saved["active_pair_key"] == "party-1|party-3"
        assert saved["scenarios"] == []
        assert saved["pair_content"]["party-1|party-3"]["scenarios"] == []
        assert len(saved["pair_content"]["party-1|party-2"]["scenarios"]) == 5
