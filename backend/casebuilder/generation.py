from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from casebuilder.config import Settings
from casebuilder.models import (
    SCENARIO_KINDS,
    AnalysisDraft,
    Issue,
    IssueDraft,
    Party,
    PartyInput,
    RiskAssessment,
    Scenario,
    ScenarioDraft,
)

logger = logging.getLogger("casebuilder.generation")

_THROTTLING_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceQuotaExceededException",
}
# Older prompt outputs name the sides p1/p2.
_KIND_ALIASES = {
    "redline_violated_p1": "redline_violated_a",
    "bottomline_violated_p1": "bottomline_violated_a",
    "bottomline_violated_p2": "bottomline_violated_b",
    "redline_violated_p2": "redline_violated_b",
}
_RISK_FIELDS = (
    "category",
    "short_term_impact",
    "short_term_mitigation",
    "short_term_risk_after",
    "long_term_impact",
    "long_term_mitigation",
    "long_term_risk_after",
    "overall_assessment",
)


class GenerationError(RuntimeError):
    """Raised when the generation backend fails or returns unusable output."""


@dataclass(frozen=True)
class RateLimited:
    """The backend asked us to slow down; nothing was produced."""

    operation: str
    detail: str = ""


class CaseGenerator(Protocol):
    def identify_parties(self, content: str) -> list[PartyInput] | RateLimited: ...

    def generate_analysis(self, content: str, party1: Party, party2: Party) -> AnalysisDraft | RateLimited: ...

    def generate_scenarios(self, issue: Issue, party1: Party, party2: Party) -> list[ScenarioDraft] | RateLimited: ...

    def generate_risk_assessment(
        self,
        scenario: Scenario,
        issue: Issue,
        party1: Party,
        party2: Party,
    ) -> RiskAssessment | RateLimited: ...


def normalize_scenario_kind(value: object) -> str | None:
    kind = str(value or "").strip().lower()
    kind = _KIND_ALIASES.get(kind, kind)
    return kind if kind in SCENARIO_KINDS else None


def _camel_to_snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def parse_party_inputs(payload: dict[str, object]) -> list[PartyInput]:
    raw_parties = payload.get("parties")
    if not isinstance(raw_parties, list):
        raise GenerationError("Party identification response is missing a 'parties' array.")
    parties: list[PartyInput] = []
    for item in raw_parties:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        parties.append(
            PartyInput(
                name=name[:200],
                description=str(item.get("description") or ""),
                is_primary=bool(item.get("is_primary", item.get("isPrimary", False))),
            )
        )
    return parties


def parse_issue_drafts(raw_issues: object) -> list[IssueDraft]:
    if not isinstance(raw_issues, list):
        return []
    return [
        IssueDraft(name=str(item.get("name") or "").strip(), description=str(item.get("description") or ""))
        for item in raw_issues
        if isinstance(item, dict)
    ]


def parse_scenario_drafts(payload: dict[str, object]) -> list[ScenarioDraft]:
    raw_scenarios = payload.get("scenarios")
    if not isinstance(raw_scenarios, list):
        raise GenerationError("Scenario response is missing a 'scenarios' array.")
    drafts: list[ScenarioDraft] = []
    for item in raw_scenarios:
        if not isinstance(item, dict):
            continue
        kind = normalize_scenario_kind(item.get("kind", item.get("type")))
        if kind is None:
            logger.warning(
                "scenario_kind_unrecognized",
                extra={"event": "scenario_kind_unrecognized", "kind": item.get("kind", item.get("type"))},
            )
            continue
        drafts.append(ScenarioDraft(kind=kind, description=str(item.get("description") or "")))
    return drafts


def parse_risk_assessment(payload: dict[str, object], scenario_id: str) -> RiskAssessment:
    values = {_camel_to_snake(str(key)): value for key, value in payload.items()}
    fields = {name: str(values.get(name) or "") for name in _RISK_FIELDS}
    return RiskAssessment(id=str(uuid4()), scenario_id=scenario_id, **fields)


def _is_throttled(exc: Exception) -> bool:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = str(response.get("Error", {}).get("Code", ""))
        if code in _THROTTLING_CODES:
            return True
    return "throttl" in str(exc).lower()


def _issue_brief(issue: Issue) -> dict[str, object]:
    return {
        "name": issue.name,
        "description": issue.description,
        "redline_a": issue.redline_a,
        "bottomline_a": issue.bottomline_a,
        "redline_b": issue.redline_b,
        "bottomline_b": issue.bottomline_b,
    }


class BedrockCaseGenerator:
    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client or self._create_bedrock_client()

    def identify_parties(self, content: str) -> list[PartyInput] | RateLimited:
        system_prompt = (
            "You identify the parties of a negotiation case. Return strict JSON only. "
            "Do not include markdown or prose."
        )
        user_prompt = (
            "Return a JSON object with key parties: an array of objects with keys name, description, is_primary. "
            "Mark exactly the two principal negotiating parties with is_primary true.\n\n"
            f"Case:\n{content}"
        )
        payload = self._invoke_json_model(
            "identify_parties",
            self._settings.bedrock_lite_model_id,
            system_prompt,
            user_prompt,
        )
        if isinstance(payload, RateLimited):
            return payload
        return parse_party_inputs(payload)

    def generate_analysis(self, content: str, party1: Party, party2: Party) -> AnalysisDraft | RateLimited:
        """Three chained calls: island of agreements, iceberg, then issues built on both."""
        system_prompt = "You are a frontline negotiation analyst. Return strict JSON only."
        parties_block = f"Party 1: {party1.name}\nParty 2: {party2.name}\n\nCase:\n{content}"

        agreements = self._invoke_json_model(
            "generate_analysis",
            self._settings.bedrock_model_id,
            system_prompt,
            "Return a JSON object with key agreement_map: a markdown island of agreements with the sections "
            "'## Contested Facts', '## Agreed Facts', '## Convergent Norms' and '## Divergent Norms'.\n\n"
            f"{parties_block}",
        )
        if isinstance(agreements, RateLimited):
            return agreements

        interests = self._invoke_json_model(
            "generate_analysis",
            self._settings.bedrock_model_id,
            system_prompt,
            "Return a JSON object with key interest_map: a markdown iceberg analysis with one '## ' section per "
            "party and '### Position (What)', '### Reasoning (How)' and '### Motives (Why)' under each.\n\n"
            f"{parties_block}",
        )
        if isinstance(interests, RateLimited):
            return interests

        agreement_map = str(agreements.get("agreement_map") or "")
        interest_map = str(interests.get("interest_map") or "")
        issues = self._invoke_json_model(
            "generate_analysis",
            self._settings.bedrock_model_id,
            system_prompt,
            "Return a JSON object with key issues: an array of objects with keys name and description, one per "
            "negotiable issue, most important first.\n\n"
            f"Island of agreements:\n{agreement_map}\n\nIceberg:\n{interest_map}\n\n{parties_block}",
        )
        if isinstance(issues, RateLimited):
            return issues

        return AnalysisDraft(
            agreement_map=agreement_map,
            interest_map=interest_map,
            issues=parse_issue_drafts(issues.get("issues")),
        )

    def generate_scenarios(self, issue: Issue, party1: Party, party2: Party) -> list[ScenarioDraft] | RateLimited:
        system_prompt = "You write negotiation scenarios across a spectrum of outcomes. Return strict JSON only."
        user_prompt = (
            "Return a JSON object with key scenarios: an array of exactly five objects with keys kind and "
            f"description. kind must be, in order: {', '.join(SCENARIO_KINDS)}. Suffix _a refers to "
            f"{party1.name}, suffix _b to {party2.name}.\n\n"
            f"Issue:\n{json.dumps(_issue_brief(issue), ensure_ascii=True)}"
        )
        payload = self._invoke_json_model(
            "generate_scenarios",
            self._settings.bedrock_model_id,
            system_prompt,
            user_prompt,
        )
        if isinstance(payload, RateLimited):
            return payload
        return parse_scenario_drafts(payload)

    def generate_risk_assessment(
        self,
        scenario: Scenario,
        issue: Issue,
        party1: Party,
        party2: Party,
    ) -> RiskAssessment | RateLimited:
        system_prompt = "You assess operational risk for humanitarian negotiators. Return strict JSON only."
        user_prompt = (
            f"Return a JSON object with keys: {', '.join(_RISK_FIELDS)}. "
            "Risk-after values are short ratings such as Low, Medium or High.\n\n"
            f"Negotiating parties: {party1.name} and {party2.name}\n"
            f"Issue:\n{json.dumps(_issue_brief(issue), ensure_ascii=True)}\n"
            f"Scenario ({scenario.kind}):\n{scenario.description}"
        )
        payload = self._invoke_json_model(
            "generate_risk_assessment",
            self._settings.bedrock_model_id,
            system_prompt,
            user_prompt,
        )
        if isinstance(payload, RateLimited):
            return payload
        return parse_risk_assessment(payload, scenario.id)

    def _create_bedrock_client(self) -> Any:
        try:
            import boto3  # type: ignore
        except ImportError as exc:
            raise GenerationError("boto3 is required for the Bedrock generation backend.") from exc

        return boto3.client("bedrock-runtime", region_name=self._settings.aws_region)

    def _invoke_json_model(
        self,
        operation: str,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
    ) -> dict[str, object] | RateLimited:
        if not model_id:
            raise GenerationError("Bedrock model ID is not configured.")

        started = time.perf_counter()
        try:
            response = self._client.converse(
                modelId=model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": [{"text": user_prompt}]}],
                inferenceConfig={
                    "temperature": self._settings.agent_temperature,
                    "maxTokens": self._settings.agent_max_tokens,
                },
            )
        except Exception as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            if _is_throttled(exc):
                logger.warning(
                    "generation_rate_limited",
                    extra={
                        "event": "generation_rate_limited",
                        "operation": operation,
                        "model_id": model_id,
                        "duration_ms": duration_ms,
                    },
                )
                return RateLimited(operation=operation, detail=str(exc))
            logger.warning(
                "generation_invoke_failed",
                extra={
                    "event": "generation_invoke_failed",
                    "operation": operation,
                    "model_id": model_id,
                    "duration_ms": duration_ms,
                    "error": str(exc),
                },
            )
            raise GenerationError(f"Bedrock invocation failed for model '{model_id}': {exc}") from exc

        text = self._extract_text(response)
        payload = self._parse_json_object(text)
        if not isinstance(payload, dict):
            raise GenerationError("Generation response must be a JSON object.")
        logger.info(
            "generation_invoke_completed",
            extra={
                "event": "generation_invoke_completed",
                "operation": operation,
                "model_id": model_id,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "user_prompt_chars": len(user_prompt),
                "response_chars": len(text),
            },
        )
        return payload

    @staticmethod
    def _extract_text(response: Any) -> str:
        outputs = response.get("output", {}).get("message", {}).get("content", [])
        parts = [item["text"] for item in outputs if isinstance(item.get("text"), str) and item["text"].strip()]
        if not parts:
            raise GenerationError("Generation response did not include textual output.")
        return "\n".join(parts).strip()

    @staticmethod
    def _parse_json_object(raw: str) -> Any:
        candidate = raw.strip()
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass

        fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", candidate, flags=re.IGNORECASE | re.DOTALL)
        if fenced:
            try:
                return json.loads(fenced.group(1))
            except json.JSONDecodeError:
                pass

        start = candidate.find("{")
        end = candidate.rfind("}")
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start : end + 1])
            except json.JSONDecodeError as exc:
                raise GenerationError("Generation response contained malformed JSON content.") from exc

        raise GenerationError("Generation response was not valid JSON.")


class TemplateCaseGenerator:
    """Offline generator producing fixed placeholder artifacts.

    Party identification needs a language model, so it yields no parties and
    the user enters them by hand.
    """

    def identify_parties(self, content: str) -> list[PartyInput] | RateLimited:
        return []

    def generate_analysis(self, content: str, party1: Party, party2: Party) -> AnalysisDraft | RateLimited:
        agreement_map = (
            "# Island of Agreements\n\n"
            "## Agreed Facts\n- Both parties acknowledge the need for discussion\n\n"
            "## Contested Facts\n- Details to be determined\n\n"
            "## Convergent Norms\n- Professional negotiation standards\n\n"
            "## Divergent Norms\n- Specific priorities of each party"
        )
        sides = []
        for label, party in (("Party 1", party1), ("Party 2", party2)):
            sides.append(
                f"## {label} ({party.name})\n\n"
                "### Position (What)\n- Initial position to be determined\n\n"
                "### Reasoning (How)\n- Reasoning to be analyzed\n\n"
                "### Motives (Why)\n- Underlying motives to be explored"
            )
        interest_map = "# Iceberg Analysis\n\n" + "\n\n".join(sides)
        return AnalysisDraft(
            agreement_map=agreement_map,
            interest_map=interest_map,
            issues=[IssueDraft(name="Issue 1", description="First negotiation issue")],
        )

    def generate_scenarios(self, issue: Issue, party1: Party, party2: Party) -> list[ScenarioDraft] | RateLimited:
        worst = (
            "redline is violated, creating a worst-case scenario for them. "
            "This would likely result in operational failure and potential withdrawal."
        )
        hard = (
            "bottomline is violated, creating a challenging situation that may be workable "
            "but with significant compromises."
        )
        return [
            ScenarioDraft(kind="redline_violated_a", description=f"{party1.name}'s {worst}"),
            ScenarioDraft(kind="bottomline_violated_a", description=f"{party1.name}'s {hard}"),
            ScenarioDraft(
                kind="agreement_area",
                description=(
                    "Both parties are operating within their acceptable ranges, "
                    "creating a viable agreement area."
                ),
            ),
            ScenarioDraft(kind="bottomline_violated_b", description=f"{party2.name}'s {hard}"),
            ScenarioDraft(kind="redline_violated_b", description=f"{party2.name}'s {worst}"),
        ]

    def generate_risk_assessment(
        self,
        scenario: Scenario,
        issue: Issue,
        party1: Party,
        party2: Party,
    ) -> RiskAssessment | RateLimited:
        return RiskAssessment(
            id=str(uuid4()),
            scenario_id=scenario.id,
            category="Security of Field Teams",
            short_term_impact="Increased exposure to checkpoints increases security risks for staff",
            short_term_mitigation="Enhanced security protocols, reduced team size, increased communication",
            short_term_risk_after="Medium",
            long_term_impact="Potential for security incidents increases over time with repeated exposure",
            long_term_mitigation="Rotation of staff, regular security assessments, contingency planning",
            long_term_risk_after="Medium-High",
            overall_assessment=(
                "The scenario presents significant but manageable security risks that require constant "
                "monitoring and adaptation"
            ),
        )


def build_case_generator(settings: Settings) -> CaseGenerator:
    backend = settings.generation_backend.strip().lower()
    if backend == "template":
        return TemplateCaseGenerator()
    if backend == "bedrock":
        return BedrockCaseGenerator(settings)
    raise GenerationError(
        f"Unsupported GENERATION_BACKEND '{settings.generation_backend}'. Use 'template' or 'bedrock'."
    )
