"""Format checks for the user-editable artifacts.

Each check returns ``None`` when the content is acceptable and a short
human-readable message otherwise. Checks are advisory: edits are stored even
when a check fails, and the message is surfaced next to the artifact.
"""

from __future__ import annotations

import re
from typing import Sequence

from casebuilder.codec import encode_issues, split_issue_blocks
from casebuilder.models import SCENARIO_KINDS, Case, Issue, Scenario

AGREEMENT_MAP_SECTIONS = (
    "# Island of Agreements",
    "## Contested Facts",
    "## Agreed Facts",
    "## Convergent Norms",
    "## Divergent Norms",
)
_SECTION_SPLIT = re.compile(r"^##\s+", re.MULTILINE)

_FIRST_PARTY_PATTERN = re.compile(r"(?:^|\n)(?:## )?(?:Party 1|.*Organization|.*User.*|.*Your.*|.*We.*)")
_SECOND_PARTY_PATTERN = re.compile(r"(?:^|\n)(?:## )?(?:Party 2|.*Counter.*|.*They.*|.*Them.*)")
_INTEREST_LAYERS = (
    ("Positions/What", (re.compile(r"Positions?"), re.compile(r"What"))),
    ("Reasoning/How", (re.compile(r"Reasoning"), re.compile(r"How"))),
    ("Values/Motives/Why", (re.compile(r"Values?"), re.compile(r"Motives?"), re.compile(r"Why"))),
)


def validate_agreement_map(text: str) -> str | None:
    for section in AGREEMENT_MAP_SECTIONS:
        if section not in text:
            return f"Missing required section: {section}"
    sections = [part for part in _SECTION_SPLIT.split(text) if part]
    if len(sections) < 4:
        return (
            "Content must have at least 4 sections "
            "(Contested Facts, Agreed Facts, Convergent Norms, Divergent Norms)"
        )
    return None


def validate_interest_map(text: str) -> str | None:
    problems: list[str] = []
    if not (_FIRST_PARTY_PATTERN.search(text) and _SECOND_PARTY_PATTERN.search(text)):
        problems.append("Content must include sections for Party 1 and Party 2.")

    missing = [
        label
        for label, patterns in _INTEREST_LAYERS
        if not any(pattern.search(text) for pattern in patterns)
    ]
    if missing:
        problems.append(f"Missing required sections: {', '.join(missing)}")

    if "- " not in text:
        problems.append("Content must include bullet points (- ) for entries.")
    return " ".join(problems) or None


def validate_issues_markdown(text: str) -> str | None:
    if "##" not in text:
        return "Content must have issue headers (##)"
    blocks = split_issue_blocks(text)
    if not blocks:
        return "No valid issues found in content"
    for block in blocks:
        if not block.name.strip() or not block.description.strip():
            return f'Issue "{block.name.strip() or "unnamed"}" is missing a name or description'
    return None


def validate_boundaries(issues: Sequence[Issue]) -> str | None:
    if not issues:
        return "Issues must be a non-empty list"
    for issue in issues:
        if not issue.name.strip() or not issue.description.strip():
            return f"Issue {issue.id} is missing a name or description"
        if not issue.redline_a.strip() or not issue.bottomline_a.strip():
            return f'Issue "{issue.name}" is missing redline or bottomline for Party 1'
        if not issue.redline_b.strip() or not issue.bottomline_b.strip():
            return f'Issue "{issue.name}" is missing redline or bottomline for Party 2'
    return None


def validate_scenarios(scenarios: Sequence[Scenario]) -> str | None:
    if not scenarios:
        return "Scenarios must be a non-empty list"
    for scenario in scenarios:
        if not scenario.description.strip():
            return f"Scenario {scenario.id} is missing a description"
        if scenario.kind not in SCENARIO_KINDS:
            return f"Scenario {scenario.id} has invalid kind: {scenario.kind}"
    return None


def validate_case(case: Case) -> dict[str, str]:
    """Collect the messages for every artifact present on the case, keyed by artifact."""
    messages: dict[str, str | None] = {}
    if case.analysis is not None:
        messages["agreement_map"] = validate_agreement_map(case.analysis.agreement_map)
        messages["interest_map"] = validate_interest_map(case.analysis.interest_map)
        messages["issues"] = validate_issues_markdown(encode_issues(case.analysis.issues))
        messages["boundaries"] = validate_boundaries(case.analysis.issues)
    if case.scenarios:
        messages["scenarios"] = validate_scenarios(case.scenarios)
    return {key: message for key, message in messages.items() if message}
