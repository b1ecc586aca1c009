"""Freshness cascade over the ordered pipeline stages.

Writing (or confirming) a stage makes it fresh and every later stage stale.
Reads never change freshness.
"""

from __future__ import annotations

from enum import Enum

from casebuilder.models import RecalculationStatus, utc_now_iso


class Stage(str, Enum):
    ANALYSIS = "analysis"
    SCENARIOS = "scenarios"
    RISK_ASSESSMENTS = "risk_assessments"


STAGE_ORDER: tuple[Stage, ...] = (Stage.ANALYSIS, Stage.SCENARIOS, Stage.RISK_ASSESSMENTS)

_FRESH_FIELDS: dict[Stage, str] = {
    Stage.ANALYSIS: "analysis_fresh",
    Stage.SCENARIOS: "scenarios_fresh",
    Stage.RISK_ASSESSMENTS: "risk_assessments_fresh",
}


def is_stale(status: RecalculationStatus, stage: Stage) -> bool:
    return not getattr(status, _FRESH_FIELDS[stage])


def stale_stages(status: RecalculationStatus) -> list[Stage]:
    return [stage for stage in STAGE_ORDER if is_stale(status, stage)]


def first_stale_stage(status: RecalculationStatus) -> Stage | None:
    stale = stale_stages(status)
    return stale[0] if stale else None


def on_write(status: RecalculationStatus, stage: Stage) -> RecalculationStatus:
    position = STAGE_ORDER.index(stage)
    update: dict[str, object] = {_FRESH_FIELDS[stage]: True, "last_timestamp": utc_now_iso()}
    for downstream in STAGE_ORDER[position + 1 :]:
        update[_FRESH_FIELDS[downstream]] = False
    return status.model_copy(update=update)


def mark_recalculated(status: RecalculationStatus, stage: Stage) -> RecalculationStatus:
    # Cascades exactly like a write; no content changes.
    return on_write(status, stage)


def mark_stale(status: RecalculationStatus, stage: Stage) -> RecalculationStatus:
    return status.model_copy(update={_FRESH_FIELDS[stage]: False})


def reset() -> RecalculationStatus:
    return RecalculationStatus(
        analysis_fresh=True,
        scenarios_fresh=True,
        risk_assessments_fresh=True,
        last_timestamp=utc_now_iso(),
    )
