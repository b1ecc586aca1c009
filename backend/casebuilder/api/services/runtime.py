from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Callable, Iterator

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from casebuilder.db import StoreError
from casebuilder.errors import (
    CaseError,
    NoCaseError,
    UnknownIssueError,
    UnknownPartyError,
    UnknownScenarioError,
)
from casebuilder.generation import CaseGenerator, GenerationError, RateLimited
from casebuilder.models import Case
from casebuilder.stages import first_stale_stage, stale_stages
from casebuilder.validation import validate_case

logger = logging.getLogger("casebuilder.api")

CaseGeneratorGetter = Callable[[], CaseGenerator]

_NOT_FOUND_ERRORS = (NoCaseError, UnknownIssueError, UnknownScenarioError, UnknownPartyError)


@contextmanager
def case_errors_as_http() -> Iterator[None]:
    """Translate core, generation and store failures into HTTP errors."""
    try:
        yield
    except _NOT_FOUND_ERRORS as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CaseError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except GenerationError as exc:
        raise HTTPException(
            status_code=502,
            detail={"message": "Case generation failed.", "error": str(exc)},
        ) from exc
    except StoreError as exc:
        logger.error("case_store_unavailable", extra={"event": "case_store_unavailable", "error": str(exc)})
        raise HTTPException(status_code=503, detail="Case store is unavailable.") from exc


def rate_limited_response(result: RateLimited) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"status": "rate_limited", "operation": result.operation},
    )


def serialize_case(case: Case) -> dict[str, object]:
    return {"case": case.model_dump(mode="json")}


def serialize_case_status(case: Case) -> dict[str, object]:
    status = case.recalculation_status
    next_stage = first_stale_stage(status)
    return {
        "case_id": case.id,
        "processed": case.processed,
        "active_pair_key": case.active_pair_key,
        "has_analysis": case.analysis is not None,
        "issue_count": len(case.analysis.issues) if case.analysis else 0,
        "scenario_count": len(case.scenarios),
        "risk_assessment_count": len(case.risk_assessments),
        "recalculation_status": status.model_dump(mode="json"),
        "stale_stages": [stage.value for stage in stale_stages(status)],
        "next_stage": next_stage.value if next_stage else None,
        "validation": validate_case(case),
    }
