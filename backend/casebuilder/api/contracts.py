from pydantic import BaseModel, Field

from casebuilder.actions import CaseAction
from casebuilder.models import Analysis, PartyInput, Scenario


class CaseContentRequest(BaseModel):
    content: str = Field(..., min_length=1)
    title: str | None = Field(default=None, max_length=200)


class PartiesRequest(BaseModel):
    parties: list[PartyInput] = Field(default_factory=list)


class PairSelectRequest(BaseModel):
    party1_id: str = Field(..., min_length=1)
    party2_id: str = Field(..., min_length=1)


class PairSaveRequest(BaseModel):
    party1_id: str = Field(..., min_length=1)
    party2_id: str = Field(..., min_length=1)
    analysis: Analysis | None = None
    scenarios: list[Scenario] | None = None


class CaseActionRequest(BaseModel):
    action: CaseAction


class IssuesMarkdownRequest(BaseModel):
    markdown: str
