from __future__ import annotations


class CaseError(RuntimeError):
    """Raised when a case operation is rejected; the input case is left unchanged."""


class NoCaseError(CaseError):
    """Raised when an operation needs a case but none has been created."""


class UnknownIssueError(CaseError):
    def __init__(self, issue_id: str) -> None:
        super().__init__(f"Unknown issue '{issue_id}'.")
        self.issue_id = issue_id


class UnknownScenarioError(CaseError):
    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"Unknown scenario '{scenario_id}'.")
        self.scenario_id = scenario_id


class UnknownPartyError(CaseError):
    def __init__(self, party_id: str) -> None:
        super().__init__(f"Unknown party '{party_id}'.")
        self.party_id = party_id


class InvalidPairError(CaseError):
    """Raised when a pair key is malformed or names the same party twice."""
