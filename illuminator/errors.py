"""
Error taxonomy.

Phase-level errors (`DataStoreConnectionError`, `CredentialError`) abort a run
and are re-raised with `phase` set. Question-level errors (`GenerationError`,
`QueryExecutionError`, `CallTimeoutError`) are caught by the orchestrator and
recorded in a verdict. `ModelUnavailableError` triggers the heuristic
annotation path.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    def __init__(self, message: str, *, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase:
            return f"[{self.phase}] {self.message}"
        return self.message


class DataStoreConnectionError(PipelineError):
    pass


class CredentialError(PipelineError):
    pass


class ModelUnavailableError(PipelineError):
    pass


class GenerationError(PipelineError):
    pass


class QueryExecutionError(PipelineError):
    pass


class CallTimeoutError(PipelineError):
    pass


class IncompleteAnswersError(PipelineError):
    def __init__(self, table_name: str, answered: int, total: int):
        super().__init__(f"Table '{table_name}' has {answered}/{total} questions answered")
        self.table_name = table_name
        self.answered = answered
        self.total = total


class AnnotationParseError(PipelineError, ValueError):
    pass
