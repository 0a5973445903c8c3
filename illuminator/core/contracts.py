"""
Collaborator interfaces consumed by the pipeline.

The pipeline never talks to a database or a model directly; it calls these.
`core/store.py` and `core/generation.py` hold the shipped implementations,
tests pass small fakes.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from ..types import ResultSet, SampleSet, SchemaContext, SchemaSnapshot


class DataStore(Protocol):
    def fetch_schema(self, dataset_id: str) -> SchemaSnapshot:
        """Raise `DataStoreConnectionError` or `CredentialError` on failure."""
        ...

    def fetch_samples(self, dataset_id: str, table_names: Sequence[str], row_limit: int) -> SampleSet:
        ...

    def execute_query(self, dataset_id: str, query_text: str) -> ResultSet:
        """Raise `QueryExecutionError` for bad SQL, `DataStoreConnectionError` if the store went away."""
        ...


class QueryGenerator(Protocol):
    def generate_query(self, context: SchemaContext, question_text: str) -> str:
        """Raise `GenerationError` when no usable query comes back."""
        ...


class AnnotationModel(Protocol):
    def complete(self, messages: list[dict[str, str]]) -> str:
        """Raise `ModelUnavailableError` when the model cannot be called."""
        ...


class ResultDescriber(Protocol):
    def describe(self, question_text: str, result_set: ResultSet) -> str:
        ...
