"""
Chat-model collaborators.

How to read this file:
1) `ChatModelQueryGenerator` turns (schema context, question) into one SELECT.
2) `ChatModelAnnotator` sends the annotation prompt and returns raw model text.
3) `ChatModelResultDescriber` summarizes a result set in one sentence.

All three share one loaded (model, tokenizer) pair; the CLI runner loads it.
"""

from __future__ import annotations

from typing import Any, Optional

from ..errors import GenerationError
from ..types import ResultSet, SchemaContext
from .llm import generate_sql_from_messages, generate_text_from_messages
from .prompting import make_few_shot_messages, make_result_description_messages, render_schema_context
from .sql_guardrails import clean_candidate_with_reason


class ChatModelQueryGenerator:
    def __init__(
        self,
        model: Any,
        tokenizer: Any,
        *,
        exemplars: Optional[list[dict[str, Any]]] = None,
        max_new_tokens: int = 256,
        constrained: bool = True,
    ):
        self.model = model
        self.tokenizer = tokenizer
        self.exemplars = list(exemplars or [])
        self.max_new_tokens = max_new_tokens
        self.constrained = constrained

    def generate_query(self, context: SchemaContext, question_text: str) -> str:
        schema_text, table_descriptions = render_schema_context(context)
        messages = make_few_shot_messages(
            schema=schema_text,
            exemplars=self.exemplars,
            nlq=question_text,
            table_descriptions=table_descriptions,
        )
        raw = generate_sql_from_messages(
            model=self.model,
            tokenizer=self.tokenizer,
            messages=messages,
            max_new_tokens=self.max_new_tokens,
            constrained=self.constrained,
        )
        sql, reason = clean_candidate_with_reason(raw)
        if sql is None:
            raise GenerationError(f"no usable SQL ({reason})")
        return sql


class ChatModelAnnotator:
    def __init__(self, model: Any, tokenizer: Any, *, max_new_tokens: int = 2048):
        self.model = model
        self.tokenizer = tokenizer
        self.max_new_tokens = max_new_tokens

    def complete(self, messages: list[dict[str, str]]) -> str:
        return generate_text_from_messages(
            model=self.model,
            tokenizer=self.tokenizer,
            messages=messages,
            max_new_tokens=self.max_new_tokens,
        )


class ChatModelResultDescriber:
    def __init__(self, model: Any, tokenizer: Any, *, max_new_tokens: int = 64):
        self.model = model
        self.tokenizer = tokenizer
        self.max_new_tokens = max_new_tokens

    def describe(self, question_text: str, result_set: ResultSet) -> str:
        messages = make_result_description_messages(question_text=question_text, result_set=result_set)
        return generate_text_from_messages(
            model=self.model,
            tokenizer=self.tokenizer,
            messages=messages,
            max_new_tokens=self.max_new_tokens,
        )
