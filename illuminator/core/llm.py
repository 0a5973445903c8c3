"""
Model-generation helpers for chat LLMs.

How to read this file:
1) `generate_text_from_messages()` runs chat-template generation with safe defaults
   and returns the decoded continuation.
2) `generate_sql_from_messages()` adds semicolon stopping, optional DDL/DML
   blocking, and SELECT extraction on top.
3) Any failure inside the model stack is re-raised as `ModelUnavailableError`.

References:
- Transformers generation docs: https://huggingface.co/docs/transformers/main_classes/text_generation
- Transformers quantization docs: https://huggingface.co/docs/transformers/main_classes/quantization
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from transformers import StoppingCriteria, StoppingCriteriaList

from ..errors import ModelUnavailableError
from .sql_guardrails import extract_first_select


logger = logging.getLogger(__name__)


class _StopOnSemicolon(StoppingCriteria):
    """Stop generation at the first ';' to reduce run-on explanations."""

    def __init__(self, tok: Any):
        semi = tok.encode(";", add_special_tokens=False)
        self._semi_id = semi[-1] if semi else None

    def __call__(self, input_ids, scores, **kwargs):  # type: ignore[override]
        if self._semi_id is None:
            return False
        return input_ids[0, -1].item() == self._semi_id


def _bad_word_variants(words: Iterable[str]) -> list[str]:
    variants: list[str] = []
    for w in words:
        variants.extend([w, w.upper(), w.lower(), w.capitalize()])
        variants.extend([f" {w}", f" {w.upper()}", f" {w.lower()}", f" {w.capitalize()}"])
    return list(dict.fromkeys(variants))


def _build_bad_words_ids(tok: Any) -> list[list[int]]:
    # DDL/DML/transaction keywords; a light PICARD-style block that leaves SELECTs alone.
    bad_words = [
        "insert",
        "update",
        "delete",
        "drop",
        "alter",
        "create",
        "truncate",
        "grant",
        "revoke",
        "commit",
        "rollback",
    ]
    bad_ids: list[list[int]] = []
    for w in _bad_word_variants(bad_words):
        ids = tok.encode(w, add_special_tokens=False)
        if ids:
            bad_ids.append(ids)
    return bad_ids


def generate_text_from_messages(
    *,
    model: Any,
    tokenizer: Any,
    messages: list[dict[str, str]],
    max_new_tokens: int = 512,
    do_sample: bool = False,
    temperature: float = 0.3,
    top_p: float = 0.95,
    stop_on_semicolon: bool = False,
    constrained: bool = False,
) -> str:
    try:
        import torch
        from transformers import BadWordsLogitsProcessor, LogitsProcessorList

        input_ids = tokenizer.apply_chat_template(
            messages,
            tokenize=True,
            add_generation_prompt=True,
            return_tensors="pt",
        ).to(model.device)
        # prompts are not padded, so an all-ones mask is valid even when pad == eos.
        attention_mask = torch.ones_like(input_ids)

        pad_token_id = getattr(tokenizer, "pad_token_id", None)
        if pad_token_id is None:
            pad_token_id = getattr(tokenizer, "eos_token_id", None)
        eos_token_id = getattr(tokenizer, "eos_token_id", None)

        gen_kwargs: dict[str, Any] = {
            "max_new_tokens": max_new_tokens,
            "do_sample": do_sample,
            "pad_token_id": pad_token_id,
            "eos_token_id": eos_token_id,
        }
        if do_sample:
            gen_kwargs.update({"temperature": temperature, "top_p": top_p})
        if stop_on_semicolon:
            gen_kwargs["stopping_criteria"] = StoppingCriteriaList([_StopOnSemicolon(tokenizer)])
        if constrained:
            bad_words_ids = _build_bad_words_ids(tokenizer)
            if bad_words_ids:
                gen_kwargs["logits_processor"] = LogitsProcessorList(
                    [BadWordsLogitsProcessor(bad_words_ids=bad_words_ids, eos_token_id=eos_token_id)]
                )

        with torch.no_grad():
            out = model.generate(input_ids, attention_mask=attention_mask, **gen_kwargs)

        gen_ids = out[0][input_ids.shape[-1] :]
        return tokenizer.decode(gen_ids, skip_special_tokens=True).strip()
    except Exception as e:
        logger.warning("Model generation failed: %s", e)
        raise ModelUnavailableError(f"model generation failed: {e}") from e


def generate_sql_from_messages(
    *,
    model: Any,
    tokenizer: Any,
    messages: list[dict[str, str]],
    max_new_tokens: int = 128,
    constrained: bool = True,
) -> str:
    """Return the extracted SELECT, or the raw text when nothing SQL-like was found."""
    gen_text = generate_text_from_messages(
        model=model,
        tokenizer=tokenizer,
        messages=messages,
        max_new_tokens=max_new_tokens,
        stop_on_semicolon=True,
        constrained=constrained,
    )
    sql = extract_first_select(gen_text)
    return sql if sql is not None else gen_text
