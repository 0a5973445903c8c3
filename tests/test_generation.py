import pytest

from illuminator.annotation.hypothesis import generate_annotations
from illuminator.annotation.variants import build_contexts
from illuminator.core import generation
from illuminator.core.generation import ChatModelAnnotator, ChatModelQueryGenerator, ChatModelResultDescriber
from illuminator.core.llm import generate_text_from_messages
from illuminator.errors import GenerationError, ModelUnavailableError
from illuminator.types import Variant


class _BrokenTokenizer:
    def apply_chat_template(self, *args, **kwargs):
        raise RuntimeError("CUDA out of memory")


def _contexts(car_snapshot, car_samples):
    return build_contexts(car_snapshot, generate_annotations(car_snapshot, car_samples).annotations)


def test_query_generator_cleans_model_output(car_snapshot, car_samples, monkeypatch):
    seen = []

    def fake_generate(*, model, tokenizer, messages, max_new_tokens, constrained):
        seen.append(messages)
        return "```sql\nSELECT COUNT(*) FROM vehicles\n```"

    monkeypatch.setattr(generation, "generate_sql_from_messages", fake_generate)
    gen = ChatModelQueryGenerator(model=object(), tokenizer=object(), exemplars=[{"nlq": "n?", "sql": "SELECT 1 FROM t"}])
    contexts = _contexts(car_snapshot, car_samples)

    assert gen.generate_query(contexts[Variant.RAW], "how many vehicles") == "SELECT COUNT(*) FROM vehicles;"
    gen.generate_query(contexts[Variant.HYPOTHESIS], "how many vehicles")

    raw_msgs, hyp_msgs = seen
    assert "Table Descriptions" not in raw_msgs[1]["content"]
    assert "vehicles contains 5 columns" in hyp_msgs[1]["content"]
    assert raw_msgs[2] == {"role": "user", "content": "Example Question: n?"}
    assert raw_msgs[3] == {"role": "assistant", "content": "SELECT 1 FROM t;"}
    assert raw_msgs[-1]["content"] == "Natural Language Question: how many vehicles"


def test_query_generator_rejects_unusable_output(car_snapshot, car_samples, monkeypatch):
    monkeypatch.setattr(generation, "generate_sql_from_messages", lambda **kw: "DELETE FROM vehicles;")
    gen = ChatModelQueryGenerator(model=object(), tokenizer=object())

    with pytest.raises(GenerationError, match="no usable SQL"):
        gen.generate_query(_contexts(car_snapshot, car_samples)[Variant.RAW], "wipe it")


def test_annotator_and_describer_call_the_model(monkeypatch):
    calls = []

    def fake_text(*, model, tokenizer, messages, max_new_tokens):
        calls.append((messages, max_new_tokens))
        return "reply"

    monkeypatch.setattr(generation, "generate_text_from_messages", fake_text)

    assert ChatModelAnnotator(object(), object()).complete([{"role": "user", "content": "x"}]) == "reply"
    assert ChatModelResultDescriber(object(), object()).describe("how many", [{"n": 2}]) == "reply"

    describe_msgs = calls[1][0]
    assert "Question: how many" in describe_msgs[1]["content"]
    assert "Rows returned: 1" in describe_msgs[1]["content"]


def test_model_stack_failures_become_model_unavailable():
    with pytest.raises(ModelUnavailableError):
        generate_text_from_messages(model=object(), tokenizer=_BrokenTokenizer(), messages=[])
