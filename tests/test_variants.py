import json

from illuminator.annotation.hypothesis import build_question_sets, generate_annotations
from illuminator.annotation.reconcile import reconcile_annotations
from illuminator.annotation.variants import build_contexts
from illuminator.core.prompting import make_few_shot_messages, render_schema_context
from illuminator.types import TableAnswers, Variant


def _dump(context):
    return json.dumps(context.to_jsonable(), sort_keys=True)


def test_raw_context_is_identical_across_modes(car_snapshot, car_samples):
    hyp = generate_annotations(car_snapshot, car_samples).annotations
    sets = build_question_sets(car_snapshot, car_samples)
    reconciled = reconcile_annotations(sets, {}, strict=False)

    standard = build_contexts(car_snapshot, hyp)
    interactive = build_contexts(car_snapshot, hyp, reconciled)

    assert _dump(standard[Variant.RAW]) == _dump(interactive[Variant.RAW])
    assert _dump(standard[Variant.HYPOTHESIS]) == _dump(build_contexts(car_snapshot, hyp)[Variant.HYPOTHESIS])


def test_raw_context_has_names_and_types_only(car_snapshot, car_samples):
    raw = build_contexts(car_snapshot, generate_annotations(car_snapshot, car_samples).annotations)[Variant.RAW]

    assert raw.variant is Variant.RAW
    assert [t.table_name for t in raw.tables] == ["vehicles", "loans"]
    for table in raw.tables:
        assert table.description == ""
        assert all(c.description == "" and c.business_context == "" for c in table.columns)

    schema_text, descriptions = render_schema_context(raw)
    assert "vehicles(vehicle_id INTEGER, make VARCHAR(50)" in schema_text
    assert descriptions is None


def test_standard_mode_annotated_context_mirrors_hypothesis(car_snapshot, car_samples):
    hyp = generate_annotations(car_snapshot, car_samples).annotations
    contexts = build_contexts(car_snapshot, hyp)

    assert contexts[Variant.ANNOTATED].variant is Variant.ANNOTATED
    assert contexts[Variant.ANNOTATED].tables == contexts[Variant.HYPOTHESIS].tables


def test_interactive_annotated_context_uses_reconciled_tables(car_snapshot, car_samples):
    hyp = generate_annotations(car_snapshot, car_samples).annotations
    sets = build_question_sets(car_snapshot, car_samples)
    answers = {"vehicles": TableAnswers(table_answers={0: "One row per vehicle on the lot."})}
    reconciled = reconcile_annotations(sets, answers, strict=False)

    annotated = build_contexts(car_snapshot, hyp, reconciled)[Variant.ANNOTATED]

    assert annotated.tables == reconciled
    _, descriptions = render_schema_context(annotated)
    assert "One row per vehicle on the lot." in descriptions


def test_only_the_description_block_differs_between_variant_prompts(car_snapshot, car_samples):
    contexts = build_contexts(car_snapshot, generate_annotations(car_snapshot, car_samples).annotations)

    raw_schema, raw_desc = render_schema_context(contexts[Variant.RAW])
    hyp_schema, hyp_desc = render_schema_context(contexts[Variant.HYPOTHESIS])
    raw_msgs = make_few_shot_messages(schema=raw_schema, exemplars=[], nlq="q", table_descriptions=raw_desc)
    hyp_msgs = make_few_shot_messages(schema=hyp_schema, exemplars=[], nlq="q", table_descriptions=hyp_desc)

    assert raw_schema == hyp_schema
    assert "Table Descriptions" not in raw_msgs[1]["content"]
    assert "Table Descriptions" in hyp_msgs[1]["content"]
    assert raw_msgs[-1] == hyp_msgs[-1]
