import pytest

from illuminator.annotation.hypothesis import build_question_sets
from illuminator.annotation.reconcile import answer_progress, is_complete, reconcile_annotations, reconcile_table
from illuminator.errors import IncompleteAnswersError
from illuminator.types import TableAnswers, TableQuestionSet


def _full_vehicle_answers():
    return TableAnswers(
        table_answers={0: "One row per vehicle on the lot."},
        column_answers={
            "vehicle_id": {0: "yes", 1: "primary key"},
            "make": {0: "yes", 1: "Manufacturer brand, title case."},
            "year": {0: "yes", 1: "Model year, 1990 to 2030."},
            "status": {0: "available = on the lot, sold = delivered, pending = deposit taken"},
            "dealer_id": {0: "yes", 1: "foreign key", 2: "dealers.dealer_id"},
        },
    )


def _full_loan_answers():
    return TableAnswers(
        table_answers={0: "One row per financing agreement."},
        column_answers={
            "loan_id": {0: "yes", 1: "primary key"},
            "vehicle_id": {0: "yes", 1: "foreign key", 2: "vehicles.vehicle_id"},
            "monthly_payment": {0: "yes", 1: "USD"},
        },
    )


def test_progress_ignores_blank_answers(car_snapshot, car_samples):
    vehicles = build_question_sets(car_snapshot, car_samples)[0]
    answers = TableAnswers(table_answers={0: "   "}, column_answers={"make": {0: "yes"}})

    assert answer_progress(vehicles, answers) == (1, 11)
    assert answer_progress(vehicles, None) == (0, 11)
    assert is_complete(vehicles, _full_vehicle_answers())


def test_enum_tokens_survive_reconciliation(car_snapshot, car_samples):
    sets = build_question_sets(car_snapshot, car_samples)

    tables = reconcile_annotations(sets, {"vehicles": _full_vehicle_answers(), "loans": _full_loan_answers()})

    status = {c.name: c for c in tables[0].columns}["status"]
    for token in ("available", "sold", "pending"):
        assert token in status.description
    assert status.business_context == "part of vehicles entity definition"


def test_reconciled_table_merges_answers(car_snapshot, car_samples):
    vehicles = build_question_sets(car_snapshot, car_samples)[0]

    table = reconcile_table(vehicles, _full_vehicle_answers())

    assert table.description.startswith(vehicles.table_hypothesis)
    assert table.description.endswith("One row per vehicle on the lot.")
    dealer = {c.name: c for c in table.columns}["dealer_id"]
    assert dealer.business_context == "key role: foreign key"
    assert "dealers.dealer_id" in dealer.description
    # yes/no confirmations add no text
    assert "yes" not in dealer.description.split()


def test_table_without_questions_keeps_hypothesis_unchanged():
    qs = TableQuestionSet(
        table_name="empty_table",
        table_hypothesis="The empty_table table appears to store empty_table information with 0 attributes.",
        table_level_questions=[],
        column_questions=[],
    )

    table = reconcile_annotations([qs], {})[0]

    assert table.description == qs.table_hypothesis
    assert table.columns == []


def test_strict_reconciliation_rejects_incomplete_answers(car_snapshot, car_samples):
    sets = build_question_sets(car_snapshot, car_samples)

    with pytest.raises(IncompleteAnswersError) as err:
        reconcile_annotations(sets, {"vehicles": _full_vehicle_answers()})

    assert err.value.table_name == "loans"
    assert (err.value.answered, err.value.total) == (0, err.value.total)


def test_lenient_reconciliation_fills_gaps_with_hypothesis(car_snapshot, car_samples):
    sets = build_question_sets(car_snapshot, car_samples)

    tables = reconcile_annotations(sets, {"vehicles": _full_vehicle_answers()}, strict=False)

    loans = tables[1]
    assert loans.description == sets[1].table_hypothesis
    payment = {c.name: c for c in loans.columns}["monthly_payment"]
    assert payment.description == sets[1].column_questions[2].column.hypothesis_text
