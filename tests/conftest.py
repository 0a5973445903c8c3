import pytest

from illuminator.types import ColumnSchema, SchemaSnapshot, TableSample, TableSchema


@pytest.fixture
def car_snapshot():
    return SchemaSnapshot(
        dataset_id="car_1",
        tables=[
            TableSchema(
                name="vehicles",
                columns=[
                    ColumnSchema("vehicle_id", "INTEGER", False),
                    ColumnSchema("make", "VARCHAR(50)", False),
                    ColumnSchema("year", "INTEGER", True),
                    ColumnSchema("status", "VARCHAR(20)", True),
                    ColumnSchema("dealer_id", "INTEGER", True),
                ],
            ),
            TableSchema(
                name="loans",
                columns=[
                    ColumnSchema("loan_id", "INTEGER", False),
                    ColumnSchema("vehicle_id", "INTEGER", False),
                    ColumnSchema("monthly_payment", "DECIMAL(10,2)", True),
                ],
            ),
        ],
    )


@pytest.fixture
def car_samples():
    return {
        "vehicles": TableSample(
            table_name="vehicles",
            rows=[
                {"vehicle_id": 1, "make": "Ford", "year": 2021, "status": "available", "dealer_id": 7},
                {"vehicle_id": 2, "make": "Toyota", "year": 2019, "status": "sold", "dealer_id": 7},
                {"vehicle_id": 3, "make": "Honda", "year": 2022, "status": "pending", "dealer_id": 9},
                {"vehicle_id": 4, "make": "Kia", "year": 2020, "status": "sold", "dealer_id": 9},
            ],
            approximate_row_count=1200,
        ),
        "loans": TableSample(
            table_name="loans",
            rows=[
                {"loan_id": 10, "vehicle_id": 1, "monthly_payment": 480.5},
                {"loan_id": 11, "vehicle_id": 3, "monthly_payment": 455.0},
            ],
            approximate_row_count=None,
        ),
    }
