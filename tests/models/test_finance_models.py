from datetime import date

import pytest
from pydantic import ValidationError

from models.finance import Transaction, TransactionInput, TransactionKind


def test_transaction_parses_iso_date():
    transaction = Transaction.model_validate(
        {
            "id": "t1",
            "date": "2025-03-12",
            "description": "Super Mercado Central",
            "kind": "expense",
            "amount": 45000,
            "category": "Comida",
            "reconciliationMonth": "2025-03",
        }
    )

    assert transaction.date == date(2025, 3, 12)
    assert transaction.kind is TransactionKind.EXPENSE
    assert transaction.search_text() == "super mercado central comida"


def test_transaction_round_trips_through_json():
    transaction = Transaction(
        id="t1", date=date(2025, 3, 12), kind=TransactionKind.INCOME, amount=10, reconciliationMonth="2025-03"
    )
    assert Transaction.model_validate_json(transaction.model_dump_json()) == transaction


def test_input_month_defaults_to_the_date():
    data = TransactionInput(date=date(2025, 1, 31), kind=TransactionKind.EXPENSE, amount=3500)
    assert data.resolved_month() == "2025-01"


def test_input_keeps_explicit_month():
    data = TransactionInput(
        date=date(2025, 1, 31), kind=TransactionKind.EXPENSE, amount=3500, reconciliationMonth="2025-02"
    )
    assert data.resolved_month() == "2025-02"


@pytest.mark.parametrize("month", ["2025-13", "25-01", "enero"])
def test_input_rejects_bad_month(month):
    with pytest.raises(ValidationError):
        TransactionInput(date=date(2025, 1, 31), kind=TransactionKind.EXPENSE, amount=1, reconciliationMonth=month)


def test_input_rejects_non_positive_amount():
    with pytest.raises(ValidationError):
        TransactionInput(date=date(2025, 1, 31), kind=TransactionKind.EXPENSE, amount=0)
