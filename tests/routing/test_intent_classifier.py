import asyncio
import os
from datetime import date

import pytest

from core.errors import ClassificationFailure
from core.intent import Intention, IntentType
from doubles import failing_model, intent_args, structured_model
from services.router import IntentClassifier


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _classify(model, text: str) -> Intention:
    return asyncio.run(IntentClassifier(model).classify(text))


@pytest.fixture
def fixed_today(monkeypatch):
    monkeypatch.setattr("services.date_resolver.get_today", lambda: date(2025, 3, 10))
    monkeypatch.setattr("services.router.get_today", lambda: date(2025, 3, 10))


# ---------------------------------------------------------------------
# STRUCTURED OUTPUT
# ---------------------------------------------------------------------

def test_greeting():
    intention = _classify(structured_model(intent_args("GREETING")), "Hola!")

    assert intention.intent is IntentType.GREETING
    assert intention.parameters.category is None
    assert intention.parameters.startDate is None
    assert intention.parameters.endDate is None


def test_vague_status_question_is_balance():
    intention = _classify(structured_model(intent_args("BALANCE")), "¿Cómo voy este mes?")
    assert intention.intent is IntentType.BALANCE


def test_transactions_with_category_and_month():
    model = structured_model(intent_args("TRANSACTIONS", "supermercado", "2025-01-01", "2025-01-31"))
    intention = _classify(model, "gastos en supermercado en enero")

    assert intention.intent is IntentType.TRANSACTIONS
    assert intention.parameters.category == "supermercado"
    assert intention.parameters.startDate == date(2025, 1, 1)
    assert intention.parameters.endDate == date(2025, 1, 31)


def test_prompt_carries_todays_date(fixed_today):
    calls = []
    _classify(structured_model(intent_args("GREETING"), calls), "hola")

    prompt = calls[0][-1].parts[-1].content
    assert "2025-03-10" in prompt
    assert "hola" in prompt


def test_empty_utterance_is_greeting_without_model_call():
    calls = []
    intention = _classify(structured_model(intent_args("BALANCE"), calls), "   ")

    assert intention.intent is IntentType.GREETING
    assert calls == []


# ---------------------------------------------------------------------
# RELATIVE DATES
# ---------------------------------------------------------------------

def test_relative_dates_are_filled_when_model_leaves_them_empty(fixed_today):
    intention = _classify(structured_model(intent_args("TRANSACTIONS")), "movimientos de ayer")

    assert intention.parameters.startDate == date(2025, 3, 9)
    assert intention.parameters.endDate == date(2025, 3, 9)


def test_model_dates_are_never_overridden(fixed_today):
    model = structured_model(intent_args("TRANSACTIONS", None, "2025-02-01", None))
    intention = _classify(model, "gastos desde febrero hasta hoy")

    assert intention.parameters.startDate == date(2025, 2, 1)
    assert intention.parameters.endDate is None


def test_non_transaction_intents_keep_null_dates(fixed_today):
    intention = _classify(structured_model(intent_args("BALANCE")), "¿Cómo voy este mes?")
    assert intention.parameters.startDate is None


# ---------------------------------------------------------------------
# FAILURES
# ---------------------------------------------------------------------

def test_provider_error_raises_classification_failure():
    with pytest.raises(ClassificationFailure):
        _classify(failing_model(RuntimeError("provider down")), "hola")


def test_invalid_output_raises_classification_failure():
    with pytest.raises(ClassificationFailure):
        _classify(structured_model(intent_args("PAYMENT")), "paga la luz")


def test_classify_or_default_falls_back_to_other():
    classifier = IntentClassifier(failing_model(RuntimeError("provider down")))
    intention = asyncio.run(classifier.classify_or_default("¿Cuánto gasté?"))

    assert intention == Intention.fallback()
    assert intention.intent is IntentType.OTHER


# ---------------------------------------------------------------------
# LIVE MODEL (opt-in)
# ---------------------------------------------------------------------

@pytest.mark.skipif(not os.getenv("GOOGLE_API_KEY"), reason="GOOGLE_API_KEY not set")
@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hola!", IntentType.GREETING),
        ("¿Cómo voy este mes?", IntentType.BALANCE),
        ("gastos en supermercado en enero", IntentType.TRANSACTIONS),
    ],
)
def test_live_classification(text, expected):
    from agents.llm import build_model

    intention = _classify(build_model(), text)
    assert intention.intent is expected

    if expected is IntentType.TRANSACTIONS:
        assert "super" in (intention.parameters.category or "").lower()
        assert (intention.parameters.startDate.month, intention.parameters.startDate.day) == (1, 1)
        assert (intention.parameters.endDate.month, intention.parameters.endDate.day) == (1, 31)
