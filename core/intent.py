# core/intent.py
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IntentType(str, Enum):
    """
    The closed set of goals a user turn can have.
    """

    BALANCE = "BALANCE"
    TRANSACTIONS = "TRANSACTIONS"
    GREETING = "GREETING"
    HELP = "HELP"
    OTHER = "OTHER"


class IntentParameters(BaseModel):
    """
    Every field is required but nullable: the structured-output schema
    never has a missing key, only an explicit null.
    """

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = Field(
        ..., description="Spending category or keyword (e.g. comida, super), or null"
    )
    startDate: Optional[date] = Field(
        ..., description="Start date (inclusive), YYYY-MM-DD, or null"
    )
    endDate: Optional[date] = Field(
        ..., description="End date (inclusive), YYYY-MM-DD, or null"
    )


class Intention(BaseModel):
    """
    A passive container that represents what the user wants this turn.
    This does NOT execute logic.
    """

    model_config = ConfigDict(frozen=True)

    intent: IntentType = Field(..., description="Main goal of the user message")
    parameters: IntentParameters

    @classmethod
    def of(
        cls,
        intent: IntentType,
        category: Optional[str] = None,
        startDate: Optional[date] = None,
        endDate: Optional[date] = None,
    ) -> "Intention":
        return cls(
            intent=intent,
            parameters=IntentParameters(
                category=category, startDate=startDate, endDate=endDate
            ),
        )

    @classmethod
    def fallback(cls) -> "Intention":
        """Used when classification fails: no data lookup, plain conversation."""
        return cls.of(IntentType.OTHER)
