from datetime import date

from pydantic import BaseModel, ConfigDict, Field

# 100 billion kronor; keeps amounts well inside a signed 64-bit column.
MAX_AMOUNT_CENTS = 10**13


class BudgetIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: int = Field(..., gt=0)
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    date: date
    is_public: bool = False
