from typing import Any

from pydantic import BaseModel, Field


class OrderCreate(BaseModel):
    # Validated by OrderService so bad amounts get the same 400 as the service raises
    amount: Any = None
    currency: str = "INR"
    receipt_seed: str | None = Field(default=None, alias="receiptSeed")

    model_config = {"populate_by_name": True}


class OrderOut(BaseModel):
    orderId: str
    amount: int
    currency: str
