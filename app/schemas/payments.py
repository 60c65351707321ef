from typing import Any

from pydantic import BaseModel, Field


class PaymentVerifyRequest(BaseModel):
    """Gateway callback triple, untrusted until verified."""
    order_id: Any = Field(default=None, alias="orderId")
    payment_id: Any = Field(default=None, alias="paymentId")
    signature: Any = None

    model_config = {"populate_by_name": True}


class PaymentVerifyOut(BaseModel):
    success: bool
    message: str | None = None
