"""
Checkout API schemas (camelCase on the wire, matching the client).
"""
from typing import Any

from pydantic import BaseModel, Field

from app.paywall.models import Scope


class CheckoutStartRequest(BaseModel):
    scope: Scope = Scope.MODULE
    module_title: str | None = Field(default=None, alias="moduleTitle")

    model_config = {"populate_by_name": True}


class CheckoutCompleteRequest(BaseModel):
    checkout_token: str | None = Field(default=None, alias="checkoutToken")
    order_id: Any = Field(default=None, alias="orderId")
    payment_id: Any = Field(default=None, alias="paymentId")
    signature: Any = None

    model_config = {"populate_by_name": True}


class CheckoutAbandonRequest(BaseModel):
    checkout_token: str | None = Field(default=None, alias="checkoutToken")

    model_config = {"populate_by_name": True}


class CheckoutOut(BaseModel):
    attemptId: str
    state: str
    scope: str
    moduleKey: str | None = None
    orderId: str | None = None
    amount: int | None = None
    currency: str | None = None
    message: str | None = None
    # Hosted checkout parameters, present only in gateway_ui_open
    keyId: str | None = None
    merchantName: str | None = None
    checkoutToken: str | None = None
    callbackUrl: str | None = None
