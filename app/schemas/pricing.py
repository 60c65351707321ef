from datetime import datetime
from typing import Any

from pydantic import BaseModel


class PriceQuoteOut(BaseModel):
    moduleTitle: str
    moduleKey: str
    modulePrice: int
    globalPrice: int
    currency: str
    modulePriceLabel: str
    globalPriceLabel: str


class PriceUpdate(BaseModel):
    # Validated by PricingService.set_price
    price: Any = None


class PriceRecordOut(BaseModel):
    key: str
    scope: str
    title: str | None = None
    price: int | float          # as stored; legacy rows may hold unusable values
    currency: str
    updatedAt: datetime | None = None
