"""
PricingService — effective price for a module or for the global pass.

Lookup key: GLOBAL_PRICING_KEY for the global pass, module_key(title) otherwise.
Absent records, and records that are not a whole number of at least 1, fall back
to the scope's compiled-in default.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from app.models.price import PriceRecord
from app.paywall.config import get_currency, get_default_price
from app.paywall.keys import GLOBAL_PRICING_KEY, module_key, normalize_module_title
from app.paywall.models import Scope
from app.services.errors import ValidationError
from app.utils.currency import format_price

logger = logging.getLogger(__name__)


def price_key(scope: Scope, title_or_key: str | None = None) -> str:
    if scope == Scope.GLOBAL:
        return GLOBAL_PRICING_KEY
    return module_key(title_or_key)


def usable_price(value: Any) -> int | None:
    """Whole number of major units, at least 1; None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number < 1 or number != number.to_integral_value():
        return None
    return int(number)


class PricingService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_record(self, key: str) -> PriceRecord | None:
        return self.db.query(PriceRecord).filter(PriceRecord.key == key).one_or_none()

    def resolve_price(self, scope: Scope, key: str | None = None) -> int:
        """
        Effective price in major units. `key` is the normalized module key (ignored for global).
        Pure read; store errors propagate so the caller can decide to use the default.
        """
        lookup = GLOBAL_PRICING_KEY if scope == Scope.GLOBAL else (key or module_key(None))
        record = self.get_record(lookup)
        if record is None:
            return get_default_price(scope)
        price = usable_price(record.price)
        if price is None:
            logger.warning(
                "price_record_invalid",
                extra={"scope": scope.value, "module_key": lookup, "amount": record.price},
            )
            return get_default_price(scope)
        return price

    def quote(self, title: str | None) -> dict[str, Any]:
        """Module price and global price for one module page; each falls back independently."""
        key = module_key(title)
        module_price = self.resolve_price(Scope.MODULE, key)
        global_price = self.resolve_price(Scope.GLOBAL)
        currency = get_currency()
        return {
            "moduleTitle": normalize_module_title(title),
            "moduleKey": key,
            "modulePrice": module_price,
            "globalPrice": global_price,
            "currency": currency,
            "modulePriceLabel": format_price(module_price, currency),
            "globalPriceLabel": format_price(global_price, currency),
        }

    def set_price(self, scope: Scope, amount: Any, title: str | None = None) -> PriceRecord:
        """Merge-write one price document. Rejects anything but a whole number of at least 1."""
        price = usable_price(amount)
        if price is None:
            raise ValidationError("Price must be a positive whole number")
        key = price_key(scope, title)
        record = self.get_record(key)
        if record is None:
            record = PriceRecord(key=key, scope=scope.value)
        if scope == Scope.MODULE:
            record.title = normalize_module_title(title)
        record.price = price
        record.currency = get_currency()
        record.updated_at = datetime.now(timezone.utc)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "price_updated",
            extra={"scope": scope.value, "module_key": key, "amount": record.price},
        )
        return record

    def list_prices(self) -> list[PriceRecord]:
        return self.db.query(PriceRecord).order_by(PriceRecord.scope, PriceRecord.key).all()

    @staticmethod
    def as_dict(record: PriceRecord) -> dict[str, Any]:
        return {
            "key": record.key,
            "scope": record.scope,
            "title": record.title,
            "price": record.price,
            "currency": record.currency,
            "updatedAt": record.updated_at.isoformat() if record.updated_at else None,
        }
