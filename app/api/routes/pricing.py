from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.pricing import PriceQuoteOut
from app.services.pricing.service import PricingService


router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.get("", response_model=PriceQuoteOut)
def get_pricing(module: str | None = Query(None), db: Session = Depends(get_db)) -> PriceQuoteOut:
    """Module price and global pass price for one module page."""
    return PriceQuoteOut(**PricingService(db).quote(module))
