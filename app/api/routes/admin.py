"""
Admin API: price documents and the legacy paid-status override.
Authenticated with the shared X-Admin-Key header; every change is audited.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.paywall.models import Scope
from app.schemas.pricing import PriceRecordOut, PriceUpdate
from app.schemas.users import EntitlementsOut, PaidStatusUpdate
from app.services.audit.service import AuditService
from app.services.auth.identity import require_admin_key
from app.services.entitlements.service import EntitlementService
from app.services.pricing.service import PricingService


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/pricing", response_model=list[PriceRecordOut])
def list_prices(
    db: Session = Depends(get_db),
    actor_id: str = Depends(require_admin_key),
) -> list[PriceRecordOut]:
    service = PricingService(db)
    return [PriceRecordOut(**service.as_dict(r)) for r in service.list_prices()]


def _set_price(db: Session, actor_id: str, scope: Scope, amount, title: str | None = None) -> PriceRecordOut:
    service = PricingService(db)
    record = service.set_price(scope, amount, title)
    AuditService(db).log(
        actor_type="admin",
        actor_id=actor_id,
        action="set_price",
        entity_type="price",
        entity_id=record.key,
        payload={"scope": scope.value, "price": record.price, "title": record.title},
    )
    return PriceRecordOut(**service.as_dict(record))


@router.put("/pricing/global", response_model=PriceRecordOut)
def set_global_price(
    body: PriceUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(require_admin_key),
) -> PriceRecordOut:
    return _set_price(db, actor_id, Scope.GLOBAL, body.price)


@router.put("/pricing/modules/{title}", response_model=PriceRecordOut)
def set_module_price(
    title: str,
    body: PriceUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(require_admin_key),
) -> PriceRecordOut:
    """Price for one module; the title is normalized to the module key."""
    return _set_price(db, actor_id, Scope.MODULE, body.price, title)


@router.put("/users/{user_id}/paid", response_model=EntitlementsOut)
def set_paid_status(
    user_id: str,
    body: PaidStatusUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(require_admin_key),
) -> EntitlementsOut:
    service = EntitlementService(db)
    user = service.set_paid_status(user_id, body.is_paid, actor_id=actor_id)
    return EntitlementsOut(**service.as_dict(user))
