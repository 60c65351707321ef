from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.paywall.keys import module_key
from app.paywall.models import Tier
from app.schemas.users import AccessOut, EntitlementsOut
from app.services.auth.identity import Identity, get_current_identity, get_optional_identity
from app.services.entitlements.service import EntitlementService


router = APIRouter(prefix="/me", tags=["me"])


@router.get("/entitlements", response_model=EntitlementsOut)
def get_my_entitlements(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> EntitlementsOut:
    """Entitlement facts of the caller; creates the user record on first sight."""
    service = EntitlementService(db)
    user = service.ensure_user(identity.user_id, email=identity.email, display_name=identity.display_name)
    return EntitlementsOut(**service.as_dict(user))


@router.get("/access", response_model=AccessOut)
def check_access(
    module: str | None = Query(None),
    tier: Tier = Query(Tier.PAID),
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
) -> AccessOut:
    """Would a question of this tier in this module be shown? Anonymous callers only see free content."""
    key = module_key(module)
    decision = EntitlementService(db).decide(identity.user_id if identity else None, tier, key)
    return AccessOut(moduleKey=key, tier=tier.value, allowed=decision.allowed, reason=decision.reason)
