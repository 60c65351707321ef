"""
GrantRecord — first application of a verified payment to a user's entitlements.
Not a dedup key: replays of the same order_id still re-apply the (idempotent) grant
and are only logged as anomalies.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


class GrantRecord(Base):
    __tablename__ = "entitlement_grants"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(String, nullable=False, index=True)
    payment_id = Column(String, nullable=True)
    user_id = Column(String, nullable=False, index=True)
    scope = Column(String, nullable=False)                  # "module" / "global"
    module_key = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
