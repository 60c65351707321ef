"""
PriceRecord — admin-defined price for one module or for the global pass.
key = normalized module key, or GLOBAL_PRICING_KEY for the global pass.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class PriceRecord(Base):
    __tablename__ = "pricing"

    key = Column(String, primary_key=True)
    scope = Column(String, nullable=False)                  # "module" / "global"
    title = Column(String, nullable=True)                   # human-readable module title
    price = Column(Integer, nullable=False)                 # whole major units; validated on read
    currency = Column(String, nullable=False, default="INR")
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
