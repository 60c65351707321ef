from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from app.db.base import Base, JSONDocument


class User(Base):
    __tablename__ = "users"

    # Identity provider subject (opaque, stable).
    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)

    # Entitlement facts. Written only by EntitlementService or the admin override.
    global_access = Column(Boolean, nullable=False, default=False)
    is_paid = Column(Boolean, nullable=False, default=False)  # legacy alias of global_access
    purchased_modules = Column(JSONDocument, nullable=False, default=dict)  # {module_key: true}

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def has_global_access(self) -> bool:
        """Global pass, or the legacy paid flag older access checks still set."""
        return bool(self.global_access or self.is_paid)

    def owns_module(self, module_key: str) -> bool:
        return (self.purchased_modules or {}).get(module_key) is True
