from pydantic import BaseModel, Field


class EntitlementsOut(BaseModel):
    userId: str
    globalAccess: bool
    isPaid: bool
    purchasedModules: dict[str, bool]


class AccessOut(BaseModel):
    moduleKey: str
    tier: str
    allowed: bool
    reason: str


class PaidStatusUpdate(BaseModel):
    is_paid: bool = Field(alias="isPaid")

    model_config = {"populate_by_name": True}
