from fastapi import APIRouter, Depends, status

from app.api.deps import get_order_service
from app.schemas.orders import OrderCreate, OrderOut
from app.services.orders.service import OrderService


router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(body: OrderCreate, orders: OrderService = Depends(get_order_service)) -> OrderOut:
    """
    Create a gateway order for a major-unit amount.
    400 on a missing or non-positive amount, 500 with the gateway message on gateway failure.
    """
    order = orders.create_order(body.amount, currency=body.currency, receipt_seed=body.receipt_seed)
    return OrderOut(orderId=order.order_id, amount=order.amount, currency=order.currency)
