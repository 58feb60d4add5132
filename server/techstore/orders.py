"""
Order endpoints. Every route requires a bearer token; reads and updates of a
specific order are limited to its owner.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status

from .auth import get_current_user, UserContext
from .models import Order, PlaceOrderRequest, PaymentResult
from .services import order_placement


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    req: PlaceOrderRequest = Body(...),
    user: UserContext = Depends(get_current_user),
):
    """
    Place an order for the caller.

    Responds 201 with the persisted order and its line items. If the order
    committed but could not be read back, responds 202 with its id.
    """
    return await order_placement.place_order(
        user_id=user.user_id,
        line_items=req.order_items,
        shipping_address=req.shipping_address,
        payment_method=req.payment_method,
        total_price=req.total_price,
    )


@router.get("", response_model=List[Order])
async def get_my_orders(user: UserContext = Depends(get_current_user)):
    """The caller's orders, newest first."""
    return await order_placement.list_orders_for_user(user.user_id)


# Path used by the storefront script; same as GET /api/orders.
router.add_api_route("/myorders", get_my_orders, methods=["GET"], response_model=List[Order])


@router.get("/{order_id}", response_model=Order)
async def get_order_by_id(order_id: int, user: UserContext = Depends(get_current_user)):
    return await order_placement.get_order(order_id, user.user_id)


@router.put("/{order_id}/pay", response_model=Order)
async def update_order_to_paid(
    order_id: int,
    payment_result: Optional[PaymentResult] = Body(None),
    user: UserContext = Depends(get_current_user),
):
    return await order_placement.mark_order_paid(order_id, user.user_id, payment_result)
