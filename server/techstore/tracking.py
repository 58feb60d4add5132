"""
Storefront analytics endpoints.

Callers pass user_id and/or visitor_id explicitly in each body. Failures are
logged and reported as 500; they never affect orders.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from .models import (
    MessageResponse,
    TrackSessionRequest,
    TrackProductViewRequest,
    TrackCartRequest,
    TrackCheckoutStartRequest,
    TrackCheckoutCompleteRequest,
    TrackPageVisitRequest,
)
from .rate_limit import get_client_ip
from . import db


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tracking", tags=["tracking"])


def _page(request: Request) -> str:
    return request.headers.get("Referer") or "/"


def _failed(what: str, e: Exception) -> JSONResponse:
    logger.error("Error tracking %s: %s", what, e)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": f"Error tracking {what}"},
    )


@router.post("/login", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_login(body: TrackSessionRequest, request: Request):
    try:
        await db.open_user_session(
            body.user_id,
            body.session_token,
            get_client_ip(request),
            request.headers.get("User-Agent"),
        )
        await db.record_activity(
            "login", user_id=body.user_id, page_url=_page(request), ip_address=get_client_ip(request)
        )
    except Exception as e:
        return _failed("login", e)
    return MessageResponse(message="Login tracked successfully")


@router.post("/logout", response_model=MessageResponse)
async def track_logout(body: TrackSessionRequest, request: Request):
    try:
        await db.close_user_session(body.user_id, body.session_token)
        await db.record_activity(
            "logout", user_id=body.user_id, page_url=_page(request), ip_address=get_client_ip(request)
        )
    except Exception as e:
        return _failed("logout", e)
    return MessageResponse(message="Logout tracked successfully")


@router.post("/product-view", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_product_view(body: TrackProductViewRequest, request: Request):
    try:
        await db.record_product_view(
            body.product_id, body.user_id, body.visitor_id, body.view_duration, get_client_ip(request)
        )
        await db.record_activity(
            "product_view",
            user_id=body.user_id,
            visitor_id=body.visitor_id,
            activity_data={"product_id": body.product_id, "view_duration": body.view_duration},
            page_url=_page(request),
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        return _failed("product view", e)
    return MessageResponse(message="Product view tracked successfully")


@router.post("/add-to-cart", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_add_to_cart(body: TrackCartRequest, request: Request):
    try:
        await db.add_cart_quantity(
            body.product_id, body.quantity, user_id=body.user_id, visitor_id=body.visitor_id
        )
        await db.record_activity(
            "add_to_cart",
            user_id=body.user_id,
            visitor_id=body.visitor_id,
            activity_data={"product_id": body.product_id, "quantity": body.quantity},
            page_url=_page(request),
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        return _failed("add to cart", e)
    return MessageResponse(message="Add to cart tracked successfully")


@router.post("/remove-from-cart", response_model=MessageResponse)
async def track_remove_from_cart(body: TrackCartRequest, request: Request):
    try:
        await db.remove_cart_product(body.product_id, user_id=body.user_id, visitor_id=body.visitor_id)
        await db.record_activity(
            "remove_from_cart",
            user_id=body.user_id,
            visitor_id=body.visitor_id,
            activity_data={"product_id": body.product_id},
            page_url=_page(request),
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        return _failed("remove from cart", e)
    return MessageResponse(message="Remove from cart tracked successfully")


@router.post("/checkout-start", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_checkout_start(body: TrackCheckoutStartRequest, request: Request):
    try:
        await db.record_activity(
            "checkout_start",
            user_id=body.user_id,
            visitor_id=body.visitor_id,
            activity_data={"cart_items": body.cart_items, "total_items": len(body.cart_items)},
            page_url=_page(request),
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        return _failed("checkout start", e)
    return MessageResponse(message="Checkout start tracked successfully")


@router.post("/checkout-complete", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_checkout_complete(body: TrackCheckoutCompleteRequest, request: Request):
    """Record the completed checkout and clear the caller's server-side cart."""
    try:
        await db.record_activity(
            "checkout_complete",
            user_id=body.user_id,
            visitor_id=body.visitor_id,
            activity_data={
                "order_id": body.order_id,
                "total_amount": body.total_amount,
                "payment_method": body.payment_method,
            },
            page_url=_page(request),
            ip_address=get_client_ip(request),
        )
        await db.clear_cart(user_id=body.user_id, visitor_id=body.visitor_id)
    except Exception as e:
        return _failed("checkout complete", e)
    return MessageResponse(message="Checkout complete tracked successfully")


@router.post("/page-visit", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def track_page_visit(body: TrackPageVisitRequest, request: Request):
    try:
        await db.record_site_visit(
            body.page_url,
            body.user_id,
            body.visitor_id,
            body.page_title,
            body.referrer,
            get_client_ip(request),
            request.headers.get("User-Agent"),
        )
    except Exception as e:
        return _failed("page visit", e)
    return MessageResponse(message="Page visit tracked successfully")

