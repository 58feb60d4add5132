"""
Order placement: validate a cart, persist the order and its line items as one
atomic unit, and hand back the joined, persisted representation.

Guarantees:
- Validation runs before a connection is acquired; a rejected request never
  touches storage.
- The order row and all of its line items commit together or not at all.
  Any failure inside the transaction (constraint violation, lost connection,
  timeout) rolls everything back and surfaces as PersistenceError, so the
  same request can be retried verbatim.
- Once COMMIT succeeds the order is never reported as failed; errors while
  returning the connection to the pool are only logged.
- The confirmation read after commit is best-effort. If it fails the order
  stays committed and ReadBackError carries its id.
- Every read or update of a specific order checks ownership.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .. import db
from ..errors import (
    TechStoreError,
    ValidationError,
    InsufficientStockError,
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ReadBackError,
)
from ..models import Order, OrderItemIn, PaymentResult, ShippingAddressIn
from ..schema import PAYMENT_METHODS
from ..settings import settings
from ..validation import MAX_ORDER_TOTAL, MAX_PRODUCT_PRICE


logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ADDRESS_FIELDS = ("address", "city", "postal_code", "country")


class LineItemRequest(BaseModel):
    """A validated cart line, normalised to exact cents."""
    product_id: int
    quantity: int
    unit_price: Decimal
    name: Optional[str] = None


# --- Validation ---


def _to_money(value: Any, field: str, limit: Decimal = MAX_PRODUCT_PRICE) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Price must be a valid number", field=field)
    if not amount.is_finite():
        raise ValidationError("Price must be a valid number", field=field)
    if amount < 0:
        raise ValidationError("Price must not be negative", field=field)
    if amount > limit:
        raise ValidationError(f"Price cannot exceed {limit:,}", field=field)
    quantized = amount.quantize(CENTS)
    if quantized != amount:
        raise ValidationError("Price cannot have more than two decimal places", field=field)
    return quantized


def _field(item: Union[OrderItemIn, Mapping[str, Any]], name: str, alias: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(alias, item.get(name))
    return getattr(item, name, None)


def validate_line_items(items: Optional[Sequence[Any]]) -> List[LineItemRequest]:
    """
    Check every cart line and normalise it. Order is preserved.

    Accepts OrderItemIn models or plain mappings using either naming.
    """
    if not items:
        raise ValidationError("No order items", field="orderItems")

    validated = []
    for index, item in enumerate(items):
        prefix = f"orderItems[{index}]"

        product_id = _field(item, "product_id", "productId")
        if not isinstance(product_id, int) or isinstance(product_id, bool) or product_id < 1:
            raise ValidationError("Valid product ID is required", field=f"{prefix}.productId")

        quantity = _field(item, "quantity", "quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError("Quantity must be at least 1", field=f"{prefix}.quantity")
        if quantity > settings.max_quantity_per_item:
            raise ValidationError(
                f"Quantity cannot exceed {settings.max_quantity_per_item} per item",
                field=f"{prefix}.quantity",
            )

        price = _field(item, "price", "price")
        if price is None:
            raise ValidationError("Price is required", field=f"{prefix}.price")
        unit_price = _to_money(price, f"{prefix}.price")

        name = _field(item, "name", "name")
        validated.append(
            LineItemRequest(
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                name=name.strip() if isinstance(name, str) and name.strip() else None,
            )
        )
    return validated


def validate_shipping_address(address: Union[ShippingAddressIn, Mapping[str, Any], None]) -> dict:
    """All four fields are required and must be non-blank."""
    if address is None:
        raise ValidationError(
            "Shipping address must include address, city, postalCode, and country",
            field="shippingAddress",
        )

    if isinstance(address, ShippingAddressIn):
        raw = address.model_dump()
    else:
        raw = {
            "address": address.get("address"),
            "city": address.get("city"),
            "postal_code": address.get("postalCode", address.get("postal_code")),
            "country": address.get("country"),
        }

    cleaned = {}
    for key in ADDRESS_FIELDS:
        value = raw.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                "Shipping address must include address, city, postalCode, and country",
                field=f"shippingAddress.{'postalCode' if key == 'postal_code' else key}",
            )
        cleaned[key] = value.strip()
    return cleaned


def validate_payment_method(payment_method: Optional[str]) -> str:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}",
            field="paymentMethod",
        )
    return payment_method


def compute_total(items: Sequence[LineItemRequest]) -> Decimal:
    """Sum of quantity x unit price, exact to the cent."""
    total = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
    return total.quantize(CENTS)


def _check_total(total: Decimal) -> Decimal:
    if total > MAX_ORDER_TOTAL:
        raise ValidationError(f"Order total cannot exceed {MAX_ORDER_TOTAL:,}", field="totalPrice")
    return total


# --- Row -> model ---


def _order_model(row: dict) -> Order:
    payment_result = row.get("payment_result")
    if payment_result and not any(v is not None for v in payment_result.values()):
        row = {**row, "payment_result": None}
    return Order.model_validate(row)


# --- Operations ---


async def _write_order(
    conn,
    user_id: int,
    items: List[LineItemRequest],
    shipping: dict,
    payment_method: str,
    total: Decimal,
) -> int:
    """Insert the order and its line items in one transaction on `conn`. Returns the order id."""
    async with conn.transaction():
        if settings.reprice_from_catalog:
            items = await _reprice(conn, items)
            total = _check_total(compute_total(items))

        order_id = await db.insert_order(
            conn,
            user_id=user_id,
            total_price=total,
            shipping=shipping,
            payment_method=payment_method,
            created_at=db.utcnow(),
        )

        for item in items:
            if settings.decrement_stock:
                if not await db.decrement_product_stock(conn, item.product_id, item.quantity):
                    raise InsufficientStockError(item.product_id, item.quantity)
            await db.insert_order_item(
                conn,
                order_id=order_id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.unit_price,
                name=item.name,
            )
    return order_id


async def _reprice(conn, items: List[LineItemRequest]) -> List[LineItemRequest]:
    """Replace client-submitted unit prices with the current catalog prices."""
    repriced = []
    for index, item in enumerate(items):
        product = await db.get_product_for_order(conn, item.product_id)
        if product is None:
            raise ValidationError(
                f"Product {item.product_id} not found",
                field=f"orderItems[{index}].productId",
            )
        repriced.append(
            item.model_copy(
                update={
                    "unit_price": Decimal(product["price"]).quantize(CENTS),
                    "name": item.name or product["name"],
                }
            )
        )
    return repriced


async def place_order(
    user_id: int,
    line_items: Sequence[Any],
    shipping_address: Union[ShippingAddressIn, Mapping[str, Any], None],
    payment_method: Optional[str],
    total_price: Optional[Any] = None,
) -> Order:
    """
    Place an order for `user_id`.

    `total_price`, when supplied by the client, is only checked against the
    server-computed total; it is never stored as given.
    """
    items = validate_line_items(line_items)
    shipping = validate_shipping_address(shipping_address)
    method = validate_payment_method(payment_method)
    total = _check_total(compute_total(items))

    if total_price is not None and not settings.reprice_from_catalog:
        claimed = _to_money(total_price, "totalPrice", MAX_ORDER_TOTAL)
        if claimed != total:
            raise ValidationError(
                f"Total price {claimed} does not match order items total {total}",
                field="totalPrice",
            )

    # The timeout covers getting a connection and the transaction, not the release after COMMIT.
    timeout = settings.order_timeout_seconds
    order_id = None
    try:
        async with db.get_connection(timeout=timeout) as conn:
            order_id = await asyncio.wait_for(
                _write_order(conn, user_id, items, shipping, method, total),
                timeout=timeout,
            )
    except TechStoreError:
        logger.info("Order for user=%s rejected inside transaction; rolled back", user_id)
        raise
    except Exception as e:
        if order_id is not None:
            # Committed; only the connection release failed.
            logger.warning("Releasing connection after order %s failed: %s", order_id, e)
        elif isinstance(e, asyncio.TimeoutError):
            logger.error("Order for user=%s timed out after %ss; rolled back", user_id, timeout)
            raise PersistenceError("Order could not be saved in time; no order was created") from e
        else:
            logger.exception("Order for user=%s failed; rolled back", user_id)
            raise PersistenceError("Order could not be saved; no order was created") from e

    logger.info("Order %s placed by user=%s items=%d total=%s", order_id, user_id, len(items), total)

    # Best-effort confirmation read: the order is committed either way.
    try:
        async with db.get_connection() as conn:
            row = await db.fetch_order(conn, order_id)
        if row is None:
            raise LookupError(f"order {order_id} missing after commit")
        return _order_model(row)
    except Exception as e:
        logger.warning("Read-back of order %s failed: %s", order_id, e)
        raise ReadBackError(order_id) from e


async def get_order(order_id: int, requester_id: int) -> Order:
    """Load one order with items, products and user summary, if the caller owns it."""
    async with db.get_connection() as conn:
        row = await db.fetch_order(conn, order_id)
    if row is None:
        raise NotFoundError("Order not found")
    if row["user_id"] != requester_id:
        raise AuthorizationError("Not authorized to access this order")
    return _order_model(row)


async def mark_order_paid(
    order_id: int,
    requester_id: int,
    payment_result: Union[PaymentResult, Mapping[str, Any], None],
) -> Order:
    """
    Flip an order to paid, stamping paid_at and the payment result snapshot.

    Re-invoking with the same result is harmless; paid_at moves to the latest
    call. There is no idempotency key.
    """
    if payment_result is None:
        payment_result = PaymentResult()
    elif not isinstance(payment_result, PaymentResult):
        try:
            payment_result = PaymentResult.model_validate(dict(payment_result))
        except (PydanticValidationError, TypeError, ValueError):
            raise ValidationError("Payment result is malformed", field="paymentResult")

    async with db.get_connection() as conn:
        async with conn.transaction():
            owner_id = await db.get_order_owner(conn, order_id)
            if owner_id is None:
                raise NotFoundError("Order not found")
            if owner_id != requester_id:
                raise AuthorizationError("Not authorized to update this order")
            await db.update_order_paid(conn, order_id, payment_result.model_dump(), db.utcnow())
        row = await db.fetch_order(conn, order_id)

    logger.info("Order %s marked paid by user=%s", order_id, requester_id)
    return _order_model(row)


async def list_orders_for_user(user_id: int) -> List[Order]:
    """The caller's own orders, newest first."""
    async with db.get_connection() as conn:
        rows = await db.list_orders_for_user(conn, user_id)
    return [_order_model(row) for row in rows]
