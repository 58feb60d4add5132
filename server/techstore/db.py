"""
Database access layer for accounts, catalog, orders and event tracking.
Uses asyncpg for async Postgres access.

Order write helpers take an explicit connection so the order placement
service can run them inside one transaction; everything else acquires its
own connection from the pool.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Any, Dict, List
from contextlib import asynccontextmanager

import asyncpg

from .settings import settings, DATABASE_URL
from .schema import SCHEMA_STATEMENTS
from .errors import PersistenceError


# Connection pool (initialized on startup)
_pool: Any = None


async def init_pool() -> None:
    """Initialize the database connection pool. Call during app startup."""
    global _pool
    if DATABASE_URL:
        _pool = await asyncpg.create_pool(
            DATABASE_URL,
            min_size=settings.db_min_pool_size,
            max_size=settings.db_max_pool_size,
            command_timeout=settings.db_command_timeout,
        )


async def close_pool() -> None:
    """Close the database connection pool. Call during app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


def is_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def get_connection(timeout: Optional[float] = None):
    """Get a database connection from the pool, waiting at most `timeout` seconds for one."""
    if _pool is None:
        raise PersistenceError("Database is not available")
    async with _pool.acquire(timeout=timeout) as conn:
        yield conn


async def apply_schema() -> None:
    """Create tables and indexes that do not exist yet."""
    async with get_connection() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)


async def ping() -> bool:
    """Round-trip a trivial query; used by the health endpoint."""
    async with get_connection() as conn:
        return await conn.fetchval("SELECT 1") == 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- User Operations ---


async def get_user_by_email(email: str) -> Optional[dict]:
    """
    Get a user by email, including the password hash.
    Returns None if not found.
    """
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT id, name, email, password_hash, created_at
            FROM users
            WHERE email = $1
            """,
            email.lower(),
        )
        if row:
            return {
                "id": row["id"],
                "name": row["name"],
                "email": row["email"],
                "password_hash": row["password_hash"],
                "created_at": row["created_at"],
            }
        return None


async def get_user_by_id(user_id: int) -> Optional[dict]:
    """Get a user's public fields by id."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT id, name, email, created_at
            FROM users
            WHERE id = $1
            """,
            user_id,
        )
        if row:
            return {"id": row["id"], "name": row["name"], "email": row["email"], "created_at": row["created_at"]}
        return None


async def create_user(name: str, email: str, password_hash: str) -> dict:
    """
    Create a new user.
    Returns dict with id, name, email, created_at.
    """
    now = utcnow()
    async with get_connection() as conn:
        user_id = await conn.fetchval(
            """
            INSERT INTO users (name, email, password_hash, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $4)
            RETURNING id
            """,
            name,
            email.lower(),
            password_hash,
            now,
        )
        return {"id": user_id, "name": name, "email": email.lower(), "created_at": now}


# --- Catalog Operations ---


_PRODUCT_COLUMNS = """
    id, name, price, category, description, image, image_alt, stock,
    created_at, updated_at
"""


def _product_from_row(row) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "price": row["price"],
        "category": row["category"],
        "description": row["description"],
        "image": row["image"],
        "image_alt": row["image_alt"],
        "stock": row["stock"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


async def list_products(category: Optional[str] = None) -> list[dict]:
    """List products, optionally filtered by category, ordered by id."""
    async with get_connection() as conn:
        if category:
            rows = await conn.fetch(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE category = $1 ORDER BY id",
                category,
            )
        else:
            rows = await conn.fetch(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY id")
        return [_product_from_row(row) for row in rows]


async def get_product_by_id(product_id: int) -> Optional[dict]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = $1",
            product_id,
        )
        return _product_from_row(row) if row else None


async def create_product(
    name: str,
    price: Decimal,
    category: str,
    description: str = "",
    image: str = "",
    image_alt: str = "",
    stock: int = 0,
) -> dict:
    """Insert a catalog product and return the stored row."""
    now = utcnow()
    async with get_connection() as conn:
        product_id = await conn.fetchval(
            """
            INSERT INTO products (
                name, price, category, description, image, image_alt, stock,
                created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
            RETURNING id
            """,
            name,
            price,
            category,
            description,
            image,
            image_alt,
            stock,
            now,
        )
        row = await conn.fetchrow(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = $1",
            product_id,
        )
        return _product_from_row(row)


# --- Order Operations (caller supplies the connection) ---


async def insert_order(
    conn,
    user_id: int,
    total_price: Decimal,
    shipping: dict,
    payment_method: str,
    created_at: datetime,
) -> int:
    """Insert an unpaid order row and return its id."""
    return await conn.fetchval(
        """
        INSERT INTO orders (
            user_id, total_price,
            shipping_address, shipping_city, shipping_postal_code, shipping_country,
            payment_method, is_paid, is_delivered, created_at, updated_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, FALSE, FALSE, $8, $8)
        RETURNING id
        """,
        user_id,
        total_price,
        shipping["address"],
        shipping["city"],
        shipping["postal_code"],
        shipping["country"],
        payment_method,
        created_at,
    )


async def insert_order_item(
    conn,
    order_id: int,
    product_id: int,
    quantity: int,
    price: Decimal,
    name: Optional[str] = None,
) -> int:
    """Insert one line item for an order and return its id."""
    return await conn.fetchval(
        """
        INSERT INTO order_items (order_id, product_id, name, quantity, price)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING id
        """,
        order_id,
        product_id,
        name,
        quantity,
        price,
    )


async def get_product_for_order(conn, product_id: int) -> Optional[dict]:
    """Read the fields order placement needs from the catalog."""
    row = await conn.fetchrow(
        "SELECT id, name, price, stock FROM products WHERE id = $1",
        product_id,
    )
    if row:
        return {"id": row["id"], "name": row["name"], "price": row["price"], "stock": row["stock"]}
    return None


async def decrement_product_stock(conn, product_id: int, quantity: int) -> bool:
    """
    Take `quantity` units out of stock.
    Returns False (and changes nothing) when stock is insufficient.
    """
    row = await conn.fetchrow(
        """
        UPDATE products
        SET stock = stock - $1, updated_at = $3
        WHERE id = $2 AND stock >= $1
        RETURNING id
        """,
        quantity,
        product_id,
        utcnow(),
    )
    return row is not None


_ORDER_SELECT = """
    SELECT
        o.id, o.user_id, o.total_price,
        o.shipping_address, o.shipping_city, o.shipping_postal_code, o.shipping_country,
        o.payment_method, o.is_paid, o.paid_at,
        o.payment_result_id, o.payment_result_status,
        o.payment_result_update_time, o.payment_result_email_address,
        o.is_delivered, o.delivered_at, o.created_at, o.updated_at,
        u.name AS user_name, u.email AS user_email
    FROM orders o
    JOIN users u ON u.id = o.user_id
"""

_ITEM_SELECT = """
    SELECT
        oi.id, oi.order_id, oi.product_id, oi.name, oi.quantity, oi.price,
        p.name AS product_name, p.category AS product_category,
        p.image AS product_image, p.price AS product_price
    FROM order_items oi
    JOIN orders o ON o.id = oi.order_id
    LEFT JOIN products p ON p.id = oi.product_id
"""


def _order_from_row(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "total_price": row["total_price"],
        "shipping_address": {
            "address": row["shipping_address"],
            "city": row["shipping_city"],
            "postal_code": row["shipping_postal_code"],
            "country": row["shipping_country"],
        },
        "payment_method": row["payment_method"],
        "is_paid": bool(row["is_paid"]),
        "paid_at": row["paid_at"],
        "payment_result": {
            "id": row["payment_result_id"],
            "status": row["payment_result_status"],
            "update_time": row["payment_result_update_time"],
            "email_address": row["payment_result_email_address"],
        },
        "is_delivered": bool(row["is_delivered"]),
        "delivered_at": row["delivered_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "user": {"id": row["user_id"], "name": row["user_name"], "email": row["user_email"]},
    }


def _item_from_row(row) -> dict:
    product = None
    if row["product_name"] is not None:
        product = {
            "id": row["product_id"],
            "name": row["product_name"],
            "category": row["product_category"],
            "image": row["product_image"],
            "price": row["product_price"],
        }
    return {
        "id": row["id"],
        "order_id": row["order_id"],
        "product_id": row["product_id"],
        "name": row["name"],
        "quantity": row["quantity"],
        "price": row["price"],
        "product": product,
    }


async def fetch_order(conn, order_id: int) -> Optional[dict]:
    """
    Load one order with its user summary and line items (product joined).
    Returns None if the order does not exist.
    """
    row = await conn.fetchrow(_ORDER_SELECT + " WHERE o.id = $1", order_id)
    if row is None:
        return None
    order = _order_from_row(row)
    item_rows = await conn.fetch(_ITEM_SELECT + " WHERE oi.order_id = $1 ORDER BY oi.id", order_id)
    order["order_items"] = [_item_from_row(r) for r in item_rows]
    return order


async def get_order_owner(conn, order_id: int) -> Optional[int]:
    """Return the owning user id, or None if the order does not exist."""
    return await conn.fetchval("SELECT user_id FROM orders WHERE id = $1", order_id)


async def update_order_paid(conn, order_id: int, payment_result: dict, paid_at: datetime) -> bool:
    """Flip an order to paid and snapshot the payment result."""
    row = await conn.fetchrow(
        """
        UPDATE orders
        SET is_paid = TRUE,
            paid_at = $2,
            payment_result_id = $3,
            payment_result_status = $4,
            payment_result_update_time = $5,
            payment_result_email_address = $6,
            updated_at = $2
        WHERE id = $1
        RETURNING id
        """,
        order_id,
        paid_at,
        payment_result.get("id"),
        payment_result.get("status"),
        payment_result.get("update_time"),
        payment_result.get("email_address"),
    )
    return row is not None


async def list_orders_for_user(conn, user_id: int) -> list[dict]:
    """
    All orders owned by a user, newest first (ties broken by id), each with
    its line items.
    """
    rows = await conn.fetch(
        _ORDER_SELECT + " WHERE o.user_id = $1 ORDER BY o.created_at DESC, o.id DESC",
        user_id,
    )
    orders = [_order_from_row(row) for row in rows]
    if not orders:
        return []

    item_rows = await conn.fetch(
        _ITEM_SELECT + " WHERE o.user_id = $1 ORDER BY oi.order_id, oi.id",
        user_id,
    )
    items_by_order: Dict[int, List[dict]] = {}
    for r in item_rows:
        items_by_order.setdefault(r["order_id"], []).append(_item_from_row(r))
    for order in orders:
        order["order_items"] = items_by_order.get(order["id"], [])
    return orders


# --- Event Tracking ---


async def open_user_session(
    user_id: int,
    session_token: str,
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    async with get_connection() as conn:
        await conn.execute(
            """
            INSERT INTO user_sessions (user_id, session_token, ip_address, user_agent, is_active, login_time)
            VALUES ($1, $2, $3, $4, TRUE, $5)
            """,
            user_id,
            session_token,
            ip_address,
            user_agent,
            utcnow(),
        )


async def close_user_session(user_id: int, session_token: str) -> None:
    async with get_connection() as conn:
        await conn.execute(
            """
            UPDATE user_sessions
            SET logout_time = $3, is_active = FALSE
            WHERE user_id = $1 AND session_token = $2
            """,
            user_id,
            session_token,
            utcnow(),
        )


async def record_activity(
    activity_type: str,
    user_id: Optional[int] = None,
    visitor_id: Optional[str] = None,
    activity_data: Optional[dict] = None,
    page_url: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> None:
    """Append one row to the activity log."""
    async with get_connection() as conn:
        await conn.execute(
            """
            INSERT INTO user_activities (
                user_id, visitor_id, activity_type, activity_data, page_url, ip_address, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            user_id,
            visitor_id,
            activity_type,
            json.dumps(activity_data, default=str) if activity_data is not None else None,
            page_url,
            ip_address,
            utcnow(),
        )


async def record_product_view(
    product_id: int,
    user_id: Optional[int],
    visitor_id: Optional[str],
    view_duration: int,
    ip_address: Optional[str],
) -> None:
    async with get_connection() as conn:
        await conn.execute(
            """
            INSERT INTO product_views (product_id, user_id, visitor_id, view_duration, ip_address, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            product_id,
            user_id,
            visitor_id,
            view_duration,
            ip_address,
            utcnow(),
        )


async def add_cart_quantity(
    product_id: int,
    quantity: int,
    user_id: Optional[int] = None,
    visitor_id: Optional[str] = None,
) -> None:
    """
    Add `quantity` of a product to the server-side cart of a user or visitor.
    Exactly one of user_id / visitor_id is used (user wins).
    """
    if user_id is not None:
        owner_column, owner = "user_id", user_id
    elif visitor_id is not None:
        owner_column, owner = "visitor_id", visitor_id
    else:
        return

    async with get_connection() as conn:
        await conn.execute(
            f"""
            INSERT INTO shopping_carts ({owner_column}, product_id, quantity, updated_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT ({owner_column}, product_id)
            DO UPDATE SET quantity = shopping_carts.quantity + EXCLUDED.quantity,
                          updated_at = EXCLUDED.updated_at
            """,
            owner,
            product_id,
            quantity,
            utcnow(),
        )


async def remove_cart_product(
    product_id: int,
    user_id: Optional[int] = None,
    visitor_id: Optional[str] = None,
) -> None:
    async with get_connection() as conn:
        if user_id is not None:
            await conn.execute(
                "DELETE FROM shopping_carts WHERE user_id = $1 AND product_id = $2",
                user_id,
                product_id,
            )
        elif visitor_id is not None:
            await conn.execute(
                "DELETE FROM shopping_carts WHERE visitor_id = $1 AND product_id = $2",
                visitor_id,
                product_id,
            )


async def clear_cart(user_id: Optional[int] = None, visitor_id: Optional[str] = None) -> None:
    async with get_connection() as conn:
        if user_id is not None:
            await conn.execute("DELETE FROM shopping_carts WHERE user_id = $1", user_id)
        elif visitor_id is not None:
            await conn.execute("DELETE FROM shopping_carts WHERE visitor_id = $1", visitor_id)


async def record_site_visit(
    page_url: str,
    user_id: Optional[int],
    visitor_id: Optional[str],
    page_title: str,
    referrer: str,
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    async with get_connection() as conn:
        await conn.execute(
            """
            INSERT INTO site_visits (
                user_id, visitor_id, page_url, page_title, referrer, ip_address, user_agent, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            user_id,
            visitor_id,
            page_url,
            page_title,
            referrer,
            ip_address,
            user_agent,
            utcnow(),
        )
