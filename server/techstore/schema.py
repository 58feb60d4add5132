"""
PostgreSQL schema for the TechStore tables.

Applied idempotently on startup by ``db.apply_schema``. Cascades and value
checks live in the DDL, not in application cleanup code.
"""

PRODUCT_CATEGORIES = ("processors", "graphics", "memory", "cooling", "peripherals")
PAYMENT_METHODS = ("card", "upi", "netbanking", "cod")


def _in_list(values) -> str:
    return ", ".join(f"'{v}'" for v in values)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id BIGSERIAL PRIMARY KEY,
        name VARCHAR(50) NOT NULL,
        email VARCHAR(100) NOT NULL UNIQUE,
        password_hash VARCHAR(255) NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS products (
        id BIGSERIAL PRIMARY KEY,
        name VARCHAR(200) NOT NULL,
        price NUMERIC(10, 2) NOT NULL CHECK (price >= 0),
        category VARCHAR(32) NOT NULL CHECK (category IN ({_in_list(PRODUCT_CATEGORIES)})),
        description TEXT NOT NULL DEFAULT '',
        image VARCHAR(500) NOT NULL DEFAULT '',
        image_alt VARCHAR(200) NOT NULL DEFAULT '',
        stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS orders (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT NOT NULL REFERENCES users (id),
        total_price NUMERIC(12, 2) NOT NULL CHECK (total_price >= 0),
        shipping_address VARCHAR(500) NOT NULL,
        shipping_city VARCHAR(100) NOT NULL,
        shipping_postal_code VARCHAR(20) NOT NULL,
        shipping_country VARCHAR(100) NOT NULL,
        payment_method VARCHAR(16) NOT NULL CHECK (payment_method IN ({_in_list(PAYMENT_METHODS)})),
        is_paid BOOLEAN NOT NULL DEFAULT FALSE,
        paid_at TIMESTAMPTZ,
        payment_result_id VARCHAR(255),
        payment_result_status VARCHAR(64),
        payment_result_update_time VARCHAR(64),
        payment_result_email_address VARCHAR(255),
        is_delivered BOOLEAN NOT NULL DEFAULT FALSE,
        delivered_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_user_created ON orders (user_id, created_at, id)",
    """
    CREATE TABLE IF NOT EXISTS order_items (
        id BIGSERIAL PRIMARY KEY,
        order_id BIGINT NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
        product_id BIGINT NOT NULL REFERENCES products (id),
        name VARCHAR(200),
        quantity INTEGER NOT NULL CHECK (quantity >= 1),
        price NUMERIC(10, 2) NOT NULL CHECK (price >= 0)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items (order_id, id)",
    # --- Event tracking ---
    """
    CREATE TABLE IF NOT EXISTS user_sessions (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT NOT NULL,
        session_token VARCHAR(255) NOT NULL,
        ip_address VARCHAR(64),
        user_agent VARCHAR(500),
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        login_time TIMESTAMPTZ NOT NULL,
        logout_time TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_activities (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT,
        visitor_id VARCHAR(100),
        activity_type VARCHAR(32) NOT NULL,
        activity_data TEXT,
        page_url VARCHAR(1000),
        ip_address VARCHAR(64),
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_views (
        id BIGSERIAL PRIMARY KEY,
        product_id BIGINT NOT NULL,
        user_id BIGINT,
        visitor_id VARCHAR(100),
        view_duration INTEGER NOT NULL DEFAULT 0,
        ip_address VARCHAR(64),
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopping_carts (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT,
        visitor_id VARCHAR(100),
        product_id BIGINT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity >= 1),
        updated_at TIMESTAMPTZ NOT NULL,
        UNIQUE (user_id, product_id),
        UNIQUE (visitor_id, product_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS site_visits (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT,
        visitor_id VARCHAR(100),
        page_url VARCHAR(1000) NOT NULL,
        page_title VARCHAR(500) NOT NULL DEFAULT '',
        referrer VARCHAR(1000) NOT NULL DEFAULT '',
        ip_address VARCHAR(64),
        user_agent VARCHAR(500),
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
]
