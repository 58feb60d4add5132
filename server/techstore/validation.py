"""
Input validation for account registration and catalog products.

Each validator returns the sanitized values or raises ValidationError naming
the offending field.
"""

import re
from decimal import Decimal, InvalidOperation

from .errors import ValidationError
from .schema import PRODUCT_CATEGORIES

_NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
_LETTER_RE = re.compile(r"[a-zA-Z]")

MAX_PRODUCT_PRICE = Decimal("10000000")
# Largest value orders.total_price NUMERIC(12, 2) can hold
MAX_ORDER_TOTAL = Decimal("9999999999.99")
MAX_PRODUCT_STOCK = 1_000_000


def validate_registration(name: str, email: str, password: str) -> dict:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Name must be at least 2 characters long", field="name")
    if len(name) > 50:
        raise ValidationError("Name must be less than 50 characters", field="name")
    if not _NAME_RE.match(name):
        raise ValidationError("Name can only contain letters and spaces", field="name")

    email = (email or "").strip().lower()
    if len(email) > 100:
        raise ValidationError("Email must be less than 100 characters", field="email")

    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters long", field="password")
    if len(password) > 128:
        raise ValidationError("Password must be less than 128 characters", field="password")
    # bcrypt only looks at the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        raise ValidationError("Password must be at most 72 bytes", field="password")
    if not _LETTER_RE.search(password):
        raise ValidationError("Password must contain at least one letter", field="password")

    return {"name": name, "email": email, "password": password}


def validate_product(
    name: str,
    price,
    category: str,
    description: str = "",
    image: str = "",
    image_alt: str = "",
    stock: int = 0,
) -> dict:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Product name must be at least 2 characters long", field="name")
    if len(name) > 200:
        raise ValidationError("Product name must be less than 200 characters", field="name")

    description = (description or "").strip()
    if len(description) > 1000:
        raise ValidationError("Description must be less than 1000 characters", field="description")

    try:
        price = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a valid positive number", field="price")
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be a valid positive number", field="price")
    if price > MAX_PRODUCT_PRICE:
        raise ValidationError("Price cannot exceed 10,000,000", field="price")
    price = price.quantize(Decimal("0.01"))

    if category not in PRODUCT_CATEGORIES:
        raise ValidationError(
            f"Category must be one of: {', '.join(PRODUCT_CATEGORIES)}", field="category"
        )

    if stock < 0:
        raise ValidationError("Stock must be a valid non-negative number", field="stock")
    if stock > MAX_PRODUCT_STOCK:
        raise ValidationError("Stock cannot exceed 1,000,000 units", field="stock")

    return {
        "name": name,
        "price": price,
        "category": category,
        "description": description,
        "image": (image or "").strip(),
        "image_alt": (image_alt or name).strip(),
        "stock": stock,
    }
