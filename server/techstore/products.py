"""
Catalog endpoints. Listing and lookup are public; creation needs an admin key.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from .auth import get_admin_user, UserContext
from .errors import NotFoundError, ValidationError
from .models import Product, ProductCreateRequest
from .schema import PRODUCT_CATEGORIES
from .validation import validate_product
from . import db


router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=List[Product])
async def list_products(category: Optional[str] = None):
    """
    List products. `category` filters by one category; empty or `all`
    returns everything.
    """
    if category in (None, "", "all"):
        category = None
    elif category not in PRODUCT_CATEGORIES:
        raise ValidationError(
            f"Category must be one of: {', '.join(PRODUCT_CATEGORIES)}", field="category"
        )
    rows = await db.list_products(category)
    return [Product.model_validate(r) for r in rows]


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: int):
    row = await db.get_product_by_id(product_id)
    if row is None:
        raise NotFoundError("Product not found")
    return Product.model_validate(row)


@router.post("", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreateRequest,
    admin: UserContext = Depends(get_admin_user),
):
    data = validate_product(
        name=payload.name,
        price=payload.price,
        category=payload.category,
        description=payload.description,
        image=payload.image,
        image_alt=payload.image_alt,
        stock=payload.stock,
    )
    row = await db.create_product(**data)
    return Product.model_validate(row)
