"""Cart router — storefront cart lines and the six-bottle check.

The cart is identified by the `cart_id` cookie or the X-Cart-Id header.

Endpoints:
    GET    /api/cart/                  Current cart
    POST   /api/cart/items             Add bottles (merges with an existing line)
    PATCH  /api/cart/items/{item_id}   Set quantity (0 removes the line)
    DELETE /api/cart/items/{item_id}   Remove a line
    GET    /api/cart/validate          Six-bottle rule check
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.auth.deps import get_cart_id
from vinepallet.database import get_db
from vinepallet.middleware.exceptions import ResourceNotFoundError
from vinepallet.models.cart import CartItem
from vinepallet.models.producer import Wine
from vinepallet.schemas.cart import (
    CartItemAdd,
    CartItemOut,
    CartItemUpdate,
    CartOut,
    CartValidationOut,
)
from vinepallet.services.cart_validation import fail_open_result, validate_cart
from vinepallet.services.policy import ErrorPolicy, run_with_policy
from vinepallet.services.reservations import cart_lines, load_cart_items
from vinepallet.utils.validation_cache import ValidationCache, get_validation_cache

router = APIRouter()


def _item_out(item: CartItem) -> CartItemOut:
    wine = item.wine
    producer = wine.producer if wine else None
    return CartItemOut(
        id=item.id,
        wine_id=item.wine_id,
        quantity=item.quantity,
        wine_name=wine.wine_name if wine else None,
        producer_id=producer.id if producer else None,
        producer_name=producer.name if producer else None,
    )


def _cart_out(cart_id: str, items: list[CartItem]) -> CartOut:
    return CartOut(
        cart_id=cart_id,
        items=[_item_out(i) for i in items],
        total_bottles=sum(i.quantity for i in items),
    )


async def _get_line(db: AsyncSession, cart_id: str, item_id: str) -> CartItem:
    result = await db.execute(
        select(CartItem).where(CartItem.id == item_id, CartItem.cart_id == cart_id)
    )
    item = result.scalar_one_or_none()
    if not item:
        raise ResourceNotFoundError("Cart item", item_id)
    return item


@router.get("/", response_model=CartOut)
async def get_cart(
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
):
    return _cart_out(cart_id, await load_cart_items(db, cart_id))


@router.post("/items", response_model=CartOut, status_code=status.HTTP_201_CREATED)
async def add_item(
    body: CartItemAdd,
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
):
    wine = (await db.execute(select(Wine).where(Wine.id == body.wine_id))).scalar_one_or_none()
    if not wine:
        raise ResourceNotFoundError("Wine", body.wine_id)

    existing = (
        await db.execute(
            select(CartItem).where(CartItem.cart_id == cart_id, CartItem.wine_id == body.wine_id)
        )
    ).scalar_one_or_none()
    if existing:
        existing.quantity += body.quantity
    else:
        db.add(CartItem(cart_id=cart_id, wine_id=body.wine_id, quantity=body.quantity))
    await db.flush()

    return _cart_out(cart_id, await load_cart_items(db, cart_id))


@router.patch("/items/{item_id}", response_model=CartOut)
async def update_item(
    item_id: str,
    body: CartItemUpdate,
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
):
    item = await _get_line(db, cart_id, item_id)
    if body.quantity == 0:
        await db.delete(item)
    else:
        item.quantity = body.quantity
    await db.flush()
    return _cart_out(cart_id, await load_cart_items(db, cart_id))


@router.delete("/items/{item_id}", response_model=CartOut)
async def remove_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
):
    item = await _get_line(db, cart_id, item_id)
    await db.delete(item)
    await db.flush()
    return _cart_out(cart_id, await load_cart_items(db, cart_id))


@router.get("/validate", response_model=CartValidationOut)
async def validate(
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
    cache: ValidationCache = Depends(get_validation_cache),
):
    """Six-bottle rule check for the current cart.

    Fails open: if loading the cart or the check itself breaks, the cart is
    reported valid.
    """
    async def load_and_validate():
        items = await load_cart_items(db, cart_id)
        return await validate_cart(db, cart_lines(items), cache)

    result = await run_with_policy(
        load_and_validate,
        ErrorPolicy.FAIL_OPEN,
        fallback=fail_open_result,
        label="cart validation",
    )
    return CartValidationOut.model_validate(result)
