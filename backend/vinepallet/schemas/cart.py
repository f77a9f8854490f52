"""Pydantic schemas for the cart and its six-bottle validation."""

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    """Payload for POST /api/cart/items."""
    wine_id: str
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    """Payload for PATCH /api/cart/items/{item_id}.  0 removes the line."""
    quantity: int = Field(..., ge=0)


class CartItemOut(BaseModel):
    id: str
    wine_id: str
    quantity: int
    wine_name: str | None = None
    producer_id: str | None = None
    producer_name: str | None = None


class CartOut(BaseModel):
    cart_id: str
    items: list[CartItemOut] = []
    total_bottles: int = 0


# ── Validation ───────────────────────────────────────────────

class ProducerValidationOut(BaseModel):
    producer_id: str
    producer_name: str
    producer_handle: str
    quantity: int
    rule: str
    required: int
    is_valid: bool
    needed: int
    group_id: str | None = None
    group_name: str | None = None

    model_config = {"from_attributes": True}


class CartValidationOut(BaseModel):
    is_valid: bool
    producer_validations: list[ProducerValidationOut] = []
    errors: list[str] = []

    model_config = {"from_attributes": True}
