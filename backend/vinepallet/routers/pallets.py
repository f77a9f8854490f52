"""Pallet router — admin view of pallet fill state and completion.

Endpoints:
    GET    /api/pallets/                          List pallets with fill level
    POST   /api/pallets/                          Create a pallet on a route
    POST   /api/pallets/check-completion          Completion sweep over all pallets
    GET    /api/pallets/{pallet_id}               Detail + reservation summary
    PATCH  /api/pallets/{pallet_id}               Update name/capacity/cost/status
    POST   /api/pallets/{pallet_id}/reopen        Clear completion (admin correction)
    POST   /api/pallets/{pallet_id}/check-completion   Completion check for one pallet
    GET    /api/pallets/{pallet_id}/shipping-cost Shipping cost for N bottles
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.auth.deps import require_admin
from vinepallet.database import get_db
from vinepallet.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from vinepallet.models.pallet import Pallet
from vinepallet.models.zone import Zone
from vinepallet.schemas.common import PaginatedResponse
from vinepallet.schemas.pallet import (
    CompletionResult,
    CompletionSweepResult,
    PalletCreate,
    PalletDetail,
    PalletSummary,
    PalletUpdate,
    ShippingCostOut,
)
from vinepallet.services.pallet_capacity import (
    check_all_pallets,
    check_pallet_completion,
    compute_fill_percentage,
    format_cost,
    pallet_status_summary,
    remaining_capacity,
    reopen_pallet,
    reserved_bottles_by_pallet,
    shipping_cost_breakdown,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _summary(pallet: Pallet, reserved: int) -> PalletSummary:
    return PalletSummary(
        id=pallet.id,
        name=pallet.name,
        pickup_zone_id=pallet.pickup_zone_id,
        delivery_zone_id=pallet.delivery_zone_id,
        pickup_zone_name=pallet.pickup_zone.name if pallet.pickup_zone else None,
        delivery_zone_name=pallet.delivery_zone.name if pallet.delivery_zone else None,
        bottle_capacity=pallet.bottle_capacity,
        cost_cents=pallet.cost_cents or 0,
        status=pallet.status,
        is_complete=pallet.is_complete,
        completed_at=pallet.completed_at,
        payment_deadline=pallet.payment_deadline,
        reserved_bottles=reserved,
        remaining_bottles=remaining_capacity(reserved, pallet.bottle_capacity),
        percent_filled=compute_fill_percentage(reserved, pallet.bottle_capacity, pallet.status),
        created_at=pallet.created_at,
    )


async def _detail(db: AsyncSession, pallet_id: str) -> PalletDetail:
    summary = await pallet_status_summary(db, pallet_id)
    pallet = summary.pallet
    return PalletDetail(
        **_summary(pallet, summary.reserved).model_dump(),
        notes=pallet.notes,
        updated_at=pallet.updated_at,
        pending_payment_bottles=summary.pending_payment,
        confirmed_bottles=summary.confirmed,
        placed_bottles=summary.placed,
        needs_payment=summary.needs_payment,
    )


async def _require_zone(db: AsyncSession, zone_id: str, zone_type: str) -> Zone:
    zone = (await db.execute(select(Zone).where(Zone.id == zone_id))).scalar_one_or_none()
    if not zone:
        raise ResourceNotFoundError("Zone", zone_id)
    if zone.zone_type != zone_type:
        raise BusinessLogicError(
            f"Zone {zone.name} is a {zone.zone_type} zone, expected {zone_type}",
            error_code="ZONE_TYPE_MISMATCH",
        )
    return zone


# ── List / create ────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[PalletSummary])
async def list_pallets(
    pallet_status: str | None = Query(None, alias="status"),
    pickup_zone_id: str | None = Query(None),
    delivery_zone_id: str | None = Query(None),
    is_complete: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    base_stmt = select(Pallet)
    if pallet_status:
        base_stmt = base_stmt.where(Pallet.status == pallet_status)
    if pickup_zone_id:
        base_stmt = base_stmt.where(Pallet.pickup_zone_id == pickup_zone_id)
    if delivery_zone_id:
        base_stmt = base_stmt.where(Pallet.delivery_zone_id == delivery_zone_id)
    if is_complete is not None:
        base_stmt = base_stmt.where(Pallet.is_complete == is_complete)

    total = await db.scalar(select(func.count()).select_from(base_stmt.subquery())) or 0

    result = await db.execute(
        base_stmt.order_by(Pallet.created_at.desc()).limit(limit).offset(offset)
    )
    pallets = list(result.scalars().all())
    reserved = await reserved_bottles_by_pallet(db, [p.id for p in pallets])

    return PaginatedResponse[PalletSummary](
        items=[_summary(p, reserved[p.id]) for p in pallets],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=PalletDetail, status_code=status.HTTP_201_CREATED)
async def create_pallet(
    body: PalletCreate,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    await _require_zone(db, body.pickup_zone_id, "pickup")
    await _require_zone(db, body.delivery_zone_id, "delivery")

    pallet = Pallet(**body.model_dump())
    db.add(pallet)
    await db.flush()
    logger.info("Pallet %s created (%d bottles)", pallet.id, pallet.bottle_capacity)
    return await _detail(db, pallet.id)


# ── Completion sweep ─────────────────────────────────────────
# Declared before /{pallet_id} so "check-completion" is not taken as an id

@router.post("/check-completion", response_model=CompletionSweepResult)
async def check_completion_all(
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    outcomes = await check_all_pallets(db)
    return CompletionSweepResult(
        checked=len(outcomes),
        completed=sum(1 for o in outcomes if o.was_completed),
        results=[CompletionResult.model_validate(o) for o in outcomes],
    )


# ── Single pallet ────────────────────────────────────────────

@router.get("/{pallet_id}", response_model=PalletDetail)
async def get_pallet(
    pallet_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    return await _detail(db, pallet_id)


@router.patch("/{pallet_id}", response_model=PalletDetail)
async def update_pallet(
    pallet_id: str,
    body: PalletUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    """Edit a pallet.  A capacity change re-runs the completion check."""
    pallet = (await db.execute(select(Pallet).where(Pallet.id == pallet_id))).scalar_one_or_none()
    if not pallet:
        raise ResourceNotFoundError("Pallet", pallet_id)

    updates = body.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(pallet, field, value)
    await db.flush()

    if "bottle_capacity" in updates:
        await check_pallet_completion(db, pallet.id)
    return await _detail(db, pallet.id)


@router.post("/{pallet_id}/reopen", response_model=PalletDetail)
async def reopen(
    pallet_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    await reopen_pallet(db, pallet_id)
    return await _detail(db, pallet_id)


@router.post("/{pallet_id}/check-completion", response_model=CompletionResult)
async def check_completion(
    pallet_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    return CompletionResult.model_validate(await check_pallet_completion(db, pallet_id))


@router.get("/{pallet_id}/shipping-cost", response_model=ShippingCostOut)
async def shipping_cost(
    pallet_id: str,
    bottles: int = Query(..., ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Per-bottle shipping cost on this pallet, times `bottles`."""
    pallet = (await db.execute(select(Pallet).where(Pallet.id == pallet_id))).scalar_one_or_none()
    if not pallet:
        raise ResourceNotFoundError("Pallet", pallet_id)

    breakdown = shipping_cost_breakdown(pallet.cost_cents or 0, pallet.bottle_capacity, bottles)
    return ShippingCostOut(
        pallet_id=pallet.id,
        pallet_cost_cents=breakdown.pallet_cost_cents,
        cost_per_bottle_cents=breakdown.cost_per_bottle_cents,
        bottles=breakdown.bottles,
        total_shipping_cost_cents=breakdown.total_shipping_cost_cents,
        formatted_total=format_cost(breakdown.total_shipping_cost_cents),
    )
