"""Pallet capacity tracker — fill state, completion, and shipping cost.

The arithmetic helpers at the top are pure and never raise for odd data:
over-allocated pallets (admin edits) clamp to 100% and zero remaining
bottles, and a pallet without capacity has an unknown (None) fill level.

`check_pallet_completion` is the only place a pallet becomes complete:

    1. reserved bottles are summed over ACTIVE reservations
    2. should_mark_complete(reserved, capacity) decides
    3. every `placed` reservation gets a payment deadline and moves to
       `pending_payment`
    4. the pallet is stamped complete (is_complete, completed_at,
       payment_deadline) and an open pallet moves to `consolidating`

Completion is one-way.  A cancelled reservation does not reopen the pallet;
that takes `reopen_pallet`, an explicit admin action.

Reads are not locked: two concurrent checkouts may both see room on the
pallet.  The database owns that race; overbooking is fixed by admins.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.config import settings
from vinepallet.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from vinepallet.models.pallet import DISPATCHED_STATUSES, Pallet
from vinepallet.models.reservation import (
    ACTIVE_RESERVATION_STATUSES,
    OrderReservation,
    OrderReservationItem,
)

logger = logging.getLogger(__name__)


# ── Pure arithmetic ──────────────────────────────────────────

def round_half_up(value: Decimal | float | int) -> int:
    """Round to the nearest integer, .5 away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_fill_percentage(
    reserved_bottles: int,
    capacity_bottles: int | None,
    status: str | None = "open",
) -> int | None:
    """Return the pallet fill level 0-100, or None when not applicable.

    None after dispatch (shipped/delivered) and when the capacity is
    missing or not positive.
    """
    if status in DISPATCHED_STATUSES:
        return None
    if not capacity_bottles or capacity_bottles <= 0:
        return None
    pct = round_half_up(Decimal(reserved_bottles) * 100 / Decimal(capacity_bottles))
    return max(0, min(100, pct))


def should_mark_complete(reserved_bottles: int, capacity_bottles: int | None) -> bool:
    """True iff the pallet is full.  Never true for a zero capacity."""
    if not capacity_bottles or capacity_bottles <= 0:
        return False
    return reserved_bottles >= capacity_bottles


def remaining_capacity(reserved_bottles: int, capacity_bottles: int | None) -> int:
    return max(0, (capacity_bottles or 0) - reserved_bottles)


def cost_per_bottle_cents(pallet_cost_cents: int, capacity_bottles: int | None) -> int:
    """Pallet cost spread over its capacity, rounded to the nearest cent."""
    if not capacity_bottles or capacity_bottles <= 0:
        return 0
    return round_half_up(Decimal(pallet_cost_cents) / Decimal(capacity_bottles))


@dataclass
class ShippingCostBreakdown:
    pallet_cost_cents: int
    cost_per_bottle_cents: int
    bottles: int
    total_shipping_cost_cents: int

    @property
    def pallet_cost(self) -> float:
        return self.pallet_cost_cents / 100

    @property
    def cost_per_bottle(self) -> float:
        return self.cost_per_bottle_cents / 100

    @property
    def total_shipping_cost(self) -> float:
        return self.total_shipping_cost_cents / 100


def shipping_cost_breakdown(
    pallet_cost_cents: int,
    capacity_bottles: int | None,
    bottles: int,
) -> ShippingCostBreakdown:
    """Shipping cost for `bottles` on a pallet.

    The total is bottles × per-bottle cost so every line item adds up; the
    sum over a full pallet may differ from the pallet cost by the per-unit
    rounding (at most half a cent per bottle).
    """
    per_bottle = cost_per_bottle_cents(pallet_cost_cents, capacity_bottles)
    return ShippingCostBreakdown(
        pallet_cost_cents=pallet_cost_cents,
        cost_per_bottle_cents=per_bottle,
        bottles=bottles,
        total_shipping_cost_cents=per_bottle * bottles,
    )


def cart_shipping_cost(
    quantities: Iterable[int],
    pallet: Pallet | None,
) -> ShippingCostBreakdown | None:
    """Shipping cost for a whole cart on the selected pallet (None if no pallet)."""
    if pallet is None:
        return None
    return shipping_cost_breakdown(
        pallet.cost_cents or 0, pallet.bottle_capacity, sum(quantities)
    )


def format_cost(cost_cents: int, currency: str = "SEK") -> str:
    return f"{cost_cents / 100:.2f} {currency}"


# ── Reserved bottle counts ───────────────────────────────────

async def reserved_bottles_by_pallet(
    db: AsyncSession, pallet_ids: list[str]
) -> dict[str, int]:
    """Return {pallet_id: reserved bottles} for ACTIVE reservations, in one query."""
    if not pallet_ids:
        return {}
    result = await db.execute(
        select(
            OrderReservation.pallet_id,
            func.coalesce(func.sum(OrderReservationItem.quantity), 0),
        )
        .join(OrderReservationItem, OrderReservationItem.reservation_id == OrderReservation.id)
        .where(
            OrderReservation.pallet_id.in_(pallet_ids),
            OrderReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
        .group_by(OrderReservation.pallet_id)
    )
    reserved = {row[0]: int(row[1]) for row in result.all()}
    return {pid: reserved.get(pid, 0) for pid in pallet_ids}


async def reserved_bottles(db: AsyncSession, pallet_id: str) -> int:
    return (await reserved_bottles_by_pallet(db, [pallet_id]))[pallet_id]


# ── Completion ───────────────────────────────────────────────

@dataclass
class CompletionOutcome:
    pallet_id: str
    pallet_name: str
    capacity: int
    reserved: int
    percent_filled: int | None
    was_completed: bool = False
    already_complete: bool = False
    reservations_updated: int = 0
    error: str | None = None


async def _get_pallet(db: AsyncSession, pallet_id: str) -> Pallet:
    # populate_existing: a pallet created in this session still has its
    # zone relationships unloaded
    pallet = (
        await db.execute(
            select(Pallet)
            .where(Pallet.id == pallet_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not pallet:
        raise ResourceNotFoundError("Pallet", pallet_id)
    return pallet


async def complete_pallet(
    db: AsyncSession,
    pallet: Pallet,
    now: datetime | None = None,
) -> int:
    """Stamp a pallet complete and start the payment window.

    Returns the number of reservations moved to `pending_payment`.
    """
    now = now or datetime.utcnow()
    deadline = now + timedelta(days=settings.payment_deadline_days)

    result = await db.execute(
        update(OrderReservation)
        .where(
            OrderReservation.pallet_id == pallet.id,
            OrderReservation.status == "placed",
        )
        .values(status="pending_payment", payment_deadline=deadline, updated_at=now)
    )

    pallet.is_complete = True
    pallet.completed_at = now
    pallet.payment_deadline = deadline
    if pallet.status == "open":
        pallet.status = "consolidating"
    await db.flush()

    logger.info(
        "Pallet %s completed; %d reservation(s) due by %s",
        pallet.id, result.rowcount, deadline.isoformat(),
    )
    return result.rowcount


async def check_pallet_completion(
    db: AsyncSession,
    pallet_id: str,
    now: datetime | None = None,
) -> CompletionOutcome:
    """Complete the pallet if its reservations have reached capacity."""
    pallet = await _get_pallet(db, pallet_id)
    reserved = await reserved_bottles(db, pallet.id)
    outcome = CompletionOutcome(
        pallet_id=pallet.id,
        pallet_name=pallet.name,
        capacity=pallet.bottle_capacity,
        reserved=reserved,
        percent_filled=compute_fill_percentage(reserved, pallet.bottle_capacity, pallet.status),
    )

    if pallet.is_complete:
        outcome.already_complete = True
        return outcome
    if pallet.status in DISPATCHED_STATUSES:
        return outcome

    if should_mark_complete(reserved, pallet.bottle_capacity):
        outcome.reservations_updated = await complete_pallet(db, pallet, now=now)
        outcome.was_completed = True
    else:
        logger.debug(
            "Pallet %s not full yet (%d/%d)", pallet.id, reserved, pallet.bottle_capacity
        )
    return outcome


async def check_all_pallets(
    db: AsyncSession,
    now: datetime | None = None,
) -> list[CompletionOutcome]:
    """Run the completion check on every incomplete, undispatched pallet.

    Each pallet is checked inside its own savepoint: a failure rolls back
    that pallet only, is recorded on its outcome, and does not stop the
    sweep.
    """
    result = await db.execute(
        select(Pallet.id, Pallet.name, Pallet.bottle_capacity).where(
            Pallet.is_complete == False,  # noqa: E712
            Pallet.status.not_in(DISPATCHED_STATUSES),
        ).order_by(Pallet.created_at)
    )
    rows = result.all()

    outcomes: list[CompletionOutcome] = []
    for pallet_id, name, capacity in rows:
        try:
            async with db.begin_nested():
                outcome = await check_pallet_completion(db, pallet_id, now=now)
            outcomes.append(outcome)
        except Exception as e:
            logger.exception("Completion check failed for pallet %s", pallet_id)
            outcomes.append(CompletionOutcome(
                pallet_id=pallet_id,
                pallet_name=name,
                capacity=capacity,
                reserved=0,
                percent_filled=None,
                error=str(e),
            ))
    return outcomes


async def reopen_pallet(db: AsyncSession, pallet_id: str) -> Pallet:
    """Administrative correction: clear completion so the pallet takes bookings again.

    Reservations already moved to `pending_payment` keep their status.
    """
    pallet = await _get_pallet(db, pallet_id)
    if pallet.status in DISPATCHED_STATUSES:
        raise BusinessLogicError(
            f"Pallet {pallet.name} is {pallet.status} and cannot be reopened",
            error_code="PALLET_DISPATCHED",
        )

    pallet.is_complete = False
    pallet.completed_at = None
    pallet.payment_deadline = None
    if pallet.status == "consolidating":
        pallet.status = "open"
    await db.flush()
    logger.warning("Pallet %s reopened by administrator", pallet.id)
    return pallet


# ── Status summary ───────────────────────────────────────────

@dataclass
class PalletStatusSummary:
    pallet: Pallet
    reserved: int = 0
    pending_payment: int = 0
    confirmed: int = 0
    placed: int = 0
    by_status: dict[str, int] = field(default_factory=dict)

    @property
    def percent_filled(self) -> int | None:
        return compute_fill_percentage(
            self.reserved, self.pallet.bottle_capacity, self.pallet.status
        )

    @property
    def remaining(self) -> int:
        return remaining_capacity(self.reserved, self.pallet.bottle_capacity)

    @property
    def needs_payment(self) -> bool:
        return bool(self.pallet.is_complete) and self.pending_payment > 0


async def pallet_status_summary(db: AsyncSession, pallet_id: str) -> PalletStatusSummary:
    """Bottle counts per reservation status for one pallet."""
    pallet = await _get_pallet(db, pallet_id)
    result = await db.execute(
        select(
            OrderReservation.status,
            func.coalesce(func.sum(OrderReservationItem.quantity), 0),
        )
        .join(OrderReservationItem, OrderReservationItem.reservation_id == OrderReservation.id)
        .where(OrderReservation.pallet_id == pallet.id)
        .group_by(OrderReservation.status)
    )
    by_status = {row[0]: int(row[1]) for row in result.all()}

    return PalletStatusSummary(
        pallet=pallet,
        reserved=sum(by_status.get(s, 0) for s in ACTIVE_RESERVATION_STATUSES),
        pending_payment=by_status.get("pending_payment", 0),
        confirmed=by_status.get("confirmed", 0),
        placed=by_status.get("placed", 0),
        by_status=by_status,
    )
