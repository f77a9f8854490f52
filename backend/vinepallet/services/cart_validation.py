"""Six-bottle rule validation for carts.

Bottles are counted per producer, or per producer group when the producer
belongs to one (group members pool their bottles).  Each count is checked
against the producer's rule:

    multiple  quantity is a multiple of N (default 6)
    minimum   quantity is at least N
    none      always valid

A count of zero is always valid.  `needed` is the distance to the next
valid quantity.

`validate_cart` wraps the check in the FAIL_OPEN policy and the
in-process ValidationCache.
"""

import logging
import re
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.config import settings
from vinepallet.models.producer import ProducerGroup, ProducerGroupMember, Wine
from vinepallet.services.policy import ErrorPolicy, run_with_policy
from vinepallet.utils.validation_cache import ValidationCache, cart_fingerprint

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    line_id: str
    wine_id: str
    quantity: int


@dataclass
class ProducerValidation:
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


@dataclass
class ValidationResult:
    is_valid: bool
    producer_validations: list[ProducerValidation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def fail_open_result() -> ValidationResult:
    return ValidationResult(is_valid=True)


def evaluate_rule(quantity: int, rule: str, required: int) -> tuple[bool, int]:
    """Return (is_valid, bottles needed) for one producer/group count."""
    if quantity <= 0 or rule == "none" or required <= 0:
        return True, 0
    if rule == "minimum":
        return (True, 0) if quantity >= required else (False, required - quantity)
    remainder = quantity % required
    return (True, 0) if remainder == 0 else (False, required - remainder)


def producer_handle(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


@dataclass
class _Tally:
    quantity: int = 0
    producer_ids: list[str] = field(default_factory=list)
    producer_names: list[str] = field(default_factory=list)
    rule: str = "multiple"
    required: int = 6
    group_id: str | None = None
    group_name: str | None = None


def validate_lines(
    lines: list[CartLine],
    wines: dict[str, Wine],
    groups_by_producer: dict[str, tuple[str, str]],
) -> ValidationResult:
    """Pure six-bottle check over resolved wines.

    `groups_by_producer` maps producer_id → (group_id, group_name).
    Lines whose wine or producer is unknown are skipped.
    """
    tallies: dict[str, _Tally] = {}

    for line in lines:
        wine = wines.get(line.wine_id)
        if wine is None or wine.producer is None:
            logger.warning("Skipping cart line %s: wine/producer not found", line.line_id)
            continue
        producer = wine.producer
        group = groups_by_producer.get(producer.id)

        if group:
            key = f"group_{group[0]}"
            tally = tallies.setdefault(key, _Tally(
                rule="multiple",
                required=settings.default_bottle_multiple,
                group_id=group[0],
                group_name=group[1],
            ))
        else:
            key = f"producer_{producer.id}"
            tally = tallies.setdefault(key, _Tally(
                rule=producer.order_rule or "multiple",
                required=producer.order_quantity or settings.default_bottle_multiple,
            ))

        tally.quantity += line.quantity
        if producer.id not in tally.producer_ids:
            tally.producer_ids.append(producer.id)
            tally.producer_names.append(producer.name)

    validations: list[ProducerValidation] = []
    errors: list[str] = []
    for tally in tallies.values():
        is_valid, needed = evaluate_rule(tally.quantity, tally.rule, tally.required)
        name = " + ".join(tally.producer_names)
        validations.append(ProducerValidation(
            producer_id=tally.producer_ids[0],
            producer_name=name,
            producer_handle=producer_handle(name),
            quantity=tally.quantity,
            rule=tally.rule,
            required=tally.required,
            is_valid=is_valid,
            needed=needed,
            group_id=tally.group_id,
            group_name=tally.group_name,
        ))
        if not is_valid:
            label = tally.group_name or name
            errors.append(
                f"{label}: {tally.quantity} bottles. "
                f"Add {needed} more for {tally.quantity + needed} total."
            )

    return ValidationResult(
        is_valid=all(v.is_valid for v in validations),
        producer_validations=validations,
        errors=errors,
    )


async def validate_six_bottle_rule(
    db: AsyncSession,
    lines: list[CartLine],
) -> ValidationResult:
    """Load wines and producer groups, then run `validate_lines`.  May raise."""
    if not lines:
        return ValidationResult(is_valid=True)

    wine_ids = list({line.wine_id for line in lines})
    wine_result = await db.execute(select(Wine).where(Wine.id.in_(wine_ids)))
    wines = {wine.id: wine for wine in wine_result.scalars().all()}

    producer_ids = list({w.producer_id for w in wines.values() if w.producer_id})
    groups_by_producer: dict[str, tuple[str, str]] = {}
    if producer_ids:
        member_result = await db.execute(
            select(ProducerGroupMember.producer_id, ProducerGroup.id, ProducerGroup.name)
            .join(ProducerGroup, ProducerGroup.id == ProducerGroupMember.group_id)
            .where(ProducerGroupMember.producer_id.in_(producer_ids))
        )
        for producer_id, group_id, group_name in member_result.all():
            groups_by_producer[producer_id] = (group_id, group_name)

    return validate_lines(lines, wines, groups_by_producer)


async def validate_cart(
    db: AsyncSession,
    lines: list[CartLine],
    cache: ValidationCache | None = None,
) -> ValidationResult:
    """Six-bottle validation with caching and the FAIL_OPEN policy."""
    key = cart_fingerprint((line.line_id, line.quantity) for line in lines)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    result = await run_with_policy(
        lambda: validate_six_bottle_rule(db, lines),
        ErrorPolicy.FAIL_OPEN,
        fallback=fail_open_result,
        label="cart validation",
    )

    # Fail-open answers are not cached so the next call retries the real check
    if cache is not None and (result.producer_validations or not lines):
        cache.set(key, result)
    return result
