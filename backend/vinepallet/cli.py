"""Management CLI for pallet operations.

Usage:
    python -m vinepallet.cli check-pallets   # Run the completion check on every open pallet
    python -m vinepallet.cli list-zones      # Show pickup and delivery zones
"""

import asyncio
import sys

from sqlalchemy import select

from vinepallet.database import async_session, engine
from vinepallet.models.zone import Zone
from vinepallet.services.pallet_capacity import check_all_pallets


async def _check_pallets() -> int:
    async with async_session() as db:
        outcomes = await check_all_pallets(db)
        await db.commit()

    failed = 0
    for o in outcomes:
        pct = "n/a" if o.percent_filled is None else f"{o.percent_filled}%"
        if o.error:
            failed += 1
            print(f"  {o.pallet_name}: FAILED ({o.error})")
        elif o.was_completed:
            print(f"  {o.pallet_name}: COMPLETED {o.reserved}/{o.capacity} "
                  f"({o.reservations_updated} reservation(s) awaiting payment)")
        else:
            print(f"  {o.pallet_name}: {o.reserved}/{o.capacity} ({pct})")

    completed = sum(1 for o in outcomes if o.was_completed)
    print(f"\n{len(outcomes)} pallet(s) checked, {completed} completed, {failed} failed")
    return 1 if failed else 0


async def _list_zones() -> None:
    async with async_session() as db:
        result = await db.execute(select(Zone).order_by(Zone.zone_type, Zone.name))
        zones = list(result.scalars().all())

    for z in zones:
        if z.center_lat is not None and z.center_lon is not None:
            where = f"({z.center_lat:.4f}, {z.center_lon:.4f}) r={z.radius_km or 0:g} km"
        else:
            where = f"{z.country_code or '??'} {','.join(z.postcode_prefixes or []) or '*'}"
        print(f"  [{z.zone_type:8}] {z.name:30} {where}")
    print(f"\n{len(zones)} zone(s)")


async def _run(coro):
    try:
        return await coro
    finally:
        await engine.dispose()


def check_pallets() -> int:
    return asyncio.run(_run(_check_pallets()))


def list_zones() -> None:
    asyncio.run(_run(_list_zones()))


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "check-pallets":
        sys.exit(check_pallets())
    elif cmd == "list-zones":
        list_zones()
    else:
        print("Usage: python -m vinepallet.cli [check-pallets|list-zones]")
