import asyncio
import random
import uuid

from sqlalchemy import select

from storestock.db.session import async_session_maker
from storestock.models.location import Location, LocationKind
from storestock.schemas.transfer import InternalDestination, TransferLine, TransferRequest
from storestock.services.location_service import LocationService
from storestock.services.stock_service import StockService
from storestock.services.transfer_service import TransferService

DEMO_BUSINESS_ID = uuid.UUID("00000000-0000-0000-0000-00000000b001")

LOCATIONS = [
    ("MAIN", "Main Store", "Duka Kuu", LocationKind.PRIMARY_STORE),
    ("RETAIL-1", "Retail Outlet", "Duka la Rejareja", LocationKind.RETAIL_STORE),
    ("WH-1", "Central Warehouse", "Ghala Kuu", LocationKind.WAREHOUSE),
]


async def seed_database():
    print("Connecting to database for seeding...")
    async with async_session_maker() as db:

        # 1. Locations
        locations: dict[str, Location] = {}
        for code, name, localized, kind in LOCATIONS:
            result = await db.execute(
                select(Location).where(Location.business_id == DEMO_BUSINESS_ID, Location.code == code)
            )
            loc = result.scalar_one_or_none()
            if not loc:
                loc = await LocationService.create_location(
                    db, DEMO_BUSINESS_ID, code, name, kind=kind, localized_name=localized,
                )
            locations[code] = loc
        await db.commit()
        print(f"Locations ready for business {DEMO_BUSINESS_ID}")

        if await StockService.find_drift(db, DEMO_BUSINESS_ID):
            print("Existing balances drift from the ledger; not seeding on top of them.")
            return

        # 2. Initial stock, then a few transfers and sales through the orchestrator
        print("Generating initial stock and sample movements...")
        product_ids = [uuid.uuid4() for _ in range(25)]
        warehouse = locations["WH-1"]
        for pid in product_ids:
            await TransferService.record_initial_stock(
                db, DEMO_BUSINESS_ID, warehouse.id,
                [TransferLine(product_id=pid, quantity=random.randint(20, 200))],
                reason="Generated by seeding script",
            )
            for code in ("MAIN", "RETAIL-1"):
                await StockService.set_thresholds(
                    db, DEMO_BUSINESS_ID, pid, locations[code].id,
                    reorder_point=random.randint(2, 10), max_stock=100,
                )
            await db.commit()

        for pid in product_ids:
            for code in ("MAIN", "RETAIL-1"):
                await TransferService.execute(db, TransferRequest(
                    business_id=DEMO_BUSINESS_ID,
                    source_location_id=warehouse.id,
                    destination=InternalDestination(location_id=locations[code].id),
                    lines=[TransferLine(product_id=pid, quantity=random.randint(5, 15))],
                ))
            await TransferService.record_sale(
                db, DEMO_BUSINESS_ID, locations["MAIN"].id,
                [TransferLine(product_id=pid, quantity=random.randint(1, 4))],
                reference_id=f"SEED-{random.randint(10000, 99999)}",
            )

        print(f"Seeded {len(product_ids)} products across {len(locations)} locations.")


if __name__ == "__main__":
    asyncio.run(seed_database())
