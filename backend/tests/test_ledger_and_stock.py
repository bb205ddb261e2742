"""
Ledger and stock aggregator tests.

Invariants checked against the materialized balances:
- conservation of quantity across internal transfers
- non-negativity
- balance == signed sum of ledger entries, and drift detection when it is not
- ledger rows are immutable
"""
import random
from uuid import uuid4

import pytest
import redis.asyncio as redis
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from storestock.config import Settings
from storestock.core import redis as stock_cache
from storestock.core.errors import InsufficientStock, InvalidRequest, LedgerImmutable
from storestock.models.inventory import StockBalance
from storestock.schemas.stock import StockStatus
from storestock.schemas.transfer import InternalDestination, TransferLine, TransferRequest
from storestock.services import stock_service
from storestock.services.ledger_service import LedgerService
from storestock.services.location_service import LocationService
from storestock.services.stock_service import StockService, classify_stock, summarize_by_location
from storestock.services.transfer_service import TransferService

pytestmark = pytest.mark.anyio


async def move(db, business_id, source, destination, product_id, qty):
    return await TransferService.execute(db, TransferRequest(
        business_id=business_id,
        source_location_id=source,
        destination=InternalDestination(location_id=destination),
        lines=[TransferLine(product_id=product_id, quantity=qty)],
    ))


class TestInvariants:

    async def test_conservation_across_internal_transfers(self, db, business_id, locations, seed, product_id):
        await seed(locations["WH"], {product_id: 40})
        before = sum((await StockService.current_quantities(db, business_id, product_id)).values())

        await move(db, business_id, locations["WH"], locations["MAIN"], product_id, 15)
        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 6)
        await move(db, business_id, locations["RETAIL"], locations["WH"], product_id, 2)

        after = await StockService.current_quantities(db, business_id, product_id)
        assert sum(after.values()) == before == 40
        assert after == {locations["WH"]: 27, locations["MAIN"]: 9, locations["RETAIL"]: 4}

    async def test_random_sequence_keeps_ledger_equivalence(self, db, business_id, locations, seed):
        rng = random.Random(1234)
        products = [uuid4() for _ in range(3)]
        await seed(locations["WH"], {pid: 30 for pid in products})
        ids = list(locations.values())

        for _ in range(40):
            pid = rng.choice(products)
            source, destination = rng.sample(ids, 2)
            qty = rng.randint(1, 12)
            try:
                await move(db, business_id, source, destination, pid, qty)
            except InsufficientStock:
                pass

        for pid in products:
            for loc in ids:
                balance = await StockService.current_quantity(db, business_id, pid, loc)
                assert balance >= 0
                assert balance == await LedgerService.ledger_quantity(db, business_id, pid, loc)
        assert await StockService.find_drift(db, business_id) == []

    async def test_balance_cannot_go_negative_in_database(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 2})

        with pytest.raises(IntegrityError):
            await db.execute(
                update(StockBalance)
                .where(StockBalance.business_id == business_id, StockBalance.product_id == product_id)
                .values(quantity=-1)
            )
        await db.rollback()

    async def test_drift_is_detected(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        await db.execute(
            update(StockBalance)
            .where(StockBalance.business_id == business_id, StockBalance.product_id == product_id)
            .values(quantity=7)
        )
        await db.commit()

        (drift,) = await StockService.find_drift(db, business_id)

        assert drift.location_id == locations["MAIN"]
        assert drift.balance_quantity == 7
        assert drift.ledger_quantity == 5

    async def test_unknown_key_is_zero(self, db, business_id, locations, product_id):
        assert await StockService.current_quantity(db, business_id, product_id, locations["MAIN"]) == 0
        assert await LedgerService.ledger_quantity(db, business_id, product_id, locations["MAIN"]) == 0
        assert await StockService.current_quantities(db, business_id, product_id) == {}


class TestLedgerImmutability:

    async def test_update_is_blocked(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        (entry,) = await LedgerService.entries(db, business_id, product_id=product_id)

        entry.quantity = 99
        with pytest.raises(LedgerImmutable):
            await db.flush()
        await db.rollback()

    async def test_delete_is_blocked(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        (entry,) = await LedgerService.entries(db, business_id, product_id=product_id)

        await db.delete(entry)
        with pytest.raises(LedgerImmutable):
            await db.flush()
        await db.rollback()

    async def test_append_rejects_endpointless_record(self, db, business_id, product_id):
        from storestock.models.inventory import MovementRecord

        record = MovementRecord(
            business_id=business_id, batch_id=uuid4(), product_id=product_id,
            quantity=1, movement_kind="adjustment",
        )
        with pytest.raises(InvalidRequest):
            await LedgerService.append(db, [record])


class TestClassification:

    @pytest.mark.parametrize(
        "quantity, available, reorder_point, expected",
        [
            (0, 0, None, StockStatus.OUT_OF_STOCK),
            (5, 0, None, StockStatus.NOT_AVAILABLE),
            (5, 5, 5, StockStatus.LOW_STOCK),
            (5, 3, 4, StockStatus.LOW_STOCK),
            (6, 6, 5, StockStatus.IN_STOCK),
            (1, 1, None, StockStatus.IN_STOCK),
        ],
    )
    def test_classify_stock(self, quantity, available, reorder_point, expected):
        assert classify_stock(quantity, available, reorder_point) == expected


class TestStockLevels:

    async def test_combined_and_per_location(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 10})
        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 4)
        await StockService.set_thresholds(db, business_id, product_id, locations["RETAIL"], 5, 20)
        await db.commit()

        (level,) = await StockService.stock_levels(db, business_id, [product_id])

        assert level.total_quantity == 10
        assert level.status == StockStatus.IN_STOCK
        by_name = {loc.location_name: loc for loc in level.locations}
        assert by_name["Main"].quantity == 6
        assert by_name["Main"].status == StockStatus.IN_STOCK
        assert by_name["Retail"].quantity == 4
        assert by_name["Retail"].status == StockStatus.LOW_STOCK
        assert by_name["Retail"].max_stock == 20
        assert level.breakdown == "Main: 6 | Retail: 4 → Total: 10"

    async def test_unstocked_product_is_out_of_stock(self, db, business_id, locations, product_id):
        (level,) = await StockService.stock_levels(db, business_id, [product_id])
        assert level.total_quantity == 0
        assert level.locations == []
        assert level.status == StockStatus.OUT_OF_STOCK

    async def test_stock_at_inactive_location_is_not_available(self, db, business_id, locations, seed, product_id):
        await seed(locations["WH"], {product_id: 3})
        await LocationService.deactivate_location(db, business_id, locations["WH"])
        await db.commit()

        (level,) = await StockService.stock_levels(db, business_id, [product_id])

        assert level.total_quantity == 3
        assert level.total_available == 0
        assert level.status == StockStatus.NOT_AVAILABLE

    async def test_thresholds_validated(self, db, business_id, locations, product_id):
        with pytest.raises(InvalidRequest):
            await StockService.set_thresholds(db, business_id, product_id, locations["MAIN"], 10, 5)

    async def test_thresholds_do_not_touch_quantity(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        balance = await StockService.set_thresholds(db, business_id, product_id, locations["MAIN"], 2, 50)
        await db.commit()

        assert balance.quantity == 5
        assert await StockService.find_drift(db, business_id) == []


    async def test_repeated_product_ids_listed_once(self, db, business_id, locations, seed, product_id):
        other = uuid4()
        await seed(locations["MAIN"], {product_id: 2, other: 1})

        levels = await StockService.stock_levels(db, business_id, [product_id, other, product_id])

        assert [lvl.product_id for lvl in levels] == [product_id, other]

    async def test_status_filter(self, db, business_id, locations, seed, product_id):
        quiet = uuid4()
        await seed(locations["MAIN"], {product_id: 10, quiet: 10})
        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 2)
        await StockService.set_thresholds(db, business_id, product_id, locations["RETAIL"], 5, None)
        await db.commit()

        (low,) = await StockService.stock_levels(db, business_id, status=StockStatus.LOW_STOCK)

        assert low.product_id == product_id
        assert [loc.location_name for loc in low.locations] == ["Retail"]
        # totals still cover every location
        assert low.total_quantity == 10
        assert await StockService.stock_levels(db, business_id, status=StockStatus.NOT_AVAILABLE) == []

    async def test_summary_by_location(self, db, business_id, locations, seed, product_id):
        sold_out = uuid4()
        await seed(locations["MAIN"], {product_id: 10, sold_out: 1})
        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 3)
        await TransferService.record_sale(
            db, business_id, locations["MAIN"], [TransferLine(product_id=sold_out, quantity=1)],
        )
        await StockService.set_thresholds(db, business_id, product_id, locations["RETAIL"], 3, None)
        await db.commit()

        summary = summarize_by_location(await StockService.stock_levels(db, business_id))

        main, retail = summary
        assert (main.location_name, main.product_count, main.total_quantity) == ("Main", 2, 7)
        assert (main.in_stock, main.out_of_stock) == (1, 1)
        assert (retail.location_name, retail.product_count, retail.low_stock) == ("Retail", 1, 1)
        assert retail.total_available == 3


class TestReservations:

    async def test_reserve_reduces_available(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 10})

        row = await TransferService.reserve(db, business_id, product_id, locations["MAIN"], 3)

        assert row.quantity == 10
        assert row.reserved_quantity == 3
        assert row.available_quantity == 7
        with pytest.raises(InsufficientStock) as exc_info:
            await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 8)
        assert exc_info.value.line_errors[0]["available"] == 7

    async def test_release(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 10})
        await TransferService.reserve(db, business_id, product_id, locations["MAIN"], 3)

        row = await TransferService.release(db, business_id, product_id, locations["MAIN"], 3)

        assert row.reserved_quantity == 0
        assert row.available_quantity == 10

    async def test_cannot_reserve_more_than_available(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 2})
        with pytest.raises(InsufficientStock):
            await TransferService.reserve(db, business_id, product_id, locations["MAIN"], 3)

    async def test_cannot_release_more_than_reserved(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        await TransferService.reserve(db, business_id, product_id, locations["MAIN"], 1)
        with pytest.raises(InvalidRequest, match="only 1 reserved"):
            await TransferService.release(db, business_id, product_id, locations["MAIN"], 2)

    async def test_reservation_leaves_ledger_alone(self, db, business_id, locations, seed, product_id):
        await seed(locations["MAIN"], {product_id: 5})
        await TransferService.reserve(db, business_id, product_id, locations["MAIN"], 2)

        assert len(await LedgerService.entries(db, business_id, product_id=product_id)) == 1
        assert await StockService.find_drift(db, business_id) == []


class FakeRedis:
    """Enough of redis.asyncio.Redis for the stock cache."""

    def __init__(self, fail: bool = False):
        self.store: dict[str, str] = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise redis.ConnectionError("down")
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        if self.fail:
            raise redis.ConnectionError("down")
        self.store[key] = value

    async def delete(self, *keys):
        if self.fail:
            raise redis.ConnectionError("down")
        for key in keys:
            self.store.pop(key, None)

    async def incr(self, key):
        if self.fail:
            raise redis.ConnectionError("down")
        self.store[key] = str(int(self.store.get(key, 0)) + 1)
        return int(self.store[key])


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(stock_cache, "get_settings", lambda: Settings(STOCK_CACHE_ENABLED=True))
    monkeypatch.setattr(stock_cache, "get_redis", _get_redis)
    return fake


class TestStockCache:

    async def test_read_through_and_invalidate_on_write(self, db, business_id, locations, seed, product_id, fake_redis):
        await seed(locations["MAIN"], {product_id: 10})

        first = await StockService.current_quantities(db, business_id, product_id)
        assert first == {locations["MAIN"]: 10}
        assert stock_cache.stock_cache_key(business_id, product_id) in fake_redis.store

        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 4)

        assert stock_cache.stock_cache_key(business_id, product_id) not in fake_redis.store
        second = await StockService.current_quantities(db, business_id, product_id)
        assert second == {locations["MAIN"]: 6, locations["RETAIL"]: 4}

    async def test_cache_outage_falls_back_to_database(self, db, business_id, locations, seed, product_id, fake_redis):
        await seed(locations["MAIN"], {product_id: 10})
        fake_redis.fail = True

        assert await StockService.current_quantities(db, business_id, product_id) == {locations["MAIN"]: 10}
        await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 1)
        assert await StockService.current_quantity(db, business_id, product_id, locations["MAIN"]) == 9

    async def test_validation_ignores_stale_cache(self, db, business_id, locations, seed, product_id, fake_redis):
        await seed(locations["MAIN"], {product_id: 1})
        generation = await stock_cache.get_stock_generation(business_id, product_id)
        await stock_cache.set_cached_quantities(business_id, product_id, {locations["MAIN"]: 100}, generation)
        assert await StockService.current_quantities(db, business_id, product_id) == {locations["MAIN"]: 100}

        with pytest.raises(InsufficientStock):
            await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 5)

    async def test_read_racing_a_write_is_not_cached(
        self, db, business_id, locations, seed, product_id, fake_redis, monkeypatch,
    ):
        await seed(locations["MAIN"], {product_id: 10})
        real_set = stock_service.set_cached_quantities

        async def write_lands_before_set(*args):
            await move(db, business_id, locations["MAIN"], locations["RETAIL"], product_id, 4)
            await real_set(*args)

        monkeypatch.setattr(stock_service, "set_cached_quantities", write_lands_before_set)
        racing = await StockService.current_quantities(db, business_id, product_id)
        assert racing == {locations["MAIN"]: 10}
        monkeypatch.setattr(stock_service, "set_cached_quantities", real_set)

        assert await StockService.current_quantities(db, business_id, product_id) == {
            locations["MAIN"]: 6, locations["RETAIL"]: 4,
        }
        assert await StockService.current_quantities(db, business_id, product_id, use_cache=False) == {
            locations["MAIN"]: 6, locations["RETAIL"]: 4,
        }

    async def test_invalidation_bumps_generation(self, db, business_id, locations, seed, product_id, fake_redis):
        before = await stock_cache.get_stock_generation(business_id, product_id)
        await seed(locations["MAIN"], {product_id: 1})
        after = await stock_cache.get_stock_generation(business_id, product_id)
        assert int(after) == int(before) + 1
