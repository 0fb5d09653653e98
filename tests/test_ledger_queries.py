"""Tests for ledger analytics and listings."""

from datetime import datetime

import pytest

from merchant_desk.models.ledger import DateRange
from merchant_desk.services import ledger_queries
from merchant_desk.services.ledgers import (
    DEPOSITS_COLLECTION,
    TRANSACTIONS_COLLECTION,
    WITHDRAWALS_COLLECTION,
)

RANGE = DateRange(datetime(2026, 2, 1), datetime(2026, 2, 11, 23, 59, 59, 999000), "This month")


class TestClampLimit:

    def test_defaults_and_caps(self):
        assert ledger_queries.clamp_limit(None) == 10
        assert ledger_queries.clamp_limit(0) == 10
        assert ledger_queries.clamp_limit(3) == 3
        assert ledger_queries.clamp_limit(500) == 25


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_every_pipeline_starts_with_scoped_match(self, tenant, fake_store_factory):
        store = fake_store_factory()
        await ledger_queries.get_acceptance_rates(store, tenant, RANGE)
        await ledger_queries.get_transaction_volume(store, tenant, RANGE)
        await ledger_queries.get_top_declines(store, tenant, RANGE)
        await ledger_queries.get_transactions_by_status(store, tenant, RANGE)
        await ledger_queries.get_withdrawal_status(store, tenant, RANGE)

        assert len(store.pipelines) == 5
        for collection, pipeline in store.pipelines:
            match = pipeline[0]["$match"]
            expected = 86 if collection == TRANSACTIONS_COLLECTION else "86"
            assert match["business_id"] == expected

    @pytest.mark.asyncio
    async def test_acceptance_rates_split_cards_and_apms(self, tenant, fake_store_factory):
        store = fake_store_factory(aggregate_rows={TRANSACTIONS_COLLECTION: [
            {"_id": "Cards", "totalCount": 10, "successCount": 8, "totalVolume": 1000.0, "successVolume": 900.0},
            {"_id": "SPEI", "totalCount": 4, "successCount": 1, "totalVolume": 400.0, "successVolume": 100.0},
        ]})
        rates = await ledger_queries.get_acceptance_rates(store, tenant, RANGE)

        assert rates["cards"]["rateByCount"] == 80.0
        assert rates["cards"]["rateByVolume"] == 90.0
        assert [apm["displayName"] for apm in rates["apms"]] == ["SPEI"]
        assert rates["apms"][0]["rateByCount"] == 25.0

    @pytest.mark.asyncio
    async def test_acceptance_pipeline_collapses_before_grouping(self, tenant, fake_store_factory):
        store = fake_store_factory()
        await ledger_queries.get_acceptance_rates(store, tenant, RANGE)
        _, pipeline = store.pipelines[0]
        stages = [next(iter(stage)) for stage in pipeline]
        last_group = len(stages) - 1 - stages[::-1].index("$group")
        collapse = next(i for i, stage in enumerate(pipeline) if "method" in stage.get("$addFields", {}))
        assert collapse < last_group
        assert pipeline[last_group]["$group"]["_id"] == "$method"

    @pytest.mark.asyncio
    async def test_volume_with_no_rows(self, tenant, fake_store_factory):
        volume = await ledger_queries.get_transaction_volume(fake_store_factory(), tenant, RANGE)
        assert volume["totalCount"] == 0
        assert volume["avgTicket"] == 0.0

    @pytest.mark.asyncio
    async def test_withdrawal_status_totals(self, tenant, fake_store_factory):
        store = fake_store_factory(aggregate_rows={WITHDRAWALS_COLLECTION: [
            {"_id": "paid", "count": 3, "amount": 300.0},
            {"_id": "failed", "count": 1, "amount": 50.25},
        ]})
        summary = await ledger_queries.get_withdrawal_status(store, tenant, RANGE)
        assert summary["total"] == 4
        assert summary["totalAmount"] == 350.25


class TestListings:

    @pytest.mark.asyncio
    async def test_recent_transactions_mask_vendor(self, tenant, fake_store_factory):
        store = fake_store_factory({TRANSACTIONS_COLLECTION: [{
            "payment_id": 1, "order_id": "o-1", "status": "Declined", "amount": 20,
            "acq": "kushki", "business_id": 86, "created": datetime(2026, 2, 10),
        }]})
        rows = await ledger_queries.list_recent_transactions(store, tenant, RANGE, status="declined")
        assert rows[0]["paymentMethod"] == "Cards"
        assert "acq" not in rows[0]
        assert store.queries[0].limit == 10

    @pytest.mark.asyncio
    async def test_status_filter_is_exact(self, tenant, fake_store_factory):
        store = fake_store_factory({TRANSACTIONS_COLLECTION: [{
            "payment_id": 2, "status": "Success", "amount": 5,
            "business_id": 86, "created": datetime(2026, 2, 10),
        }]})
        rows = await ledger_queries.list_recent_transactions(store, tenant, RANGE, status="succ")
        assert rows == []

    @pytest.mark.asyncio
    async def test_deposit_search(self, tenant, fake_store_factory):
        store = fake_store_factory({DEPOSITS_COLLECTION: [
            {"deposit_id": "d1", "reference": "REF-ABC-1", "amount": 100.0, "status": "completed",
             "business_id": "86", "created_at": datetime(2026, 2, 5)},
            {"deposit_id": "d2", "reference": "OTHER", "amount": 100.0, "status": "completed",
             "business_id": "86", "created_at": datetime(2026, 2, 6)},
        ]})
        rows = await ledger_queries.lookup_deposits(store, tenant, RANGE, reference="abc", limit=50)
        assert [row["deposit_id"] for row in rows] == ["d1"]
        assert store.queries[0].limit == 25
