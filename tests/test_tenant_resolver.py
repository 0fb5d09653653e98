"""Tests for channel → tenant resolution."""

from unittest.mock import MagicMock

import pytest

from merchant_desk.models.tenant import ChannelMapping
from merchant_desk.services.ledgers import BUSINESS_COLLECTION
from merchant_desk.services.tenant_resolver import (
    MappingSnapshot,
    TenantResolver,
    load_business_names,
    merged_display_name,
)

MAPPINGS = [
    ChannelMapping(platform="slack", channel_id="C0AF237ATKJ", label="Tonder Production", tenant_ids=(86,)),
    ChannelMapping(platform="slack", channel_id="C0A1WABSC4V", label="Stadiobet", tenant_ids=(530, 533)),
    ChannelMapping(platform="telegram", channel_id="-1003575792934", label="Tonder Production 2", tenant_ids=(91,)),
]

NAMES = {86: "Tonder Production", 530: "Stadiobet", 533: "Stadiobet", 91: "Tonder Prod 2"}


def _resolver(mappings=None, names=None):
    state = {"mappings": list(MAPPINGS if mappings is None else mappings),
             "names": dict(NAMES if names is None else names)}

    async def name_loader(store, tenant_ids):
        return {tenant_id: name for tenant_id, name in state["names"].items() if tenant_id in tenant_ids}

    resolver = TenantResolver(store=None, channel_loader=lambda: state["mappings"], name_loader=name_loader)
    return resolver, state


class TestResolve:

    @pytest.mark.asyncio
    async def test_unmapped_channel_is_none(self):
        resolver, _ = _resolver()
        await resolver.refresh()
        assert resolver.resolve("C_UNKNOWN", "slack") is None

    @pytest.mark.asyncio
    async def test_platform_is_part_of_the_key(self):
        resolver, _ = _resolver()
        await resolver.refresh()
        assert resolver.resolve("C0AF237ATKJ", "telegram") is None
        assert resolver.resolve("C0AF237ATKJ", "slack").tenant_ids == (86,)

    def test_resolve_before_first_load_is_unmapped(self):
        resolver, _ = _resolver()
        assert resolver.resolve("C0AF237ATKJ", "slack") is None
        assert not resolver.loaded

    @pytest.mark.asyncio
    async def test_multi_tenant_channel(self):
        resolver, _ = _resolver()
        await resolver.refresh()
        tenant = resolver.resolve("C0A1WABSC4V", "slack")
        assert tenant.tenant_ids == (530, 533)
        assert tenant.tenant_id_strs == ("530", "533")
        assert tenant.display_name == "Stadiobet"


class TestDisplayName:

    def test_distinct_names_joined(self):
        mapping = ChannelMapping("slack", "C1", "Group", (1, 2))
        assert merged_display_name(mapping, {1: "Alpha", 2: "Beta"}) == "Alpha / Beta"

    def test_names_follow_stored_id_order(self):
        mapping = ChannelMapping("slack", "C1", "Group", (2, 1))
        assert merged_display_name(mapping, {1: "Alpha", 2: "Beta"}) == "Beta / Alpha"

    def test_falls_back_to_label_then_id(self):
        mapping = ChannelMapping("slack", "C1", "Group", (1,))
        assert merged_display_name(mapping, {}) == "Group"
        unlabeled = ChannelMapping("slack", "C1", "", (7,))
        assert merged_display_name(unlabeled, {}) == "Business 7"


class TestRefresh:

    @pytest.mark.asyncio
    async def test_first_load_swaps_without_notifying(self):
        resolver, _ = _resolver()
        callback = MagicMock()
        resolver.on_change(callback)

        assert await resolver.refresh() is True
        assert resolver.loaded
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_unchanged_content_keeps_snapshot(self):
        resolver, _ = _resolver()
        callback = MagicMock()
        resolver.on_change(callback)
        await resolver.refresh()
        before = resolver.snapshot

        assert await resolver.refresh() is False
        assert resolver.snapshot is before
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_content_swaps_and_notifies(self):
        resolver, state = _resolver()
        callback = MagicMock()
        resolver.on_change(callback)
        await resolver.refresh()
        old = resolver.snapshot

        state["names"][86] = "Tonder Prod (renamed)"
        assert await resolver.refresh() is True
        assert resolver.snapshot is not old
        callback.assert_called_once_with(resolver.snapshot)
        assert resolver.resolve("C0AF237ATKJ", "slack").display_name == "Tonder Prod (renamed)"

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_old_snapshot(self):
        resolver, state = _resolver()
        await resolver.refresh()
        old = resolver.snapshot

        async def broken(store, tenant_ids):
            raise ConnectionError("mongo down")

        resolver._name_loader = broken
        with pytest.raises(ConnectionError):
            await resolver.refresh()
        assert resolver.snapshot is old
        assert resolver.resolve("C0AF237ATKJ", "slack") is not None

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_refresh(self):
        resolver, state = _resolver()
        resolver.on_change(MagicMock(side_effect=RuntimeError("listener bug")))
        await resolver.refresh()
        state["mappings"] = MAPPINGS[:1]
        assert await resolver.refresh() is True
        assert len(resolver.snapshot) == 1


class TestSnapshot:

    def test_snapshot_is_read_only(self):
        snapshot = MappingSnapshot.build(MAPPINGS, NAMES)
        with pytest.raises(TypeError):
            snapshot.entries[("slack", "new")] = MAPPINGS[0]

    def test_hash_ignores_input_order(self):
        a = MappingSnapshot.build(MAPPINGS, NAMES)
        b = MappingSnapshot.build(list(reversed(MAPPINGS)), NAMES)
        assert a.content_hash == b.content_hash

    def test_mappings_without_tenants_skipped(self):
        snapshot = MappingSnapshot.build([ChannelMapping("slack", "C9", "Empty", ())], {})
        assert len(snapshot) == 0


class TestBusinessNames:

    @pytest.mark.asyncio
    async def test_reads_only_requested_ids(self, fake_store_factory):
        store = fake_store_factory({BUSINESS_COLLECTION: [
            {"id": 86, "name": "Tonder Production"},
            {"id": 999, "name": "Someone Else"},
        ]})
        names = await load_business_names(store, [86])
        assert names == {86: "Tonder Production"}
        assert store.queries[0].filter == {"id": {"$in": [86]}}
