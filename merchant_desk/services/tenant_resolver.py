"""Channel → tenant resolution over an atomically swapped mapping snapshot."""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import text

from merchant_desk.infra.config import config
from merchant_desk.infra.document_store import LedgerQuery
from merchant_desk.infra.metrics import mapping_refreshes_total
from merchant_desk.infra.periodic import PeriodicTask
from merchant_desk.models.tenant import ChannelMapping, TenantContext
from merchant_desk.services.ledgers import BUSINESS_COLLECTION

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["MappingSnapshot"], object]


@dataclass(frozen=True)
class MappingSnapshot:
    """Immutable view of every active channel binding plus known business names."""
    entries: Mapping[Tuple[str, str], ChannelMapping]
    business_names: Mapping[int, str]
    content_hash: str

    @classmethod
    def build(cls, mappings: Iterable[ChannelMapping], business_names: Mapping[int, str]) -> "MappingSnapshot":
        entries: Dict[Tuple[str, str], ChannelMapping] = {}
        for mapping in mappings:
            if not mapping.tenant_ids:
                logger.warning(f"Skipping channel mapping without tenant ids: {mapping.platform}:{mapping.channel_id}")
                continue
            if mapping.key in entries:
                logger.warning(f"Duplicate channel mapping ignored: {mapping.platform}:{mapping.channel_id}")
                continue
            entries[mapping.key] = mapping
        names = {int(k): v for k, v in business_names.items()}
        return cls(
            entries=MappingProxyType(entries),
            business_names=MappingProxyType(names),
            content_hash=_content_hash(entries.values(), names),
        )

    @classmethod
    def empty(cls) -> "MappingSnapshot":
        return cls.build([], {})

    def __len__(self) -> int:
        return len(self.entries)


def _content_hash(mappings: Iterable[ChannelMapping], business_names: Mapping[int, str]) -> str:
    payload = {
        "channels": sorted(
            [m.platform, m.channel_id, m.label, list(m.tenant_ids)] for m in mappings
        ),
        "names": sorted([tenant_id, name] for tenant_id, name in business_names.items()),
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


def merged_display_name(mapping: ChannelMapping, business_names: Mapping[int, str]) -> str:
    """
    Display name for a channel bound to one or more tenants.

    Names follow the order the mapping stores its ids and are de-duplicated,
    so two accounts of the same business ("Stadiobet" twice) show once.
    Unknown ids fall back to the mapping label, then to "Business <id>".
    """
    names: List[str] = []
    for tenant_id in mapping.tenant_ids:
        name = business_names.get(tenant_id) or mapping.label or f"Business {tenant_id}"
        if name not in names:
            names.append(name)
    return " / ".join(names)


def load_channel_mappings() -> List[ChannelMapping]:
    """Read active rows from merchant_channels (blocking; run in a thread)."""
    from merchant_desk.infra.database import get_db_session

    with get_db_session() as session:
        rows = session.execute(
            text("""
                SELECT platform, channel_id, COALESCE(label, '') AS label, business_ids
                FROM merchant_channels
                WHERE is_active = TRUE
                ORDER BY platform, channel_id
            """)
        ).fetchall()
    return [
        ChannelMapping(
            platform=row.platform,
            channel_id=str(row.channel_id),
            label=row.label,
            tenant_ids=tuple(int(tenant_id) for tenant_id in (row.business_ids or [])),
        )
        for row in rows
    ]


async def load_business_names(store, tenant_ids: Sequence[int]) -> Dict[int, str]:
    if not tenant_ids:
        return {}
    docs = await store.find(
        LedgerQuery(
            collection=BUSINESS_COLLECTION,
            filter={"id": {"$in": list(tenant_ids)}},
            projection={"id": 1, "name": 1, "_id": 0},
        )
    )
    return {int(doc["id"]): doc["name"] for doc in docs if doc.get("id") is not None and doc.get("name")}


class TenantResolver:
    """
    Resolves (platform, channel_id) to a TenantContext.

    ``resolve`` only reads ``self._snapshot``; ``refresh`` builds a complete new
    snapshot off the hot path and replaces the reference in one assignment, so a
    reader sees either the old snapshot or the new one, never a mix.
    """

    def __init__(
        self,
        store=None,
        channel_loader: Callable[[], List[ChannelMapping]] = load_channel_mappings,
        name_loader: Callable[..., Awaitable[Dict[int, str]]] = load_business_names,
    ):
        self._store = store
        self._channel_loader = channel_loader
        self._name_loader = name_loader
        self._snapshot = MappingSnapshot.empty()
        self._loaded = False
        self._callbacks: List[ChangeCallback] = []
        self._task: Optional[PeriodicTask] = None

    @property
    def snapshot(self) -> MappingSnapshot:
        return self._snapshot

    @property
    def loaded(self) -> bool:
        return self._loaded

    def on_change(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    def resolve(self, channel_id: str, platform: str) -> Optional[TenantContext]:
        snapshot = self._snapshot
        mapping = snapshot.entries.get((platform, str(channel_id)))
        if mapping is None:
            return None
        return TenantContext(
            tenant_ids=mapping.tenant_ids,
            display_name=merged_display_name(mapping, snapshot.business_names),
            platform=mapping.platform,
            channel_id=mapping.channel_id,
        )

    async def refresh(self) -> bool:
        """
        Rebuild the snapshot and swap it in if its content changed.

        Returns True when a new snapshot was installed. A failure is logged,
        counted and re-raised; the current snapshot stays in place.
        """
        try:
            mappings = await asyncio.to_thread(self._channel_loader)
            tenant_ids = sorted({tenant_id for mapping in mappings for tenant_id in mapping.tenant_ids})
            names = await self._name_loader(self._store, tenant_ids)
            candidate = MappingSnapshot.build(mappings, names)
        except Exception:
            mapping_refreshes_total.labels(result="failed").inc()
            raise

        if self._loaded and candidate.content_hash == self._snapshot.content_hash:
            mapping_refreshes_total.labels(result="unchanged").inc()
            return False

        first_load = not self._loaded
        self._snapshot = candidate
        self._loaded = True
        mapping_refreshes_total.labels(result="swapped").inc()
        logger.info(
            f"Channel mapping snapshot installed: {len(candidate)} channels, "
            f"{len(candidate.business_names)} business names"
        )
        if not first_load:
            self._notify(candidate)
        return True

    def _notify(self, snapshot: MappingSnapshot) -> None:
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Mapping change callback failed")

    def start(self, interval: Optional[float] = None) -> None:
        if self._task is None:
            self._task = PeriodicTask(
                "tenant-mapping-refresh",
                self.refresh,
                interval or config.MAPPING_REFRESH_SECONDS,
            )
        self._task.start()

    async def stop(self) -> None:
        if self._task is not None:
            await self._task.stop()
