"""Tenant models derived from the channel mapping snapshot."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ChannelMapping:
    """One active channel → tenant binding as stored in merchant_channels."""
    platform: str  # "slack" | "telegram" | "whatsapp"
    channel_id: str
    label: str
    tenant_ids: Tuple[int, ...]

    @property
    def key(self) -> Tuple[str, str]:
        return (self.platform, self.channel_id)


@dataclass(frozen=True)
class TenantContext:
    """Per-request tenant scope. Every ledger query is filtered by tenant_ids."""
    tenant_ids: Tuple[int, ...]
    display_name: str
    platform: str
    channel_id: str

    @property
    def tenant_id_strs(self) -> Tuple[str, ...]:
        """String form of the ids, for ledgers that store business ids as text."""
        return tuple(str(tenant_id) for tenant_id in self.tenant_ids)

    @property
    def primary_tenant_id(self) -> int:
        return self.tenant_ids[0]
