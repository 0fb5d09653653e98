"""Ledger declarations and tenant-scoped query construction.

Each ledger stores the same concepts under different field names and with
different id types. The differences live in the LedgerSpec data below; query
code never branches on which ledger it is talking to.

``scoped_filter`` is the only place a ledger filter is assembled and it always
writes the tenant predicate last, so no caller-supplied condition can replace
or drop it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping, Optional, Tuple

from merchant_desk.infra.document_store import LedgerQuery
from merchant_desk.models.ledger import DateRange, LedgerSource
from merchant_desk.models.tenant import TenantContext

TRANSACTIONS_COLLECTION = "mv_payment_transactions"
WITHDRAWALS_COLLECTION = "usrv-withdrawals-withdrawals"
DEPOSITS_COLLECTION = "usrv-deposits-spei"
BUSINESS_COLLECTION = "business_business"

DEPOSIT_TRACKING_CODE_PATH = "response.webhook.payload.details.clave_rastreo"

IdKind = Literal["str", "int"]


@dataclass(frozen=True)
class CandidateField:
    """A field an identifier may be stored in, and the form it is stored as."""
    path: str
    kind: IdKind = "str"


@dataclass(frozen=True)
class LedgerSpec:
    source: LedgerSource
    collection: str
    tenant_field: str
    tenant_id_kind: IdKind
    created_field: str
    candidates: Tuple[CandidateField, ...]
    projection: Mapping[str, int]


TRANSACTIONS = LedgerSpec(
    source="transaction",
    collection=TRANSACTIONS_COLLECTION,
    tenant_field="business_id",
    tenant_id_kind="int",
    created_field="created",
    candidates=(
        CandidateField("transaction_reference"),
        CandidateField("metadata_order_id"),
        CandidateField("tracking_key"),
        CandidateField("payment_id", "int"),
        CandidateField("payment_id"),
        CandidateField("order_id", "int"),
        CandidateField("order_id"),
    ),
    projection={
        "payment_id": 1, "order_id": 1, "transaction_reference": 1, "tracking_key": 1,
        "status": 1, "amount": 1, "acq": 1, "provider": 1,
        "created": 1, "customer_email": 1, "business_name": 1,
        "decline_code": 1, "decline_description": 1, "_id": 0,
    },
)

WITHDRAWALS = LedgerSpec(
    source="withdrawal",
    collection=WITHDRAWALS_COLLECTION,
    tenant_field="business_id",
    tenant_id_kind="str",
    created_field="created_at",
    candidates=(
        CandidateField("id"),
        CandidateField("orderId"),
        CandidateField("tracking_key"),
    ),
    projection={
        "id": 1, "orderId": 1, "tracking_key": 1, "status": 1,
        "monetary_amount": 1, "created_at": 1, "paid_at": 1,
        "action.reason": 1, "action.action": 1, "_id": 0,
    },
)

DEPOSITS = LedgerSpec(
    source="deposit",
    collection=DEPOSITS_COLLECTION,
    tenant_field="business_id",
    tenant_id_kind="str",
    created_field="created_at",
    candidates=(
        CandidateField("deposit_id"),
        CandidateField("checkout_id"),
        CandidateField("reference"),
        CandidateField("provider_reference"),
        CandidateField("order_id", "int"),
        CandidateField("order_id"),
        CandidateField(DEPOSIT_TRACKING_CODE_PATH),
    ),
    projection={
        "deposit_id": 1, "order_id": 1, "checkout_id": 1,
        "reference": 1, "provider_reference": 1, DEPOSIT_TRACKING_CODE_PATH: 1,
        "status": 1, "amount": 1, "created_at": 1, "_id": 0,
    },
)

# Fixed merge order for lookup results
LEDGERS: Tuple[LedgerSpec, ...] = (TRANSACTIONS, WITHDRAWALS, DEPOSITS)


class MissingTenantScope(ValueError):
    """Raised when a ledger query is attempted without any tenant id."""


def tenant_filter(ledger: LedgerSpec, tenant: TenantContext) -> Dict[str, Any]:
    """Tenant predicate in the id form this ledger stores."""
    ids = tenant.tenant_ids if ledger.tenant_id_kind == "int" else tenant.tenant_id_strs
    if not ids:
        raise MissingTenantScope(f"No tenant ids for {ledger.collection} query")
    return {ledger.tenant_field: ids[0] if len(ids) == 1 else {"$in": list(ids)}}


def scoped_filter(
    ledger: LedgerSpec,
    tenant: TenantContext,
    date_range: Optional[DateRange] = None,
    conditions: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Filter document for one ledger: conditions, date window, then tenant scope."""
    match: Dict[str, Any] = dict(conditions or {})
    if date_range is not None:
        match[ledger.created_field] = {"$gte": date_range.start, "$lte": date_range.end}
    match.update(tenant_filter(ledger, tenant))
    return match


def build_query(
    ledger: LedgerSpec,
    tenant: TenantContext,
    limit: int,
    date_range: Optional[DateRange] = None,
    conditions: Optional[Dict[str, Any]] = None,
    projection: Optional[Mapping[str, int]] = None,
) -> LedgerQuery:
    """Newest-first, tenant-scoped find() against one ledger."""
    return LedgerQuery(
        collection=ledger.collection,
        filter=scoped_filter(ledger, tenant, date_range, conditions),
        projection=dict(projection if projection is not None else ledger.projection),
        sort=((ledger.created_field, -1),),
        limit=limit,
    )


def dig(doc: Mapping[str, Any], path: str) -> Any:
    """Read a dotted path from a nested document, None if any level is missing."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def to_amount(value: Any) -> float:
    """Ledger amounts arrive as numbers, strings or Decimal128."""
    if value is None:
        return 0.0
    try:
        return float(str(value))
    except (TypeError, ValueError):
        return 0.0
