"""Universal identifier lookup across the transaction, withdrawal and deposit ledgers."""

import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from merchant_desk.infra.config import config
from merchant_desk.infra.document_store import LedgerQuery
from merchant_desk.models.ledger import LookupResult
from merchant_desk.models.tenant import TenantContext
from merchant_desk.services.ledgers import (
    DEPOSIT_TRACKING_CODE_PATH,
    LEDGERS,
    LedgerSpec,
    build_query,
    dig,
    to_amount,
)
from merchant_desk.services.vendor_masking import display_name

logger = logging.getLogger(__name__)

LOOKUP_LIMIT_PER_LEDGER = 5

_INTEGER = re.compile(r"^-?\d+$")


def integer_form(raw_id: str) -> Optional[int]:
    """Integer interpretation of an identifier, only when the whole string is an integer."""
    return int(raw_id) if _INTEGER.match(raw_id) else None


def candidate_conditions(ledger: LedgerSpec, raw_id: str, as_int: Optional[int]) -> List[Dict[str, Any]]:
    conditions = []
    for candidate in ledger.candidates:
        if candidate.kind == "int":
            if as_int is None:
                continue
            conditions.append({candidate.path: as_int})
        else:
            conditions.append({candidate.path: raw_id})
    return conditions


def build_lookup_query(
    ledger: LedgerSpec,
    tenant: TenantContext,
    raw_id: str,
    as_int: Optional[int],
) -> LedgerQuery:
    return build_query(
        ledger,
        tenant,
        limit=LOOKUP_LIMIT_PER_LEDGER,
        conditions={"$or": candidate_conditions(ledger, raw_id, as_int)},
    )


def _project_transaction(doc: Mapping[str, Any]) -> LookupResult:
    vendor_id = doc.get("acq") or doc.get("provider") or "unknown"
    return LookupResult(
        source="transaction",
        id=doc.get("payment_id"),
        order_id=doc.get("order_id"),
        reference=doc.get("transaction_reference"),
        tracking_code=doc.get("tracking_key"),
        status=doc.get("status"),
        amount=to_amount(doc.get("amount")),
        currency=config.DEFAULT_CURRENCY,
        payment_method=display_name(vendor_id),
        created_at=doc.get("created"),
        details={
            "customer_email": doc.get("customer_email"),
            "decline_code": doc.get("decline_code"),
            "decline_description": doc.get("decline_description"),
            "business_name": doc.get("business_name"),
        },
    )


def _project_withdrawal(doc: Mapping[str, Any]) -> LookupResult:
    monetary_amount = doc.get("monetary_amount") or {}
    return LookupResult(
        source="withdrawal",
        id=doc.get("id"),
        order_id=doc.get("orderId"),
        tracking_code=doc.get("tracking_key"),
        status=doc.get("status"),
        amount=to_amount(monetary_amount.get("amount")),
        currency=monetary_amount.get("currency") or config.DEFAULT_CURRENCY,
        payment_method="SPEI",
        created_at=doc.get("created_at"),
        details={
            "paid_at": doc.get("paid_at"),
            "failure_reason": dig(doc, "action.reason"),
        },
    )


def _project_deposit(doc: Mapping[str, Any]) -> LookupResult:
    return LookupResult(
        source="deposit",
        id=doc.get("deposit_id"),
        order_id=doc.get("order_id"),
        reference=doc.get("reference"),
        tracking_code=dig(doc, DEPOSIT_TRACKING_CODE_PATH),
        status=doc.get("status"),
        amount=to_amount(doc.get("amount")),
        currency=config.DEFAULT_CURRENCY,
        payment_method="SPEI",
        created_at=doc.get("created_at"),
        details={
            "checkout_id": doc.get("checkout_id"),
            "provider_reference": doc.get("provider_reference"),
        },
    )


PROJECTORS: Dict[str, Callable[[Mapping[str, Any]], LookupResult]] = {
    "transaction": _project_transaction,
    "withdrawal": _project_withdrawal,
    "deposit": _project_deposit,
}


def project_document(ledger: LedgerSpec, doc: Mapping[str, Any]) -> LookupResult:
    return PROJECTORS[ledger.source](doc)


def not_found_message(raw_id: str, tenant: TenantContext) -> str:
    return (
        f'No transaction, withdrawal, or deposit found with ID "{raw_id}" '
        f"for {tenant.display_name}."
    )


async def lookup_by_id(raw_id: str, tenant: TenantContext, store) -> Dict[str, Any]:
    """
    Search every ledger for an identifier of unknown type.

    The three ledger queries run concurrently. Each is tenant-scoped, capped
    at LOOKUP_LIMIT_PER_LEDGER newest rows, and tries the raw string plus its
    integer interpretation against the ledger's candidate fields. Hits are
    merged in ledger order (transactions, withdrawals, deposits).

    Args:
        raw_id: Identifier exactly as the merchant supplied it
        tenant: Resolved tenant scope
        store: Document store exposing ``find(LedgerQuery)``

    Returns:
        ``{"found": True, "results": [...]}`` or
        ``{"found": False, "message": ...}`` ready to quote
    """
    lookup_id = (raw_id or "").strip()
    if not lookup_id:
        # Empty ids match rows with empty reference fields
        return {"found": False, "message": not_found_message(lookup_id, tenant)}
    as_int = integer_form(lookup_id)

    queries = [build_lookup_query(ledger, tenant, lookup_id, as_int) for ledger in LEDGERS]
    per_ledger = await asyncio.gather(*(store.find(query) for query in queries))

    results: List[Dict[str, Any]] = []
    for ledger, docs in zip(LEDGERS, per_ledger):
        for doc in docs[:LOOKUP_LIMIT_PER_LEDGER]:
            results.append(project_document(ledger, doc).to_dict())

    logger.info(
        f"Lookup for {tenant.display_name}: {len(results)} hit(s) "
        f"({', '.join(f'{ledger.source}={len(docs)}' for ledger, docs in zip(LEDGERS, per_ledger))})"
    )

    if not results:
        return {"found": False, "message": not_found_message(lookup_id, tenant)}
    return {"found": True, "results": results}
