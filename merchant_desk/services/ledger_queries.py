"""Aggregate analytics and bounded listings over the ledgers.

Every function takes the resolved TenantContext and builds its match stage
through ``scoped_filter``/``build_query``, so tenant scoping is never optional.
"""

import re
from typing import Any, Dict, List, Optional

from merchant_desk.infra.config import config
from merchant_desk.models.ledger import DateRange
from merchant_desk.models.tenant import TenantContext
from merchant_desk.services.ledgers import (
    DEPOSITS,
    DEPOSIT_TRACKING_CODE_PATH,
    TRANSACTIONS,
    WITHDRAWALS,
    build_query,
    dig,
    scoped_filter,
    to_amount,
)
from merchant_desk.services.vendor_masking import CARD_CATEGORY, collapse_expression, display_name

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 25

# Vendors counted in acceptance rates; "guardian" is matched on the provider field
RATE_VENDOR_IDS = ["kushki", "unlimit", "bitso", "stp", "oxxopay", "mercadopago", "safetypay"]
RATE_STATUSES_LOWER = ["success", "declined", "expired", "pending", "failed"]


def clamp_limit(limit: Optional[int], default: int = DEFAULT_LIST_LIMIT, maximum: int = MAX_LIST_LIMIT) -> int:
    if not limit or limit < 1:
        return default
    return min(int(limit), maximum)


def _exact_ci(value: str) -> Dict[str, str]:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def _contains_ci(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value), "$options": "i"}


def _rate(part: float, total: float) -> float:
    return (part / total) * 100 if total > 0 else 0.0


def _bucket(row: Dict[str, Any]) -> Dict[str, Any]:
    success_volume = to_amount(row.get("successVolume"))
    total_volume = to_amount(row.get("totalVolume"))
    success_count = int(row.get("successCount") or 0)
    total_count = int(row.get("totalCount") or 0)
    return {
        "displayName": row["_id"],
        "rateByCount": round(_rate(success_count, total_count), 1),
        "rateByVolume": round(_rate(success_volume, total_volume), 1),
        "successCount": success_count,
        "totalCount": total_count,
        "successVolume": round(success_volume, 2),
        "totalVolume": round(total_volume, 2),
    }


# ── Acceptance rate: Cards vs alternative payment methods ───────────

async def get_acceptance_rates(store, tenant: TenantContext, date_range: DateRange) -> Dict[str, Any]:
    """
    Acceptance rate per payment category.

    Card acquirers are collapsed into one "Cards" bucket inside the pipeline;
    rows never leave the store carrying a raw vendor id. Retries of the same
    payment are de-duplicated by keeping the newest attempt.

    Formula: Success / (Success + Pending + Expired + Failed + Declined)
    """
    match = scoped_filter(
        TRANSACTIONS,
        tenant,
        date_range,
        {
            "transaction_type": "PAYMENT",
            "$or": [
                {"acq": {"$in": RATE_VENDOR_IDS}},
                {"provider": "guardian"},
            ],
            "payment_id": {"$exists": True, "$nin": [None, ""]},
        },
    )
    pipeline = [
        {"$match": match},
        {"$addFields": {"acq": {"$cond": [{"$eq": ["$provider", "guardian"]}, "guardian", "$acq"]}}},
        {"$addFields": {"status_lower": {"$toLower": "$status"}}},
        {"$match": {"status_lower": {"$in": RATE_STATUSES_LOWER}}},
        {"$sort": {"created": -1}},
        {
            "$group": {
                "_id": "$payment_id",
                "status_lower": {"$first": "$status_lower"},
                "amount": {"$first": "$amount"},
                "acq": {"$first": "$acq"},
            }
        },
        {"$addFields": {"method": collapse_expression("$acq")}},
        {"$project": {"acq": 0}},
        {
            "$group": {
                "_id": "$method",
                "totalCount": {"$sum": 1},
                "successCount": {"$sum": {"$cond": [{"$eq": ["$status_lower", "success"]}, 1, 0]}},
                "totalVolume": {"$sum": "$amount"},
                "successVolume": {"$sum": {"$cond": [{"$eq": ["$status_lower", "success"]}, "$amount", 0]}},
            }
        },
        {"$sort": {"totalCount": -1}},
    ]
    rows = await store.aggregate(TRANSACTIONS.collection, pipeline)

    cards = None
    apms = []
    for row in rows:
        bucket = _bucket(row)
        if row["_id"] == CARD_CATEGORY:
            cards = bucket
        else:
            bucket["displayName"] = display_name(str(row["_id"]))
            apms.append(bucket)
    return {"cards": cards, "apms": apms}


# ── Volume / status / declines ──────────────────────────────────────

async def get_transaction_volume(store, tenant: TenantContext, date_range: DateRange) -> Dict[str, Any]:
    pipeline = [
        {"$match": scoped_filter(TRANSACTIONS, tenant, date_range)},
        {
            "$group": {
                "_id": None,
                "totalVolume": {"$sum": "$amount"},
                "successVolume": {"$sum": {"$cond": [{"$eq": ["$status", "Success"]}, "$amount", 0]}},
                "totalCount": {"$sum": 1},
                "successCount": {"$sum": {"$cond": [{"$eq": ["$status", "Success"]}, 1, 0]}},
            }
        },
    ]
    rows = await store.aggregate(TRANSACTIONS.collection, pipeline)
    if not rows or not rows[0].get("totalCount"):
        return {
            "totalVolume": 0.0, "successVolume": 0.0, "totalCount": 0,
            "successCount": 0, "avgTicket": 0.0, "currency": config.DEFAULT_CURRENCY,
        }
    row = rows[0]
    success_volume = to_amount(row.get("successVolume"))
    success_count = int(row.get("successCount") or 0)
    return {
        "totalVolume": round(to_amount(row.get("totalVolume")), 2),
        "successVolume": round(success_volume, 2),
        "totalCount": int(row["totalCount"]),
        "successCount": success_count,
        "avgTicket": round(success_volume / success_count, 2) if success_count else 0.0,
        "currency": config.DEFAULT_CURRENCY,
    }


async def get_top_declines(
    store, tenant: TenantContext, date_range: DateRange, limit: int = 10
) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": scoped_filter(TRANSACTIONS, tenant, date_range, {"status": "Declined"})},
        {
            "$group": {
                "_id": {
                    "code": {"$ifNull": ["$decline_code", "unknown"]},
                    "description": {"$ifNull": ["$decline_description", "No description"]},
                },
                "count": {"$sum": 1},
            }
        },
        {"$sort": {"count": -1}},
        {"$limit": clamp_limit(limit, default=10)},
        {"$project": {"_id": 0, "code": "$_id.code", "description": "$_id.description", "count": 1}},
    ]
    return await store.aggregate(TRANSACTIONS.collection, pipeline)


async def get_transactions_by_status(store, tenant: TenantContext, date_range: DateRange) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": scoped_filter(TRANSACTIONS, tenant, date_range)},
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "volume": {"$sum": "$amount"}}},
        {"$sort": {"count": -1}},
        {"$project": {"_id": 0, "status": "$_id", "count": 1, "volume": 1}},
    ]
    rows = await store.aggregate(TRANSACTIONS.collection, pipeline)
    return [
        {"status": row.get("status"), "count": int(row.get("count") or 0), "volume": round(to_amount(row.get("volume")), 2)}
        for row in rows
    ]


async def get_withdrawal_status(store, tenant: TenantContext, date_range: DateRange) -> Dict[str, Any]:
    pipeline = [
        {"$match": scoped_filter(WITHDRAWALS, tenant, date_range)},
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "amount": {"$sum": "$monetary_amount.amount"}}},
        {"$sort": {"count": -1}},
    ]
    rows = await store.aggregate(WITHDRAWALS.collection, pipeline)
    by_status = [
        {"status": row["_id"], "count": int(row.get("count") or 0), "amount": round(to_amount(row.get("amount")), 2)}
        for row in rows
    ]
    return {
        "total": sum(item["count"] for item in by_status),
        "totalAmount": round(sum(item["amount"] for item in by_status), 2),
        "byStatus": by_status,
    }


# ── Bounded listings ────────────────────────────────────────────────

async def list_recent_transactions(
    store, tenant: TenantContext, date_range: DateRange,
    status: Optional[str] = None, limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    conditions = {"status": _exact_ci(status)} if status else None
    query = build_query(
        TRANSACTIONS, tenant, clamp_limit(limit), date_range, conditions,
        projection={
            "payment_id": 1, "order_id": 1, "status": 1, "amount": 1,
            "acq": 1, "provider": 1, "created": 1, "customer_email": 1, "_id": 0,
        },
    )
    docs = await store.find(query)
    return [
        {
            "payment_id": doc.get("payment_id"),
            "order_id": doc.get("order_id"),
            "status": doc.get("status"),
            "amount": to_amount(doc.get("amount")),
            "paymentMethod": display_name(doc.get("acq") or doc.get("provider") or "unknown"),
            "created": doc.get("created"),
            "customer_email": doc.get("customer_email"),
        }
        for doc in docs
    ]


async def list_recent_withdrawals(
    store, tenant: TenantContext, date_range: DateRange,
    status: Optional[str] = None, limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    conditions = {"status": _contains_ci(status)} if status else None
    query = build_query(WITHDRAWALS, tenant, clamp_limit(limit), date_range, conditions)
    docs = await store.find(query)
    results = []
    for doc in docs:
        monetary_amount = doc.get("monetary_amount") or {}
        results.append({
            "id": doc.get("id"),
            "tracking_key": doc.get("tracking_key"),
            "status": doc.get("status"),
            "amount": to_amount(monetary_amount.get("amount")),
            "currency": monetary_amount.get("currency") or config.DEFAULT_CURRENCY,
            "created_at": doc.get("created_at"),
            "paid_at": doc.get("paid_at"),
        })
    return results


async def lookup_deposits(
    store, tenant: TenantContext, date_range: DateRange,
    amount: Optional[float] = None, status: Optional[str] = None,
    reference: Optional[str] = None, limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    conditions: Dict[str, Any] = {}
    if amount:
        conditions["amount"] = amount
    if status:
        conditions["status"] = _contains_ci(status)
    if reference:
        conditions["reference"] = _contains_ci(reference)
    query = build_query(DEPOSITS, tenant, clamp_limit(limit), date_range, conditions)
    docs = await store.find(query)
    return [
        {
            "deposit_id": doc.get("deposit_id"),
            "order_id": doc.get("order_id"),
            "checkout_id": doc.get("checkout_id"),
            "reference": doc.get("reference"),
            "tracking_code": dig(doc, DEPOSIT_TRACKING_CODE_PATH),
            "status": doc.get("status"),
            "amount": to_amount(doc.get("amount")),
            "created_at": doc.get("created_at"),
            "paymentMethod": "SPEI",
        }
        for doc in docs
    ]
