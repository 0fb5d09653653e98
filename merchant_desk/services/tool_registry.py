"""Registry of the fixed tool set exposed to the model.

The registry is built once at import time: tool name → ToolSpec holding the
schema the model sees, the pydantic model its input is validated with, and the
handler that runs it. Adding a tool means adding one entry here.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, Field, field_validator

from merchant_desk.models.ledger import DateRange
from merchant_desk.models.tenant import TenantContext
from merchant_desk.models.tool import ToolDefinition
from merchant_desk.services import ledger_queries
from merchant_desk.services.lookup_engine import lookup_by_id

TOOL_SCHEMA_VERSION = "2026.02.1"


# ── Input models ────────────────────────────────────────────────────

class DateRangeInput(BaseModel):
    """Shared date parameters accepted by every analytics and listing tool."""
    date_range: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TopDeclinesInput(DateRangeInput):
    limit: Optional[int] = Field(None, ge=1)


class ListingInput(DateRangeInput):
    status: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)


class DepositSearchInput(ListingInput):
    amount: Optional[float] = None
    reference: Optional[str] = None


class LookupInput(BaseModel):
    id: str = Field(..., min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        # JSON numbers become their decimal text
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


@dataclass(frozen=True)
class ToolContext:
    """Everything a handler may touch. Tenant scope comes from here, never from model input."""
    tenant: TenantContext
    store: Any


Handler = Callable[[ToolContext, BaseModel, Optional[DateRange]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    definition: ToolDefinition
    input_model: Type[BaseModel]
    handler: Handler
    uses_date_range: bool = True
    creates_ticket: bool = False

    @property
    def name(self) -> str:
        return self.definition.name


# ── JSON schema fragments ───────────────────────────────────────────

DATE_PARAMS = {
    "date_range": {
        "type": "string",
        "description": (
            "Time range keyword: 'today', 'yesterday', 'this week', 'last week', 'this month', "
            "'last month', 'this weekend', 'last weekend', 'last N days', 'last N hours'. "
            "Defaults to 'today'."
        ),
    },
    "start_date": {
        "type": "string",
        "description": "Explicit start date in ISO format (YYYY-MM-DD). Must be used together with end_date.",
    },
    "end_date": {
        "type": "string",
        "description": "Explicit end date in ISO format (YYYY-MM-DD). Must be used together with start_date.",
    },
}


def _schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None,
            with_dates: bool = True) -> Dict[str, Any]:
    props: Dict[str, Any] = dict(properties or {})
    if with_dates:
        props.update(DATE_PARAMS)
    return {"type": "object", "properties": props, "required": list(required or [])}


def _envelope(ctx: ToolContext, date_range: DateRange, **payload) -> Dict[str, Any]:
    payload["dateRange"] = date_range.label
    payload["merchant"] = ctx.tenant.display_name
    return payload


# ── Handlers ────────────────────────────────────────────────────────

async def _acceptance_rate(ctx: ToolContext, params: DateRangeInput, date_range: DateRange):
    rates = await ledger_queries.get_acceptance_rates(ctx.store, ctx.tenant, date_range)
    return _envelope(ctx, date_range, **rates)


async def _transaction_volume(ctx: ToolContext, params: DateRangeInput, date_range: DateRange):
    volume = await ledger_queries.get_transaction_volume(ctx.store, ctx.tenant, date_range)
    return _envelope(ctx, date_range, **volume)


async def _top_declines(ctx: ToolContext, params: TopDeclinesInput, date_range: DateRange):
    declines = await ledger_queries.get_top_declines(ctx.store, ctx.tenant, date_range, params.limit or 10)
    return _envelope(ctx, date_range, declines=declines)


async def _transactions_by_status(ctx: ToolContext, params: DateRangeInput, date_range: DateRange):
    statuses = await ledger_queries.get_transactions_by_status(ctx.store, ctx.tenant, date_range)
    return _envelope(ctx, date_range, statuses=statuses)


async def _withdrawal_status(ctx: ToolContext, params: DateRangeInput, date_range: DateRange):
    summary = await ledger_queries.get_withdrawal_status(ctx.store, ctx.tenant, date_range)
    return _envelope(ctx, date_range, **summary)


async def _lookup_by_id(ctx: ToolContext, params: LookupInput, date_range: Optional[DateRange]):
    return await lookup_by_id(params.id, ctx.tenant, ctx.store)


async def _lookup_deposits(ctx: ToolContext, params: DepositSearchInput, date_range: DateRange):
    deposits = await ledger_queries.lookup_deposits(
        ctx.store, ctx.tenant, date_range,
        amount=params.amount, status=params.status, reference=params.reference, limit=params.limit,
    )
    return _envelope(ctx, date_range, deposits=deposits, count=len(deposits))


async def _recent_transactions(ctx: ToolContext, params: ListingInput, date_range: DateRange):
    transactions = await ledger_queries.list_recent_transactions(
        ctx.store, ctx.tenant, date_range, status=params.status, limit=params.limit,
    )
    return _envelope(ctx, date_range, transactions=transactions, count=len(transactions))


async def _recent_withdrawals(ctx: ToolContext, params: ListingInput, date_range: DateRange):
    withdrawals = await ledger_queries.list_recent_withdrawals(
        ctx.store, ctx.tenant, date_range, status=params.status, limit=params.limit,
    )
    return _envelope(ctx, date_range, withdrawals=withdrawals, count=len(withdrawals))


_LIMIT_LIST = {"type": "number", "description": "Number of results (default 10, max 25)."}

_SPECS = [
    ToolSpec(
        definition=ToolDefinition(
            name="get_acceptance_rate",
            description=(
                "Get acceptance rates split into Cards and alternative payment methods (SPEI, Cash Vouchers, etc.). "
                "Returns both count-based and volume-based rates. "
                "Formula: Success / (Success + Pending + Expired + Failed + Declined)."
            ),
            parameters_schema=_schema(),
        ),
        input_model=DateRangeInput,
        handler=_acceptance_rate,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="get_transaction_volume",
            description=(
                "Get transaction volume (total amount) and count. Returns total volume, success volume, "
                "counts, and average ticket size."
            ),
            parameters_schema=_schema(),
        ),
        input_model=DateRangeInput,
        handler=_transaction_volume,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="get_top_declines",
            description=(
                "Get the top decline reasons/codes ranked by frequency. "
                "Useful for understanding why transactions are failing."
            ),
            parameters_schema=_schema({
                "limit": {"type": "number", "description": "Number of top decline reasons to return (default 10)."},
            }),
        ),
        input_model=TopDeclinesInput,
        handler=_top_declines,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="get_transactions_by_status",
            description=(
                "Get transaction breakdown by status (Success, Declined, Pending, etc.) "
                "with count and volume for each."
            ),
            parameters_schema=_schema(),
        ),
        input_model=DateRangeInput,
        handler=_transactions_by_status,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="get_withdrawal_status",
            description=(
                "Get withdrawal/payout status summary: total count, total amount, "
                "and breakdown by status (paid, pending, failed, etc.)."
            ),
            parameters_schema=_schema(),
        ),
        input_model=DateRangeInput,
        handler=_withdrawal_status,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="lookup_by_id",
            description=(
                "Universal ID lookup: search across ALL systems (transactions, withdrawals, deposits) using ANY "
                "identifier. Accepts payment IDs, order IDs, transaction references, tracking keys, UUIDs, bank "
                "references, etc. Always try this tool when a merchant provides any ID."
            ),
            parameters_schema=_schema(
                {"id": {"type": "string", "description": "The identifier to search for (any format)."}},
                required=["id"],
                with_dates=False,
            ),
        ),
        input_model=LookupInput,
        handler=_lookup_by_id,
        uses_date_range=False,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="lookup_deposits",
            description="Search SPEI (bank transfer) deposits by date range, amount, status, or bank reference.",
            parameters_schema=_schema({
                "amount": {"type": "number", "description": "Exact amount to search for."},
                "status": {"type": "string", "description": "Filter by status."},
                "reference": {"type": "string", "description": "Bank reference to search for."},
                "limit": _LIMIT_LIST,
            }),
        ),
        input_model=DepositSearchInput,
        handler=_lookup_deposits,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="list_recent_transactions",
            description=(
                "List the most recent transactions with optional status filter. Returns payment ID, order ID, "
                "status, amount, payment method, and date."
            ),
            parameters_schema=_schema({
                "status": {"type": "string", "description": "Filter by status (e.g., 'Success', 'Declined')."},
                "limit": _LIMIT_LIST,
            }),
        ),
        input_model=ListingInput,
        handler=_recent_transactions,
    ),
    ToolSpec(
        definition=ToolDefinition(
            name="list_recent_withdrawals",
            description="List the most recent withdrawals/payouts with optional status filter.",
            parameters_schema=_schema({
                "status": {"type": "string", "description": "Filter by status."},
                "limit": _LIMIT_LIST,
            }),
        ),
        input_model=ListingInput,
        handler=_recent_withdrawals,
    ),
]

TOOL_REGISTRY: Mapping[str, ToolSpec] = {spec.name: spec for spec in _SPECS}


def get_tool_spec(name: str) -> Optional[ToolSpec]:
    return TOOL_REGISTRY.get(name)


def get_tool_definitions() -> List[ToolDefinition]:
    """Tool schema sent to the model on every round, in registry order."""
    return [spec.definition for spec in _SPECS]
