"""Pytest configuration and fixtures."""

import asyncio
import os
import re
from typing import Any, Dict, List, Optional

import pytest

# Set test environment before the application config is imported
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DEFAULT_CURRENCY", "MXN")

from merchant_desk.infra.document_store import LedgerQuery  # noqa: E402
from merchant_desk.models.tenant import TenantContext  # noqa: E402
from merchant_desk.models.tool import LLMResponse, ToolInvocation  # noqa: E402
from merchant_desk.services.ledgers import dig  # noqa: E402


def _match_operator(value: Any, op: str, arg: Any, options: str) -> bool:
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$gte":
        return value is not None and value >= arg
    if op == "$lte":
        return value is not None and value <= arg
    if op == "$exists":
        return (value is not None) == bool(arg)
    if op == "$regex":
        flags = re.IGNORECASE if "i" in options else 0
        return isinstance(value, str) and re.search(arg, value, flags) is not None
    if op == "$options":
        return True
    raise AssertionError(f"Operator not supported by fake store: {op}")


def document_matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    """Small subset of Mongo filter semantics, strict about value types."""
    for key, cond in flt.items():
        if key == "$or":
            if not any(document_matches(doc, sub) for sub in cond):
                return False
            continue
        value = dig(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            options = cond.get("$options", "")
            if not all(_match_operator(value, op, arg, options) for op, arg in cond.items()):
                return False
        elif type(value) is not type(cond) or value != cond:
            return False
    return True


class FakeDocumentStore:
    """In-memory stand-in for DocumentStore that records every query."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 aggregate_rows: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.collections = collections or {}
        self.aggregate_rows = aggregate_rows or {}
        self.queries: List[LedgerQuery] = []
        self.pipelines: List[tuple] = []

    async def find(self, query: LedgerQuery) -> List[Dict[str, Any]]:
        self.queries.append(query)
        docs = [doc for doc in self.collections.get(query.collection, []) if document_matches(doc, query.filter)]
        for field_name, direction in reversed(query.sort):
            docs.sort(key=lambda d: dig(d, field_name), reverse=direction < 0)
        if query.limit:
            docs = docs[:query.limit]
        return docs

    async def aggregate(self, collection: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.pipelines.append((collection, pipeline))
        return list(self.aggregate_rows.get(collection, []))


class BarrierStore(FakeDocumentStore):
    """FakeDocumentStore whose find() only returns once `parties` calls are in flight.

    Awaiting the calls one after another never fills the barrier, so the first
    find() times out instead of hanging the test.
    """

    def __init__(self, parties: int, collections=None, timeout: float = 1.0):
        super().__init__(collections)
        self.parties = parties
        self.timeout = timeout
        self.started = 0
        self._all_started = asyncio.Event()

    async def find(self, query: LedgerQuery) -> List[Dict[str, Any]]:
        self.started += 1
        if self.started >= self.parties:
            self._all_started.set()
        await asyncio.wait_for(self._all_started.wait(), timeout=self.timeout)
        return await super().find(query)


class ScriptedLLM:
    """LLM client that replays canned responses; the last one repeats forever."""

    def __init__(self, responses: List[LLMResponse]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt, transcript, tools):
        self.calls.append({
            "system_prompt": system_prompt,
            "turns": list(transcript),
            "tools": [tool.name for tool in tools],
        })
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]


def tool_call_response(*invocations: ToolInvocation, finish_reason: str = "tool_calls") -> LLMResponse:
    return LLMResponse(tool_invocations=list(invocations), finish_reason=finish_reason)


def text_response(text: str, finish_reason: str = "stop") -> LLMResponse:
    return LLMResponse(text_blocks=[text], finish_reason=finish_reason)


@pytest.fixture
def tenant():
    """Single-tenant context."""
    return TenantContext(
        tenant_ids=(86,),
        display_name="Tonder Production",
        platform="slack",
        channel_id="C0AF237ATKJ",
    )


@pytest.fixture
def multi_tenant():
    """Channel bound to two accounts of the same business."""
    return TenantContext(
        tenant_ids=(530, 533),
        display_name="Stadiobet",
        platform="slack",
        channel_id="C0A1WABSC4V",
    )


@pytest.fixture
def fake_store_factory():
    return FakeDocumentStore


@pytest.fixture
def scripted_llm_factory():
    return ScriptedLLM


@pytest.fixture
def responses():
    """Builders for scripted LLM responses."""
    class _Responses:
        tools = staticmethod(tool_call_response)
        text = staticmethod(text_response)
    return _Responses


@pytest.fixture
def barrier_store_factory():
    return BarrierStore
