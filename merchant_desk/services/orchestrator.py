"""Request entry point: inbound message → tenant → reasoning loop → answer text."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Set

from merchant_desk.infra.config import config
from merchant_desk.infra.error_handler import classify_error, user_facing_apology
from merchant_desk.infra.metrics import masking_audit_hits_total, message_duration, messages_total
from merchant_desk.logging.event_logger import log_conversation
from merchant_desk.models.message import InboundMessage
from merchant_desk.services.knowledge_loader import KnowledgeBase
from merchant_desk.services.prompt_builder import append_knowledge, build_system_prompt
from merchant_desk.services.reasoning_loop import LoopResult, LoopState, ReasoningLoop
from merchant_desk.services.tenant_resolver import TenantResolver
from merchant_desk.services.tool_registry import ToolContext
from merchant_desk.services.vendor_masking import audit_text, sanitize_text

logger = logging.getLogger(__name__)

UNMAPPED_CHANNEL_MESSAGE = (
    f"This channel is not configured for {config.ASSISTANT_NAME}. "
    f"Please contact {config.COMPANY_NAME} support to set up your account."
)


class Orchestrator:
    """Owns one request from resolution to the final, audited answer."""

    def __init__(
        self,
        resolver: TenantResolver,
        llm_client,
        store,
        knowledge_base: Optional[KnowledgeBase] = None,
        conversation_logger: Callable[..., Awaitable[None]] = log_conversation,
    ):
        self.resolver = resolver
        self.llm_client = llm_client
        self.store = store
        self.knowledge_base = knowledge_base
        self.conversation_logger = conversation_logger
        self.loop = ReasoningLoop(llm_client)
        self._background: Set[asyncio.Task] = set()

    def _fire_and_forget(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for pending background writes (used at shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def handle(self, message: InboundMessage) -> str:
        """
        Answer one inbound message.

        Unmapped channels get UNMAPPED_CHANNEL_MESSAGE without touching the
        model or any store. Any failure past resolution is caught here once
        and turned into a category apology; raw error text is logged, never
        returned. The final answer is audited for vendor ids and sanitized
        if one slipped through.
        """
        start_time = time.time()

        tenant = self.resolver.resolve(message.channel_id, message.platform)
        if tenant is None:
            logger.warning(
                f"Message from unmapped channel {message.platform}:{message.channel_id}"
            )
            messages_total.labels(platform=message.platform, outcome="unmapped").inc()
            return UNMAPPED_CHANNEL_MESSAGE

        logger.info(
            f"Processing merchant question for {tenant.display_name} "
            f"(platform={message.platform}, user={message.user_name})"
        )

        system_prompt = build_system_prompt(tenant)
        knowledge = self.knowledge_base.find_relevant(message.text) if self.knowledge_base else []
        if knowledge:
            system_prompt = append_knowledge(system_prompt, knowledge)
            logger.info(
                f"Knowledge injected for {tenant.display_name}: {[entry.title for entry in knowledge]}"
            )

        error: Optional[str] = None
        try:
            result = await self.loop.run(
                message.text, system_prompt, ToolContext(tenant=tenant, store=self.store)
            )
            outcome = "exhausted" if result.outcome == LoopState.EXHAUSTED else "answered"
        except Exception as e:
            category, _ = classify_error(e)
            logger.error(
                f"Orchestrator error for {tenant.display_name} "
                f"({category.value}, {type(e).__name__}): {e}",
                exc_info=True,
            )
            error = f"{type(e).__name__}: {str(e)[:500]}"
            result = LoopResult(answer=user_facing_apology(category), rounds=0)
            outcome = "error"

        leaked = audit_text(result.answer)
        if leaked:
            logger.warning(
                f"Vendor names leaked in response for {tenant.display_name}, sanitizing: {leaked}"
            )
            for vendor_id in leaked:
                masking_audit_hits_total.labels(vendor_id=vendor_id).inc()
            result.answer = sanitize_text(result.answer)

        latency = time.time() - start_time
        messages_total.labels(platform=message.platform, outcome=outcome).inc()
        message_duration.labels(platform=message.platform).observe(latency)

        if knowledge and self.knowledge_base is not None:
            self._fire_and_forget(self.knowledge_base.record_hits(knowledge))
        self._fire_and_forget(
            self.conversation_logger(
                merchant_name=tenant.display_name,
                platform=tenant.platform,
                channel_id=tenant.channel_id,
                user_name=message.user_name,
                question=message.text,
                answer=result.answer,
                tool_calls=result.tool_calls,
                rounds=result.rounds,
                latency_ms=int(latency * 1000),
                error=error,
                knowledge_used=[
                    {"id": entry.id, "title": entry.title, "category": entry.category}
                    for entry in knowledge
                ],
                ticket_created=result.ticket_created,
            )
        )

        return result.answer


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator wired to the configured stores and model."""
    global _orchestrator
    if _orchestrator is None:
        from merchant_desk.adapters.vendor_adapter_openai import OpenAIChatClient
        from merchant_desk.infra.document_store import document_store

        _orchestrator = Orchestrator(
            resolver=TenantResolver(store=document_store),
            llm_client=OpenAIChatClient(),
            store=document_store,
            knowledge_base=KnowledgeBase(),
        )
    return _orchestrator


async def handle_incoming_message(message: InboundMessage) -> str:
    return await get_orchestrator().handle(message)
