"""Conversation logging service."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text

logger = logging.getLogger(__name__)


def _insert_conversation(params: Dict[str, Any]) -> None:
    from merchant_desk.infra.database import get_db_session

    with get_db_session() as session:
        session.execute(
            text("""
                INSERT INTO conversation_log (
                    merchant_id, merchant_name, platform, channel_id, user_name,
                    question, answer, tool_calls, rounds, latency_ms, error, knowledge_used,
                    ticket_created
                ) VALUES (
                    (SELECT id FROM merchant_channels
                     WHERE platform = :platform AND channel_id = :channel_id LIMIT 1),
                    :merchant_name, :platform, :channel_id, :user_name,
                    :question, :answer, CAST(:tool_calls AS jsonb), :rounds, :latency_ms,
                    :error, CAST(:knowledge_used AS jsonb), :ticket_created
                )
            """),
            params,
        )


async def log_conversation(
    merchant_name: str,
    platform: str,
    channel_id: str,
    user_name: Optional[str],
    question: str,
    answer: str,
    tool_calls: Sequence[Tuple[str, Dict[str, Any]]] = (),
    rounds: int = 0,
    latency_ms: Optional[int] = None,
    error: Optional[str] = None,
    knowledge_used: Optional[List[Dict[str, Any]]] = None,
    ticket_created: bool = False,
) -> None:
    """
    Log one handled question to the conversation_log table.

    Args:
        merchant_name: Display name of the resolved tenant
        platform: 'slack' | 'telegram' | 'whatsapp'
        channel_id: Channel the question came from
        user_name: Sender display name
        question: Merchant's question text
        answer: Answer text actually returned
        tool_calls: (tool name, input) pairs in call order
        rounds: Reasoning rounds used
        latency_ms: End-to-end handling time
        error: Error summary if the request failed
        knowledge_used: id/title/category of injected knowledge entries
        ticket_created: Whether a ticket-creating tool ran

    Never raises; a failed insert is logged as a warning.
    """
    params = {
        "merchant_name": merchant_name,
        "platform": platform,
        "channel_id": channel_id,
        "user_name": user_name or None,
        "question": question,
        "answer": answer,
        "tool_calls": json.dumps(
            [{"tool": name, "input": tool_input} for name, tool_input in tool_calls],
            default=str,
        ),
        "rounds": rounds,
        "latency_ms": latency_ms,
        "error": error,
        "knowledge_used": json.dumps(knowledge_used or []),
        "ticket_created": ticket_created,
    }
    try:
        await asyncio.to_thread(_insert_conversation, params)
    except Exception as e:
        logger.warning(f"Failed to log conversation (non-fatal): {e}")
