"""Knowledge base cache used to enrich the system prompt."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import text

from merchant_desk.infra.config import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeEntry:
    id: str
    category: str
    match_pattern: str
    title: str
    content: str
    action: Optional[str]
    priority: int

    @property
    def patterns(self) -> List[str]:
        """Comma-separated match patterns, e.g. "refund, reembolso, devolucion"."""
        return [p.strip().lower() for p in self.match_pattern.split(",") if p.strip()]

    def matches(self, question: str) -> bool:
        lower = question.lower()
        return any(pattern in lower for pattern in self.patterns)


def _load_entries() -> List[KnowledgeEntry]:
    from merchant_desk.infra.database import get_db_session

    with get_db_session() as session:
        rows = session.execute(
            text("""
                SELECT id, category, match_pattern, title, content, action, priority
                FROM knowledge_base
                WHERE is_active = TRUE
                ORDER BY priority ASC
            """)
        ).fetchall()
    return [
        KnowledgeEntry(
            id=str(row.id),
            category=row.category,
            match_pattern=row.match_pattern or "",
            title=row.title,
            content=row.content,
            action=row.action,
            priority=row.priority,
        )
        for row in rows
    ]


def _increment_hits(ids: Sequence[str]) -> None:
    from merchant_desk.infra.database import get_db_session

    with get_db_session() as session:
        session.execute(
            text("UPDATE knowledge_base SET hit_count = hit_count + 1 WHERE id = ANY(CAST(:ids AS uuid[]))"),
            {"ids": list(ids)},
        )


class KnowledgeBase:
    """TTL cache over active knowledge_base rows.

    Reads never block on the database: ``find_relevant`` serves the cached
    tuple and, when it is stale, schedules a background reload.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, loader=_load_entries, hit_recorder=_increment_hits):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.KNOWLEDGE_CACHE_TTL_SECONDS
        self._loader = loader
        self._hit_recorder = hit_recorder
        self._entries: Tuple[KnowledgeEntry, ...] = ()
        self._loaded_at = 0.0
        self._reload_task: Optional[asyncio.Task] = None

    @property
    def entries(self) -> Tuple[KnowledgeEntry, ...]:
        return self._entries

    @property
    def stale(self) -> bool:
        return time.monotonic() - self._loaded_at > self.ttl_seconds

    async def load(self) -> None:
        try:
            entries = await asyncio.to_thread(self._loader)
        except Exception as e:
            logger.warning(f"Failed to load knowledge base (keeping cached entries): {e}")
            return
        self._entries = tuple(entries)
        self._loaded_at = time.monotonic()
        if self._entries:
            logger.info(f"Knowledge base loaded: {len(self._entries)} entries")

    def _schedule_reload(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            return
        try:
            self._reload_task = asyncio.get_running_loop().create_task(self.load())
        except RuntimeError:
            # No running loop; next async caller will reload
            pass

    def find_relevant(self, question: str) -> List[KnowledgeEntry]:
        """Entries whose patterns appear in the question, in priority order."""
        if self.stale:
            self._schedule_reload()
        return [entry for entry in self._entries if entry.matches(question)]

    async def record_hits(self, entries: Sequence[KnowledgeEntry]) -> None:
        if not entries:
            return
        try:
            await asyncio.to_thread(self._hit_recorder, [entry.id for entry in entries])
        except Exception as e:
            logger.warning(f"Failed to update knowledge hit counts (non-fatal): {e}")
