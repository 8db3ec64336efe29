"""
Context compaction: keeps a session's message log under the character budget.

When the log's total content length exceeds max_context_chars, everything but
the last max_tail_messages messages is folded into the session summary. The
summary comes from a secondary model call, or from plain truncation of the
flattened transcript when no model is configured or the call fails.
"""

import logging
from dataclasses import dataclass

from inference import ModelGateway
from sessions import Message, Session, SessionRepository

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize the following conversation so it can stand in for the full "
    "history. Keep names, facts, decisions, open questions and tool results "
    "that may matter later. Be concise."
)


@dataclass
class CompactionResult:
    compacted: bool
    removed: int = 0
    used_model: bool = False


def flatten(messages: list[Message]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


class ContextCompactor:
    def __init__(self, gateway: ModelGateway, repo: SessionRepository,
                 max_context_chars: int = 12000, max_tail_messages: int = 12,
                 summary_model: str = None, fallback_chars: int = 1200):
        self.gateway = gateway
        self.repo = repo
        self.max_context_chars = max_context_chars
        self.max_tail_messages = max_tail_messages
        self.summary_model = summary_model
        self.fallback_chars = fallback_chars

    def needs_compaction(self, session: Session) -> bool:
        return session.content_length() > self.max_context_chars

    def local_summary(self, messages: list[Message]) -> str:
        return flatten(messages)[:self.fallback_chars]

    async def summarize(self, messages: list[Message]) -> tuple[str, bool]:
        """Return (summary, used_model). Never raises."""
        if not self.gateway.configured:
            return self.local_summary(messages), False
        reply = await self.gateway.complete(
            [
                {"role": "system", "content": SUMMARY_PROMPT},
                {"role": "user", "content": flatten(messages)},
            ],
            model=self.summary_model,
            temperature=0.2,
        )
        if not reply.ok or not reply.content.strip():
            logger.warning("Summary call failed (%s), using local truncation", reply.failure or "empty reply")
            return self.local_summary(messages), False
        return reply.content.strip(), True

    async def compact(self, session: Session) -> CompactionResult:
        if not self.needs_compaction(session):
            return CompactionResult(compacted=False)

        overflow_index = max(0, len(session.messages) - self.max_tail_messages)
        if overflow_index == 0:
            return CompactionResult(compacted=False)

        prefix = session.messages[:overflow_index]
        retained = session.messages[overflow_index:]
        summary, used_model = await self.summarize(prefix)
        self.repo.replace_messages(session, summary, retained)
        logger.info("Compacted session %s: %d messages folded into summary (model=%s)",
                    session.id, len(prefix), used_model)
        return CompactionResult(compacted=True, removed=len(prefix), used_model=used_model)
