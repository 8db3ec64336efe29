"""
Main chat pipeline: runs one user turn through the model and the skills.

Flow:
  1. Resolve or create the session, take its lock
  2. Append the user message, compact if over budget
  3. Build the transcript (system prompt, summary note, retained messages)
  4. Call the model; while it asks for tools, append its request, run every
     call concurrently, append one tool message per call, and call again,
     at most max_tool_loops + 1 model calls in total
  5. Persist the session and return the final assistant text
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from errors import ToolExecutionError, ValidationError
from sessions import DEFAULT_TITLE, Message, Session

logger = logging.getLogger(__name__)

AUTO_TITLE_LENGTH = 50


@dataclass
class TurnResult:
    session_id: str
    content: str
    tool_calls: list[dict] = field(default_factory=list)
    raw: Optional[dict] = None
    error: Optional[str] = None
    model_calls: int = 0
    loop_limit_reached: bool = False

    def to_response(self, include_raw: bool = False) -> dict:
        """Wire shape for POST /chat."""
        data = {
            "ok": True,
            "sessionId": self.session_id,
            "assistant": {"content": self.content, "toolCalls": self.tool_calls},
        }
        if self.error:
            data["assistant"]["error"] = self.error
        if include_raw:
            data["raw"] = self.raw
        return data


def build_transcript(session: Session, system_prompt: str) -> list[dict]:
    """Translate a session into chat-completion messages.

    An assistant message keeps only the tool calls answered by the tool
    messages directly after it. Tool messages without a matching call (for
    example after compaction removed the request) become assistant notes.
    """
    transcript = []
    if system_prompt:
        transcript.append({"role": "system", "content": system_prompt})
    if session.summary:
        transcript.append({
            "role": "system",
            "content": f"Summary of the earlier conversation:\n{session.summary}",
        })

    messages = session.messages
    i = 0
    while i < len(messages):
        m = messages[i]
        if m.role == "assistant" and m.tool_calls:
            j = i + 1
            answers = []
            while j < len(messages) and messages[j].role == "tool":
                answers.append(messages[j])
                j += 1
            answered_ids = {t.tool_call_id for t in answers}
            calls = [tc for tc in m.tool_calls if tc.get("id") in answered_ids]
            entry = {"role": "assistant", "content": m.content}
            if calls:
                entry["tool_calls"] = calls
            transcript.append(entry)

            pending = {tc["id"] for tc in calls}
            for t in answers:
                if t.tool_call_id in pending:
                    pending.discard(t.tool_call_id)
                    transcript.append({"role": "tool", "tool_call_id": t.tool_call_id, "content": t.content})
                else:
                    transcript.append(_orphan_tool_note(t))
            i = j
            continue

        if m.role == "tool":
            transcript.append(_orphan_tool_note(m))
        else:
            transcript.append({"role": m.role, "content": m.content})
        i += 1
    return transcript


def _orphan_tool_note(m: Message) -> dict:
    return {"role": "assistant", "content": f"[Tool result {m.tool_call_id}] {m.content}"}


def _normalize_tool_calls(tool_calls: list[dict]) -> list[dict]:
    """Give every requested call an id so tool results can refer to it."""
    normalized = []
    for tc in tool_calls:
        tc = dict(tc)
        if not tc.get("id"):
            tc["id"] = f"call_{uuid.uuid4().hex[:12]}"
        tc.setdefault("type", "function")
        normalized.append(tc)
    return normalized


class _ChatPipelineMixin:
    """Mixin providing the chat() turn entry point for AgentCore."""

    async def chat(self, session_id: Optional[str], message: str, *,
                   system_prompt: str = None, title: str = None, model: str = None,
                   temperature: float = None, max_tokens: int = None,
                   enable_tools: bool = True, include_raw: bool = False) -> TurnResult:
        text = message.strip() if isinstance(message, str) else ""
        if not text:
            raise ValidationError("message is required")

        if session_id:
            self.sessions.require(session_id)
        else:
            session_id = self.sessions.new_session(title, system_prompt).id

        async with self.sessions.lock(session_id):
            # The session may have been deleted while we waited for the lock
            session = self.sessions.require(session_id)
            return await self._run_turn(
                session, text,
                system_prompt=system_prompt, model=model, temperature=temperature,
                max_tokens=max_tokens, enable_tools=enable_tools, include_raw=include_raw,
            )

    async def _run_turn(self, session: Session, text: str, *, system_prompt, model,
                        temperature, max_tokens, enable_tools, include_raw) -> TurnResult:
        logger.info("Turn start: session=%s tools=%s", session.id, enable_tools)

        if session.title == DEFAULT_TITLE and not any(m.role == "user" for m in session.messages):
            session.title = text[:AUTO_TITLE_LENGTH].strip()
            if len(text) > AUTO_TITLE_LENGTH:
                session.title += "…"

        self.sessions.append(session, Message.create("user", text))
        await self.compactor.compact(session)

        prompt = system_prompt or session.system_prompt or self.settings.context.system_prompt
        transcript = build_transcript(session, prompt)
        tools = self.skills.tool_schemas() if enable_tools else None
        max_calls = self.settings.context.max_tool_loops + 1

        result = TurnResult(session_id=session.id, content="")
        for call_index in range(max_calls):
            reply = await self.gateway.complete(
                transcript, tools=tools, model=model,
                temperature=temperature, max_tokens=max_tokens,
            )
            result.model_calls += 1
            if include_raw:
                result.raw = reply.raw

            if not reply.ok:
                logger.warning("Model call failed in session %s: %s", session.id, reply.failure)
                result.content = reply.user_message()
                result.error = reply.failure
                self.sessions.append(session, Message.create("assistant", result.content))
                break

            if not enable_tools or not reply.tool_calls:
                result.content = reply.content
                self.sessions.append(session, Message.create("assistant", reply.content))
                break

            tool_calls = _normalize_tool_calls(reply.tool_calls)
            result.tool_calls = tool_calls

            if call_index == max_calls - 1:
                logger.warning("Tool loop limit (%d) reached in session %s",
                               self.settings.context.max_tool_loops, session.id)
                result.content = reply.content
                result.loop_limit_reached = True
                # Unexecuted calls are not stored so the log stays linkage-valid
                self.sessions.append(session, Message.create("assistant", reply.content))
                break

            self.sessions.append(session, Message.create("assistant", reply.content, tool_calls=tool_calls))
            transcript.append({"role": "assistant", "content": reply.content, "tool_calls": tool_calls})

            payloads = await asyncio.gather(*(self._execute_tool_call(tc) for tc in tool_calls))
            for tc, payload in zip(tool_calls, payloads):
                self.sessions.append(session, Message.create("tool", payload, tool_call_id=tc["id"]))
                transcript.append({"role": "tool", "tool_call_id": tc["id"], "content": payload})

        await self.sessions.put(session)
        logger.info("Turn done: session=%s model_calls=%d", session.id, result.model_calls)
        return result

    async def _execute_tool_call(self, tool_call: dict) -> str:
        """Run one requested tool call. Always returns a JSON payload, never raises."""
        fn = tool_call.get("function") or {}
        name = fn.get("name") or ""
        raw_args = fn.get("arguments")

        try:
            if isinstance(raw_args, str):
                arguments = json.loads(raw_args) if raw_args.strip() else {}
            else:
                arguments = raw_args or {}
        except json.JSONDecodeError as e:
            return json.dumps({"error": f"Invalid JSON arguments for {name}: {e}"})

        try:
            value = await self.skills.execute(name, arguments)
            payload = {"result": value}
            logger.info("Tool %s succeeded", name)
        except ToolExecutionError as e:
            logger.info("Tool %s failed: %s", name, e.message)
            payload = {"error": e.message}
        except Exception:
            logger.exception("Tool %s raised unexpectedly", name)
            payload = {"error": f"Tool '{name}' failed unexpectedly"}
        return json.dumps(payload, ensure_ascii=False, default=str)
