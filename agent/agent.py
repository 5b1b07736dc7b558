from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from agent.assistant import AssistantClient, RunState, ToolCall
from agent.core.errors import AssistantRunError, AssistantRunTimeoutError, ConfigurationError
from agent.core.memory import Session
from agent.core.models import ChatReply
from agent.core.prompt import (
    ASSISTANT_APOLOGY,
    NEED_MORE_INFO,
    NOTHING_FOUND,
    RESULTS_FOUND,
    SEARCH_APOLOGY,
    SEARCH_KEYWORDS,
)
from agent.tools import build_google_search_tool, is_sentinel, search_google
from agent.tools.google_search import SearchFunction, parse_tool_arguments
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3
FAILED_RUN_STATUSES = {"failed", "cancelled", "expired", "incomplete"}


class ConversationEngine(ABC):
    """Turns one user message into a reply and records the turn in the session."""

    @abstractmethod
    async def reply(self, session: Session, message: str) -> ChatReply:
        ...


class SearchConversationEngine(ConversationEngine):
    """Answers every message by querying the search provider directly."""

    def __init__(self, search: Optional[SearchFunction] = None) -> None:
        self._search = search or search_google

    async def reply(self, session: Session, message: str) -> ChatReply:
        text = message.strip()
        session.add_user_message(text)

        if len(text) < MIN_QUERY_LENGTH:
            session.add_bot_message(NEED_MORE_INFO)
            return ChatReply(message=NEED_MORE_INFO)

        try:
            results = await self._search(f"{text} {SEARCH_KEYWORDS}")
        except Exception:
            logger.exception("Search failed: session=%s", session.id)
            session.add_bot_message(SEARCH_APOLOGY)
            return ChatReply(message=SEARCH_APOLOGY)

        if is_sentinel(results):
            session.add_bot_message(NOTHING_FOUND, results=[])
            return ChatReply(message=NOTHING_FOUND)

        session.add_bot_message(RESULTS_FOUND, results=results)
        return ChatReply(message=RESULTS_FOUND, results=results)


class AssistantConversationEngine(ConversationEngine):
    """Delegates the conversation to a hosted assistant that may call tools.

    Each session is bound to one assistant thread, created on first use. A
    run is polled until it completes; tool calls raised on the way are
    executed locally and their output submitted back.
    """

    def __init__(
        self,
        client: AssistantClient,
        tools: Sequence[BaseTool],
        poll_interval: float = 1.0,
        run_timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._tools: Dict[str, BaseTool] = {tool.name: tool for tool in tools}
        self._tool_specs: List[Dict[str, Any]] = [convert_to_openai_tool(tool) for tool in tools]
        self._poll_interval = poll_interval
        self._run_timeout = run_timeout

    async def reply(self, session: Session, message: str) -> ChatReply:
        text = message.strip()
        stage = "thread"
        thread_id: Optional[str] = None
        active_run: Optional[str] = None
        try:
            thread_id = await self._ensure_thread(session)

            stage = "message"
            await self._client.add_user_message(thread_id, text)

            stage = "run"
            run = await self._client.start_run(thread_id, self._tool_specs)
            active_run = run.id
            logger.info("Run started: session=%s thread=%s run=%s", session.id, thread_id, run.id)

            stage = "poll"
            await self._wait_for_completion(session, thread_id, run)
            active_run = None

            stage = "reply"
            answer = await self._client.latest_message_text(thread_id)
            if not answer:
                raise AssistantRunError(f"Run {run.id} completed without a text answer", status="completed")
        except AssistantRunTimeoutError:
            logger.error("Run timed out: session=%s after %.1fs", session.id, self._run_timeout)
            await self._cancel_run(session, thread_id, active_run)
            raise
        except Exception as exc:
            logger.exception("Assistant exchange failed: session=%s stage=%s", session.id, stage)
            if getattr(exc, "status", None) not in FAILED_RUN_STATUSES:
                await self._cancel_run(session, thread_id, active_run)
            return ChatReply(message=ASSISTANT_APOLOGY)

        session.add_user_message(text)
        session.add_bot_message(answer)
        return ChatReply(message=answer)

    async def _cancel_run(self, session: Session, thread_id: Optional[str], run_id: Optional[str]) -> None:
        # An active run locks the thread against new messages.
        if thread_id is None or run_id is None:
            return
        try:
            await self._client.cancel_run(thread_id, run_id)
        except Exception as exc:
            logger.warning(
                "Could not cancel run %s: session=%s thread=%s: %s",
                run_id, session.id, thread_id, exc,
            )

    async def _ensure_thread(self, session: Session) -> str:
        async with session.thread_lock:
            if session.thread_id is None:
                session.assign_thread(await self._client.create_thread())
        return session.thread_id

    async def _wait_for_completion(self, session: Session, thread_id: str, run: RunState) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._run_timeout

        while True:
            if loop.time() >= deadline:
                raise AssistantRunTimeoutError(
                    f"Run {run.id} did not complete within {self._run_timeout}s",
                    status=run.status,
                )
            await asyncio.sleep(self._poll_interval)
            run = await self._client.get_run(thread_id, run.id)

            if run.status == "completed":
                return
            if run.status in FAILED_RUN_STATUSES:
                raise AssistantRunError(f"Run {run.id} ended with status {run.status}", status=run.status)
            if run.status == "requires_action":
                logger.info(
                    "Run %s requested %s tool call(s): session=%s",
                    run.id, len(run.tool_calls), session.id,
                )
                outputs = [await self._dispatch(call) for call in run.tool_calls]
                run = await self._client.submit_tool_outputs(thread_id, run.id, outputs)

    async def _dispatch(self, call: ToolCall) -> Dict[str, str]:
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning("Assistant requested unknown tool %r", call.name)
            output = json.dumps({"error": f"Unknown tool: {call.name}"})
        else:
            try:
                output = await tool.ainvoke(parse_tool_arguments(call.arguments))
            except ValueError as exc:
                logger.warning("Rejected arguments for %s (%s): %s", call.name, call.id, exc)
                output = json.dumps({"error": f"Invalid arguments for {call.name}: {exc}"})
        return {"tool_call_id": call.id, "output": str(output)}


def build_engine(
    settings: Optional[Settings] = None,
    search: Optional[SearchFunction] = None,
    client: Optional[AssistantClient] = None,
) -> ConversationEngine:
    settings = settings or get_settings()

    if search is None:
        search = partial(search_google, settings=settings)

    if settings.chat_strategy == "search":
        return SearchConversationEngine(search)
    if settings.chat_strategy == "assistant":
        return AssistantConversationEngine(
            client or AssistantClient(settings),
            tools=[build_google_search_tool(search)],
            poll_interval=settings.poll_interval,
            run_timeout=settings.run_timeout,
        )
    raise ConfigurationError(f"Unknown CHAT_STRATEGY {settings.chat_strategy!r}")
