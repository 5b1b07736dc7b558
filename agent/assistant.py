from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class RunState:
    id: str
    status: str
    tool_calls: List[ToolCall] = field(default_factory=list)


def _to_run_state(run: Any) -> RunState:
    tool_calls: List[ToolCall] = []
    required_action = getattr(run, "required_action", None)
    if required_action is not None and required_action.submit_tool_outputs is not None:
        for call in required_action.submit_tool_outputs.tool_calls:
            tool_calls.append(
                ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments)
            )
    return RunState(id=run.id, status=run.status, tool_calls=tool_calls)


class AssistantClient:
    """Thin wrapper over the OpenAI Assistants API (threads, messages, runs).

    Exposes only what the conversation engine needs and converts SDK objects
    into plain ``RunState`` / ``ToolCall`` records.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        settings = settings or get_settings()
        if client is None and not settings.openai_api_key:
            raise RuntimeError(
                "OPENAI_API_KEY not set. Please configure it in environment or .env"
            )
        self.assistant_id = settings.assistant_id
        self._client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def create_thread(self) -> str:
        thread = await self._client.beta.threads.create()
        logger.info("Assistant thread created: %s", thread.id)
        return thread.id

    async def add_user_message(self, thread_id: str, content: str) -> None:
        await self._client.beta.threads.messages.create(
            thread_id=thread_id,
            role="user",
            content=content,
        )

    async def start_run(self, thread_id: str, tools: List[Dict[str, Any]]) -> RunState:
        run = await self._client.beta.threads.runs.create(
            thread_id=thread_id,
            assistant_id=self.assistant_id,
            tools=tools,
        )
        return _to_run_state(run)

    async def get_run(self, thread_id: str, run_id: str) -> RunState:
        run = await self._client.beta.threads.runs.retrieve(run_id=run_id, thread_id=thread_id)
        return _to_run_state(run)

    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]
    ) -> RunState:
        run = await self._client.beta.threads.runs.submit_tool_outputs(
            run_id=run_id,
            thread_id=thread_id,
            tool_outputs=outputs,
        )
        return _to_run_state(run)

    async def cancel_run(self, thread_id: str, run_id: str) -> RunState:
        run = await self._client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id)
        logger.info("Assistant run cancelled: thread=%s run=%s status=%s", thread_id, run_id, run.status)
        return _to_run_state(run)

    async def latest_message_text(self, thread_id: str) -> str:
        page = await self._client.beta.threads.messages.list(
            thread_id=thread_id, order="desc", limit=1
        )
        if not page.data:
            return ""
        parts = []
        for block in page.data[0].content:
            if getattr(block, "type", None) == "text":
                parts.append(block.text.value)
        return "\n".join(parts).strip()
