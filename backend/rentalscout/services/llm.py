"""Language-model service: chat completions with tool calling."""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import openai
from openai import AsyncOpenAI
import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import AssistantUnavailable
from rentalscout.core.retry import call_with_retry
from rentalscout.services.embeddings import TRANSIENT_OPENAI_ERRORS

logger = structlog.get_logger()


@dataclass
class ToolCallRequest:
    id: str
    name: str
    arguments: str  # raw JSON text as produced by the model

    def to_message(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class Completion:
    content: Optional[str] = None
    tool_calls: List[ToolCallRequest] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return not self.tool_calls

    def to_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_message() for tc in self.tool_calls]
        return msg


class LanguageModelService:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        timeout: float | None = None,
        attempts: int | None = None,
        backoff: float | None = None,
    ):
        self._client = client
        self.model = model or settings.CHAT_MODEL
        self.timeout = settings.LLM_TIMEOUT if timeout is None else timeout
        self.attempts = settings.MAX_RETRIES if attempts is None else attempts
        self.backoff = settings.RETRY_BACKOFF if backoff is None else backoff

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            # Retries and timeouts are owned by call_with_retry, not the SDK
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0, timeout=self.timeout)
        return self._client

    def _request(self, messages, tools, stream: bool = False) -> Dict[str, Any]:
        if not self.model:
            raise AssistantUnavailable("No chat model configured (set CHAT_MODEL)")
        request: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        if stream:
            request["stream"] = True
        return request

    async def complete(
        self, messages: List[Dict[str, Any]], tools: List[Dict[str, Any]] | None = None
    ) -> Completion:
        request = self._request(messages, tools)
        logger.info("Calling LLM", model=self.model, messages=len(messages), tools=len(tools or []))

        async def attempt():
            return await self.client.chat.completions.create(**request)

        try:
            response = await call_with_retry(
                attempt,
                attempts=self.attempts,
                backoff=self.backoff,
                timeout=self.timeout,
                retry_on=TRANSIENT_OPENAI_ERRORS,
                operation="chat.completions",
            )
        except (asyncio.TimeoutError, openai.OpenAIError) as e:
            logger.error("LLM call failed", model=self.model, error=repr(e))
            raise AssistantUnavailable("The assistant is temporarily unavailable") from e

        message = response.choices[0].message
        return Completion(
            content=message.content,
            tool_calls=[
                ToolCallRequest(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "{}")
                for tc in (message.tool_calls or [])
            ],
        )

    async def stream(
        self, messages: List[Dict[str, Any]], tools: List[Dict[str, Any]] | None = None
    ) -> AsyncIterator[Union[str, Completion]]:
        """Yield text deltas as they arrive, then the assembled ``Completion``.

        Only opening the stream is retried; a stream that breaks midway fails
        with ``AssistantUnavailable``.
        """
        request = self._request(messages, tools, stream=True)
        logger.info("Streaming LLM", model=self.model, messages=len(messages))

        async def attempt():
            return await self.client.chat.completions.create(**request)

        try:
            stream = await call_with_retry(
                attempt,
                attempts=self.attempts,
                backoff=self.backoff,
                timeout=self.timeout,
                retry_on=TRANSIENT_OPENAI_ERRORS,
                operation="chat.completions.stream",
            )
        except (asyncio.TimeoutError, openai.OpenAIError) as e:
            logger.error("LLM stream failed to open", model=self.model, error=repr(e))
            raise AssistantUnavailable("The assistant is temporarily unavailable") from e

        text_parts: List[str] = []
        # Tool-call fragments arrive keyed by index
        partial_calls: Dict[int, Dict[str, str]] = {}
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    text_parts.append(delta.content)
                    yield delta.content
                for tc in delta.tool_calls or []:
                    slot = partial_calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function and tc.function.name:
                        slot["name"] += tc.function.name
                    if tc.function and tc.function.arguments:
                        slot["arguments"] += tc.function.arguments
        except openai.OpenAIError as e:
            logger.error("LLM stream interrupted", model=self.model, error=repr(e))
            raise AssistantUnavailable("The assistant stream was interrupted") from e

        yield Completion(
            content="".join(text_parts) or None,
            tool_calls=[
                ToolCallRequest(id=slot["id"], name=slot["name"], arguments=slot["arguments"] or "{}")
                for _, slot in sorted(partial_calls.items())
            ],
        )


def parse_arguments(raw: str) -> Dict[str, Any]:
    """Decode tool-call arguments; the model occasionally emits invalid JSON."""
    value = json.loads(raw or "{}")
    if not isinstance(value, dict):
        raise ValueError("tool arguments must be a JSON object")
    return value
