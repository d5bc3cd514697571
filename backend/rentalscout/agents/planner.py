import json
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import structlog

from rentalscout.agents.metadata import build_chat_context
from rentalscout.agents.schemas import ChatResponse, ClientContext, HistoryMessage
from rentalscout.core.config import settings
from rentalscout.core.errors import AssistantUnavailable, InputValidationError
from rentalscout.services.llm import Completion, LanguageModelService
from rentalscout.state.models import ConversationTurn, ToolCallRecord, utcnow
from rentalscout.state.store import ConversationStore
from rentalscout.tools.base import ToolContext
from rentalscout.tools.registry import ToolRegistry, model_content

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an AI rental assistant helping people find short-term rentals.

CAPABILITIES:
1. Search: call searchRentals with the user's request as the query. Put explicit constraints
   (price, bedrooms, bathrooms, guests, room type, property type, location, superhost) into filters.
2. Details: call getPropertyDetails with a listing ID to answer questions about one rental.
3. Saved rentals: call getSavedRentals to see what the signed-in user saved.

BEHAVIOR:
- STATEFUL SEARCH: if the user says "make it cheaper" or "only superhosts", call searchRentals AGAIN
  with the new filters merged with the previous ones.
- TOKEN EFFICIENCY: the search tool returns a summary to you. Trust that the full list is shown in the UI.
- If a tool returns an error, explain the limitation plainly (for example, ask the user to sign in).
- Never invent listings, prices or IDs that did not come from a tool.

When replying, be concise, helpful, and professional.
"""

BUDGET_NOTE = (
    "You have used the maximum number of tool calls for this message. "
    "Answer the user now using only the information you already have."
)

FALLBACK_ANSWER = (
    "I'm sorry, I couldn't finish looking that up. "
    "Here is what I can tell you so far; try narrowing your request and ask again."
)


@dataclass
class _LoopResult:
    answer: str
    exceeded: bool


def _append(streamed: List[str], text: str, separate: bool = True) -> List[str]:
    """Record ``text`` as sent, after a paragraph break if earlier text was sent."""
    chunks = ["\n\n", text] if separate and streamed else [text]
    streamed.extend(chunks)
    return chunks


class RentalAgent:
    """Runs the dispatch / tool-execute loop for one chat round at a time.

    Rounds on different sessions run concurrently; within one round tool
    rounds are sequential because the model must see each round's results.
    Nothing is persisted until the round finishes, so an aborted or failed
    round leaves the conversation untouched.
    """

    def __init__(
        self,
        llm: LanguageModelService,
        registry: ToolRegistry,
        store: ConversationStore,
        max_tool_rounds: int | None = None,
        history_window: int | None = None,
        max_message_length: int | None = None,
    ):
        self.llm = llm
        self.registry = registry
        self.store = store
        self.max_tool_rounds = settings.MAX_TOOL_ROUNDS if max_tool_rounds is None else max_tool_rounds
        self.history_window = history_window or settings.HISTORY_WINDOW
        self.max_message_length = max_message_length or settings.MAX_MESSAGE_LENGTH

    async def chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        history: Optional[Sequence[HistoryMessage]] = None,
        context: Optional[ClientContext] = None,
        user_id: Optional[str] = None,
    ) -> ChatResponse:
        """Run one chat round and return the answer with search metadata."""
        session_id = session_id or str(uuid.uuid4())
        messages = await self._start(message, session_id, history, context)
        tool_context = ToolContext(user_id=user_id, session_id=session_id)
        records: List[ToolCallRecord] = []

        result = None
        async for event in self._run_loop(messages, records, tool_context, streaming=False):
            if isinstance(event, _LoopResult):
                result = event
        return await self._finish(message, session_id, user_id, result, records)

    async def stream_chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        history: Optional[Sequence[HistoryMessage]] = None,
        context: Optional[ClientContext] = None,
        user_id: Optional[str] = None,
    ) -> AsyncIterator[Union[str, ChatResponse]]:
        """Yield answer text chunks as they arrive, then the ``ChatResponse``.

        Turns are persisted only after the stream has completed.
        """
        session_id = session_id or str(uuid.uuid4())
        messages = await self._start(message, session_id, history, context)
        tool_context = ToolContext(user_id=user_id, session_id=session_id)
        records: List[ToolCallRecord] = []

        result = None
        async for event in self._run_loop(messages, records, tool_context, streaming=True):
            if isinstance(event, _LoopResult):
                result = event
            else:
                yield event
        yield await self._finish(message, session_id, user_id, result, records)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------
    async def _start(
        self,
        message: str,
        session_id: str,
        history: Optional[Sequence[HistoryMessage]],
        context: Optional[ClientContext],
    ) -> List[Dict[str, Any]]:
        if not message or not message.strip():
            raise InputValidationError("Message must not be empty")
        if len(message) > self.max_message_length:
            raise InputValidationError(
                f"Message must be at most {self.max_message_length} characters", length=len(message)
            )

        prior = [t.to_message() for t in await self.store.recent_turns(session_id, self.history_window)]
        if not prior and history:
            # Client-held history only seeds sessions the server has never seen
            prior = [{"role": h.role, "content": h.content} for h in history][-self.history_window:]

        logger.info("Chat round started", session_id=session_id, prior_turns=len(prior))
        return [
            {"role": "system", "content": self._system_prompt(context)},
            *prior,
            {"role": "user", "content": message},
        ]

    async def _run_loop(
        self,
        messages: List[Dict[str, Any]],
        records: List[ToolCallRecord],
        tool_context: ToolContext,
        streaming: bool,
    ) -> AsyncIterator[Union[str, _LoopResult]]:
        declarations = self.registry.declarations()
        # Text already sent to a streaming caller; the streamed answer is exactly this
        streamed: List[str] = []
        rounds = 0
        while True:
            completion = None
            if streaming:
                first = True
                async for event in self.llm.stream(messages, declarations):
                    if isinstance(event, Completion):
                        completion = event
                    elif event:
                        for chunk in _append(streamed, event, separate=first):
                            yield chunk
                        first = False
            else:
                completion = await self.llm.complete(messages, declarations)

            if completion.is_final:
                answer = completion.content or FALLBACK_ANSWER
                if streaming:
                    if not completion.content:
                        for chunk in _append(streamed, FALLBACK_ANSWER):
                            yield chunk
                    answer = "".join(streamed)
                yield _LoopResult(answer=answer, exceeded=False)
                return

            if rounds >= self.max_tool_rounds:
                logger.warning(
                    "Tool loop exceeded",
                    max_tool_rounds=self.max_tool_rounds,
                    pending=[tc.name for tc in completion.tool_calls],
                )
                answer = await self._best_effort_answer(messages)
                if streaming:
                    for chunk in _append(streamed, answer):
                        yield chunk
                    answer = "".join(streamed)
                yield _LoopResult(answer=answer, exceeded=True)
                return

            rounds += 1
            logger.info("Processing tool calls", round=rounds, count=len(completion.tool_calls))
            messages.append(completion.to_message())
            for tool_call in completion.tool_calls:
                record = await self.registry.run(tool_call.id, tool_call.name, tool_call.arguments, tool_context)
                records.append(record)
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": model_content(record),
                })

    def _system_prompt(self, context: Optional[ClientContext]) -> str:
        if context is None:
            return SYSTEM_PROMPT
        lines = []
        if context.current_search:
            lines.append(f"- Current search: {context.current_search}")
        if context.filters:
            lines.append(f"- Active filters: {json.dumps(context.filters, default=str)}")
        if context.user_preferences:
            lines.append(f"- User preferences: {json.dumps(context.user_preferences, default=str)}")
        if context.current_property:
            lines.append(f"- Listing currently open: {context.current_property}")
        if not lines:
            return SYSTEM_PROMPT
        return SYSTEM_PROMPT + "\nCURRENT UI CONTEXT:\n" + "\n".join(lines) + "\n"

    async def _best_effort_answer(self, messages: List[Dict[str, Any]]) -> str:
        try:
            completion = await self.llm.complete(
                messages + [{"role": "system", "content": BUDGET_NOTE}], tools=None
            )
        except AssistantUnavailable:
            return FALLBACK_ANSWER
        return completion.content or FALLBACK_ANSWER

    async def _finish(
        self,
        message: str,
        session_id: str,
        user_id: Optional[str],
        result: _LoopResult,
        records: List[ToolCallRecord],
    ) -> ChatResponse:
        context = build_chat_context(records, tool_loop_exceeded=result.exceeded)
        response = ChatResponse(message=result.answer, session_id=session_id, context=context)

        user_turn = ConversationTurn(
            role="user",
            content=message,
            metadata={"authenticated": user_id is not None},
        )
        assistant_turn = ConversationTurn(
            role="assistant",
            content=result.answer,
            timestamp=utcnow(),
            metadata={
                "tool_calls": [r.summary() for r in records],
                "search_metadata": json.loads(context.search_metadata.model_dump_json()),
                "tool_loop_exceeded": result.exceeded,
            },
        )
        try:
            await self.store.append_round(session_id, user_turn, assistant_turn, user_id=user_id)
        except Exception:
            # The answer is already computed; losing the write must not lose the reply
            logger.exception("Failed to persist conversation round", session_id=session_id)

        logger.info(
            "Chat round finished",
            session_id=session_id,
            tool_calls=context.tool_calls_made,
            tool_loop_exceeded=result.exceeded,
        )
        return response
