"""Top-level chat entry point: resolve, execute, then phrase the outcome."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from office_agent.core.interfaces import LLMClient
from office_agent.core.models import ChatTurn
from office_agent.intelligence.prompts import build_outcome_prompt

from .catalog import CONVERSATION
from .executor import ActionExecutor
from .resolver import IntentResolver

LOGGER = logging.getLogger(__name__)

CHAT_ERROR_REPLY = (
    "Sorry, I encountered an error processing your request. Please try again."
)


class AgentOrchestrator:
    """Handle one chat message end to end."""

    def __init__(
        self,
        llm_client: LLMClient,
        resolver: IntentResolver,
        executor: ActionExecutor,
    ) -> None:
        self._llm_client = llm_client
        self._resolver = resolver
        self._executor = executor

    async def process_message(
        self,
        message: str,
        user_id: str | None = None,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        """Return the assistant reply for ``message``.

        Conversational messages go straight to the chat model. Tool actions run
        once through the executor and the model is asked to summarise the
        outcome; if that call fails the raw outcome string is returned.
        """
        action = await self._resolver.resolve(message, history)
        LOGGER.info("Agent selected tool %s: %s", action.tool, action.reasoning)

        if action.tool == CONVERSATION:
            try:
                return await self._llm_client.chat(message, history)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Chat reply failed")
                return CHAT_ERROR_REPLY

        outcome = await self._executor.execute(action, user_id)
        prompt = build_outcome_prompt(action.tool, action.parameters, outcome)
        try:
            completion = await self._llm_client.complete(prompt)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Outcome summary failed; returning raw outcome: %s", exc)
            return outcome
        return completion.text.strip() or outcome


__all__ = ["AgentOrchestrator", "CHAT_ERROR_REPLY"]
