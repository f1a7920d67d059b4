"""Turn a free-text user message into a single tool selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from office_agent.core.interfaces import LLMClient
from office_agent.core.models import AgentAction, ChatTurn
from office_agent.intelligence.decoding import decode_json_object
from office_agent.intelligence.llm import LLMError
from office_agent.intelligence.prompts import build_intent_prompt, build_tool_preamble

from .catalog import CONVERSATION, TOOL_CATALOG, ToolSpec

LOGGER = logging.getLogger(__name__)

UNPARSED_REASONING = "could not parse intent"
_REQUIRED_KEYS = ("tool", "reasoning", "parameters")


def conversation_action(reasoning: str = UNPARSED_REASONING) -> AgentAction:
    """Return the no-op action used whenever the model reply is unusable."""
    return AgentAction(tool=CONVERSATION, reasoning=reasoning, parameters={})


class IntentResolver:
    """Single round-trip tool selection over a fixed catalog."""

    def __init__(
        self, llm_client: LLMClient, catalog: Iterable[ToolSpec] = TOOL_CATALOG
    ) -> None:
        self._llm_client = llm_client
        self._preamble = build_tool_preamble(catalog)

    @property
    def preamble(self) -> str:
        return self._preamble

    async def resolve(
        self, message: str, history: Sequence[ChatTurn] = ()
    ) -> AgentAction:
        """Return the action chosen for ``message``.

        The prior ``history`` is accepted for interface symmetry with the chat
        path; tool selection only looks at the current message. Any failure,
        whether the request itself or the decoding of its reply, degrades to a
        ``conversation`` action.
        """
        prompt = build_intent_prompt(self._preamble, message)
        try:
            completion = await self._llm_client.complete(prompt)
        except LLMError as exc:
            LOGGER.warning("Intent request failed: %s", exc)
            return conversation_action()
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error while resolving intent")
            return conversation_action()

        payload = decode_json_object(completion.text, _REQUIRED_KEYS)
        if payload is None:
            LOGGER.info("Unparseable intent reply; falling back to conversation")
            return conversation_action()

        tool = payload["tool"]
        parameters = payload["parameters"]
        reasoning = payload["reasoning"]
        if not isinstance(tool, str) or not tool.strip():
            return conversation_action()
        if not isinstance(parameters, dict):
            return conversation_action()

        action = AgentAction(
            tool=tool.strip(),
            reasoning=reasoning if isinstance(reasoning, str) else str(reasoning),
            parameters=parameters,
        )
        LOGGER.debug("Resolved tool %s (history turns=%d)", action.tool, len(history))
        return action


__all__ = ["IntentResolver", "UNPARSED_REASONING", "conversation_action"]
