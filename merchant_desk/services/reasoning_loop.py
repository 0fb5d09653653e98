"""Bounded tool-use loop between the model and the tool dispatcher."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from merchant_desk.infra.metrics import reasoning_rounds
from merchant_desk.models.tool import LLMResponse, ToolDefinition
from merchant_desk.models.transcript import AssistantTurn, ToolResultsTurn, Transcript, UserTurn
from merchant_desk.services.tool_execution_engine import execute_tool_call
from merchant_desk.services.tool_registry import ToolContext, get_tool_definitions, get_tool_spec

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5
TOO_MANY_STEPS_MESSAGE = "I needed too many steps to answer that. Please try a more specific question."
EMPTY_ANSWER_MESSAGE = "I couldn't generate a response."


class LoopState(str, Enum):
    ROUND_START = "round_start"
    LLM_CALL = "llm_call"
    EXECUTE_TOOLS = "execute_tools"
    DONE = "done"
    EXHAUSTED = "exhausted"


@dataclass
class LoopResult:
    answer: str
    rounds: int
    tool_calls: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    outcome: LoopState = LoopState.DONE
    ticket_created: bool = False

    @property
    def exhausted(self) -> bool:
        return self.outcome == LoopState.EXHAUSTED


class ReasoningLoop:
    """
    Runs ROUND_START → LLM_CALL → (DONE | EXECUTE_TOOLS → ROUND_START).

    A response with no tool invocations ends the loop whatever its
    finish_reason says. After MAX_TOOL_ROUNDS model calls that all asked for
    tools, the loop ends in EXHAUSTED with a fixed message.
    """

    def __init__(self, llm_client, max_rounds: int = MAX_TOOL_ROUNDS,
                 tools: Optional[List[ToolDefinition]] = None):
        self.llm_client = llm_client
        self.max_rounds = max_rounds
        self.tools = tools if tools is not None else get_tool_definitions()

    async def run(self, question: str, system_prompt: str, tool_ctx: ToolContext) -> LoopResult:
        transcript = Transcript([UserTurn(question)])
        result = LoopResult(answer="", rounds=0)
        state = LoopState.ROUND_START
        response: Optional[LLMResponse] = None

        while True:
            if state == LoopState.ROUND_START:
                if result.rounds >= self.max_rounds:
                    state = LoopState.EXHAUSTED
                    continue
                result.rounds += 1
                state = LoopState.LLM_CALL

            elif state == LoopState.LLM_CALL:
                response = await self.llm_client.complete(system_prompt, transcript, self.tools)
                state = LoopState.EXECUTE_TOOLS if response.tool_invocations else LoopState.DONE

            elif state == LoopState.EXECUTE_TOOLS:
                invocations = tuple(response.tool_invocations)
                names = [invocation.name for invocation in invocations]
                logger.info(f"Round {result.rounds}: model requested tools {names} "
                            f"for {tool_ctx.tenant.display_name}")
                for invocation in invocations:
                    result.tool_calls.append((invocation.name, dict(invocation.input)))
                    spec = get_tool_spec(invocation.name)
                    if spec is not None and spec.creates_ticket:
                        result.ticket_created = True

                transcript.append(AssistantTurn(text=response.text, tool_invocations=invocations))
                tool_results = await asyncio.gather(
                    *(execute_tool_call(invocation, tool_ctx) for invocation in invocations)
                )
                transcript.append(ToolResultsTurn(results=tuple(tool_results)))
                state = LoopState.ROUND_START

            elif state == LoopState.DONE:
                result.answer = response.text or EMPTY_ANSWER_MESSAGE
                result.outcome = LoopState.DONE
                break

            elif state == LoopState.EXHAUSTED:
                logger.warning(f"Tool round limit ({self.max_rounds}) reached for "
                               f"{tool_ctx.tenant.display_name}")
                result.answer = TOO_MANY_STEPS_MESSAGE
                result.outcome = LoopState.EXHAUSTED
                break

        reasoning_rounds.observe(result.rounds)
        return result
