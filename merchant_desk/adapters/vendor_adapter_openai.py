"""OpenAI vendor adapter for Chat Completions with function tools."""

import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from merchant_desk.infra.config import config
from merchant_desk.infra.error_handler import ConfigurationError
from merchant_desk.infra.metrics import llm_call_duration, llm_calls_total
from merchant_desk.models.tool import LLMResponse, ToolDefinition, ToolInvocation
from merchant_desk.models.transcript import AssistantTurn, ToolResultsTurn, Transcript, UserTurn

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    """What the reasoning loop needs from a completion service."""

    async def complete(
        self,
        system_prompt: str,
        transcript: Transcript,
        tools: List[ToolDefinition],
    ) -> LLMResponse:
        ...


def build_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """
    Convert canonical ToolDefinition objects to OpenAI tool schema.

    Args:
        tools: List of canonical ToolDefinition objects

    Returns:
        List of OpenAI tool dicts in OpenAI format
    """
    openai_tools = []
    for tool in tools:
        openai_tool = {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema or {},
            }
        }
        openai_tools.append(openai_tool)
    return openai_tools


def build_openai_messages(system_prompt: str, transcript: Transcript) -> List[Dict[str, Any]]:
    """
    Render the transcript as chat messages.

    A tool-results turn becomes one ``role: tool`` message per result, keyed
    by the invocation id the model issued.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in transcript:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, AssistantTurn):
            message: Dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            if turn.tool_invocations:
                message["tool_calls"] = [
                    {
                        "id": invocation.id,
                        "type": "function",
                        "function": {
                            "name": invocation.name,
                            "arguments": json.dumps(invocation.input, ensure_ascii=False),
                        },
                    }
                    for invocation in turn.tool_invocations
                ]
            messages.append(message)
        elif isinstance(turn, ToolResultsTurn):
            for result in turn.results:
                messages.append({
                    "role": "tool",
                    "tool_call_id": result.invocation_id,
                    "content": result.sanitized_text,
                })
    return messages


def _parse_arguments(raw: Optional[str], tool_name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Model sent non-JSON arguments for {tool_name}: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_completion(response_obj: Any) -> LLMResponse:
    """Split the first choice into text blocks and tool invocations."""
    if not response_obj.choices:
        return LLMResponse(model=getattr(response_obj, "model", None))
    choice = response_obj.choices[0]
    text_blocks = [choice.message.content] if choice.message.content else []
    invocations = [
        ToolInvocation(
            id=tc.id,
            name=tc.function.name,
            input=_parse_arguments(tc.function.arguments, tc.function.name),
        )
        for tc in (choice.message.tool_calls or [])
    ]
    return LLMResponse(
        text_blocks=text_blocks,
        tool_invocations=invocations,
        finish_reason=choice.finish_reason,
        model=response_obj.model,
    )


class OpenAIChatClient:
    """Chat Completions client used as the reasoning loop's planner."""

    def __init__(self, model: Optional[str] = None, max_tokens: Optional[int] = None):
        self.model = model or config.LLM_MODEL
        self.max_tokens = max_tokens or config.LLM_MAX_TOKENS
        self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            if not config.OPENAI_API_KEY:
                raise ConfigurationError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(
                api_key=config.OPENAI_API_KEY,
                timeout=config.LLM_TIMEOUT_SECONDS,
                max_retries=config.LLM_MAX_RETRIES,
            )
        return self._client

    async def complete(
        self,
        system_prompt: str,
        transcript: Transcript,
        tools: List[ToolDefinition],
    ) -> LLMResponse:
        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": build_openai_messages(system_prompt, transcript),
            "max_tokens": self.max_tokens,
        }
        if tools:
            request_params["tools"] = build_openai_tools(tools)
            request_params["tool_choice"] = "auto"

        start_time = time.time()
        try:
            response_obj = await self.client.chat.completions.create(**request_params)
        except Exception:
            llm_calls_total.labels(model=self.model, status="failure").inc()
            raise
        finally:
            llm_call_duration.labels(model=self.model).observe(time.time() - start_time)

        llm_calls_total.labels(model=self.model, status="success").inc()
        if response_obj.usage:
            logger.debug(
                f"LLM usage: prompt={response_obj.usage.prompt_tokens} "
                f"completion={response_obj.usage.completion_tokens}"
            )
        return parse_completion(response_obj)
