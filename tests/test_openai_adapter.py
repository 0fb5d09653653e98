"""Tests for the OpenAI chat completions adapter."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from merchant_desk.adapters.vendor_adapter_openai import (
    OpenAIChatClient,
    build_openai_messages,
    build_openai_tools,
    parse_completion,
)
from merchant_desk.models.tool import ToolDefinition, ToolInvocation, ToolResult
from merchant_desk.models.transcript import AssistantTurn, ToolResultsTurn, Transcript, UserTurn


def _completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        model="gpt-4.1-mini",
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


class TestParseCompletion:

    def test_text_only(self):
        response = parse_completion(_completion(content="Hello"))
        assert response.text == "Hello"
        assert response.tool_invocations == []
        assert response.finish_reason == "stop"

    def test_tool_calls_keep_ids(self):
        response = parse_completion(_completion(
            tool_calls=[
                _tool_call("call_1", "lookup_by_id", '{"id": "123"}'),
                _tool_call("call_2", "get_top_declines", ""),
            ],
            finish_reason="tool_calls",
        ))
        assert response.tool_invocations == [
            ToolInvocation(id="call_1", name="lookup_by_id", input={"id": "123"}),
            ToolInvocation(id="call_2", name="get_top_declines", input={}),
        ]
        assert response.text == ""

    def test_malformed_arguments_become_empty_input(self):
        response = parse_completion(_completion(tool_calls=[_tool_call("c", "lookup_by_id", "{not json")]))
        assert response.tool_invocations[0].input == {}


class TestMessages:

    def test_transcript_rendering(self):
        invocation = ToolInvocation(id="call_9", name="lookup_by_id", input={"id": "A1"})
        transcript = Transcript([
            UserTurn("find A1"),
            AssistantTurn(text="", tool_invocations=(invocation,)),
            ToolResultsTurn(results=(ToolResult("call_9", raw_text="kushki", sanitized_text="Cards"),)),
        ])
        messages = build_openai_messages("SYS", transcript)

        assert messages[0] == {"role": "system", "content": "SYS"}
        assert messages[1] == {"role": "user", "content": "find A1"}
        assert messages[2]["tool_calls"][0]["id"] == "call_9"
        assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"id": "A1"}
        # Only sanitized tool output reaches the model
        assert messages[3] == {"role": "tool", "tool_call_id": "call_9", "content": "Cards"}

    def test_tool_schema(self):
        tools = build_openai_tools([ToolDefinition(name="t", description="d", parameters_schema={"type": "object"})])
        assert tools == [{"type": "function", "function": {"name": "t", "description": "d", "parameters": {"type": "object"}}}]


class TestClient:

    @pytest.mark.asyncio
    async def test_complete_sends_tools(self):
        client = OpenAIChatClient(model="gpt-4.1-mini", max_tokens=100)
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_completion(content="ok"))
        client._client = fake

        tools = [ToolDefinition(name="t", description="d", parameters_schema={"type": "object"})]
        response = await client.complete("SYS", Transcript([UserTurn("hi")]), tools)

        assert response.text == "ok"
        kwargs = fake.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4.1-mini"
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["messages"][-1] == {"role": "user", "content": "hi"}

    def test_missing_api_key_is_configuration_error(self):
        from merchant_desk.infra.error_handler import ConfigurationError, ErrorCategory, classify_error

        with patch("merchant_desk.adapters.vendor_adapter_openai.config") as cfg:
            cfg.OPENAI_API_KEY = None
            cfg.LLM_MODEL = "gpt-4.1-mini"
            cfg.LLM_MAX_TOKENS = 100
            client = OpenAIChatClient()
            with pytest.raises(ConfigurationError) as exc_info:
                client.client
        assert classify_error(exc_info.value)[0] == ErrorCategory.CONFIGURATION
