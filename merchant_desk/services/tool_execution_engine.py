"""Tool execution engine that validates, routes and isolates tool calls."""

import json
import logging
import time
from typing import Any, Dict

from pydantic import ValidationError

from merchant_desk.infra.metrics import tool_calls_total, tool_call_duration
from merchant_desk.models.tool import ToolInvocation, ToolResult
from merchant_desk.services.date_range import resolve_tool_date_range
from merchant_desk.services.tool_registry import ToolContext, get_tool_spec
from merchant_desk.services.vendor_masking import sanitize_text

logger = logging.getLogger(__name__)


def _result(invocation: ToolInvocation, raw_text: str, is_error: bool = False) -> ToolResult:
    return ToolResult(
        invocation_id=invocation.id,
        raw_text=raw_text,
        sanitized_text=sanitize_text(raw_text),
        is_error=is_error,
    )


def _format_validation_error(tool_name: str, error: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
        for err in error.errors()
    )
    return f"Error: invalid input for {tool_name}: {problems}"


async def execute_tool_call(invocation: ToolInvocation, ctx: ToolContext) -> ToolResult:
    """
    Execute one tool invocation for the tenant in ctx.

    Never raises. Unknown tools, invalid input and handler failures all become
    textual tool output so the model can recover conversationally and sibling
    invocations in the same round are unaffected. Every output, success or
    failure, is passed through the vendor-name sanitizer.

    Args:
        invocation: Tool call as requested by the model
        ctx: Tenant scope and data access for this request

    Returns:
        ToolResult keyed by the model's invocation id
    """
    spec = get_tool_spec(invocation.name)
    if spec is None:
        logger.warning(f"Unknown tool requested: {invocation.name}")
        tool_calls_total.labels(tool_name="unknown", status="rejected").inc()
        return _result(invocation, f"Unknown tool: {invocation.name}", is_error=True)

    try:
        params = spec.input_model.model_validate(invocation.input or {})
    except ValidationError as e:
        tool_calls_total.labels(tool_name=spec.name, status="rejected").inc()
        return _result(invocation, _format_validation_error(spec.name, e), is_error=True)

    start_time = time.time()
    try:
        date_range = None
        if spec.uses_date_range:
            date_range = resolve_tool_date_range(
                date_range=params.date_range,
                start_date=params.start_date,
                end_date=params.end_date,
            )
            if date_range.label.startswith("Today (unrecognized"):
                logger.info(f"Date range fallback for {spec.name}: {date_range.label}")

        payload: Dict[str, Any] = await spec.handler(ctx, params, date_range)
        raw_text = json.dumps(payload, default=str, ensure_ascii=False)
    except Exception as e:
        tool_calls_total.labels(tool_name=spec.name, status="failure").inc()
        logger.error(
            f"Tool execution failed for {spec.name} "
            f"(merchant={ctx.tenant.display_name}, input={invocation.input}): {e}",
            exc_info=True,
        )
        return _result(invocation, f"Error executing {spec.name}: {e}", is_error=True)
    finally:
        tool_call_duration.labels(tool_name=spec.name).observe(time.time() - start_time)

    tool_calls_total.labels(tool_name=spec.name, status="success").inc()
    return _result(invocation, raw_text)
