"""The conversation control tool.

After each reply the model calls ``should_continue`` to say whether it has a
follow-up message. It is internal: customers never see it.
"""

import json
from dataclasses import dataclass
from typing import Any

from loguru import logger

from muse.errors import ErrorCategory, log_error

SHOULD_CONTINUE = "should_continue"

SHOULD_CONTINUE_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": SHOULD_CONTINUE,
        "description": (
            "Call this right after writing a reply. Internal tool that decides whether "
            "the conversation continues. Never mention it to the customer."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "have_more_to_say": {
                    "type": "boolean",
                    "description": "true to send another message, false to finish",
                },
                "next_topic": {
                    "type": "string",
                    "description": "The next topic, or \"none\"",
                },
            },
            "required": ["have_more_to_say", "next_topic"],
        },
    },
}

CHAT_TOOLS = [SHOULD_CONTINUE_TOOL]


@dataclass
class ToolExecutionResult:
    should_continue: bool
    result: str


def execute_tool(name: str, arguments: dict[str, Any]) -> ToolExecutionResult:
    """
    Execute a control tool call.

    Only a literal ``True`` for ``have_more_to_say`` continues the
    conversation; missing, null or string values stop it. Unknown tools stop
    it too.
    """
    if name == SHOULD_CONTINUE:
        should_continue = arguments.get("have_more_to_say") is True
        topic = arguments.get("next_topic") or "none"
        logger.debug(f"{SHOULD_CONTINUE}: continue={should_continue} topic={topic}")
        return ToolExecutionResult(
            should_continue=should_continue,
            result=json.dumps({"continue": should_continue, "topic": topic}, ensure_ascii=False),
        )

    log_error(ErrorCategory.TOOL_NOT_FOUND, f"Unknown tool: {name}", "warning")
    return ToolExecutionResult(
        should_continue=False,
        result=json.dumps({"error": f"Unknown tool: {name}"}),
    )
