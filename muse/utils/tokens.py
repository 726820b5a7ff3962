"""Token estimation and history truncation.

Estimates are a fast offline approximation: dense CJK script costs roughly
1.5 characters per token, everything else roughly 4 characters per token.
No tokenizer download or network call is involved.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

# Hiragana, katakana, CJK symbols/punctuation and unified ideographs
_CJK_RE = re.compile(r"[\u3000-\u9fff]")

CJK_CHARS_PER_TOKEN = 1.5
OTHER_CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD = 4  # role + separators

DEFAULT_CONTEXT_BUDGET = 100000
_CONTEXT_BUDGETS: dict[str, int] = {
    "claude": 200000,
    "grok": 131072,
    "openai": 128000,
}


def estimate_tokens(text: str) -> int:
    """
    Estimate the token cost of a text string.

    Args:
        text: The text to estimate.

    Returns:
        Estimated number of tokens.
    """
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk / CJK_CHARS_PER_TOKEN + other / OTHER_CHARS_PER_TOKEN)


def estimate_message_tokens(message: dict[str, Any]) -> int:
    """Estimate a single message including its fixed overhead."""
    content = message.get("content", "")
    if not isinstance(content, str):
        content = str(content)
    return estimate_tokens(content) + MESSAGE_OVERHEAD


def estimate_messages_tokens(messages: list[dict[str, Any]]) -> int:
    """Estimate the total cost of a list of messages."""
    return sum(estimate_message_tokens(m) for m in messages)


def truncate_messages(
    messages: list[dict[str, Any]],
    total_budget: int,
    reserved: int = 4000,
) -> list[dict[str, Any]]:
    """
    Drop the oldest messages until the rest fits in the budget.

    Walks from the most recent message backwards and stops at the first
    message that would overflow ``total_budget - reserved``. Messages are
    kept or dropped whole.

    Args:
        messages: Conversation messages, oldest first.
        total_budget: Tokens available for the messages.
        reserved: Tokens held back (response, system prompt).

    Returns:
        A suffix of ``messages`` whose estimated cost fits the budget.
    """
    available = total_budget - reserved
    total = 0
    start = len(messages)

    for i in range(len(messages) - 1, -1, -1):
        tokens = estimate_message_tokens(messages[i])
        if total + tokens > available:
            break
        total += tokens
        start = i

    return messages[start:]


def context_budget(provider: str) -> int:
    """Get the context window size for a provider family."""
    return _CONTEXT_BUDGETS.get(provider.lower(), DEFAULT_CONTEXT_BUDGET)


def available_for_history(
    provider: str,
    system_prompt_tokens: int,
    reserve_for_response: int = 4000,
) -> int:
    """Tokens left for conversation history once the system prompt and response are paid for."""
    return context_budget(provider) - system_prompt_tokens - reserve_for_response


@dataclass
class TokenBudget:
    """Context window split for one model call.

    ``reserved`` covers the worst-case response length and must be at least
    the generation ``max_tokens``.
    """

    total_budget: int
    reserved: int
    system_prompt_cost: int = 0

    def __post_init__(self) -> None:
        if self.reserved < 0 or self.total_budget < 0:
            raise ValueError("Token budget values must be non-negative")

    @classmethod
    def for_provider(
        cls,
        provider: str,
        system_prompt: str = "",
        reserved: int = 4000,
        max_tokens: int = 0,
    ) -> "TokenBudget":
        """Build a budget for a provider family and system prompt."""
        return cls(
            total_budget=context_budget(provider),
            reserved=max(reserved, max_tokens),
            system_prompt_cost=estimate_tokens(system_prompt),
        )

    @property
    def available(self) -> int:
        """Tokens available for history."""
        return max(0, self.total_budget - self.reserved - self.system_prompt_cost)

    def fit(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Truncate ``messages`` to what this budget allows."""
        return truncate_messages(
            messages,
            self.total_budget,
            self.reserved + self.system_prompt_cost,
        )
