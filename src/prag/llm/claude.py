"""Short completions from Claude, used for cheap classification."""

from typing import Protocol

import anthropic


class ClassificationProvider(Protocol):
    """Anything that answers a prompt with a short text."""

    def complete(self, prompt: str) -> str: ...


class ClaudeCompleter:
    """Single-turn, low-token completions through the Anthropic API."""

    def __init__(self, api_key: str | None, model: str = "claude-3-5-haiku-20241022", max_tokens: int = 5):
        if not api_key:
            raise ValueError(
                "Claude API key required. Set ANTHROPIC_API_KEY or claude_api_key in config."
            )
        self.model = model
        self.max_tokens = max_tokens
        self.client = anthropic.Anthropic(api_key=api_key)

    def complete(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")
