"""Top-level package exports for llm_cloud.

This package holds the LLM infrastructure:
    • provider.py   – OpenAI-compatible client configuration
    • completion.py – circuit-breaker-guarded completion service
    • tools/        – tool definitions & execution for tool-augmented workers
"""

from .completion import CompletionService

__all__ = [
    "CompletionService",
]
