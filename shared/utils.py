"""
shared/utils.py

Shared utility functions used across multiple modules.

This module contains common helper functions that are used by various
pipeline stages to avoid code duplication and to keep message handling
consistent across the router, the workers and the filters.
"""

import json
import logging
import re
from typing import Dict, Any, Optional, List, Sequence

from shared.models import Message, Role

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# Words and characters that are common in Portuguese and rare in English.
_PORTUGUESE_HINT_WORDS = {
    "olá", "ola", "oi", "obrigado", "obrigada", "você", "voce", "não", "nao",
    "sim", "quero", "como", "está", "esta", "bom", "dia", "tarde", "noite",
    "por", "favor", "meu", "minha", "dinheiro", "ajuda",
}
_PORTUGUESE_HINT_CHARS = set("ãõçáéíóúâêô")


def safe_json_loads(json_string: str, fallback: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Safely parse JSON string with fallback handling.

    Args:
        json_string (str): JSON string to parse
        fallback (Optional[Dict[str, Any]]): Fallback value if parsing fails

    Returns:
        Dict[str, Any]: Parsed JSON dictionary or fallback value

    LLMs sometimes wrap JSON in markdown code fences; those are stripped
    before parsing.
    """
    if isinstance(json_string, str):
        cleaned = json_string.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", cleaned)
    else:
        cleaned = json_string
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON: {e}. Using fallback value.")
        return fallback or {}


def truncate_message_for_logging(message: str, max_length: int = 100) -> str:
    """
    Truncate long messages for logging purposes.

    Args:
        message (str): Message to truncate
        max_length (int): Maximum length before truncation (default: 100)

    Returns:
        str: Truncated message with ellipsis if needed
    """
    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."


def normalize_content(content: str) -> str:
    """Collapse whitespace and case so that trivially different copies compare equal."""
    return _WHITESPACE_RE.sub(" ", content or "").strip().casefold()


def format_recent_turns(messages: Sequence[Message], limit: int = 3) -> str:
    """
    Render the last ``limit`` user/assistant exchanges as ``User:``/``Assistant:`` lines.

    System messages are skipped. A turn is one user message plus the replies
    that follow it, so up to ``2 * limit`` lines are produced.
    """
    conversational = [m for m in messages if m.role != Role.SYSTEM]
    lines = []
    for message in conversational[-2 * limit:]:
        speaker = "User" if message.role == Role.USER else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


def to_chat_messages(messages: Sequence[Message], system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
    """Convert pipeline messages to the role/content dictionaries expected by the chat completions API."""
    chat = []
    if system_prompt:
        chat.append({"role": "system", "content": system_prompt})
    for message in messages:
        chat.append({"role": message.role.value, "content": message.content})
    return chat


def looks_portuguese(text: str) -> bool:
    """Cheap heuristic used only when no detected language is available."""
    lowered = (text or "").lower()
    if any(char in _PORTUGUESE_HINT_CHARS for char in lowered):
        return True
    words = set(re.findall(r"\w+", lowered))
    return len(words & _PORTUGUESE_HINT_WORDS) >= 1
