"""
shared/channel_format.py

Translate markdown produced by the completion service into the text markup
understood by a messaging channel.

WhatsApp renders ``*bold*``, ``_italic_`` and triple-backtick monospace, and
shows links as plain text. Headings and numbered lists have no native markup,
so they become bold lines and bullets.
"""

import re
from typing import Callable, Dict

_BOLD = re.compile(r"\*\*(.+?)\*\*|__(.+?)__", re.DOTALL)
_INLINE_CODE = re.compile(r"(?<!`)`([^`\n]+)`(?!`)")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
_NUMBERED_ITEM = re.compile(r"^(\s*)\d+[.)]\s+", re.MULTILINE)
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


def format_for_whatsapp(text: str) -> str:
    """
    Convert markdown to WhatsApp markup.

    Examples:
        "**Save** first"          -> "*Save* first"
        "`50/30/20`"              -> "```50/30/20```"
        "[guide](https://x.io)"   -> "guide: https://x.io"
        "# Budget"                -> "*Budget*"
        "1. Track spending"       -> "• Track spending"
    """
    if not text:
        return text
    formatted = _LINK.sub(lambda m: f"{m.group(1)}: {m.group(2)}", text)
    formatted = _HEADING.sub(lambda m: f"*{m.group(1)}*", formatted)
    formatted = _BOLD.sub(lambda m: f"*{m.group(1) or m.group(2)}*", formatted)
    formatted = _INLINE_CODE.sub(lambda m: f"```{m.group(1)}```", formatted)
    formatted = _NUMBERED_ITEM.sub(lambda m: f"{m.group(1)}• ", formatted)
    formatted = _EXTRA_BLANK_LINES.sub("\n\n", formatted)
    return formatted.strip()


def format_plain(text: str) -> str:
    return (text or "").strip()


CHANNEL_FORMATTERS: Dict[str, Callable[[str], str]] = {
    "whatsapp": format_for_whatsapp,
    "plain": format_plain,
}


def get_formatter(channel_format: str) -> Callable[[str], str]:
    """Return the formatter for ``channel_format``, defaulting to plain text for unknown channels."""
    return CHANNEL_FORMATTERS.get((channel_format or "").lower(), format_plain)
