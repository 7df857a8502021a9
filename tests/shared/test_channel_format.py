"""
Tests for `shared/channel_format.py` – markdown to channel markup.
"""

import pytest

from shared.channel_format import format_for_whatsapp, format_plain, get_formatter


@pytest.mark.parametrize("markdown,expected", [
    ("**Save** first", "*Save* first"),
    ("__Save__ first", "*Save* first"),
    ("Use the `50/30/20` rule", "Use the ```50/30/20``` rule"),
    ("Read the [guide](https://example.com/guide)", "Read the guide: https://example.com/guide"),
    ("# Budget basics", "*Budget basics*"),
    ("1. Track spending\n2) Cut costs", "• Track spending\n• Cut costs"),
    ("One\n\n\n\nTwo", "One\n\nTwo"),
])
def test_format_for_whatsapp(markdown, expected):
    assert format_for_whatsapp(markdown) == expected


def test_whatsapp_keeps_plain_text_and_empty_input():
    assert format_for_whatsapp("Just text.") == "Just text."
    assert format_for_whatsapp("") == ""


def test_get_formatter_defaults_to_plain():
    assert get_formatter("WhatsApp") is format_for_whatsapp
    assert get_formatter("sms") is format_plain
    assert get_formatter(None) is format_plain
    assert format_plain("  **kept**  ") == "**kept**"
