"""
Shared formatting helpers for document rendering.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from xml.sax.saxutils import escape

NOT_PROVIDED = "Not provided"


def display(value: Any) -> str:
    """Render a field for print; empty or missing values become the NOT_PROVIDED marker."""
    if value is None:
        return NOT_PROVIDED
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = " ".join(str(value).split())
    return text or NOT_PROVIDED


def para_text(value: Any) -> str:
    """Escape text for reportlab Paragraph markup."""
    return escape(display(value))


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M %Z").strip()


def humanize_key(key: str) -> str:
    return key.replace("_", " ").strip().capitalize()
