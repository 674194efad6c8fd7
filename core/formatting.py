"""
Pattern Relay - Output Formatting
Reasoning-markup stripping and delivery-channel HTML cleanup
"""

import re

# Tags the Telegram HTML parse mode accepts
TELEGRAM_ALLOWED_TAGS = ("b", "i", "u", "s", "a", "code", "pre")

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_UNCLOSED_THINK = re.compile(r"^.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCE_WRAPPER = re.compile(r"^```[a-zA-Z0-9_-]*\n(.*)\n```$", re.DOTALL)
_PARAGRAPH_TAG = re.compile(r"</?p\s*>", re.IGNORECASE)
_UL_BLOCK = re.compile(r"<ul\s*>(.*?)</ul\s*>", re.DOTALL | re.IGNORECASE)
_OL_BLOCK = re.compile(r"<ol\s*>(.*?)</ol\s*>", re.DOTALL | re.IGNORECASE)
_LIST_ITEM = re.compile(r"<li\s*>(.*?)</li\s*>", re.DOTALL | re.IGNORECASE)
_ANY_TAG = re.compile(r"</?([a-zA-Z][a-zA-Z0-9]*)\b[^>]*>")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def strip_think_tags(content: str) -> str:
    """
    Remove model reasoning markup from a reply.

    Drops complete <think>...</think> blocks and anything before a stray
    closing </think>. A reply that is wholly wrapped in a single code
    fence is unwrapped.

    Args:
        content: Raw backend reply

    Returns:
        Reply text without reasoning markup
    """
    if not content:
        return ""

    cleaned = _THINK_BLOCK.sub("", content)
    if "</think>" in cleaned.lower():
        cleaned = _UNCLOSED_THINK.sub("", cleaned, count=1)

    cleaned = cleaned.strip()
    fenced = _FENCE_WRAPPER.match(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    return cleaned


def _replace_unordered(match: re.Match) -> str:
    return _LIST_ITEM.sub(lambda item: f"• {item.group(1).strip()}\n", match.group(1))


def _replace_ordered(match: re.Match) -> str:
    counter = {"n": 0}

    def number(item: re.Match) -> str:
        counter["n"] += 1
        return f"{counter['n']}. {item.group(1).strip()}\n"

    return _LIST_ITEM.sub(number, match.group(1))


def _drop_unsupported_tag(match: re.Match) -> str:
    if match.group(1).lower() in TELEGRAM_ALLOWED_TAGS:
        return match.group(0)
    return ""


def clean_html_for_telegram(html: str) -> str:
    """
    Convert model HTML into the subset Telegram can display.

    Paragraphs become newlines and lists become bullet or numbered lines.
    Only b, i, u, s, a, code and pre survive; runs of 3+ newlines collapse.
    """
    if not isinstance(html, str):
        return str(html)

    result = _PARAGRAPH_TAG.sub("\n", html)
    result = _UL_BLOCK.sub(_replace_unordered, result)
    result = _OL_BLOCK.sub(_replace_ordered, result)
    result = _ANY_TAG.sub(_drop_unsupported_tag, result)
    result = _EXCESS_NEWLINES.sub("\n\n", result)
    return result.strip()


def truncate(text: str, limit: int = 50) -> str:
    """Shorten text for log lines."""
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."
