"""
Message text preparation.

Strips user mentions and recognises messages with nothing to translate.
"""

from typing import Iterable

import regex

MENTION_PATTERN = regex.compile(r"<@!?\d+>")

# Unicode emoji, their modifiers/joiners, whitespace and custom guild emoji
EMOJI_ONLY_PATTERN = regex.compile(
    r"^(?:[\p{Emoji}\p{Emoji_Component}\s]|<a?:\w+:\d+>)+$",
    regex.UNICODE
)


def strip_mentions(content: str) -> str:
    """Remove user mentions and surrounding whitespace."""
    return MENTION_PATTERN.sub("", content or "").strip()


def is_translatable(text: str) -> bool:
    """False for empty text and text made only of emoji and whitespace."""
    if not text:
        return False
    return EMOJI_ONLY_PATTERN.match(text) is None


def has_ignored_prefix(content: str, prefixes: Iterable[str]) -> bool:
    """True for other bots' command messages."""
    return any(content.startswith(prefix) for prefix in prefixes)
