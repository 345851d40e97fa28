from __future__ import annotations

import re
from typing import Optional, Set
from uuid import UUID

# <@{userId}|{displayName}>; the display name is opaque and never validated.
MENTION_PATTERN = re.compile(r"<@([a-fA-F0-9-]+)\|([^>]+)>")


def normalize_user_id(value) -> Optional[str]:
    """Return the canonical lowercase UUID string, or None if value is not a UUID."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return str(value)
    try:
        return str(UUID(str(value).strip()))
    except (TypeError, ValueError, AttributeError):
        return None


def extract_mentions(content: Optional[str], author_id: Optional[str] = None) -> Set[str]:
    """
    Collect the distinct user ids referenced by mention tokens in `content`.

    Tokens whose id does not parse as a UUID are ignored, and the author is
    never returned as a mention of themself.
    """
    if not content:
        return set()
    author = normalize_user_id(author_id)
    mentioned: Set[str] = set()
    for match in MENTION_PATTERN.finditer(content):
        user_id = normalize_user_id(match.group(1))
        if user_id and user_id != author:
            mentioned.add(user_id)
    return mentioned


def format_mention(user_id: str, display_name: str) -> str:
    return f"<@{user_id}|{display_name}>"
