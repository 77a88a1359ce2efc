"""Heuristic mapping from a message to a reasoning profile."""
from __future__ import annotations

import math
import re
import unicodedata
from typing import TYPE_CHECKING

from .models import RuntimeStatus
from .profiles import LEAST_CAPABLE, MID_CAPABLE, MOST_CAPABLE

if TYPE_CHECKING:
    from .config import AssistantSettings
    from .profiles import ProfileRegistry

# Any of these (accent- and case-insensitive) forces the most capable profile.
THOUGHTFUL_KEYWORDS = ("proyecto", "arquitectura")

LONG_MESSAGE_TOKENS = 1500
MEDIUM_MESSAGE_TOKENS = 200

_WHITESPACE_RE = re.compile(r"\s+")


def strip_diacritics(text: str) -> str:
    """Lowercase *text* and drop combining marks (``Arquitéctura`` → ``arquitectura``)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(
        ch for ch in decomposed if not unicodedata.combining(ch)
    ).lower()


def estimate_token_count(content: str) -> int:
    text = content.strip()
    if not text:
        return 0
    words = len(_WHITESPACE_RE.split(text))
    characters = len(_WHITESPACE_RE.sub("", text))
    return max(math.ceil(words * 0.8), math.ceil(characters / 4))


def select_profile(token_count: float, content: str) -> str:
    """Pick a profile id from an estimated token count and the message text."""
    if (
        not isinstance(token_count, (int, float))
        or isinstance(token_count, bool)
        or not math.isfinite(token_count)
        or token_count < 0
    ):
        return LEAST_CAPABLE

    normalized = strip_diacritics(content or "")
    matches_keyword = any(k in normalized for k in THOUGHTFUL_KEYWORDS)

    if token_count > LONG_MESSAGE_TOKENS or matches_keyword:
        return MOST_CAPABLE
    if token_count > MEDIUM_MESSAGE_TOKENS:
        return MID_CAPABLE
    return LEAST_CAPABLE


def choose_profile(content: str) -> str:
    """Estimate tokens for *content* and select a profile for it."""
    return select_profile(estimate_token_count(content), content)


def resolve_active_profile(
    settings: AssistantSettings,
    content: str,
    registry: ProfileRegistry,
    status: RuntimeStatus = RuntimeStatus.NONE,
) -> str:
    """Honour manual pinning, otherwise auto-select; then adapt to runtime."""
    if settings.profile_mode == "manual" and settings.manual_profile_id in registry:
        profile_id = settings.manual_profile_id
    else:
        profile_id = choose_profile(content)
    return registry.resolve_for_runtime(profile_id, status)
