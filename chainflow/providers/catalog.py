"""Known model names and helpers for matching probed relay model lists."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .base import Provider

MODEL_OPTIONS: Dict[Provider, List[str]] = {
    Provider.CLAUDE: [
        "claude-opus-4-6",
        "claude-opus-4-5",
        "claude-sonnet-4-6",
        "claude-sonnet-4-5",
        "claude-sonnet-4-20250514",
        "claude-3-7-sonnet-20250219",
        "claude-haiku-4-5",
    ],
    Provider.OPENAI: [
        "gpt-4o",
        "gpt-4o-mini",
        "o1-preview",
        "o1-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "chatgpt-4o-latest",
    ],
    Provider.GEMINI: ["gemini-2.0-flash", "gemini-1.5-pro", "gemini-1.5-flash"],
}

# Higher score = stronger model
MODEL_STRENGTH: Dict[str, Tuple[int, Provider]] = {
    "claude-opus-4-6": (102, Provider.CLAUDE),
    "claude-opus-4-5-20251101": (101, Provider.CLAUDE),
    "claude-opus-4-5": (101, Provider.CLAUDE),
    "claude-opus-4-20250514": (100, Provider.CLAUDE),
    "claude-opus-4": (100, Provider.CLAUDE),
    "claude-sonnet-4-6": (97, Provider.CLAUDE),
    "claude-sonnet-4-5-20250929": (96, Provider.CLAUDE),
    "claude-sonnet-4-5": (96, Provider.CLAUDE),
    "claude-sonnet-4-20250514": (95, Provider.CLAUDE),
    "claude-sonnet-4": (95, Provider.CLAUDE),
    "claude-3-7-sonnet-20250219": (91, Provider.CLAUDE),
    "claude-3-5-sonnet": (90, Provider.CLAUDE),
    "claude-3-opus": (88, Provider.CLAUDE),
    "claude-3-sonnet": (75, Provider.CLAUDE),
    "claude-3-5-haiku": (70, Provider.CLAUDE),
    "claude-haiku-4-5": (70, Provider.CLAUDE),
    "claude-3-haiku": (60, Provider.CLAUDE),
    "o1-preview": (98, Provider.OPENAI),
    "o1": (97, Provider.OPENAI),
    "gpt-4o": (92, Provider.OPENAI),
    "chatgpt-4o-latest": (92, Provider.OPENAI),
    "gpt-4-turbo": (85, Provider.OPENAI),
    "gpt-4": (82, Provider.OPENAI),
    "o1-mini": (78, Provider.OPENAI),
    "gpt-4o-mini": (72, Provider.OPENAI),
    "gpt-3.5-turbo": (55, Provider.OPENAI),
    "gemini-1.5-pro": (85, Provider.GEMINI),
    "gemini-2.0-flash": (80, Provider.GEMINI),
    "gemini-1.5-flash": (70, Provider.GEMINI),
}


@dataclass(frozen=True)
class ModelPick:
    model: str
    provider: Provider
    score: int


def detect_provider(model: str) -> Provider:
    """Guess the provider from a model name. Relays mostly speak OpenAI, so that is the default."""
    lower = model.lower()
    if "claude" in lower:
        return Provider.CLAUDE
    if "gemini" in lower:
        return Provider.GEMINI
    return Provider.OPENAI


def pick_strongest_model(models: List[str]) -> Optional[ModelPick]:
    """
    Pick the strongest known model from a probed list.

    Exact (case-insensitive) table hits win on score; otherwise any table key
    that is a substring of the name (or vice versa) counts. With no match at
    all the first model is returned with a score of 0.
    """
    best: Optional[ModelPick] = None

    for name in models:
        lower = name.lower()
        info = MODEL_STRENGTH.get(lower)
        if info:
            if best is None or info[0] > best.score:
                best = ModelPick(name, info[1], info[0])
            continue
        for key, (score, provider) in MODEL_STRENGTH.items():
            if key in lower or lower in key:
                if best is None or score > best.score:
                    best = ModelPick(name, provider, score)

    if best is None and models:
        best = ModelPick(models[0], detect_provider(models[0]), 0)
    return best


def fuzzy_match_model(parsed: str, available: List[str]) -> Optional[str]:
    """
    Match a user-typed model name against the models a relay actually serves.

    Tries exact, case-insensitive, dots-to-dashes ("4.5" vs "4-5") and then
    substring matches, in that order.
    """
    if not parsed or not available:
        return None
    if parsed in available:
        return parsed

    lower = parsed.lower()
    for name in available:
        if name.lower() == lower:
            return name

    normalized = re.sub(r"\.", "-", lower)
    for name in available:
        if name.lower() == normalized:
            return name

    for name in available:
        candidate = name.lower().replace(".", "-")
        if normalized in candidate or candidate in normalized:
            return name
    return None
