"""Prompt templating and upstream-context assembly."""

import re
from typing import Dict, List

from .context import MemoryContext

TemplateVars = Dict[str, Dict[str, str]]

PLACEHOLDER = re.compile(r"\{\{(\w+)\.(\w+)\}\}")
TRUNCATION_MARKER = "\n[...truncated]"
SUMMARY_MAX_CHARS = 2000
L2_MAX_CHARS = 4000


def render_template(template: str, variables: TemplateVars) -> str:
    """
    Replace {{namespace.key}} with variables[namespace][key].

    Placeholders whose value is missing or not a string are left as they are.
    """

    def substitute(match: "re.Match[str]") -> str:
        group = variables.get(match.group(1))
        if isinstance(group, dict):
            value = group.get(match.group(2))
            if isinstance(value, str):
                return value
        return match.group(0)

    return PLACEHOLDER.sub(substitute, template)


def build_template_vars(memory: MemoryContext, user_input: str, node_label: str) -> TemplateVars:
    return {
        "prev": {"output": memory.l2 or ""},
        "global": {"facts": memory.l3 or ""},
        "user": {"input": user_input},
        "node": {"label": node_label},
    }


def truncate_summary(text: str, max_chars: int = SUMMARY_MAX_CHARS) -> str:
    """
    Cut text to max_chars, preferring a sentence boundary in the second half.

    The result is at most max_chars plus the truncation marker.
    """
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    cutoff = max(truncated.rfind("。"), truncated.rfind(". "))
    if cutoff > max_chars * 0.5:
        return truncated[: cutoff + 1] + TRUNCATION_MARKER
    return truncated + TRUNCATION_MARKER


def build_l2_context(parent_outputs: List[str], max_chars: int = L2_MAX_CHARS) -> str:
    """Merge parent outputs under numbered headers and truncate the result."""
    if not parent_outputs:
        return ""
    merged = "\n\n".join(
        f"[Upstream node {i} output]:\n{text}" for i, text in enumerate(parent_outputs, start=1)
    )
    return truncate_summary(merged, max_chars)
