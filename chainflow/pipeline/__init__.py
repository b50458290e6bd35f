"""DAG pipeline engine.

This module provides the pipeline abstraction where:
- Nodes are model invocations whose prompts reference upstream outputs
- Edges order nodes into layers that run one after another
- Nodes inside a layer stream concurrently, up to a limit
- A Run carries the write-once output map between layers
"""

from .base import Edge, Node, NodeStatus, Pipeline
from .context import MemoryContext, Run
from .dag import detect_cycles, get_parent_ids, topological_layers, validate_pipeline
from .executor import NodeResult, PipelineExecutor, RunEvent, RunResult
from .prompt import build_l2_context, build_template_vars, render_template, truncate_summary
from .scheduler import SettledResult, execute_layer_with_concurrency
from .tokens import TokenBudget, TokenCounter, check_token_budget, estimate_tokens

__all__ = [
    "Edge",
    "Node",
    "NodeStatus",
    "Pipeline",
    "MemoryContext",
    "Run",
    "detect_cycles",
    "get_parent_ids",
    "topological_layers",
    "validate_pipeline",
    "NodeResult",
    "PipelineExecutor",
    "RunEvent",
    "RunResult",
    "build_l2_context",
    "build_template_vars",
    "render_template",
    "truncate_summary",
    "SettledResult",
    "execute_layer_with_concurrency",
    "TokenBudget",
    "TokenCounter",
    "check_token_budget",
    "estimate_tokens",
]
