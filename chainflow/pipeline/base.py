"""Pipeline graph types: nodes, edges and the pipeline that holds them."""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from ..providers.base import EffortLevel, Provider

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
DEFAULT_USER_PROMPT_TEMPLATE = "{{prev.output}}\n\n{{user.input}}"


class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    # Completed without producing any output
    WARNING = "warning"
    CANCELLED = "cancelled"

    @property
    def finished(self) -> bool:
        return self not in (NodeStatus.IDLE, NodeStatus.RUNNING)


@dataclass
class Node:
    """
    One model invocation in the graph.

    The configuration fields are fixed for a run. The transient fields
    (status through latency_ms) are written only by the node's own task and
    reset to idle when a run starts.
    """

    id: str
    label: str = "New node"
    provider: Provider = Provider.CLAUDE
    model: str = "claude-sonnet-4-20250514"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_prompt_template: str = DEFAULT_USER_PROMPT_TEMPLATE
    temperature: float = 0.7
    max_tokens: int = 4096
    effort: EffortLevel = EffortLevel.MEDIUM
    optimize_prompt: bool = False

    status: NodeStatus = NodeStatus.IDLE
    output: str = ""
    error: str = ""
    token_count: int = 0
    latency_ms: int = 0

    def reset(self) -> None:
        self.status = NodeStatus.IDLE
        self.output = ""
        self.error = ""
        self.token_count = 0
        self.latency_ms = 0

    def fail(self, message: str) -> None:
        self.status = NodeStatus.ERROR
        self.error = message

    def chat_payload(self, api_key: str, user_prompt: str, base_url: Optional[str] = None) -> Dict[str, Any]:
        """Raw chat request for this node, in the wire form the gateway validates."""
        payload: Dict[str, Any] = {
            "provider": Provider(self.provider).value,
            "model": self.model,
            "apiKey": api_key,
            "systemPrompt": self.system_prompt,
            "userPrompt": user_prompt,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "effort": EffortLevel(self.effort).value,
            "optimizePrompt": self.optimize_prompt,
        }
        if base_url:
            payload["baseUrl"] = base_url
        return payload


@dataclass(frozen=True)
class Edge:
    source: str
    target: str


@dataclass
class Pipeline:
    """
    A graph of nodes plus the global facts every node can reference.

    Structure is treated as immutable while a run is in progress; with_node()
    and with_edge() return new pipelines instead of changing this one.
    """

    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    global_facts: str = ""
    name: str = "pipeline"

    def get(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def with_node(self, node: Node) -> "Pipeline":
        return replace(self, nodes=self.nodes + [node])

    def with_edge(self, source: str, target: str) -> "Pipeline":
        return replace(self, edges=self.edges + [Edge(source, target)])

    def reset(self) -> None:
        for node in self.nodes:
            node.reset()

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"Pipeline(name={self.name!r}, nodes={self.node_ids}, edges={len(self.edges)})"


def now_ms() -> float:
    return time.perf_counter() * 1000
