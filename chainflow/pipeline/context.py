"""Per-run state: the output map and the memory handed to each node."""

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class MemoryContext:
    """
    Layered memory for one node invocation. Rebuilt every time, never stored.

    l1: reserved, always empty
    l2: merged outputs of the node's parents
    l3: global facts of the pipeline
    """

    l1: str = ""
    l2: str = ""
    l3: str = ""


class Run:
    """
    One execution of a pipeline.

    Outputs are write-once: a node records its final output exactly once and
    a second write raises. Outputs are only recorded for nodes that succeeded.
    """

    def __init__(self, user_input: str = "", global_facts: str = ""):
        self.user_input = user_input
        self.global_facts = global_facts
        self.started_at = time.time()
        self._outputs: Dict[str, str] = {}

    def record(self, node_id: str, output: str) -> None:
        if node_id in self._outputs:
            raise RuntimeError(f"Output for node {node_id} already recorded")
        self._outputs[node_id] = output

    def output(self, node_id: str) -> Optional[str]:
        return self._outputs.get(node_id)

    def has_output(self, node_id: str) -> bool:
        return node_id in self._outputs

    def parent_outputs(self, parent_ids: Iterable[str]) -> List[str]:
        """Outputs of the given parents in order; missing or empty ones are dropped."""
        return [out for out in (self._outputs.get(pid, "") for pid in parent_ids) if out]

    @property
    def outputs(self) -> Dict[str, str]:
        return dict(self._outputs)

    def __repr__(self) -> str:
        return f"Run(outputs={sorted(self._outputs)})"
