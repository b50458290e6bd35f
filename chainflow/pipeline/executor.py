"""Pipeline executor: validate, plan layers, run node tasks, report events.

Layers run strictly in order. Inside a layer up to `concurrency` node tasks
stream at once. A failing node never stops its layer; it is recorded and its
dependents see an empty slot where its output would have been.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .. import config
from ..credentials import CredentialStore
from ..gateway import ChatGateway
from ..gateway.validation import validate_chat_payload
from ..providers.base import ChunkType, Provider
from .base import Node, NodeStatus, Pipeline, now_ms
from .context import MemoryContext, Run
from .dag import detect_cycles, get_parent_ids, topological_layers, validate_pipeline
from .prompt import build_l2_context, build_template_vars, render_template
from .scheduler import execute_layer_with_concurrency
from .tokens import TokenBudget, TokenCounter, check_token_budget

logger = logging.getLogger(__name__)

CYCLE_ERROR = "Cycle detected in pipeline dependencies"
SKIPPED_ERROR = "Skipped: an upstream node failed"

RUN_STARTED = "run_started"
LAYER_STARTED = "layer_started"
NODE_STARTED = "node_started"
NODE_CHUNK = "node_chunk"
NODE_FINISHED = "node_finished"
RUN_FINISHED = "run_finished"
RUN_BLOCKED = "run_blocked"


@dataclass
class NodeResult:
    node_id: str
    status: NodeStatus
    output: str = ""
    error: str = ""
    token_count: int = 0
    latency_ms: int = 0
    budget: Optional[TokenBudget] = None

    @classmethod
    def from_node(cls, node: Node) -> "NodeResult":
        budget = None
        if node.status in (NodeStatus.SUCCESS, NodeStatus.WARNING):
            budget = check_token_budget(node.token_count, node.max_tokens)
        return cls(
            node_id=node.id,
            status=node.status,
            output=node.output,
            error=node.error,
            token_count=node.token_count,
            latency_ms=node.latency_ms,
            budget=budget,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "token_count": self.token_count,
            "latency_ms": self.latency_ms,
            "budget": asdict(self.budget) if self.budget else None,
        }


@dataclass
class RunEvent:
    type: str
    node_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        event: Dict[str, Any] = {"type": self.type}
        if self.node_id is not None:
            event["node_id"] = self.node_id
        for key, value in self.data.items():
            event[key] = value.to_dict() if hasattr(value, "to_dict") else value
        return event

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


@dataclass
class RunResult:
    pipeline: str
    status: str
    layers: List[List[str]] = field(default_factory=list)
    nodes: Dict[str, NodeResult] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def blocked(self) -> bool:
        return self.status == "blocked"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "status": self.status,
            "layers": self.layers,
            "nodes": {nid: r.to_dict() for nid, r in self.nodes.items()},
            "outputs": self.outputs,
        }


class PipelineExecutor:
    """
    Runs pipelines through a ChatGateway.

    Args:
        gateway: Gateway that streams each node's request
        credentials: Key and endpoint lookup per provider
        concurrency: Max node tasks streaming at once inside a layer
        skip_on_failed_parent: Mark dependents of a failed node as errors
            instead of running them with an empty slot
        token_counter: Counter for finished outputs (a private one per run if None)
    """

    def __init__(
        self,
        gateway: ChatGateway,
        credentials: CredentialStore,
        concurrency: int = config.PIPELINE_CONCURRENCY,
        skip_on_failed_parent: bool = config.SKIP_ON_FAILED_PARENT,
        token_counter: Optional[TokenCounter] = None,
        l2_max_chars: int = config.L2_MAX_CHARS,
    ):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")
        self.gateway = gateway
        self.credentials = credentials
        self.concurrency = concurrency
        self.skip_on_failed_parent = skip_on_failed_parent
        self.token_counter = token_counter
        self.l2_max_chars = l2_max_chars
        self._prefix = uuid.uuid4().hex[:8]
        self._slots: Dict[str, str] = {}
        self._cancelled = False

    def _slot(self, node_id: str) -> str:
        return f"{self._prefix}:{node_id}"

    def cancel(self) -> int:
        """Cancel every live node stream; layers not yet started will not start."""
        self._cancelled = True
        count = 0
        for slot in list(self._slots.values()):
            if self.gateway.streams.cancel(slot, "run cancelled"):
                count += 1
        logger.info(f"Run cancelled, {count} live node streams stopped")
        return count

    async def run(
        self,
        pipeline: Pipeline,
        user_input: str = "",
        on_event: Optional[Callable[[RunEvent], None]] = None,
    ) -> RunResult:
        """Execute the pipeline to completion and return per-node results."""
        result: Optional[RunResult] = None
        async for event in self.stream(pipeline, user_input):
            if on_event is not None:
                on_event(event)
            if event.type in (RUN_FINISHED, RUN_BLOCKED):
                result = event.data["result"]
        if result is None:
            raise RuntimeError(f"Run of {pipeline.name} ended without a result")
        return result

    async def stream(self, pipeline: Pipeline, user_input: str = "") -> AsyncIterator[RunEvent]:
        """
        Execute the pipeline, yielding RunEvents as they happen.

        The final event is `run_finished` (or `run_blocked` for a cyclic graph)
        and carries the RunResult under data["result"].

        Raises:
            PipelineValidationError: Duplicate node ids or dangling edges
        """
        self._cancelled = False

        cycles = detect_cycles(pipeline.nodes, pipeline.edges)
        if cycles:
            pipeline.reset()
            for node in pipeline:
                if node.id in cycles:
                    node.fail(CYCLE_ERROR)
            result = RunResult(
                pipeline=pipeline.name,
                status="blocked",
                nodes={n.id: NodeResult.from_node(n) for n in pipeline if n.id in cycles},
            )
            logger.warning(f"✗ Run of {pipeline.name} blocked: {CYCLE_ERROR}")
            yield RunEvent(RUN_BLOCKED, data={"node_ids": sorted(cycles), "error": CYCLE_ERROR, "result": result})
            return

        validate_pipeline(pipeline)

        queue: "asyncio.Queue[Optional[RunEvent]]" = asyncio.Queue()
        driver = asyncio.ensure_future(self._drive(pipeline, user_input, queue.put_nowait))
        driver.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await driver
        finally:
            if not driver.done():
                self.cancel()
                driver.cancel()
                try:
                    await driver
                except asyncio.CancelledError:
                    pass

    async def _drive(self, pipeline: Pipeline, user_input: str, emit: Callable[[RunEvent], None]) -> None:
        pipeline.reset()
        run = Run(user_input=user_input, global_facts=pipeline.global_facts)
        layers = topological_layers(pipeline.nodes, pipeline.edges)
        logger.info(f"Running {pipeline.name}: {len(layers)} layers, {len(pipeline)} nodes")
        emit(RunEvent(RUN_STARTED, data={"pipeline": pipeline.name, "layers": layers}))

        counter = self.token_counter or TokenCounter()
        owns_counter = self.token_counter is None
        if owns_counter:
            counter.start()

        try:
            for index, layer in enumerate(layers):
                if self._cancelled:
                    for nid in layer:
                        node = pipeline.get(nid)
                        node.status = NodeStatus.CANCELLED
                        emit(RunEvent(NODE_FINISHED, nid, NodeResult.from_node(node).to_dict()))
                    continue

                emit(RunEvent(LAYER_STARTED, data={"layer": index, "node_ids": layer}))
                nodes = [pipeline.get(nid) for nid in layer]
                tasks = [self._node_task(node, pipeline, run, counter, emit) for node in nodes]
                settled = await execute_layer_with_concurrency(tasks, self.concurrency)

                for outcome in settled:
                    if outcome.ok:
                        continue
                    node = nodes[outcome.index]
                    logger.error(f"✗ Node {node.id} task crashed: {outcome.error}")
                    node.fail(str(outcome.error)[: config.NODE_ERROR_MAX_CHARS])
                    emit(RunEvent(NODE_FINISHED, node.id, NodeResult.from_node(node).to_dict()))
        finally:
            if owns_counter:
                await counter.stop()

        result = RunResult(
            pipeline=pipeline.name,
            status="cancelled" if self._cancelled else "completed",
            layers=layers,
            nodes={n.id: NodeResult.from_node(n) for n in pipeline},
            outputs=run.outputs,
        )
        failed = sum(1 for r in result.nodes.values() if r.status == NodeStatus.ERROR)
        marker = "✓" if failed == 0 else "✗"
        logger.info(f"{marker} Run of {pipeline.name} {result.status} ({failed} failed nodes)")
        emit(RunEvent(RUN_FINISHED, data={"result": result}))

    def _node_task(self, node: Node, pipeline: Pipeline, run: Run, counter: TokenCounter, emit):
        async def task() -> NodeStatus:
            await self._run_node(node, pipeline, run, counter, emit)
            return node.status

        return task

    async def _run_node(
        self,
        node: Node,
        pipeline: Pipeline,
        run: Run,
        counter: TokenCounter,
        emit: Callable[[RunEvent], None],
    ) -> None:
        def finish() -> None:
            emit(RunEvent(NODE_FINISHED, node.id, NodeResult.from_node(node).to_dict()))

        if self._cancelled:
            node.status = NodeStatus.CANCELLED
            finish()
            return

        node.status = NodeStatus.RUNNING
        emit(RunEvent(NODE_STARTED, node.id, {"label": node.label}))

        parent_ids = get_parent_ids(node.id, pipeline.edges)
        if self.skip_on_failed_parent and any(not run.has_output(pid) for pid in parent_ids):
            node.fail(SKIPPED_ERROR)
            finish()
            return

        provider = Provider(node.provider)
        api_key = self.credentials.get_key(provider)
        if not api_key:
            node.fail(f"No API key configured for {provider.value}")
            finish()
            return
        base_url = self.credentials.get_endpoint(provider)

        memory = MemoryContext(
            l2=build_l2_context(run.parent_outputs(parent_ids), self.l2_max_chars),
            l3=run.global_facts,
        )
        prompt = render_template(
            node.user_prompt_template, build_template_vars(memory, run.user_input, node.label)
        )

        validation = validate_chat_payload(node.chat_payload(api_key, prompt, base_url))
        if not validation.ok:
            node.fail(validation.message[: config.NODE_ERROR_MAX_CHARS])
            finish()
            return

        slot = self._slot(node.id)
        token = self.gateway.streams.start(slot)
        self._slots[node.id] = slot
        started = now_ms()
        stream_error = ""
        try:
            async for chunk in self.gateway.stream_chat(validation.payload, token):
                if chunk.type == ChunkType.TEXT:
                    node.output += chunk.content
                    emit(RunEvent(NODE_CHUNK, node.id, chunk.to_dict()))
                elif chunk.type == ChunkType.THINKING:
                    emit(RunEvent(NODE_CHUNK, node.id, chunk.to_dict()))
                elif chunk.type == ChunkType.ERROR:
                    stream_error = chunk.content
        finally:
            self.gateway.streams.finish(slot, token)
            self._slots.pop(node.id, None)
        node.latency_ms = round(now_ms() - started)

        if stream_error:
            node.fail(stream_error[: config.NODE_ERROR_MAX_CHARS])
        elif token.cancelled:
            node.status = NodeStatus.CANCELLED
            node.error = token.reason or "cancelled"
            logger.info(f"Node {node.id} cancelled with {len(node.output)} chars of partial output")
        else:
            run.record(node.id, node.output)
            node.token_count = await counter.count(node.output)
            node.status = NodeStatus.SUCCESS if node.output else NodeStatus.WARNING
            logger.info(f"✓ Node {node.label} done ({node.token_count} tokens, {node.latency_ms}ms)")
        finish()
