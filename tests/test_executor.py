"""Integration tests for the pipeline executor over a fake transport."""

import asyncio

import pytest

from chainflow.credentials import CredentialStore, StaticCredentialStore
from chainflow.errors import PipelineValidationError
from chainflow.gateway import ChatGateway
from chainflow.pipeline import Edge, Node, NodeStatus, Pipeline, PipelineExecutor
from chainflow.pipeline.executor import (
    CYCLE_ERROR,
    NODE_CHUNK,
    NODE_FINISHED,
    RUN_BLOCKED,
    RUN_FINISHED,
    RUN_STARTED,
    SKIPPED_ERROR,
)
from chainflow.providers import Provider
from tests.fixtures.test_helpers import FakeResponse, FakeTransport, openai_sse, prompt_of


def slow_echo(request):
    return FakeResponse(chunks=openai_sse(prompt_of(request)), delay=0.01)


def failing_for(label, status=500, body=b"boom"):
    """Echo every request except the one whose prompt starts with `label:`."""
    def responder(request):
        if prompt_of(request).startswith(f"{label}:"):
            return FakeResponse(status=status, body=body)
        return FakeResponse(chunks=openai_sse(prompt_of(request)))
    return responder


def node(nid, **overrides):
    values = dict(
        id=nid,
        label=nid,
        provider=Provider.OPENAI,
        model="gpt-4o",
        user_prompt_template=f"{nid}: {{{{prev.output}}}}",
    )
    values.update(overrides)
    return Node(**values)


def executor_for(transport, credentials, **kwargs):
    return PipelineExecutor(ChatGateway(transport=transport), credentials, **kwargs)


class TestDiamond:

    @pytest.mark.asyncio
    async def test_outputs_flow_through_layers(self, diamond, credentials):
        transport = FakeTransport()
        result = await executor_for(transport, credentials).run(diamond)

        assert result.status == "completed"
        assert result.layers == [["A"], ["B", "C"], ["D"]]
        assert all(r.status == NodeStatus.SUCCESS for r in result.nodes.values())

        a_out = result.outputs["A"]
        assert a_out == "A: "
        assert result.outputs["B"] == f"B: [Upstream node 1 output]:\n{a_out}"
        assert result.outputs["D"] == (
            f"D: [Upstream node 1 output]:\n{result.outputs['B']}"
            f"\n\n[Upstream node 2 output]:\n{result.outputs['C']}"
        )

        prompts = [prompt_of(r) for r in transport.requests]
        assert prompts[0].startswith("A:")
        assert prompts[-1].startswith("D:")

    @pytest.mark.asyncio
    async def test_siblings_stream_concurrently(self, diamond, credentials):
        transport = FakeTransport(slow_echo)
        await executor_for(transport, credentials, concurrency=2).run(diamond)
        assert transport.max_active == 2

    @pytest.mark.asyncio
    async def test_concurrency_limit_of_one(self, diamond, credentials):
        transport = FakeTransport(slow_echo)
        await executor_for(transport, credentials, concurrency=1).run(diamond)
        assert transport.max_active == 1

    @pytest.mark.asyncio
    async def test_wide_layer_respects_limit(self, credentials):
        pipeline = Pipeline(nodes=[node(f"N{i}") for i in range(6)])
        transport = FakeTransport(slow_echo)

        result = await executor_for(transport, credentials, concurrency=2).run(pipeline)

        assert transport.max_active == 2
        assert len(transport.requests) == 6
        assert result.layers == [[f"N{i}" for i in range(6)]]

    @pytest.mark.asyncio
    async def test_user_input_and_global_facts(self, credentials):
        pipeline = Pipeline(
            nodes=[node("A", user_prompt_template="{{user.input}} / {{global.facts}} / {{node.label}}")],
            global_facts="sky is blue",
        )
        transport = FakeTransport()

        result = await executor_for(transport, credentials).run(pipeline, user_input="why?")

        assert result.outputs["A"] == "why? / sky is blue / A"

    @pytest.mark.asyncio
    async def test_token_count_and_budget(self, credentials):
        transport = FakeTransport(lambda req: FakeResponse(chunks=openai_sse("abcd", "efgh")))
        pipeline = Pipeline(nodes=[node("A", max_tokens=4)])

        result = await executor_for(transport, credentials).run(pipeline)

        node_result = result.nodes["A"]
        assert node_result.token_count == 2
        assert node_result.budget.level == "warning"
        assert node_result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_rerun_resets_transient_state(self, diamond, credentials):
        executor = executor_for(FakeTransport(), credentials)
        await executor.run(diamond)
        result = await executor.run(diamond)

        assert result.status == "completed"
        assert result.outputs["A"] == "A: "


class TestFailures:

    @pytest.mark.asyncio
    async def test_failed_parent_leaves_empty_slot(self, diamond, credentials):
        transport = FakeTransport(failing_for("B"))
        result = await executor_for(transport, credentials).run(diamond)

        assert result.nodes["B"].status == NodeStatus.ERROR
        assert result.nodes["B"].error == "boom"
        assert "B" not in result.outputs
        assert result.nodes["D"].status == NodeStatus.SUCCESS
        assert result.outputs["D"] == f"D: [Upstream node 1 output]:\n{result.outputs['C']}"

    @pytest.mark.asyncio
    async def test_skip_on_failed_parent(self, diamond, credentials):
        transport = FakeTransport(failing_for("B"))
        result = await executor_for(transport, credentials, skip_on_failed_parent=True).run(diamond)

        assert result.nodes["D"].status == NodeStatus.ERROR
        assert result.nodes["D"].error == SKIPPED_ERROR
        assert not any(prompt_of(r).startswith("D:") for r in transport.requests)

    @pytest.mark.asyncio
    async def test_error_message_truncated(self, credentials):
        transport = FakeTransport(lambda req: FakeResponse(status=500, body=b"e" * 1000))
        result = await executor_for(transport, credentials).run(Pipeline(nodes=[node("A")]))
        assert result.nodes["A"].error == "e" * 200

    @pytest.mark.asyncio
    async def test_missing_key(self, diamond):
        transport = FakeTransport()
        result = await executor_for(transport, StaticCredentialStore({"claude": "sk"})).run(diamond)

        assert transport.requests == []
        assert {r.error for r in result.nodes.values()} == {"No API key configured for openai"}

    @pytest.mark.asyncio
    async def test_invalid_node_config(self, credentials):
        transport = FakeTransport()
        pipeline = Pipeline(nodes=[node("A", temperature=5.0)])

        result = await executor_for(transport, credentials).run(pipeline)

        assert result.nodes["A"].status == NodeStatus.ERROR
        assert result.nodes["A"].error == "Invalid temperature"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_crashing_task_becomes_node_error(self, diamond):
        class BrokenStore(CredentialStore):
            def get_key(self, provider):
                raise RuntimeError("vault down")

            def get_endpoint(self, provider):
                return None

        result = await executor_for(FakeTransport(), BrokenStore()).run(diamond)

        assert result.status == "completed"
        assert all(r.error == "vault down" for r in result.nodes.values())

    @pytest.mark.asyncio
    async def test_empty_output_is_warning(self, credentials):
        transport = FakeTransport(lambda req: FakeResponse(chunks=openai_sse()))
        result = await executor_for(transport, credentials).run(Pipeline(nodes=[node("A")]))

        assert result.nodes["A"].status == NodeStatus.WARNING
        assert result.outputs["A"] == ""

    @pytest.mark.asyncio
    async def test_endpoint_from_credentials(self, credentials):
        store = StaticCredentialStore({"openai": "sk"}, {"openai": "https://relay.example.com/"})
        transport = FakeTransport()

        await executor_for(transport, store).run(Pipeline(nodes=[node("A")]))

        assert transport.requests[0].url == "https://relay.example.com/v1/chat/completions"


class TestStructure:

    @pytest.mark.asyncio
    async def test_cycle_blocks_run(self, credentials):
        pipeline = Pipeline(
            nodes=[node("A"), node("B"), node("C")],
            edges=[Edge("A", "B"), Edge("B", "A")],
        )
        transport = FakeTransport()
        events = []

        result = await executor_for(transport, credentials).run(pipeline, on_event=events.append)

        assert result.blocked
        assert set(result.nodes) == {"A", "B"}
        assert all(r.error == CYCLE_ERROR for r in result.nodes.values())
        assert pipeline.get("C").status == NodeStatus.IDLE
        assert transport.requests == []
        assert [e.type for e in events] == [RUN_BLOCKED]
        assert events[0].data["node_ids"] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_dangling_edge_raises(self, credentials):
        pipeline = Pipeline(nodes=[node("A")], edges=[Edge("A", "ghost")])
        with pytest.raises(PipelineValidationError):
            await executor_for(FakeTransport(), credentials).run(pipeline)

    @pytest.mark.unit
    def test_concurrency_must_be_positive(self, credentials):
        with pytest.raises(ValueError):
            executor_for(FakeTransport(), credentials, concurrency=0)


class TestEventsAndCancellation:

    @pytest.mark.asyncio
    async def test_event_order(self, diamond, credentials):
        events = [e async for e in executor_for(FakeTransport(), credentials).stream(diamond)]
        types = [e.type for e in events]

        assert types[0] == RUN_STARTED
        assert types[-1] == RUN_FINISHED
        finished = [e.node_id for e in events if e.type == NODE_FINISHED]
        assert finished[0] == "A"
        assert finished[-1] == "D"
        chunk_nodes = {e.node_id for e in events if e.type == NODE_CHUNK}
        assert chunk_nodes == {"A", "B", "C", "D"}

    @pytest.mark.asyncio
    async def test_event_sse_serializes_result(self, credentials):
        events = [e async for e in executor_for(FakeTransport(), credentials).stream(Pipeline(nodes=[node("A")]))]
        final = events[-1].to_dict()

        assert final["type"] == RUN_FINISHED
        assert final["result"]["nodes"]["A"]["status"] == "success"
        assert events[-1].to_sse().startswith("data: {")

    @pytest.mark.asyncio
    async def test_cancel_stops_live_and_pending_nodes(self, diamond, credentials):
        transport = FakeTransport(lambda req: FakeResponse(chunks=openai_sse("partial", done=False), hang=True))
        executor = executor_for(transport, credentials)

        task = asyncio.ensure_future(executor.run(diamond))
        for _ in range(200):
            if transport.requests:
                break
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.02)
        assert executor.cancel() == 1

        result = await asyncio.wait_for(task, 1.0)

        assert result.status == "cancelled"
        assert all(r.status == NodeStatus.CANCELLED for r in result.nodes.values())
        assert result.outputs == {}
        assert len(transport.requests) == 1
        assert transport.active == 0
